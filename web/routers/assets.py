"""Asset download endpoints.

- GET /v1/assets/{id}/bundles/{filename} - Launch bundle
- GET /v1/assets/{id}/{path} - Any other exported asset

Assets are immutable once a build completes, so responses are cacheable
forever.
"""

import mimetypes

from fastapi import APIRouter, Depends, Response

from otabuild.errors import AssetNotFoundError, BlobNotFoundError
from otabuild.storage.blobs import BlobStore, get_build_asset, get_bundle
from web.deps import get_blob_store, raise_http_error

router = APIRouter()

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
JAVASCRIPT_MEDIA_TYPE = "application/javascript"


def guess_media_type(filename: str) -> str:
    """Content type for an asset; Hermes bytecode is served as JavaScript."""
    if filename.endswith((".hbc", ".js")):
        return JAVASCRIPT_MEDIA_TYPE
    media_type, _ = mimetypes.guess_type(filename)
    return media_type or "application/octet-stream"


@router.get("/{build_id}/bundles/{filename}")
def bundle_endpoint(
    build_id: str,
    filename: str,
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    """Serve a launch bundle, trying .js then .hbc."""
    try:
        data, resolved = get_bundle(blob_store, build_id, filename)
    except BlobNotFoundError:
        raise_http_error(AssetNotFoundError(build_id, f"bundles/{filename}"))

    return Response(
        content=data,
        media_type=guess_media_type(resolved),
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )


@router.get("/{build_id}/{asset_path:path}")
def asset_endpoint(
    build_id: str,
    asset_path: str,
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    """Serve an exported asset of a build."""
    try:
        data = get_build_asset(blob_store, build_id, asset_path)
    except BlobNotFoundError:
        raise_http_error(AssetNotFoundError(build_id, asset_path))

    return Response(
        content=data,
        media_type=guess_media_type(asset_path),
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )
