"""Update manifest endpoint.

- GET /v1/manifest/{id} - Expo Updates protocol v1 manifest

Responds with multipart/mixed when the client accepts it, otherwise with
a plain application/expo+json body.
"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from otabuild.builds.service import get_build
from otabuild.errors import OtaBuildError
from otabuild.manifests.protocol import parse_manifest_request
from otabuild.manifests.server import serve_manifest
from web.deps import get_db, raise_http_error, request_base_url

router = APIRouter()


@router.get("/{build_id}")
def manifest_endpoint(
    build_id: str,
    request: Request,
    db: Session = Depends(get_db),
) -> Response:
    """Serve the update manifest of a successful build."""
    try:
        manifest_request = parse_manifest_request(request.headers)
        build = get_build(db, build_id)
        result = serve_manifest(build, manifest_request, request_base_url(request))
    except OtaBuildError as e:
        raise_http_error(e)

    return Response(
        content=result.body,
        media_type=result.media_type,
        headers=result.headers,
    )
