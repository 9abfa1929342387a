"""Update manifest generation.

Everything here is a pure function of its inputs: the same build record,
base URL and platform always yield the same manifest.

Manifests are stored on the build record with asset URLs relative to the
build's asset root (``bundles/ios.js``, ``assets/abc123``). URLs are made
absolute at request time against the base URL the client used.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import uuid
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from otabuild.errors import MissingBundleError
from otabuild.manifests.schema import AssetDescriptor, UpdateManifest
from otabuild.types import Platform, format_timestamp

if TYPE_CHECKING:
    from otabuild.builds.models import BuildRecord

logger = logging.getLogger(__name__)

LAUNCH_ASSET_KEY = "bundle"
# Hermes bytecode is served with the JavaScript content type as well
LAUNCH_ASSET_CONTENT_TYPE = "application/javascript"
EXPORT_METADATA_FILE = "metadata.json"


def deterministic_uuid(value: str) -> str:
    """Derive a stable version-4 style UUID from a string.

    The first 16 bytes of the SHA-256 digest are used, with the version and
    RFC 4122 variant bits set.

    Args:
        value: Input string, typically a build id.

    Returns:
        Canonical hyphenated UUID string.
    """
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))


def compute_asset_hash(data: bytes) -> str:
    """Return the base64url SHA-256 of data without padding."""
    digest = hashlib.sha256(data).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def derive_scope_key(source_config: dict[str, Any] | None) -> str:
    """Derive the update scope key from application metadata.

    Returns:
        ``@owner/slug``, or ``@anonymous/slug`` without an owner, with
        ``app`` standing in for a missing slug.
    """
    config = source_config or {}
    slug = config.get("slug") or "app"
    owner = config.get("owner") or "anonymous"
    return f"@{owner}/{slug}"


def is_absolute_url(url: str) -> bool:
    """Check whether a URL already carries a scheme."""
    return "://" in url


def resolve_asset_url(url: str, base_url: str, build_id: str) -> str:
    """Resolve a stored asset URL against the request base URL.

    Absolute URLs are returned unchanged.
    """
    if is_absolute_url(url):
        return url
    return f"{base_url.rstrip('/')}/v1/assets/{build_id}/{url.lstrip('/')}"


def select_launch_asset(
    bundle_paths: dict[str, str],
    asset_list: list[dict[str, Any]],
    platform: str,
) -> AssetDescriptor:
    """Pick the entry bundle for a platform.

    Android prefers its own bundle and falls back to the iOS one; iOS only
    ever uses the iOS bundle.

    Args:
        bundle_paths: Bundle path per platform, relative to the build output.
        asset_list: Executor-reported asset metadata.
        platform: Requested platform (ios or android).

    Returns:
        Launch AssetDescriptor with a relative URL.

    Raises:
        MissingBundleError: If no usable bundle exists for the platform.
    """
    if platform == Platform.ANDROID.value:
        candidates = [Platform.ANDROID.value, Platform.IOS.value]
    else:
        candidates = [Platform.IOS.value]

    selected = next((p for p in candidates if bundle_paths.get(p)), None)
    if selected is None:
        raise MissingBundleError(platform)

    path = bundle_paths[selected]
    entry = next((a for a in asset_list if a.get("path") == path), None)
    if entry is None:
        logger.warning("Bundle %s for %s missing from asset list", path, selected)
        raise MissingBundleError(platform)

    extension = PurePosixPath(path).suffix or ".js"
    return AssetDescriptor(
        key=LAUNCH_ASSET_KEY,
        hash=entry["hash"],
        content_type=LAUNCH_ASSET_CONTENT_TYPE,
        url=f"bundles/{selected}{extension}",
    )


def build_stored_manifest(
    build_id: str,
    created_at: str,
    runtime_version: str,
    source_config: dict[str, Any],
    asset_list: list[dict[str, Any]],
    bundle_paths: dict[str, str],
    platform: str,
) -> UpdateManifest:
    """Build the manifest persisted on a successful build.

    Bundles and the export metadata file are excluded from ``assets``.

    Raises:
        MissingBundleError: If no launch bundle exists for the platform.
    """
    launch_asset = select_launch_asset(bundle_paths, asset_list, platform)

    excluded = set(bundle_paths.values()) | {EXPORT_METADATA_FILE}
    assets = [
        AssetDescriptor(
            key=entry["key"],
            hash=entry["hash"],
            content_type=entry["contentType"],
            file_extension=entry.get("fileExtension"),
            url=entry["path"],
        )
        for entry in asset_list
        if entry.get("path") not in excluded
    ]

    return UpdateManifest(
        id=deterministic_uuid(build_id),
        created_at=created_at,
        runtime_version=runtime_version,
        launch_asset=launch_asset,
        assets=assets,
        metadata={},
        extra={
            "scopeKey": derive_scope_key(source_config),
            "expoClient": source_config,
        },
    )


def generate_manifest(build: BuildRecord, base_url: str, platform: str) -> UpdateManifest:
    """Generate the manifest served for a successful build.

    When the build's bundle paths are known the launch asset is selected
    for the requested platform. Otherwise the stored manifest's assets are
    used as-is. Id, scope key and client config always come from the record.

    Args:
        build: Successful BuildRecord.
        base_url: Scheme and host the client reached the server at.
        platform: Normalized platform (ios or android).

    Returns:
        UpdateManifest with absolute asset URLs.

    Raises:
        MissingBundleError: If no launch asset can be determined.
    """
    created_at = format_timestamp(build.created_at) or ""

    if build.bundle_paths and build.asset_list:
        stored = build_stored_manifest(
            build.id,
            created_at,
            build.runtime_version,
            build.source_config,
            build.asset_list,
            build.bundle_paths,
            platform,
        )
    elif build.manifest:
        stored = UpdateManifest.model_validate(build.manifest)
    else:
        raise MissingBundleError(platform)

    launch_asset = stored.launch_asset.model_copy(
        update={"url": resolve_asset_url(stored.launch_asset.url, base_url, build.id)}
    )
    assets = [
        asset.model_copy(update={"url": resolve_asset_url(asset.url, base_url, build.id)})
        for asset in stored.assets
    ]
    extra = dict(stored.extra)
    extra["scopeKey"] = derive_scope_key(build.source_config)
    extra["expoClient"] = build.source_config

    return stored.model_copy(
        update={
            "id": deterministic_uuid(build.id),
            "created_at": created_at,
            "runtime_version": build.runtime_version,
            "launch_asset": launch_asset,
            "assets": assets,
            "extra": extra,
        }
    )


def deep_link_url(manifest_url: str) -> str:
    """Convert a manifest URL into an ``exp://`` deep link for Expo Go."""
    parts = urlsplit(manifest_url)
    return f"exp://{parts.netloc}/--{parts.path}"


__all__ = [
    "LAUNCH_ASSET_CONTENT_TYPE",
    "LAUNCH_ASSET_KEY",
    "build_stored_manifest",
    "compute_asset_hash",
    "deep_link_url",
    "derive_scope_key",
    "deterministic_uuid",
    "generate_manifest",
    "is_absolute_url",
    "resolve_asset_url",
    "select_launch_asset",
]
