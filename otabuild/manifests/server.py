"""Manifest serving.

Turns a build record and a parsed manifest request into a complete
response: status checks, manifest generation and wire framing. No HTTP
framework types are involved, so the web layer only copies the result
into its own response object.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from otabuild.errors import BuildNotReadyError
from otabuild.manifests.generator import generate_manifest
from otabuild.manifests.protocol import (
    JSON_MEDIA_TYPE,
    MULTIPART_MEDIA_TYPE,
    ManifestRequest,
    encode_multipart,
    new_boundary,
    protocol_headers,
)

if TYPE_CHECKING:
    from otabuild.builds.models import BuildRecord

logger = logging.getLogger(__name__)


@dataclass
class ManifestResponse:
    """A fully framed manifest response.

    Attributes:
        body: Encoded response body.
        media_type: Content-Type header value.
        headers: Protocol headers to send alongside.
    """

    body: bytes
    media_type: str
    headers: dict[str, str] = field(default_factory=dict)


def serve_manifest(
    build: BuildRecord,
    request: ManifestRequest,
    base_url: str,
    boundary: str | None = None,
) -> ManifestResponse:
    """Build the manifest response for a build.

    Args:
        build: BuildRecord to serve.
        request: Parsed protocol headers.
        base_url: Scheme and host the client reached the server at.
        boundary: Multipart boundary override (generated when omitted).

    Returns:
        ManifestResponse ready to be sent.

    Raises:
        BuildNotReadyError: If the build has not succeeded.
        MissingBundleError: If no launch asset exists for the platform.
    """
    if not build.is_succeeded():
        raise BuildNotReadyError(build.id, build.status)

    if request.runtime_version and request.runtime_version != build.runtime_version:
        logger.warning(
            "Runtime version mismatch for build %s: requested %s, build has %s",
            build.id,
            request.runtime_version,
            build.runtime_version,
        )

    manifest = generate_manifest(build, base_url, request.platform)
    headers = protocol_headers(manifest.id)

    if request.wants_multipart:
        boundary = boundary or new_boundary()
        return ManifestResponse(
            body=encode_multipart(manifest.to_wire(), boundary),
            media_type=f"{MULTIPART_MEDIA_TYPE}; boundary={boundary}",
            headers=headers,
        )

    return ManifestResponse(
        body=json.dumps(manifest.to_wire()).encode("utf-8"),
        media_type=JSON_MEDIA_TYPE,
        headers=headers,
    )


__all__ = ["ManifestResponse", "serve_manifest"]
