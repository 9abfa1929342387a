"""Expo Updates protocol v1 request parsing and response framing.

Clients send ``expo-platform``, ``expo-runtime-version`` and
``expo-protocol-version`` headers. Newer clients ask for a
``multipart/mixed`` body holding the manifest and an extensions part;
older ones get a plain ``application/expo+json`` body.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from otabuild.errors import UnsupportedProtocolVersionError
from otabuild.types import Platform

PROTOCOL_VERSION = "1"
SFV_VERSION = "0"

HEADER_PLATFORM = "expo-platform"
HEADER_RUNTIME_VERSION = "expo-runtime-version"
HEADER_PROTOCOL_VERSION = "expo-protocol-version"
HEADER_SFV_VERSION = "expo-sfv-version"
HEADER_MANIFEST_FILTERS = "expo-manifest-filters"
HEADER_SERVER_DEFINED_HEADERS = "expo-server-defined-headers"
HEADER_UPDATE_ID = "expo-update-id"

JSON_MEDIA_TYPE = "application/expo+json"
MULTIPART_MEDIA_TYPE = "multipart/mixed"
BOUNDARY_PREFIX = "----ExpoManifestBoundary-"
CRLF = "\r\n"


@dataclass
class ManifestRequest:
    """Protocol-relevant parts of a manifest request.

    Attributes:
        platform: Normalized platform (ios or android).
        runtime_version: Runtime version the client runs, if sent.
        protocol_version: Protocol version the client speaks, if sent.
        accept: Raw Accept header.
    """

    platform: str
    runtime_version: str | None = None
    protocol_version: str | None = None
    accept: str = ""

    @property
    def wants_multipart(self) -> bool:
        """Whether the client accepts a multipart/mixed body."""
        return accepts_multipart(self.accept)


def normalize_platform(value: str | None) -> str:
    """Map a platform header to ios or android; anything else means ios."""
    if value == Platform.ANDROID.value:
        return Platform.ANDROID.value
    return Platform.IOS.value


def check_protocol_version(value: str | None) -> None:
    """Validate the protocol version header.

    A missing header is accepted.

    Raises:
        UnsupportedProtocolVersionError: If a version other than 1 is sent.
    """
    if value is not None and value != PROTOCOL_VERSION:
        raise UnsupportedProtocolVersionError(value)


def accepts_multipart(accept: str | None) -> bool:
    """Check whether an Accept header allows multipart/mixed."""
    return MULTIPART_MEDIA_TYPE in (accept or "")


def parse_manifest_request(headers: Mapping[str, str]) -> ManifestRequest:
    """Extract and validate protocol headers.

    Args:
        headers: Case-insensitive request headers.

    Returns:
        ManifestRequest with a normalized platform.

    Raises:
        UnsupportedProtocolVersionError: If the protocol version is not 1.
    """
    protocol_version = headers.get(HEADER_PROTOCOL_VERSION)
    check_protocol_version(protocol_version)
    return ManifestRequest(
        platform=normalize_platform(headers.get(HEADER_PLATFORM)),
        runtime_version=headers.get(HEADER_RUNTIME_VERSION),
        protocol_version=protocol_version,
        accept=headers.get("accept", ""),
    )


def _first_value(value: str | None) -> str | None:
    """Return the first entry of a comma-separated header value."""
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def compute_base_url(headers: Mapping[str, str], request_url: str) -> str:
    """Work out the scheme and host the client used to reach the server.

    Proxy headers (``x-forwarded-proto``, ``x-forwarded-host``) win over the
    ``host`` header, which wins over the request URL itself.

    Args:
        headers: Case-insensitive request headers.
        request_url: Full URL of the request as seen by the server.

    Returns:
        Base URL such as ``https://updates.example.com``.
    """
    url = urlsplit(request_url)
    scheme = _first_value(headers.get("x-forwarded-proto")) or url.scheme or "http"
    host = (
        _first_value(headers.get("x-forwarded-host"))
        or headers.get("host")
        or url.netloc
    )
    return f"{scheme}://{host}"


def new_boundary() -> str:
    """Generate a fresh multipart boundary."""
    return f"{BOUNDARY_PREFIX}{uuid.uuid4().hex[:22]}"


def encode_multipart(manifest: dict[str, Any], boundary: str) -> bytes:
    """Frame a manifest as a multipart/mixed body.

    The body holds a ``manifest`` part and an ``extensions`` part, both
    JSON, and ends with the closing boundary followed by CRLF.
    """
    extensions = {"assetRequestHeaders": {}}
    lines: list[str] = []
    for name, payload in (("manifest", manifest), ("extensions", extensions)):
        lines.extend(
            [
                f"--{boundary}",
                f'Content-Disposition: form-data; name="{name}"',
                "Content-Type: application/json",
                "",
                json.dumps(payload, separators=(",", ":")),
            ]
        )
    lines.extend([f"--{boundary}--", ""])
    return CRLF.join(lines).encode("utf-8")


def protocol_headers(update_id: str) -> dict[str, str]:
    """Headers sent with every manifest response."""
    return {
        HEADER_PROTOCOL_VERSION: PROTOCOL_VERSION,
        HEADER_SFV_VERSION: SFV_VERSION,
        HEADER_MANIFEST_FILTERS: "",
        HEADER_SERVER_DEFINED_HEADERS: "",
        HEADER_UPDATE_ID: update_id,
        "cache-control": "private, max-age=0",
    }


__all__ = [
    "JSON_MEDIA_TYPE",
    "MULTIPART_MEDIA_TYPE",
    "PROTOCOL_VERSION",
    "SFV_VERSION",
    "ManifestRequest",
    "accepts_multipart",
    "check_protocol_version",
    "compute_base_url",
    "encode_multipart",
    "new_boundary",
    "normalize_platform",
    "parse_manifest_request",
    "protocol_headers",
]
