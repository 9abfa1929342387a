"""Blob store for archives, bundles and build assets.

Layout under the store root:

    tarballs/<build_id>.tar.gz       submitted source archives
    bundles/<build_id>/<platform>.*  launch bundles, one per platform
    builds/<build_id>/...            full build output (assets)
    assets/<build_id>/<key>          individually uploaded assets
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol

from otabuild.errors import BlobNotFoundError

logger = logging.getLogger(__name__)

# Bundle lookup preference: plain JavaScript first, then Hermes bytecode
BUNDLE_EXTENSIONS = (".js", ".hbc")


def tarball_path(build_id: str) -> str:
    """Blob path of a build's source archive."""
    return f"tarballs/{build_id}.tar.gz"


def bundle_path(build_id: str, filename: str) -> str:
    """Blob path of a launch bundle file."""
    return f"bundles/{build_id}/{filename}"


def build_output_path(build_id: str, relative_path: str) -> str:
    """Blob path of a file in a build's export output."""
    return f"builds/{build_id}/{relative_path}"


def asset_path(build_id: str, key: str) -> str:
    """Blob path of an individually uploaded asset."""
    return f"assets/{build_id}/{key}"


class BlobStore(Protocol):
    """Narrow interface over blob storage."""

    def put(self, path: str, data: bytes) -> str: ...

    def get(self, path: str) -> bytes: ...

    def exists(self, path: str) -> bool: ...

    def locate(self, path: str) -> str: ...


class LocalBlobStore:
    """Filesystem-backed blob store.

    Paths are POSIX-style and relative to the store root. Paths that would
    escape the root are treated as missing.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        parts = PurePosixPath(path.lstrip("/")).parts
        if not parts or ".." in parts:
            raise BlobNotFoundError(path)
        return self.root.joinpath(*parts)

    def put(self, path: str, data: bytes) -> str:
        """Write bytes at a path, replacing any existing blob.

        Args:
            path: Relative blob path.
            data: Content to store.

        Returns:
            The blob path.
        """
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        # Write to a temp file then rename so readers never see partial blobs
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Stored blob %s (%d bytes)", path, len(data))
        return path

    def get(self, path: str) -> bytes:
        """Read the bytes stored at a path.

        Raises:
            BlobNotFoundError: If nothing is stored there.
        """
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFoundError(path)
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        """Check whether a blob exists."""
        try:
            return self._resolve(path).is_file()
        except BlobNotFoundError:
            return False

    def locate(self, path: str) -> str:
        """Return the absolute filesystem location of a blob."""
        return str(self._resolve(path).resolve())


def get_bundle(store: BlobStore, build_id: str, filename: str) -> tuple[bytes, str]:
    """Fetch a launch bundle, trying alternate extensions.

    A filename with a known bundle extension is tried as-is first. The
    platform stem is then tried with each of BUNDLE_EXTENSIONS in order.

    Args:
        store: Blob store.
        build_id: Build ID.
        filename: Requested name, e.g. ``ios.js``, ``android.hbc`` or ``ios``.

    Returns:
        Tuple of (bundle bytes, resolved filename).

    Raises:
        BlobNotFoundError: If no candidate exists.
    """
    stem = filename
    for ext in BUNDLE_EXTENSIONS:
        if filename.endswith(ext):
            stem = filename[: -len(ext)]
            break

    candidates = [filename] if stem != filename else []
    candidates.extend(f"{stem}{ext}" for ext in BUNDLE_EXTENSIONS)

    for candidate in dict.fromkeys(candidates):
        path = bundle_path(build_id, candidate)
        if store.exists(path):
            return store.get(path), candidate

    raise BlobNotFoundError(bundle_path(build_id, filename))


def get_build_asset(store: BlobStore, build_id: str, relative_path: str) -> bytes:
    """Fetch an asset from a build's output, falling back to uploaded assets.

    Raises:
        BlobNotFoundError: If the asset is in neither location.
    """
    primary = build_output_path(build_id, relative_path)
    if store.exists(primary):
        return store.get(primary)
    return store.get(asset_path(build_id, relative_path))


__all__ = [
    "BUNDLE_EXTENSIONS",
    "BlobStore",
    "LocalBlobStore",
    "asset_path",
    "build_output_path",
    "bundle_path",
    "get_build_asset",
    "get_bundle",
    "tarball_path",
]
