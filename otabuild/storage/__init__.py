"""Blob storage module.

This module handles:
- Storing submitted archives
- Reading launch bundles with extension fallback
- Reading build output assets
"""

from otabuild.storage.blobs import BlobStore, LocalBlobStore

__all__ = ["BlobStore", "LocalBlobStore"]
