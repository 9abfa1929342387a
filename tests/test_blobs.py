"""Tests for storage/blobs.py module."""

from pathlib import Path

import pytest

from otabuild.errors import BlobNotFoundError
from otabuild.storage.blobs import (
    LocalBlobStore,
    asset_path,
    build_output_path,
    bundle_path,
    get_build_asset,
    get_bundle,
    tarball_path,
)


@pytest.fixture
def store(tmp_path: Path) -> LocalBlobStore:
    """Blob store rooted in tmp_path."""
    return LocalBlobStore(tmp_path / "blobs")


class TestPaths:
    """Tests for blob path helpers."""

    def test_layout(self) -> None:
        """Paths follow the storage layout."""
        assert tarball_path("bld_a") == "tarballs/bld_a.tar.gz"
        assert bundle_path("bld_a", "ios.js") == "bundles/bld_a/ios.js"
        assert build_output_path("bld_a", "assets/x") == "builds/bld_a/assets/x"
        assert asset_path("bld_a", "x") == "assets/bld_a/x"


class TestLocalBlobStore:
    """Tests for LocalBlobStore."""

    def test_put_get_roundtrip(self, store: LocalBlobStore) -> None:
        """Stored bytes can be read back."""
        store.put("tarballs/a.tar.gz", b"archive")
        assert store.get("tarballs/a.tar.gz") == b"archive"
        assert store.exists("tarballs/a.tar.gz")

    def test_put_overwrites(self, store: LocalBlobStore) -> None:
        """A second put replaces the blob."""
        store.put("x/y", b"one")
        store.put("x/y", b"two")
        assert store.get("x/y") == b"two"

    def test_put_leaves_no_temp_files(self, store: LocalBlobStore) -> None:
        """Atomic writes clean up after themselves."""
        store.put("x/y", b"data")
        assert [p.name for p in (store.root / "x").iterdir()] == ["y"]

    def test_get_missing(self, store: LocalBlobStore) -> None:
        """Missing blobs raise BlobNotFoundError."""
        with pytest.raises(BlobNotFoundError) as exc_info:
            store.get("nope")
        assert exc_info.value.code == "blob_not_found"
        assert not store.exists("nope")

    def test_traversal_is_rejected(self, store: LocalBlobStore, tmp_path: Path) -> None:
        """Paths escaping the root are treated as missing."""
        (tmp_path / "secret").write_bytes(b"secret")
        assert not store.exists("../secret")
        with pytest.raises(BlobNotFoundError):
            store.get("builds/../../secret")

    def test_locate(self, store: LocalBlobStore) -> None:
        """locate returns an absolute filesystem path."""
        store.put("tarballs/a.tar.gz", b"archive")
        located = Path(store.locate("tarballs/a.tar.gz"))
        assert located.is_absolute()
        assert located.read_bytes() == b"archive"


class TestGetBundle:
    """Tests for get_bundle extension fallback."""

    def test_exact_name(self, store: LocalBlobStore) -> None:
        """An existing exact name is returned."""
        store.put(bundle_path("bld_a", "ios.js"), b"js")
        assert get_bundle(store, "bld_a", "ios.js") == (b"js", "ios.js")

    def test_js_falls_back_to_hbc(self, store: LocalBlobStore) -> None:
        """A missing .js bundle is served from .hbc."""
        store.put(bundle_path("bld_a", "android.hbc"), b"hermes")
        assert get_bundle(store, "bld_a", "android.js") == (b"hermes", "android.hbc")

    def test_hbc_falls_back_to_js(self, store: LocalBlobStore) -> None:
        """A missing .hbc bundle is served from .js."""
        store.put(bundle_path("bld_a", "ios.js"), b"js")
        assert get_bundle(store, "bld_a", "ios.hbc") == (b"js", "ios.js")

    def test_js_preferred_over_hbc(self, store: LocalBlobStore) -> None:
        """Without an extension, .js wins over .hbc."""
        store.put(bundle_path("bld_a", "ios.js"), b"js")
        store.put(bundle_path("bld_a", "ios.hbc"), b"hermes")
        assert get_bundle(store, "bld_a", "ios") == (b"js", "ios.js")

    def test_missing(self, store: LocalBlobStore) -> None:
        """No candidate means BlobNotFoundError."""
        with pytest.raises(BlobNotFoundError):
            get_bundle(store, "bld_a", "ios.js")


class TestGetBuildAsset:
    """Tests for get_build_asset."""

    def test_prefers_build_output(self, store: LocalBlobStore) -> None:
        """Build output wins over uploaded assets."""
        store.put(build_output_path("bld_a", "assets/x"), b"output")
        store.put(asset_path("bld_a", "assets/x"), b"uploaded")
        assert get_build_asset(store, "bld_a", "assets/x") == b"output"

    def test_falls_back_to_uploaded(self, store: LocalBlobStore) -> None:
        """Uploaded assets are used when the build output lacks the file."""
        store.put(asset_path("bld_a", "abc"), b"uploaded")
        assert get_build_asset(store, "bld_a", "abc") == b"uploaded"

    def test_missing(self, store: LocalBlobStore) -> None:
        """Missing in both locations raises BlobNotFoundError."""
        with pytest.raises(BlobNotFoundError):
            get_build_asset(store, "bld_a", "abc")
