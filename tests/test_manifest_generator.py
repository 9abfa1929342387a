"""Tests for manifests/generator.py module."""

import uuid
from datetime import datetime, timezone

import pytest

from otabuild.builds.models import BuildRecord
from otabuild.errors import MissingBundleError
from otabuild.manifests.generator import (
    build_stored_manifest,
    compute_asset_hash,
    deep_link_url,
    derive_scope_key,
    deterministic_uuid,
    generate_manifest,
    is_absolute_url,
    resolve_asset_url,
    select_launch_asset,
)

IOS_BUNDLE = "_expo/static/js/ios/entry-abc.hbc"
ANDROID_BUNDLE = "_expo/static/js/android/entry-def.js"


@pytest.fixture
def asset_list() -> list[dict]:
    """Executor-reported assets including both bundles and metadata.json."""
    return [
        {"key": IOS_BUNDLE, "hash": "iosHash", "contentType": "application/javascript", "path": IOS_BUNDLE},
        {"key": ANDROID_BUNDLE, "hash": "androidHash", "contentType": "application/javascript", "path": ANDROID_BUNDLE},
        {"key": "metadata.json", "hash": "metaHash", "contentType": "application/json", "path": "metadata.json"},
        {
            "key": "assets/4f1c",
            "hash": "iconHash",
            "contentType": "image/png",
            "fileExtension": ".png",
            "path": "assets/4f1c",
        },
    ]


@pytest.fixture
def bundles() -> dict[str, str]:
    """Bundle paths for both platforms."""
    return {"ios": IOS_BUNDLE, "android": ANDROID_BUNDLE}


def make_record(**fields) -> BuildRecord:
    """Build an unsaved successful BuildRecord."""
    values = {
        "id": "bld_gen000001",
        "project_key": "demo",
        "status": "success",
        "platform": "all",
        "runtime_version": "exposdk:52.0.0",
        "created_at": datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
        "source_config": {"name": "Demo", "slug": "demo", "owner": "acme"},
    }
    values.update(fields)
    return BuildRecord(**values)


class TestDeterministicUuid:
    """Tests for deterministic_uuid."""

    def test_stable(self) -> None:
        """The same input always yields the same id."""
        assert deterministic_uuid("bld_a") == deterministic_uuid("bld_a")

    def test_distinct_inputs(self) -> None:
        """Different inputs yield different ids."""
        assert deterministic_uuid("bld_a") != deterministic_uuid("bld_b")

    def test_version_and_variant(self) -> None:
        """Ids are well-formed version 4 RFC 4122 UUIDs."""
        value = uuid.UUID(deterministic_uuid("bld_a"))
        assert value.version == 4
        assert value.variant == uuid.RFC_4122
        assert str(value) == deterministic_uuid("bld_a")


class TestHashesAndUrls:
    """Tests for hashing and URL helpers."""

    def test_compute_asset_hash(self) -> None:
        """Hashes are unpadded base64url SHA-256."""
        assert compute_asset_hash(b"") == "47DEQpj8HBSa-_TImW-5JCeuQeRkm5NMpJWZG3hSuFU"
        assert "=" not in compute_asset_hash(b"anything")

    def test_is_absolute_url(self) -> None:
        """URLs with a scheme separator are absolute."""
        assert is_absolute_url("https://cdn.example.com/a")
        assert not is_absolute_url("assets/a")

    def test_resolve_relative(self) -> None:
        """Relative URLs are placed under the build's asset root."""
        assert (
            resolve_asset_url("bundles/ios.js", "https://ota.example.com", "bld_a")
            == "https://ota.example.com/v1/assets/bld_a/bundles/ios.js"
        )

    def test_resolve_absolute_untouched(self) -> None:
        """Absolute URLs are never rewritten."""
        url = "https://cdn.example.com/x.png"
        assert resolve_asset_url(url, "https://ota.example.com", "bld_a") == url

    def test_deep_link_url(self) -> None:
        """Manifest URLs convert to exp:// deep links."""
        assert (
            deep_link_url("https://ota.example.com/v1/manifest/bld_a")
            == "exp://ota.example.com/--/v1/manifest/bld_a"
        )


class TestScopeKey:
    """Tests for derive_scope_key."""

    @pytest.mark.parametrize(
        ("config", "expected"),
        [
            ({"slug": "demo", "owner": "acme"}, "@acme/demo"),
            ({"slug": "demo"}, "@anonymous/demo"),
            ({"owner": "acme"}, "@acme/app"),
            ({}, "@anonymous/app"),
            (None, "@anonymous/app"),
            ({"slug": "", "owner": ""}, "@anonymous/app"),
        ],
    )
    def test_scope_key(self, config, expected) -> None:
        """Scope keys are never empty."""
        assert derive_scope_key(config) == expected


class TestSelectLaunchAsset:
    """Tests for select_launch_asset."""

    def test_ios(self, bundles, asset_list) -> None:
        """iOS uses the iOS bundle and keeps its extension."""
        launch = select_launch_asset(bundles, asset_list, "ios")
        assert launch.key == "bundle"
        assert launch.hash == "iosHash"
        assert launch.url == "bundles/ios.hbc"
        assert launch.content_type == "application/javascript"
        assert launch.file_extension is None

    def test_android(self, bundles, asset_list) -> None:
        """Android uses its own bundle when present."""
        launch = select_launch_asset(bundles, asset_list, "android")
        assert launch.hash == "androidHash"
        assert launch.url == "bundles/android.js"

    def test_android_falls_back_to_ios(self, asset_list) -> None:
        """Android falls back to the iOS bundle."""
        launch = select_launch_asset({"ios": IOS_BUNDLE}, asset_list, "android")
        assert launch.hash == "iosHash"
        assert launch.url == "bundles/ios.hbc"

    def test_ios_never_uses_android(self, asset_list) -> None:
        """iOS without an iOS bundle is an error."""
        with pytest.raises(MissingBundleError) as exc_info:
            select_launch_asset({"android": ANDROID_BUNDLE}, asset_list, "ios")
        assert exc_info.value.code == "missing_bundle"

    def test_no_bundles(self, asset_list) -> None:
        """No bundles at all is an error."""
        with pytest.raises(MissingBundleError):
            select_launch_asset({}, asset_list, "android")

    def test_bundle_missing_from_assets(self, bundles) -> None:
        """A bundle path absent from the asset list is an error."""
        with pytest.raises(MissingBundleError):
            select_launch_asset(bundles, [], "ios")


class TestBuildStoredManifest:
    """Tests for build_stored_manifest."""

    def test_stored_manifest(self, bundles, asset_list) -> None:
        """Stored manifests keep relative URLs and skip bundles and metadata."""
        manifest = build_stored_manifest(
            "bld_a",
            "2025-03-01T12:00:00.000Z",
            "exposdk:52.0.0",
            {"name": "Demo", "slug": "demo"},
            asset_list,
            bundles,
            "ios",
        )
        wire = manifest.to_wire()

        assert wire["id"] == deterministic_uuid("bld_a")
        assert wire["createdAt"] == "2025-03-01T12:00:00.000Z"
        assert wire["runtimeVersion"] == "exposdk:52.0.0"
        assert wire["launchAsset"]["url"] == "bundles/ios.hbc"
        assert wire["assets"] == [
            {
                "key": "assets/4f1c",
                "hash": "iconHash",
                "contentType": "image/png",
                "fileExtension": ".png",
                "url": "assets/4f1c",
            }
        ]
        assert wire["metadata"] == {}
        assert wire["extra"] == {
            "scopeKey": "@anonymous/demo",
            "expoClient": {"name": "Demo", "slug": "demo"},
        }


class TestGenerateManifest:
    """Tests for generate_manifest."""

    def test_absolute_urls(self, bundles, asset_list) -> None:
        """Every URL in a served manifest is absolute."""
        build = make_record(bundle_paths=bundles, asset_list=asset_list)
        wire = generate_manifest(build, "https://ota.example.com", "ios").to_wire()

        urls = [wire["launchAsset"]["url"]] + [a["url"] for a in wire["assets"]]
        assert all(u.startswith("https://ota.example.com/v1/assets/bld_gen000001/") for u in urls)

    def test_deterministic(self, bundles, asset_list) -> None:
        """Same inputs give the same manifest."""
        build = make_record(bundle_paths=bundles, asset_list=asset_list)
        first = generate_manifest(build, "https://a.example", "android").to_wire()
        second = generate_manifest(build, "https://a.example", "android").to_wire()
        assert first == second
        assert first["id"] == deterministic_uuid("bld_gen000001")

    def test_platform_selects_bundle(self, bundles, asset_list) -> None:
        """The requested platform picks the launch asset."""
        build = make_record(bundle_paths=bundles, asset_list=asset_list)
        ios = generate_manifest(build, "https://a.example", "ios")
        android = generate_manifest(build, "https://a.example", "android")
        assert ios.launch_asset.url.endswith("/bundles/ios.hbc")
        assert android.launch_asset.url.endswith("/bundles/android.js")

    def test_record_metadata(self, bundles, asset_list) -> None:
        """Scope key, client config and timestamps come from the record."""
        build = make_record(bundle_paths=bundles, asset_list=asset_list)
        wire = generate_manifest(build, "https://a.example", "ios").to_wire()
        assert wire["createdAt"] == "2025-03-01T12:00:00.000Z"
        assert wire["extra"]["scopeKey"] == "@acme/demo"
        assert wire["extra"]["expoClient"] == build.source_config

    def test_from_stored_manifest(self) -> None:
        """Without bundle paths the stored manifest is used."""
        stored = {
            "id": "legacy-id",
            "createdAt": "2025-01-01T00:00:00.000Z",
            "runtimeVersion": "old",
            "launchAsset": {
                "key": "bundle",
                "hash": "h",
                "contentType": "application/javascript",
                "url": "bundles/ios.js",
            },
            "assets": [
                {
                    "key": "remote",
                    "hash": "r",
                    "contentType": "image/png",
                    "url": "https://cdn.example.com/remote.png",
                }
            ],
            "metadata": {},
            "extra": {"custom": True},
        }
        build = make_record(manifest=stored)
        wire = generate_manifest(build, "http://host:3000", "ios").to_wire()

        assert wire["id"] == deterministic_uuid("bld_gen000001")
        assert wire["runtimeVersion"] == "exposdk:52.0.0"
        assert wire["launchAsset"]["url"] == "http://host:3000/v1/assets/bld_gen000001/bundles/ios.js"
        assert wire["assets"][0]["url"] == "https://cdn.example.com/remote.png"
        assert wire["extra"]["custom"] is True
        assert wire["extra"]["scopeKey"] == "@acme/demo"

    def test_nothing_to_serve(self) -> None:
        """A record with neither bundles nor manifest cannot be served."""
        with pytest.raises(MissingBundleError):
            generate_manifest(make_record(), "http://host", "ios")
