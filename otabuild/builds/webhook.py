"""Webhook resolution of executor outcomes.

Executors report back through two callbacks:
- build-complete: the single terminal outcome (success or failed)
- build-progress: intermediate phase changes

The terminal transition and the lock release happen in one transaction,
through the same conditional update the timeout path uses, so a build
resolves exactly once no matter how often the webhook is delivered.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pydantic
from sqlalchemy.orm import Session, sessionmaker

from otabuild.builds import store
from otabuild.builds.models import BuildRecord
from otabuild.config import get_settings
from otabuild.db import get_session
from otabuild.errors import (
    EXECUTOR_FAILURE,
    AssetVerificationError,
    BlobNotFoundError,
    ExecutorFailure,
    InvalidTransitionError,
    MissingBundleError,
)
from otabuild.manifests.generator import (
    build_stored_manifest,
    compute_asset_hash,
    deterministic_uuid,
    is_absolute_url,
)
from otabuild.manifests.schema import AssetDescriptor, UpdateManifest
from otabuild.storage.blobs import get_build_asset, get_bundle
from otabuild.types import PROGRESS_STATUSES, BuildStatus, Platform, format_timestamp

if TYPE_CHECKING:
    from otabuild.builds.schema import WebhookPayload
    from otabuild.builds.service import BuildTimeouts
    from otabuild.config import Settings
    from otabuild.storage.blobs import BlobStore

logger = logging.getLogger(__name__)

BUNDLE_URL_PREFIX = "bundles/"


def resolution_platform(build_platform: str, bundle_paths: dict[str, str]) -> str:
    """Platform whose launch asset goes into the stored manifest.

    Single-platform builds use their own platform. Builds for all
    platforms prefer iOS when an iOS bundle was produced.
    """
    if build_platform in (Platform.IOS.value, Platform.ANDROID.value):
        return build_platform
    if bundle_paths.get(Platform.IOS.value):
        return Platform.IOS.value
    return Platform.ANDROID.value


def verify_asset_hashes(
    blob_store: BlobStore, build_id: str, asset_list: list[dict[str, Any]]
) -> None:
    """Re-hash stored assets and compare them with the reported hashes.

    Raises:
        AssetVerificationError: If an asset is missing or its bytes differ.
    """
    for entry in asset_list:
        path = entry["path"]
        try:
            data = get_build_asset(blob_store, build_id, path)
        except BlobNotFoundError as e:
            raise AssetVerificationError(path, "missing from storage") from e
        if compute_asset_hash(data) != entry["hash"]:
            raise AssetVerificationError(path, "hash mismatch")


def verify_launch_bundle(
    blob_store: BlobStore, build_id: str, launch_asset: AssetDescriptor
) -> None:
    """Re-hash the bundle copy served for a launch asset.

    Only relative ``bundles/<file>`` URLs are served from the blob store;
    anything else is left alone.

    Raises:
        AssetVerificationError: If the bundle is missing or its bytes differ.
    """
    url = launch_asset.url
    if is_absolute_url(url) or not url.startswith(BUNDLE_URL_PREFIX):
        return
    filename = url[len(BUNDLE_URL_PREFIX) :]
    try:
        data, _ = get_bundle(blob_store, build_id, filename)
    except BlobNotFoundError as e:
        raise AssetVerificationError(url, "missing from storage") from e
    if compute_asset_hash(data) != launch_asset.hash:
        raise AssetVerificationError(url, "hash mismatch")


class WebhookResolver:
    """Applies executor callbacks to build records.

    Args:
        session_factory: Session factory for the metadata store.
        timeouts: Timer registry; a resolved build's timer is cancelled.
        blob_store: Blob store, needed only for hash verification.
        settings: Settings; defaults to the environment.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        timeouts: BuildTimeouts | None = None,
        blob_store: BlobStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.timeouts = timeouts
        self.blob_store = blob_store
        self.settings = settings or get_settings()

    def _success_values(
        self, build: BuildRecord, payload: WebhookPayload
    ) -> dict[str, Any]:
        """Derive the stored manifest and outputs of a successful build.

        Raises:
            MissingBundleError: If no launch bundle can be selected.
            ExecutorFailure: If the reported outputs are unusable.
        """
        asset_list = (
            [asset.to_record() for asset in payload.assets] if payload.assets else None
        )
        bundle_paths = {k: v for k, v in (payload.bundles or {}).items() if v} or None

        if bundle_paths and asset_list:
            manifest = build_stored_manifest(
                build.id,
                format_timestamp(build.created_at) or "",
                build.runtime_version,
                build.source_config,
                asset_list,
                bundle_paths,
                resolution_platform(build.platform, bundle_paths),
            )
        elif payload.manifest:
            try:
                manifest = UpdateManifest.model_validate(payload.manifest)
            except pydantic.ValidationError as e:
                raise ExecutorFailure(
                    f"Executor reported an invalid manifest: {e}"
                ) from e
            manifest = manifest.model_copy(update={"id": deterministic_uuid(build.id)})
        else:
            raise MissingBundleError(build.platform)

        if self.settings.verify_asset_hashes and self.blob_store:
            if asset_list:
                verify_asset_hashes(self.blob_store, build.id, asset_list)
            verify_launch_bundle(self.blob_store, build.id, manifest.launch_asset)

        return {
            "manifest": manifest.to_wire(),
            "asset_list": asset_list,
            "bundle_paths": bundle_paths,
        }

    def resolve(self, build_id: str, payload: WebhookPayload) -> bool:
        """Apply a terminal outcome.

        Args:
            build_id: Build the outcome belongs to.
            payload: Reported outcome.

        Returns:
            True if this call resolved the build, False if it was already
            terminal.

        Raises:
            BuildNotFoundError: If the build does not exist. The lock is
                left untouched.
        """
        with get_session(self.session_factory) as session:
            build = store.get_build(session, build_id)
            if build.is_terminal():
                logger.info(
                    "Ignoring %s webhook for build %s, already %s",
                    payload.status,
                    build_id,
                    build.status,
                )
                return False

            if payload.status == BuildStatus.SUCCESS.value:
                try:
                    values = self._success_values(build, payload)
                except (MissingBundleError, ExecutorFailure) as e:
                    logger.error(
                        "Build %s reported success but failed checks: %s", build_id, e
                    )
                    applied = store.finalize_build(
                        session,
                        build_id,
                        BuildStatus.FAILED,
                        error=str(e),
                        error_code=e.code,
                    )
                else:
                    applied = store.finalize_build(
                        session, build_id, BuildStatus.SUCCESS, **values
                    )
            else:
                applied = store.finalize_build(
                    session,
                    build_id,
                    BuildStatus.FAILED,
                    error=payload.error or "Unknown error",
                    error_code=EXECUTOR_FAILURE,
                )

        if applied:
            if self.timeouts is not None:
                self.timeouts.cancel(build_id)
        else:
            logger.info("Build %s was resolved concurrently, webhook ignored", build_id)
        return applied

    def report_progress(self, build_id: str, status: BuildStatus) -> bool:
        """Move a build to a later intermediate phase.

        Returns:
            True if the phase was recorded, False for terminal builds.

        Raises:
            BuildNotFoundError: If the build does not exist.
            InvalidTransitionError: If the phase is not after the current one.
        """
        with get_session(self.session_factory) as session:
            build = store.get_build(session, build_id)
            if build.is_terminal():
                logger.info(
                    "Ignoring progress %s for build %s, already %s",
                    status.value,
                    build_id,
                    build.status,
                )
                return False
            if status not in PROGRESS_STATUSES or not build.can_advance_to(status):
                raise InvalidTransitionError(build_id, build.status, status.value)

            applied = store.advance_status(session, build_id, status)

        if applied:
            logger.info("Build %s is %s", build_id, status.value)
        return applied


__all__ = [
    "WebhookResolver",
    "resolution_platform",
    "verify_asset_hashes",
    "verify_launch_bundle",
]
