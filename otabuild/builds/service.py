"""Build lifecycle service.

This module provides the high-level build API:
- BuildCoordinator.submit(): validate, take the build lock, persist, dispatch
- BuildCoordinator.expire(): fail a build that outlived its timeout
- BuildCoordinator.recover(): re-arm timeouts after a restart
- BuildTimeouts: registry of per-build timeout timers

Only one build is in flight at a time. The lock is acquired before any
record exists and is released exactly once, by whichever terminal
transition wins (webhook, timeout or dispatch failure).
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pydantic
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from otabuild.builds import store
from otabuild.builds.models import BuildRecord
from otabuild.builds.schema import BuildSubmission
from otabuild.builds.store import get_build, list_builds
from otabuild.config import get_settings
from otabuild.db import get_session
from otabuild.errors import (
    BuildTimeoutError,
    ExecutorFailure,
    LockConflictError,
    ValidationError,
)
from otabuild.storage.blobs import tarball_path
from otabuild.types import BuildJob, BuildStatus, ensure_utc, utcnow

if TYPE_CHECKING:
    from otabuild.builds.executors import BuildExecutor
    from otabuild.config import Settings
    from otabuild.storage.blobs import BlobStore

logger = logging.getLogger(__name__)

BUILD_ID_PREFIX = "bld_"
WEBHOOK_COMPLETE_PATH = "/v1/webhook/build-complete"
WEBHOOK_PROGRESS_PATH = "/v1/webhook/build-progress"
TIMEOUT_RETRY_DELAY = 5.0


def new_build_id() -> str:
    """Generate an opaque build id such as ``bld_3kTz9qLw0aXe``."""
    return f"{BUILD_ID_PREFIX}{secrets.token_urlsafe(9)}"


def parse_submission(metadata: str | dict[str, Any]) -> BuildSubmission:
    """Parse submission metadata from a JSON string or a mapping.

    Raises:
        ValidationError: If the metadata is not valid JSON or misses
            required fields.
    """
    try:
        if isinstance(metadata, str):
            return BuildSubmission.model_validate_json(metadata)
        return BuildSubmission.model_validate(metadata)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'metadata'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid build metadata: {details}") from e


class BuildTimeouts:
    """Registry of per-build timeout timers.

    Each build has at most one timer. Timers are daemon threads, so they
    never keep the process alive on their own.
    """

    def __init__(self) -> None:
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(
        self,
        build_id: str,
        delay: float,
        callback: Callable[[str], Any],
    ) -> threading.Timer:
        """Arm a timer calling ``callback(build_id)`` after ``delay`` seconds.

        An existing timer for the same build is replaced.
        """
        timer = threading.Timer(max(delay, 0.0), self._fire, args=(build_id, callback))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(build_id, None)
            self._timers[build_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        return timer

    def _fire(self, build_id: str, callback: Callable[[str], Any]) -> None:
        with self._lock:
            self._timers.pop(build_id, None)
        callback(build_id)

    def cancel(self, build_id: str) -> bool:
        """Cancel a build's timer. Returns True if one was pending."""
        with self._lock:
            timer = self._timers.pop(build_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> list[str]:
        """Build ids with a pending timer."""
        with self._lock:
            return list(self._timers)


class BuildCoordinator:
    """Single-flight build lifecycle coordinator.

    Args:
        session_factory: Session factory for the metadata store.
        blob_store: Blob store receiving submitted archives.
        executor: Build executor jobs are dispatched to.
        settings: Settings; defaults to the environment.
        timeouts: Timer registry shared with the webhook resolver.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        blob_store: BlobStore,
        executor: BuildExecutor,
        settings: Settings | None = None,
        timeouts: BuildTimeouts | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.executor = executor
        self.settings = settings or get_settings()
        self.timeouts = timeouts or BuildTimeouts()
        self.timeout_retry_delay = TIMEOUT_RETRY_DELAY

    def validate_submission(self, submission: BuildSubmission, archive: bytes) -> None:
        """Check a submission before any lock interaction.

        Raises:
            ValidationError: If the archive or metadata is unusable.
        """
        if not submission.project_key.strip():
            raise ValidationError("project_key must not be empty")
        if not submission.source_config.name or not submission.source_config.slug:
            raise ValidationError("source_config requires name and slug")
        if not archive:
            raise ValidationError("Archive is empty")
        if len(archive) > self.settings.max_archive_bytes:
            raise ValidationError(
                f"Archive is {len(archive)} bytes, limit is "
                f"{self.settings.max_archive_bytes} bytes"
            )

    def _callback_base_url(self, callback_base_url: str | None) -> str:
        if self.settings.public_url:
            return self.settings.public_url.rstrip("/")
        if callback_base_url:
            return callback_base_url.rstrip("/")
        return f"http://{self.settings.host}:{self.settings.port}"

    def submit(
        self,
        submission: BuildSubmission,
        archive: bytes,
        callback_base_url: str | None = None,
    ) -> BuildRecord:
        """Submit a build.

        Args:
            submission: Validated submission metadata.
            archive: Source archive bytes.
            callback_base_url: Base URL the executor calls back on when no
                ``public_url`` is configured. Defaults to the bind address.

        Returns:
            The new BuildRecord. Its status is ``pending``, or ``failed``
            when the executor could not be reached.

        Raises:
            ValidationError: If the submission is invalid.
            LockConflictError: If another build is in flight.
        """
        self.validate_submission(submission, archive)
        build_id = new_build_id()

        try:
            with get_session(self.session_factory) as session:
                acquired = store.try_acquire_lock(session, build_id)
        except OperationalError as e:
            # SQLite reports a concurrent writer as "database is locked"
            logger.warning("Build lock contended for %s: %s", submission.project_key, e)
            raise LockConflictError() from e

        if not acquired:
            with get_session(self.session_factory) as session:
                holder = store.get_lock_holder(session)
                logger.info(
                    "Rejected submission for %s: %s in flight",
                    submission.project_key,
                    holder,
                )
                raise LockConflictError(holder)

        runtime_version = submission.runtime_version or self.settings.default_runtime_version
        archive_key = tarball_path(build_id)
        try:
            self.blob_store.put(archive_key, archive)
            with get_session(self.session_factory) as session:
                build = BuildRecord(
                    id=build_id,
                    project_key=submission.project_key,
                    status=BuildStatus.PENDING.value,
                    platform=submission.platform.value,
                    runtime_version=runtime_version,
                    source_config=submission.source_config.model_dump(exclude_none=True),
                    archive_path=archive_key,
                )
                store.put_build(session, build)
        except Exception:
            logger.exception("Failed to persist build %s, releasing lock", build_id)
            with get_session(self.session_factory) as session:
                store.release_lock(session, build_id)
            raise

        logger.info(
            "Accepted build %s for %s (%s, %s)",
            build_id,
            submission.project_key,
            build.platform,
            runtime_version,
        )

        self.timeouts.schedule(build_id, self.settings.build_timeout, self._on_timeout)

        base_url = self._callback_base_url(callback_base_url)
        job = BuildJob(
            build_id=build_id,
            archive_location=self.blob_store.locate(archive_key),
            callback_url=f"{base_url}{WEBHOOK_COMPLETE_PATH}",
            progress_url=f"{base_url}{WEBHOOK_PROGRESS_PATH}",
            platform=build.platform,
            runtime_version=runtime_version,
            storage_path=str(self.settings.storage_dir.absolute()),
        )

        try:
            self.executor.dispatch(job)
        except ExecutorFailure as e:
            logger.error("Dispatch of build %s failed: %s", build_id, e)
            self._fail(build_id, e)

        with get_session(self.session_factory) as session:
            return get_build(session, build_id)

    def _fail(self, build_id: str, error: ExecutorFailure) -> bool:
        """Record a failure as the build's terminal transition."""
        with get_session(self.session_factory) as session:
            applied = store.finalize_build(
                session,
                build_id,
                BuildStatus.FAILED,
                error=str(error),
                error_code=error.code,
            )
        if applied:
            self.timeouts.cancel(build_id)
        return applied

    def _on_timeout(self, build_id: str) -> None:
        try:
            self.expire(build_id)
        except Exception:
            # The timer is the only thing that frees an abandoned build's lock
            logger.exception(
                "Expiring build %s failed, retrying in %gs",
                build_id,
                self.timeout_retry_delay,
            )
            self.timeouts.schedule(build_id, self.timeout_retry_delay, self._on_timeout)

    def expire(self, build_id: str) -> bool:
        """Fail a build that exceeded the build timeout.

        Does nothing if the build already resolved.

        Returns:
            True if this call failed the build.
        """
        error = BuildTimeoutError(self.settings.build_timeout)
        applied = self._fail(build_id, error)
        if applied:
            logger.error("Build %s: %s", build_id, error)
            self.executor.cancel(build_id)
        else:
            logger.debug("Timeout for build %s ignored, already resolved", build_id)
        return applied

    def recover(self) -> int:
        """Re-arm timeouts for builds left in flight by a previous process.

        Overdue builds expire immediately. A lock whose holder is missing or
        already terminal is released.

        Returns:
            Number of builds with a re-armed timeout.
        """
        now = utcnow()
        with get_session(self.session_factory) as session:
            active = store.list_active_builds(session)
            holder = store.get_lock_holder(session)
            if holder is not None and holder not in {b.id for b in active}:
                logger.warning("Releasing build lock orphaned by %s", holder)
                store.release_lock(session, holder)
            deadlines = [
                (
                    build.id,
                    self.settings.build_timeout
                    - (now - ensure_utc(build.created_at)).total_seconds(),
                )
                for build in active
            ]

        for build_id, remaining in deadlines:
            logger.info(
                "Re-arming timeout for build %s (%.0fs left)", build_id, max(remaining, 0)
            )
            self.timeouts.schedule(build_id, remaining, self._on_timeout)
        return len(deadlines)

    def shutdown(self) -> None:
        """Cancel all outstanding timers."""
        self.timeouts.cancel_all()


__all__ = [
    "BUILD_ID_PREFIX",
    "BuildCoordinator",
    "BuildTimeouts",
    "get_build",
    "list_builds",
    "new_build_id",
    "parse_submission",
]
