"""Metadata store for build records and the build lock.

All writes that matter for concurrency are single conditional UPDATE
statements whose rowcount tells the caller whether it won:

- try_acquire_lock(): UPDATE ... WHERE holder IS NULL
- release_lock(): UPDATE ... WHERE holder = :build_id
- finalize_build(): UPDATE ... WHERE status NOT IN (success, failed),
  followed by release_lock() in the same transaction
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from otabuild.builds.models import LOCK_ROW_ID, BuildLock, BuildRecord
from otabuild.errors import BuildNotFoundError
from otabuild.types import (
    STATUS_ORDER,
    TERMINAL_STATUSES,
    BuildStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]


def get_build(session: Session, build_id: str) -> BuildRecord:
    """Get a build record by ID.

    Args:
        session: Database session.
        build_id: Build ID.

    Returns:
        BuildRecord instance.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(BuildRecord, build_id, populate_existing=True)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def put_build(session: Session, build: BuildRecord) -> BuildRecord:
    """Insert or update a build record.

    Args:
        session: Database session.
        build: BuildRecord to persist.

    Returns:
        The persisted BuildRecord.
    """
    build.updated_at = utcnow()
    session.add(build)
    session.flush()
    return build


def list_builds(
    session: Session,
    project_key: str | None = None,
    status: BuildStatus | None = None,
    limit: int = 100,
) -> list[BuildRecord]:
    """List build records, newest created first.

    Args:
        session: Database session.
        project_key: Filter by project key.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of BuildRecord instances.
    """
    stmt = select(BuildRecord)

    if project_key is not None:
        stmt = stmt.where(BuildRecord.project_key == project_key)
    if status is not None:
        stmt = stmt.where(BuildRecord.status == status.value)

    stmt = stmt.order_by(BuildRecord.created_at.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


def list_active_builds(session: Session) -> list[BuildRecord]:
    """List all non-terminal build records."""
    stmt = select(BuildRecord).where(BuildRecord.status.not_in(_TERMINAL_VALUES))
    return list(session.execute(stmt).scalars().all())


def _ensure_lock_row(session: Session) -> None:
    """Create the lock row if the table was populated by other means."""
    if session.get(BuildLock, LOCK_ROW_ID) is None:
        session.add(BuildLock(id=LOCK_ROW_ID, holder=None))
        session.flush()


def try_acquire_lock(session: Session, holder: str) -> bool:
    """Atomically acquire the build lock for a build id.

    Args:
        session: Database session. The caller commits.
        holder: Build id that will own the lock.

    Returns:
        True if the lock was free and is now held by ``holder``.
    """
    _ensure_lock_row(session)
    result = session.execute(
        update(BuildLock)
        .where(BuildLock.id == LOCK_ROW_ID, BuildLock.holder.is_(None))
        .values(holder=holder, acquired_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    acquired = result.rowcount == 1
    if acquired:
        logger.debug("Build lock acquired by %s", holder)
    else:
        logger.debug("Build lock busy, %s rejected", holder)
    return acquired


def release_lock(session: Session, holder: str) -> bool:
    """Release the build lock if ``holder`` owns it.

    Releasing a free lock, or a lock owned by another build, is a no-op.

    Args:
        session: Database session. The caller commits.
        holder: Build id releasing the lock.

    Returns:
        True if the lock was released by this call.
    """
    result = session.execute(
        update(BuildLock)
        .where(BuildLock.id == LOCK_ROW_ID, BuildLock.holder == holder)
        .values(holder=None, acquired_at=None)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if released:
        logger.debug("Build lock released by %s", holder)
    else:
        logger.debug("Build lock not held by %s, release skipped", holder)
    return released


def get_lock_holder(session: Session) -> str | None:
    """Return the build id holding the lock, or None when free."""
    lock = session.get(BuildLock, LOCK_ROW_ID, populate_existing=True)
    return lock.holder if lock is not None else None


def advance_status(session: Session, build_id: str, status: BuildStatus) -> bool:
    """Move a non-terminal build forward to a progress phase.

    Args:
        session: Database session. The caller commits.
        build_id: Build ID.
        status: New, strictly later, non-terminal status.

    Returns:
        True if the record was updated.
    """
    earlier = [
        s.value
        for s, rank in STATUS_ORDER.items()
        if rank < STATUS_ORDER[status] and s not in TERMINAL_STATUSES
    ]
    result = session.execute(
        update(BuildRecord)
        .where(BuildRecord.id == build_id, BuildRecord.status.in_(earlier))
        .values(status=status.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def finalize_build(
    session: Session,
    build_id: str,
    status: BuildStatus,
    *,
    error: str | None = None,
    error_code: str | None = None,
    manifest: dict[str, Any] | None = None,
    asset_list: list[dict[str, Any]] | None = None,
    bundle_paths: dict[str, str] | None = None,
) -> bool:
    """Perform the terminal transition of a build and release its lock.

    The conditional UPDATE only matches a non-terminal record, so of all
    concurrent callers exactly one performs the transition. That caller
    also releases the lock, in the same transaction.

    Args:
        session: Database session. The caller commits.
        build_id: Build ID.
        status: SUCCESS or FAILED.
        error: Failure description (FAILED only).
        error_code: Stable failure code (FAILED only).
        manifest: Stored manifest (SUCCESS only).
        asset_list: Asset metadata (SUCCESS only).
        bundle_paths: Launch bundle paths (SUCCESS only).

    Returns:
        True if this call performed the transition.

    Raises:
        ValueError: If status is not terminal.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Not a terminal status: {status.value}")

    now = utcnow()
    values: dict[str, Any] = {
        "status": status.value,
        "updated_at": now,
        "completed_at": now,
    }
    if status == BuildStatus.SUCCESS:
        values.update(manifest=manifest, asset_list=asset_list, bundle_paths=bundle_paths)
    else:
        values.update(error=error or "Unknown error", error_code=error_code)

    result = session.execute(
        update(BuildRecord)
        .where(
            BuildRecord.id == build_id,
            BuildRecord.status.not_in(_TERMINAL_VALUES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    release_lock(session, build_id)
    logger.info("Build %s resolved as %s", build_id, status.value)
    return True


__all__ = [
    "advance_status",
    "finalize_build",
    "get_build",
    "get_lock_holder",
    "list_active_builds",
    "list_builds",
    "put_build",
    "release_lock",
    "try_acquire_lock",
]
