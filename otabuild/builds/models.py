"""Build ORM models.

This module defines the BuildRecord model for build attempts and the
single-row BuildLock that admits one in-flight build at a time.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from otabuild.db import Base
from otabuild.types import (
    TERMINAL_STATUSES,
    BuildStatus,
    Platform,
    format_timestamp,
    is_forward_transition,
    utcnow,
)

LOCK_ROW_ID = 1


class BuildRecord(Base):
    """ORM model for one build attempt.

    Attributes:
        id: Opaque build identifier generated at submission.
        project_key: Caller-supplied grouping key.
        status: Lifecycle status, strictly forward-moving.
        platform: Requested platform target (ios, android, all).
        runtime_version: Runtime compatibility tag of the submitted project.
        created_at: Submission time.
        updated_at: Last modification time.
        completed_at: Terminal transition time, set exactly once.
        error: Failure description, present iff status is failed.
        error_code: Stable code of the failure.
        source_config: Application metadata captured at submission.
        archive_path: Blob store path of the submitted archive.
        manifest: Stored update manifest, present iff status is success.
        asset_list: Executor-reported asset metadata.
        bundle_paths: Launch bundle path per platform.
    """

    __tablename__ = "build_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    platform: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Platform.ALL.value
    )
    runtime_version: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Error tracking
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Inputs
    source_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    archive_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Outputs
    manifest: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    asset_list: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True
    )
    bundle_paths: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_build_records_project_created", "project_key", "created_at"),
    )

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return (
            f"<BuildRecord(id='{self.id}', project_key='{self.project_key}', "
            f"status='{self.status}')>"
        )

    @property
    def status_enum(self) -> BuildStatus:
        """Status as a BuildStatus member."""
        return BuildStatus(self.status)

    def is_terminal(self) -> bool:
        """Check if this build has reached success or failed."""
        return self.status_enum in TERMINAL_STATUSES

    def is_succeeded(self) -> bool:
        """Check if this build succeeded."""
        return self.status == BuildStatus.SUCCESS.value

    def can_advance_to(self, status: BuildStatus) -> bool:
        """Check if the build may move to the given status."""
        return is_forward_transition(self.status_enum, status)

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "project_key": self.project_key,
            "status": self.status,
            "platform": self.platform,
            "runtime_version": self.runtime_version,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "completed_at": format_timestamp(self.completed_at),
            "error": self.error,
            "error_code": self.error_code,
            "source_config": self.source_config,
            "manifest": self.manifest,
            "asset_list": self.asset_list,
            "bundle_paths": self.bundle_paths,
        }


class BuildLock(Base):
    """ORM model for the single-flight build lock.

    The table holds exactly one row. ``holder`` is the id of the build that
    owns the lock, or NULL when the lock is free.

    Attributes:
        id: Always LOCK_ROW_ID.
        holder: Build id owning the lock.
        acquired_at: When the current holder acquired the lock.
    """

    __tablename__ = "build_lock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    holder: Mapped[str | None] = mapped_column(String(64), nullable=True)
    acquired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """Return string representation of BuildLock."""
        return f"<BuildLock(holder={self.holder!r})>"


@event.listens_for(BuildLock.__table__, "after_create")
def _insert_lock_row(target: Any, connection: Any, **kw: Any) -> None:
    """Seed the single lock row whenever the table is created."""
    connection.execute(target.insert().values(id=LOCK_ROW_ID, holder=None))


__all__ = ["LOCK_ROW_ID", "BuildLock", "BuildRecord"]
