"""Shared type definitions for otabuild.

This module contains enums, dataclasses, and helpers shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class BuildStatus(str, Enum):
    """Status of a build, in lifecycle order."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    BUILDING = "building"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


# Phase ordering; terminal states share the last rank
STATUS_ORDER: dict[BuildStatus, int] = {
    BuildStatus.PENDING: 0,
    BuildStatus.DOWNLOADING: 1,
    BuildStatus.INSTALLING: 2,
    BuildStatus.BUILDING: 3,
    BuildStatus.UPLOADING: 4,
    BuildStatus.SUCCESS: 5,
    BuildStatus.FAILED: 5,
}

TERMINAL_STATUSES = frozenset({BuildStatus.SUCCESS, BuildStatus.FAILED})

PROGRESS_STATUSES = frozenset(
    {
        BuildStatus.DOWNLOADING,
        BuildStatus.INSTALLING,
        BuildStatus.BUILDING,
        BuildStatus.UPLOADING,
    }
)


class Platform(str, Enum):
    """Build platform target."""

    IOS = "ios"
    ANDROID = "android"
    ALL = "all"


def is_forward_transition(current: BuildStatus, new: BuildStatus) -> bool:
    """Check whether moving from current to new status is allowed.

    Args:
        current: Current status.
        new: Requested status.

    Returns:
        True if new is strictly later than current and current is not terminal.
    """
    if current in TERMINAL_STATUSES:
        return False
    return STATUS_ORDER[new] > STATUS_ORDER[current]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime.

    Naive datetimes (as returned by SQLite) are treated as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a timestamp as ISO-8601 UTC with millisecond precision."""
    if value is None:
        return None
    value = ensure_utc(value)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class BuildJob:
    """Job descriptor handed to a build executor.

    Attributes:
        build_id: Build identifier.
        archive_location: Where the executor can read the source archive.
        callback_url: URL for the single terminal outcome.
        progress_url: URL for phase transition reports.
        platform: Requested platform target.
        runtime_version: Runtime compatibility tag.
        storage_path: Blob store root for executors sharing the filesystem.
    """

    build_id: str
    archive_location: str
    callback_url: str
    progress_url: str
    platform: str
    runtime_version: str
    storage_path: str | None = None

    def to_env(self) -> dict[str, str]:
        """Render the job as executor environment variables."""
        env = {
            "BUILD_ID": self.build_id,
            "ARCHIVE_PATH": self.archive_location,
            "WEBHOOK_URL": self.callback_url,
            "PROGRESS_URL": self.progress_url,
            "PLATFORM": self.platform,
            "RUNTIME_VERSION": self.runtime_version,
        }
        if self.storage_path:
            env["STORAGE_PATH"] = self.storage_path
        return env


__all__ = [
    "PROGRESS_STATUSES",
    "STATUS_ORDER",
    "TERMINAL_STATUSES",
    "BuildJob",
    "BuildStatus",
    "Platform",
    "ensure_utc",
    "format_timestamp",
    "is_forward_transition",
    "utcnow",
]
