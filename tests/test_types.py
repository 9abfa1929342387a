"""Tests for shared types module."""

from datetime import datetime, timedelta, timezone

import pytest

from otabuild.types import (
    PROGRESS_STATUSES,
    STATUS_ORDER,
    TERMINAL_STATUSES,
    BuildJob,
    BuildStatus,
    Platform,
    ensure_utc,
    format_timestamp,
    is_forward_transition,
)


class TestEnums:
    """Test enum definitions."""

    def test_build_status_values(self) -> None:
        """BuildStatus should have expected values."""
        assert [s.value for s in BuildStatus] == [
            "pending",
            "downloading",
            "installing",
            "building",
            "uploading",
            "success",
            "failed",
        ]

    def test_platform_values(self) -> None:
        """Platform should have expected values."""
        assert Platform.IOS.value == "ios"
        assert Platform.ANDROID.value == "android"
        assert Platform.ALL.value == "all"

    def test_status_groups(self) -> None:
        """Terminal and progress statuses should be disjoint."""
        assert TERMINAL_STATUSES == {BuildStatus.SUCCESS, BuildStatus.FAILED}
        assert not TERMINAL_STATUSES & PROGRESS_STATUSES
        assert BuildStatus.PENDING not in PROGRESS_STATUSES
        assert set(STATUS_ORDER) == set(BuildStatus)


class TestTransitions:
    """Test is_forward_transition."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (BuildStatus.PENDING, BuildStatus.DOWNLOADING),
            (BuildStatus.PENDING, BuildStatus.BUILDING),
            (BuildStatus.UPLOADING, BuildStatus.SUCCESS),
            (BuildStatus.DOWNLOADING, BuildStatus.FAILED),
        ],
    )
    def test_forward_allowed(self, current, new) -> None:
        """Later statuses are reachable from non-terminal ones."""
        assert is_forward_transition(current, new) is True

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (BuildStatus.BUILDING, BuildStatus.INSTALLING),
            (BuildStatus.BUILDING, BuildStatus.BUILDING),
            (BuildStatus.SUCCESS, BuildStatus.FAILED),
            (BuildStatus.FAILED, BuildStatus.SUCCESS),
        ],
    )
    def test_backward_or_terminal_rejected(self, current, new) -> None:
        """Backward moves and moves out of terminal states are rejected."""
        assert is_forward_transition(current, new) is False


class TestTimestamps:
    """Test timestamp helpers."""

    def test_format_timestamp_utc(self) -> None:
        """Timestamps are ISO-8601 UTC with milliseconds and a Z suffix."""
        value = datetime(2025, 1, 2, 3, 4, 5, 678900, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2025-01-02T03:04:05.678Z"

    def test_format_timestamp_naive_is_utc(self) -> None:
        """Naive datetimes are treated as UTC."""
        assert format_timestamp(datetime(2025, 1, 2)) == "2025-01-02T00:00:00.000Z"

    def test_format_timestamp_none(self) -> None:
        """None stays None."""
        assert format_timestamp(None) is None

    def test_ensure_utc_converts_offsets(self) -> None:
        """Aware datetimes are converted to UTC."""
        value = datetime(2025, 1, 2, 5, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(value) == datetime(2025, 1, 2, 3, 0, tzinfo=timezone.utc)


class TestBuildJob:
    """Test BuildJob dataclass."""

    def test_to_env(self) -> None:
        """Jobs render as executor environment variables."""
        job = BuildJob(
            build_id="bld_abc",
            archive_location="/data/tarballs/bld_abc.tar.gz",
            callback_url="http://api/v1/webhook/build-complete",
            progress_url="http://api/v1/webhook/build-progress",
            platform="ios",
            runtime_version="exposdk:52.0.0",
            storage_path="/data",
        )
        env = job.to_env()

        assert env["BUILD_ID"] == "bld_abc"
        assert env["ARCHIVE_PATH"] == "/data/tarballs/bld_abc.tar.gz"
        assert env["WEBHOOK_URL"] == "http://api/v1/webhook/build-complete"
        assert env["PROGRESS_URL"] == "http://api/v1/webhook/build-progress"
        assert env["PLATFORM"] == "ios"
        assert env["RUNTIME_VERSION"] == "exposdk:52.0.0"
        assert env["STORAGE_PATH"] == "/data"

    def test_to_env_without_storage(self) -> None:
        """STORAGE_PATH is omitted when not set."""
        job = BuildJob("b", "a", "c", "p", "all", "1")
        assert "STORAGE_PATH" not in job.to_env()
