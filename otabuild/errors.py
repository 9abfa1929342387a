"""Error taxonomy for otabuild.

Every error carries a stable ``code`` that the HTTP layer and the CLI
surface to clients. Failures after a successful submission are never
raised back to the submitter; they are recorded on the BuildRecord.
"""

from __future__ import annotations

# Error code constants
VALIDATION_ERROR = "validation"
BUILD_IN_PROGRESS = "build_in_progress"
BUILD_NOT_FOUND = "build_not_found"
ASSET_NOT_FOUND = "asset_not_found"
BLOB_NOT_FOUND = "blob_not_found"
UNSUPPORTED_PROTOCOL_VERSION = "unsupported_protocol_version"
BUILD_NOT_READY = "build_not_ready"
MISSING_BUNDLE = "missing_bundle"
INVALID_TRANSITION = "invalid_transition"
EXECUTOR_FAILURE = "executor_failure"
DISPATCH_FAILED = "dispatch_failed"
BUILD_TIMEOUT = "build_timeout"
ASSET_VERIFICATION_FAILED = "asset_verification_failed"


class OtaBuildError(Exception):
    """Base error for otabuild operations."""

    def __init__(self, message: str, code: str = "otabuild_error") -> None:
        super().__init__(message)
        self.code = code


class ValidationError(OtaBuildError):
    """Raised when a submission is malformed or incomplete."""

    def __init__(self, message: str, code: str = VALIDATION_ERROR) -> None:
        super().__init__(message, code)


class LockConflictError(OtaBuildError):
    """Raised when a build is already in flight."""

    def __init__(self, holder: str | None = None, code: str = BUILD_IN_PROGRESS) -> None:
        super().__init__("A build is already in progress. Please wait.", code)
        self.holder = holder


class NotFoundError(OtaBuildError):
    """Base for unknown builds, assets and blobs."""


class BuildNotFoundError(NotFoundError):
    """Raised when a build is not found."""

    def __init__(self, build_id: str, code: str = BUILD_NOT_FOUND) -> None:
        super().__init__(f"Build not found: {build_id}", code)
        self.build_id = build_id


class AssetNotFoundError(NotFoundError):
    """Raised when an asset of a build cannot be resolved."""

    def __init__(self, build_id: str, path: str, code: str = ASSET_NOT_FOUND) -> None:
        super().__init__(f"Asset not found: {build_id}/{path}", code)
        self.build_id = build_id
        self.path = path


class BlobNotFoundError(NotFoundError):
    """Raised when a blob store path does not exist."""

    def __init__(self, path: str, code: str = BLOB_NOT_FOUND) -> None:
        super().__init__(f"Blob not found: {path}", code)
        self.path = path


class UnsupportedProtocolVersionError(OtaBuildError):
    """Raised when a client requests an unsupported protocol version."""

    def __init__(self, version: str, code: str = UNSUPPORTED_PROTOCOL_VERSION) -> None:
        super().__init__(f"Unsupported protocol version: {version}", code)
        self.version = version


class BuildNotReadyError(OtaBuildError):
    """Raised when a build exists but has not succeeded."""

    def __init__(self, build_id: str, status: str, code: str = BUILD_NOT_READY) -> None:
        super().__init__(f"Build not ready: {build_id} ({status})", code)
        self.build_id = build_id
        self.status = status


class MissingBundleError(OtaBuildError):
    """Raised when no launch bundle exists for a platform."""

    def __init__(self, platform: str, code: str = MISSING_BUNDLE) -> None:
        super().__init__(f"No bundle found for platform {platform}", code)
        self.platform = platform


class InvalidTransitionError(OtaBuildError):
    """Raised when a status update would move a build backwards."""

    def __init__(self, build_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Build {build_id} cannot move from {current} to {requested}",
            INVALID_TRANSITION,
        )
        self.build_id = build_id
        self.current = current
        self.requested = requested


class ExecutorFailure(OtaBuildError):
    """A build failed in or around the executor.

    Recorded on the BuildRecord's error field, never raised to submitters.
    """

    def __init__(self, message: str, code: str = EXECUTOR_FAILURE) -> None:
        super().__init__(message, code)


class ExecutorDispatchError(ExecutorFailure):
    """Raised when a job cannot be handed to the executor."""

    def __init__(self, message: str, code: str = DISPATCH_FAILED) -> None:
        super().__init__(message, code)


class BuildTimeoutError(ExecutorFailure):
    """A build exceeded the configured timeout."""

    def __init__(self, timeout: float, code: str = BUILD_TIMEOUT) -> None:
        super().__init__(f"Build timed out after {timeout:g} seconds", code)
        self.timeout = timeout


class AssetVerificationError(ExecutorFailure):
    """A reported asset is missing or does not match its hash."""

    def __init__(
        self, path: str, reason: str, code: str = ASSET_VERIFICATION_FAILED
    ) -> None:
        super().__init__(f"Asset {path}: {reason}", code)
        self.path = path


__all__ = [
    "ASSET_NOT_FOUND",
    "ASSET_VERIFICATION_FAILED",
    "BLOB_NOT_FOUND",
    "BUILD_IN_PROGRESS",
    "BUILD_NOT_FOUND",
    "BUILD_NOT_READY",
    "BUILD_TIMEOUT",
    "DISPATCH_FAILED",
    "EXECUTOR_FAILURE",
    "INVALID_TRANSITION",
    "MISSING_BUNDLE",
    "UNSUPPORTED_PROTOCOL_VERSION",
    "VALIDATION_ERROR",
    "AssetNotFoundError",
    "AssetVerificationError",
    "BlobNotFoundError",
    "BuildNotFoundError",
    "BuildNotReadyError",
    "BuildTimeoutError",
    "ExecutorDispatchError",
    "ExecutorFailure",
    "InvalidTransitionError",
    "LockConflictError",
    "MissingBundleError",
    "NotFoundError",
    "OtaBuildError",
    "UnsupportedProtocolVersionError",
    "ValidationError",
]
