"""Pydantic models for build submissions and executor callbacks.

Submission fields accept both snake_case and the camelCase names used by
existing clients (``projectSlug``, ``expoConfig``). Callback payloads use
camelCase on the wire.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from otabuild.types import PROGRESS_STATUSES, BuildStatus, Platform


class SourceConfig(BaseModel):
    """Application metadata captured at submission.

    Only ``name`` and ``slug`` are required; any other keys (version,
    sdkVersion, icon, ...) are kept as-is and handed to update clients.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(description="Application display name")
    slug: str = Field(description="Application slug")
    owner: str | None = Field(default=None, description="Account owning the app")

    @field_validator("name", "slug")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject blank names and slugs."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class BuildSubmission(BaseModel):
    """Metadata accompanying a submitted source archive."""

    model_config = ConfigDict(populate_by_name=True)

    project_key: str = Field(
        validation_alias=AliasChoices("project_key", "projectKey", "projectSlug"),
        description="Grouping key for builds of the same project",
    )
    platform: Platform = Field(default=Platform.ALL)
    runtime_version: str | None = Field(
        default=None,
        validation_alias=AliasChoices("runtime_version", "runtimeVersion"),
    )
    source_config: SourceConfig = Field(
        validation_alias=AliasChoices("source_config", "sourceConfig", "expoConfig"),
    )

    @field_validator("project_key")
    @classmethod
    def validate_project_key(cls, v: str) -> str:
        """Reject blank project keys."""
        if not v.strip():
            raise ValueError("project_key must not be empty")
        return v


class AssetMetadata(BaseModel):
    """Executor-reported description of one exported asset.

    Attributes:
        key: Asset key, usually the content hash without extension.
        hash: Base64url SHA-256 of the asset bytes, unpadded.
        content_type: MIME type.
        file_extension: Optional extension including the dot.
        path: Location relative to the build's output in the blob store.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str
    hash: str
    content_type: str = Field(alias="contentType")
    file_extension: str | None = Field(default=None, alias="fileExtension")
    path: str

    def to_record(self) -> dict[str, Any]:
        """Serialize for storage on the build record."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WebhookPayload(BaseModel):
    """Terminal outcome reported by an executor."""

    model_config = ConfigDict(populate_by_name=True)

    build_id: str = Field(alias="buildId")
    status: Literal["success", "failed"]
    error: str | None = None
    manifest: dict[str, Any] | None = None
    assets: list[AssetMetadata] | None = None
    bundles: dict[str, str] | None = None


class ProgressPayload(BaseModel):
    """Phase transition reported by an executor."""

    model_config = ConfigDict(populate_by_name=True)

    build_id: str = Field(alias="buildId")
    status: BuildStatus

    @field_validator("status")
    @classmethod
    def validate_progress_status(cls, v: BuildStatus) -> BuildStatus:
        """Only intermediate phases may be reported as progress."""
        if v not in PROGRESS_STATUSES:
            raise ValueError(f"not a progress status: {v.value}")
        return v


__all__ = [
    "AssetMetadata",
    "BuildSubmission",
    "ProgressPayload",
    "SourceConfig",
    "WebhookPayload",
]
