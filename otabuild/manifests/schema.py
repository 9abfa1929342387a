"""Pydantic models for update manifests.

Field names are snake_case in Python and camelCase on the wire, following
the Expo Updates protocol v1 manifest body.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AssetDescriptor(BaseModel):
    """One downloadable asset of an update.

    Attributes:
        key: Asset key.
        hash: Base64url SHA-256 of the bytes served at ``url``, unpadded.
        content_type: MIME type.
        file_extension: Optional extension including the dot.
        url: Absolute URL, or a path relative to the build's asset root.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str
    hash: str
    content_type: str = Field(alias="contentType")
    file_extension: str | None = Field(default=None, alias="fileExtension")
    url: str

    def to_wire(self) -> dict[str, Any]:
        """Serialize with protocol field names, omitting unset extensions."""
        return self.model_dump(by_alias=True, exclude_none=True)


class UpdateManifest(BaseModel):
    """Expo Updates protocol v1 manifest."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: str = Field(alias="createdAt")
    runtime_version: str = Field(alias="runtimeVersion")
    launch_asset: AssetDescriptor = Field(alias="launchAsset")
    assets: list[AssetDescriptor] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        """Serialize as the JSON object sent to update clients."""
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "runtimeVersion": self.runtime_version,
            "launchAsset": self.launch_asset.to_wire(),
            "assets": [asset.to_wire() for asset in self.assets],
            "metadata": self.metadata,
            "extra": self.extra,
        }


__all__ = ["AssetDescriptor", "UpdateManifest"]
