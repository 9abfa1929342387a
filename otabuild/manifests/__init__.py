"""Update manifest module.

This module handles:
- Deterministic derivation of update manifests from build records
- Expo Updates protocol v1 header handling and response framing
"""

from otabuild.manifests.schema import AssetDescriptor, UpdateManifest

__all__ = ["AssetDescriptor", "UpdateManifest"]
