"""otabuild - Remote bundle builds served over the update manifest protocol.

This package coordinates single-flight builds of client application bundles
on an external executor and serves the results as Expo Updates protocol v1
manifests and assets.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
