"""Build lifecycle module.

This module handles:
- Build records and the single-flight build lock
- Dispatching jobs to a build executor
- Resolving builds from executor webhooks
- Enforcing build timeouts
"""

from otabuild.builds.models import BuildLock, BuildRecord

__all__ = ["BuildLock", "BuildRecord"]

# Submodules are imported lazily to avoid circular imports
# Access via otabuild.builds.service, otabuild.builds.webhook, etc.
