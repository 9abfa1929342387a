"""FastAPI web application for otabuild.

Exposes the upload, webhook, manifest and asset endpoints. Routers stay
thin: all business logic lives in the otabuild package.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
