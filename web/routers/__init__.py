"""Router modules for FastAPI web API."""

from web.routers import assets, builds, config, health, manifest, upload, webhook

__all__ = ["assets", "builds", "config", "health", "manifest", "upload", "webhook"]
