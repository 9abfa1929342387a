"""Shared dependencies for FastAPI routes.

Provides database sessions, the build services held on app state,
API-key authentication and error translation to route handlers.

Transaction boundaries for ``get_db`` are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

import secrets
from collections.abc import Generator
from typing import Any, NoReturn

from fastapi import Depends, HTTPException, Request
from fastapi import status as http_status
from sqlalchemy.orm import Session, sessionmaker

from otabuild.builds.service import BuildCoordinator
from otabuild.builds.webhook import WebhookResolver
from otabuild.config import Settings
from otabuild.errors import (
    BuildNotReadyError,
    InvalidTransitionError,
    LockConflictError,
    MissingBundleError,
    NotFoundError,
    OtaBuildError,
    UnsupportedProtocolVersionError,
    ValidationError,
)
from otabuild.manifests.protocol import compute_base_url
from otabuild.storage.blobs import BlobStore


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state."""
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        # Commit on success - only reached if no exception was raised
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings(request: Request) -> Settings:
    """Get the settings the app was created with."""
    settings: Any = request.app.state.settings
    return settings  # type: ignore[no-any-return]


def get_coordinator(request: Request) -> BuildCoordinator:
    """Get the build coordinator from app state."""
    coordinator: Any = request.app.state.coordinator
    return coordinator  # type: ignore[no-any-return]


def get_resolver(request: Request) -> WebhookResolver:
    """Get the webhook resolver from app state."""
    resolver: Any = request.app.state.resolver
    return resolver  # type: ignore[no-any-return]


def get_blob_store(request: Request) -> BlobStore:
    """Get the blob store from app state."""
    blob_store: Any = request.app.state.blob_store
    return blob_store  # type: ignore[no-any-return]


def require_api_key(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Check the bearer token when API keys are configured.

    Raises:
        HTTPException: 401 if the key is missing or unknown.
    """
    if not settings.api_keys:
        return

    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Missing API key"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not any(secrets.compare_digest(token.strip(), key) for key in settings.api_keys):
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Invalid API key"},
            headers={"WWW-Authenticate": "Bearer"},
        )


def request_base_url(request: Request) -> str:
    """Base URL the client used, honouring proxy headers."""
    return compute_base_url(request.headers, str(request.url))


def error_detail(error: OtaBuildError, **extra: Any) -> dict[str, Any]:
    """Render a domain error as an HTTP error detail."""
    return {"code": error.code, "message": str(error), **extra}


def raise_http_error(error: OtaBuildError) -> NoReturn:
    """Translate a domain error into an HTTPException.

    Raises:
        HTTPException: Always.
    """
    if isinstance(error, BuildNotReadyError):
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=error_detail(error, status=error.status),
        ) from error
    if isinstance(error, (NotFoundError, MissingBundleError)):
        status_code = http_status.HTTP_404_NOT_FOUND
    elif isinstance(error, (ValidationError, UnsupportedProtocolVersionError)):
        status_code = http_status.HTTP_400_BAD_REQUEST
    elif isinstance(error, (LockConflictError, InvalidTransitionError)):
        status_code = http_status.HTTP_409_CONFLICT
    else:
        status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    raise HTTPException(status_code=status_code, detail=error_detail(error)) from error


__all__ = [
    "error_detail",
    "get_app_settings",
    "get_blob_store",
    "get_coordinator",
    "get_db",
    "get_resolver",
    "get_session_factory",
    "raise_http_error",
    "request_base_url",
    "require_api_key",
]
