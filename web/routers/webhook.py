"""Executor callback endpoints.

- POST /v1/webhook/build-complete - Terminal outcome of a build
- POST /v1/webhook/build-progress - Phase change of a running build

Both are idempotent: repeated or late deliveries are acknowledged with
``applied: false``.
"""

from typing import Any

from fastapi import APIRouter, Depends

from otabuild.builds.schema import ProgressPayload, WebhookPayload
from otabuild.builds.webhook import WebhookResolver
from otabuild.errors import OtaBuildError
from web.deps import get_resolver, raise_http_error

router = APIRouter()


@router.post("/build-complete")
def build_complete_endpoint(
    payload: WebhookPayload,
    resolver: WebhookResolver = Depends(get_resolver),
) -> dict[str, Any]:
    """Resolve a build from its executor's outcome."""
    try:
        applied = resolver.resolve(payload.build_id, payload)
    except OtaBuildError as e:
        raise_http_error(e)
    return {"success": True, "applied": applied}


@router.post("/build-progress")
def build_progress_endpoint(
    payload: ProgressPayload,
    resolver: WebhookResolver = Depends(get_resolver),
) -> dict[str, Any]:
    """Record a build's phase change."""
    try:
        applied = resolver.report_progress(payload.build_id, payload.status)
    except OtaBuildError as e:
        raise_http_error(e)
    return {"success": True, "applied": applied}
