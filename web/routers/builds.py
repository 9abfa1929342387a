"""Build query endpoints.

- GET /v1/builds - List builds
- GET /v1/builds/{id} - Get a build with its manifest and deep link URLs
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi import status as http_status
from sqlalchemy.orm import Session

from otabuild.builds.service import get_build, list_builds
from otabuild.errors import BuildNotFoundError
from otabuild.manifests.generator import deep_link_url
from otabuild.types import BuildStatus
from web.deps import get_db, raise_http_error, request_base_url, require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("")
def list_builds_endpoint(
    project: str | None = Query(None, description="Filter by project key"),
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List build records, newest first."""
    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in BuildStatus)
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": f"Invalid status: {status}. Valid values: {valid}",
                },
            ) from None

    builds = list_builds(db, project_key=project, status=status_filter, limit=limit)
    return [b.to_dict() for b in builds]


@router.get("/{build_id}")
def get_build_endpoint(
    build_id: str,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build record by ID.

    Successful builds also carry the manifest URL and an Expo Go deep link.
    """
    try:
        build = get_build(db, build_id)
    except BuildNotFoundError as e:
        raise_http_error(e)

    result: dict[str, Any] = {"build": build.to_dict()}
    if build.is_succeeded():
        manifest_url = f"{request_base_url(request)}/v1/manifest/{build.id}"
        result["manifest_url"] = manifest_url
        result["deep_link_url"] = deep_link_url(manifest_url)
    return result
