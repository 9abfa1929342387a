"""Build submission endpoint.

- POST /v1/upload - Submit a source archive and start a build
"""

from typing import Any

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi import status as http_status

from otabuild.builds.service import BuildCoordinator, parse_submission
from otabuild.errors import OtaBuildError
from web.deps import get_coordinator, raise_http_error, request_base_url, require_api_key

router = APIRouter()


@router.post(
    "",
    status_code=http_status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
def upload_endpoint(
    request: Request,
    tarball: UploadFile = File(..., description="Gzipped tar of the project"),
    metadata: str = Form(..., description="Submission metadata as JSON"),
    coordinator: BuildCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Submit a build.

    The build is accepted as ``pending``. If the executor cannot be reached
    the record is returned already ``failed`` with the dispatch error.

    Returns:
        Build id, status and error (if any).
    """
    # Read one byte past the limit so oversized archives are detectable
    archive = tarball.file.read(coordinator.settings.max_archive_bytes + 1)
    try:
        submission = parse_submission(metadata)
        build = coordinator.submit(submission, archive, request_base_url(request))
    except OtaBuildError as e:
        raise_http_error(e)

    return {
        "build_id": build.id,
        "status": build.status,
        "error": build.error,
    }
