"""Configuration endpoints."""

import json
from typing import Any

from fastapi import APIRouter, Depends

from otabuild.config import Settings, print_settings_json
from web.deps import get_app_settings, require_api_key

router = APIRouter()


@router.get("", dependencies=[Depends(require_api_key)])
def get_config(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON, with API keys masked.
    """
    result: dict[str, Any] = json.loads(print_settings_json(settings))
    return result
