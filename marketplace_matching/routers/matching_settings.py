"""
Matching Settings Router - read, check and save the matching configuration
"""
from typing import Optional

from fastapi import APIRouter, Query, Request

from marketplace_matching.models.matching_config import (
    RECOGNIZED_FACTORS, MatchingConfiguration, MatchingConfigurationResponse, WeightCheck, WeightsPayload,
    check_weights
)
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.db import admin_settings_coll
from marketplace_matching.utils.exceptions import MatchingServiceError, ValidationError, map_to_http_exception
from marketplace_matching.utils.logging_config import get_logger

router = APIRouter(prefix="/api/matching/settings", tags=["matching-settings"])
logger = get_logger(__name__)


def _config_store() -> ConfigurationStore:
    return ConfigurationStore(admin_settings_coll)


def _response(config: MatchingConfiguration) -> MatchingConfigurationResponse:
    return MatchingConfigurationResponse(configuration=config, weight_check=config.check_weights())


@router.get("", response_model=MatchingConfigurationResponse)
async def get_settings():
    """Current configuration; unreadable values come back as defaults"""
    config = await _config_store().load_configuration()
    return _response(config)


@router.put("", response_model=MatchingConfigurationResponse)
async def update_settings(
    config: MatchingConfiguration,
    request: Request,
    expected_version: Optional[int] = Query(None, ge=0, description="Reject the save if the stored version differs"),
    updated_by: Optional[str] = Query(None, description="Admin user making the change"),
):
    """Save the configuration and return it as reloaded from storage.

    Weights that do not sum to 1.0 are stored as given; the response carries
    the warning.
    """
    request_id = getattr(request.state, 'request_id', 'unknown')
    store = _config_store()
    try:
        saved = await store.update_configuration(config, expected_version=expected_version, updated_by=updated_by)
    except MatchingServiceError as e:
        logger.error(f"Failed to save matching settings: {e.message}", extra={"request_id": request_id})
        raise map_to_http_exception(e)

    logger.info(f"Matching settings saved at version {saved.version}", extra={"request_id": request_id})
    return _response(await store.load_configuration())


@router.post("/check", response_model=WeightCheck)
async def check_settings_weights(payload: WeightsPayload):
    """Weight-sum check for a draft, without saving it"""
    unknown = [f for f in payload.weights if f not in RECOGNIZED_FACTORS]
    if unknown:
        raise map_to_http_exception(
            ValidationError(f"Unknown matching factors: {', '.join(unknown)}", field="weights", value=unknown)
        )
    return check_weights(payload.weights)
