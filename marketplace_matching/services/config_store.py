"""
Configuration Store for matching settings kept as key/value documents
"""
from datetime import datetime
from typing import Optional, Dict, Any, List

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from marketplace_matching.models.matching_config import (
    MatchingConfiguration, SETTING_KEYS, VERSION_KEY
)
from marketplace_matching.utils.exceptions import (
    ConfigurationLoadError, ConfigurationSaveError, ConfigurationConflictError
)
from marketplace_matching.utils.logging_config import get_logger

logger = get_logger(__name__)


def _unwrap(value: Any) -> Any:
    # Older rows were written as {"value": x}
    if isinstance(value, dict) and set(value.keys()) == {"value"}:
        return value["value"]
    return value


class ConfigurationStore:
    """Reads and writes MatchingConfiguration as one settings document per field"""

    def __init__(self, collection):
        self.collection = collection

    async def _read_settings(self) -> Dict[str, Any]:
        keys = list(SETTING_KEYS.values()) + [VERSION_KEY]
        cursor = self.collection.find({"setting_key": {"$in": keys}})
        docs = await cursor.to_list(length=None)
        return {doc["setting_key"]: _unwrap(doc.get("setting_value")) for doc in docs}

    async def load_configuration(self) -> MatchingConfiguration:
        """Load the configuration; any missing or unreadable value falls back to its default."""
        try:
            stored = await self._read_settings()
        except Exception as e:
            error = ConfigurationLoadError("Failed to read matching settings", cause=e)
            logger.warning(f"{error.message}, using defaults: {e}", extra=error.to_dict())
            return MatchingConfiguration()

        accepted: Dict[str, Any] = {}
        for field, key in SETTING_KEYS.items():
            if key not in stored or stored[key] is None:
                continue
            try:
                MatchingConfiguration(**{**accepted, field: stored[key]})
            except PydanticValidationError as e:
                logger.warning(f"Ignoring invalid stored value for {key}: {e}")
                continue
            accepted[field] = stored[key]

        version = stored.get(VERSION_KEY)
        if isinstance(version, int) and version >= 0:
            accepted["version"] = version

        config = MatchingConfiguration(**accepted)
        clamped = config.clamp_quote_thresholds()
        if clamped is not config:
            logger.warning(
                f"Stored min_quotes_before_presenting={config.min_quotes_before_presenting} "
                f"exceeds max_quotes_per_request={config.max_quotes_per_request}, clamping"
            )
        missing = [key for field, key in SETTING_KEYS.items() if field not in accepted]
        if missing:
            logger.debug(f"Using defaults for settings: {missing}")
        return clamped

    async def _claim_version(self, expected_version: Optional[int], updated_by: Optional[str]) -> int:
        now = datetime.utcnow()
        if expected_version is None:
            doc = await self.collection.find_one_and_update(
                {"setting_key": VERSION_KEY},
                {"$inc": {"setting_value": 1}, "$set": {"updated_at": now, "updated_by": updated_by}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            return doc["setting_value"]

        query = {"setting_key": VERSION_KEY, "setting_value": expected_version}
        try:
            doc = await self.collection.find_one_and_update(
                query,
                {"$set": {"setting_value": expected_version + 1, "updated_at": now, "updated_by": updated_by}},
                upsert=expected_version == 0,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            doc = None

        if doc is None:
            current = await self.collection.find_one({"setting_key": VERSION_KEY})
            current_version = _unwrap(current.get("setting_value")) if current else 0
            raise ConfigurationConflictError(
                "Matching settings were changed by someone else; reload before saving",
                expected_version=expected_version,
                current_version=current_version,
            )
        return doc["setting_value"]

    async def update_configuration(
        self,
        config: MatchingConfiguration,
        expected_version: Optional[int] = None,
        updated_by: Optional[str] = None
    ) -> MatchingConfiguration:
        """Persist every field as its own settings document.

        Weights are stored as given; checking their sum is left to the caller.
        Raises ConfigurationSaveError on the first failed write, with the keys
        already written, so the caller knows the stored state may be partial.
        """
        config = config.clamp_quote_thresholds()

        try:
            new_version = await self._claim_version(expected_version, updated_by)
        except ConfigurationConflictError:
            raise
        except Exception as e:
            raise ConfigurationSaveError(
                "Failed to update matching settings",
                written_keys=[],
                failed_key=VERSION_KEY,
                cause=e,
            )

        written: List[str] = []
        for key, value in config.to_settings().items():
            try:
                await self.collection.update_one(
                    {"setting_key": key},
                    {"$set": {
                        "setting_key": key,
                        "setting_value": value,
                        "updated_at": datetime.utcnow(),
                        "updated_by": updated_by,
                    }},
                    upsert=True,
                )
            except Exception as e:
                logger.error(f"Error updating setting {key} after writing {written}: {e}")
                raise ConfigurationSaveError(
                    f"Failed to update {key}; configuration may be partially updated",
                    written_keys=written,
                    failed_key=key,
                    cause=e,
                )
            written.append(key)

        logger.info(f"Updated matching settings to version {new_version}")
        return config.copy(update={"version": new_version})
