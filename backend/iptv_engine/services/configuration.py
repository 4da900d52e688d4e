import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from iptv_engine.core.config import Settings, settings as default_settings
from iptv_engine.models.settings import SettingsModel
from iptv_engine.services.cache_store import CacheStoreError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_EXPIRY_DAYS = 30
DAY_MS = 24 * 60 * 60 * 1000


def normalize_cache_expiry_days(value) -> int:
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULT_CACHE_EXPIRY_DAYS
    return days if days > 0 else DEFAULT_CACHE_EXPIRY_DAYS


class ConfigurationService:
    """
    Engine configuration: environment defaults from ``Settings`` overlaid
    with the key/value overrides stored in the ``settings`` table.
    """

    def __init__(self, session_factory: Callable, settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or default_settings

    def _overrides(self) -> Dict[str, str]:
        db = self.session_factory()
        try:
            return {s.key: s.value for s in db.query(SettingsModel).all()}
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read configuration: {e}") from e
        finally:
            db.close()

    def _get(self, key: str, default):
        value = self._overrides().get(key)
        return default if value is None else value

    def _get_bool(self, key: str, default: bool) -> bool:
        value = self._overrides().get(key)
        if value is None:
            return default
        return value == "true"

    @property
    def filter_categories_list(self) -> str:
        return self._get("FILTER_CATEGORIES_LIST", self.settings.FILTER_CATEGORIES_LIST) or ""

    @property
    def filter_channels_list(self) -> str:
        return self._get("FILTER_CHANNELS_LIST", self.settings.FILTER_CHANNELS_LIST) or ""

    @property
    def pause_filtering(self) -> bool:
        return self._get_bool("PAUSE_FILTERING", self.settings.PAUSE_FILTERING)

    @property
    def pause_caching(self) -> bool:
        return self._get_bool("PAUSE_CACHING", self.settings.PAUSE_CACHING)

    @property
    def cache_expiry_days(self) -> int:
        return normalize_cache_expiry_days(self._get("CACHE_EXPIRY_DAYS", self.settings.CACHE_EXPIRY_DAYS))

    @property
    def cache_expiry_ms(self) -> int:
        return self.cache_expiry_days * DAY_MS

    @property
    def vod_series_category_ttl_ms(self) -> int:
        return normalize_cache_expiry_days(self.settings.VOD_SERIES_CATEGORY_TTL_DAYS) * DAY_MS

    def update(self, **values) -> None:
        """Persist overrides; booleans are stored as "true"/"false"."""
        db = self.session_factory()
        try:
            for key, value in values.items():
                if isinstance(value, bool):
                    value = "true" if value else "false"
                elif value is not None:
                    value = str(value)
                row = db.query(SettingsModel).filter(SettingsModel.key == key).first()
                if row:
                    row.value = value
                else:
                    db.add(SettingsModel(key=key, value=value))
            db.commit()
            logger.info(f"Updated configuration keys: {', '.join(values)}")
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to update configuration: {e}") from e
        finally:
            db.close()
