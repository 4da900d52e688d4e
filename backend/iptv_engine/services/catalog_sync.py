import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from iptv_engine.models.account import AccountMode, AccountType
from iptv_engine.models.category import Category as CategoryModel, VodCategory, SeriesCategory
from iptv_engine.models.channel import Channel as ChannelModel, VodChannel, SeriesChannel
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.cache_store import CacheStore
from iptv_engine.services.catalog.base import CancelCheck, sort_by_season_episode
from iptv_engine.services.catalog.factory import CatalogAdapterFactory, catalog_adapter_for
from iptv_engine.services.configuration import ConfigurationService
from iptv_engine.services.content_filter import ContentFilter
from iptv_engine.services.session import SessionManager

logger = logging.getLogger(__name__)

CATEGORY_MODEL_BY_MODE = {
    AccountMode.ITV: CategoryModel,
    AccountMode.VOD: VodCategory,
    AccountMode.SERIES: SeriesCategory,
}

CHANNEL_MODEL_BY_MODE = {
    AccountMode.ITV: ChannelModel,
    AccountMode.VOD: VodChannel,
    AccountMode.SERIES: SeriesChannel,
}

M3U_TYPES = (AccountType.M3U8_LOCAL, AccountType.M3U8_URL)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self):
        self._locks: Dict[Tuple, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: Tuple) -> threading.Lock:
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]


def single_flight(lock: threading.Lock, read_cache: Callable[[], list], reload: Callable[[], list]) -> list:
    """
    Run ``reload`` under ``lock``. A caller that had to wait for another
    reload re-reads the cache first and only reloads when it is still empty.
    """
    waited = not lock.acquire(blocking=False)
    if waited:
        lock.acquire()
    try:
        if waited:
            cached = read_cache()
            if cached:
                return cached
        return reload()
    finally:
        lock.release()


class CatalogSyncService:
    def __init__(self, store: CacheStore, adapters: CatalogAdapterFactory, session_manager: SessionManager,
                 content_filter: ContentFilter, configuration: ConfigurationService):
        self.store = store
        self.adapters = adapters
        self.session = session_manager
        self.content_filter = content_filter
        self.configuration = configuration
        self._category_locks = KeyedLocks()
        self._channel_locks = KeyedLocks()

    # ========================================================================
    # Categories
    # ========================================================================

    def get_categories(self, account) -> List[Category]:
        model = CATEGORY_MODEL_BY_MODE[account.mode]
        scope = {"account_id": account.id}

        if account.type == AccountType.RSS_FEED:
            categories = self._reload_categories(account, model, scope, fallback=[])
        else:
            cached = self.store.fetch(model, scope)
            if account.type in M3U_TYPES:
                if cached and account.mode == AccountMode.ITV:
                    categories = cached
                else:
                    # vod/series playlists are re-read on every call
                    categories = self._locked_category_reload(account, model, scope, fallback=cached)
            elif account.mode == AccountMode.ITV:
                if cached:
                    if account.type == AccountType.STALKER_PORTAL:
                        self.session.ensure_connected(account)
                    categories = cached
                else:
                    categories = self._locked_category_reload(account, model, scope, fallback=[])
            else:
                ttl = self.configuration.vod_series_category_ttl_ms
                if cached and self.store.is_fresh(model, scope, ttl):
                    categories = cached
                else:
                    categories = self._locked_category_reload(account, model, scope, fallback=cached)

        return self.content_filter.filter_categories(categories)

    def _locked_category_reload(self, account, model, scope, fallback: List[Category]) -> List[Category]:
        lock = self._category_locks.get((account.id, account.mode.value))

        def read_cache():
            # A stale fallback only counts once another caller refreshed it
            if fallback and not self.store.is_fresh(model, scope, self.configuration.vod_series_category_ttl_ms):
                return []
            return self.store.fetch(model, scope)

        return single_flight(lock, read_cache, lambda: self._reload_categories(account, model, scope, fallback))

    def _reload_categories(self, account, model, scope, fallback: List[Category]) -> List[Category]:
        logger.info(f"Reloading {account.mode.value} categories for {account.name}")
        fetched = catalog_adapter_for(account, self.adapters).fetch_categories(account)
        if not fetched:
            logger.warning(f"No {account.mode.value} categories returned for {account.name}, keeping cache")
            return fallback
        self.store.replace(model, scope, fetched)
        return self.store.fetch(model, scope)

    # ========================================================================
    # Channels
    # ========================================================================

    def get_channels(self, category_id: str, account, cache_scope_id: Optional[str] = None,
                     movie_id: Optional[str] = None, season_id: Optional[str] = None,
                     is_cancelled: CancelCheck = None) -> List[Channel]:
        adapter = catalog_adapter_for(account, self.adapters)

        if movie_id:
            # Series drill-down is not cached under the category scope
            channels = adapter.fetch_channels(account, category_id, movie_id, season_id, is_cancelled)
            return self._finish_channels(account, channels)

        model = CHANNEL_MODEL_BY_MODE[account.mode]
        scope = {"account_id": account.id, "scope_id": cache_scope_id or category_id or ""}
        cached = self.store.fetch(model, scope)

        if self._needs_channel_reload(account, model, scope, cached):
            lock = self._channel_locks.get((account.id, account.mode.value, scope["scope_id"]))
            stale = cached

            def read_cache():
                if stale and self._needs_channel_reload(account, model, scope, stale):
                    return []
                return self.store.fetch(model, scope)

            def reload():
                logger.info(f"Reloading channels of category {category_id} for {account.name}")
                fetched = adapter.fetch_channels(account, category_id, is_cancelled=is_cancelled)
                if not fetched:
                    logger.warning(f"No channels returned for category {category_id} on {account.name}")
                    return stale
                self.store.replace(model, scope, fetched)
                return self.store.fetch(model, scope)

            channels = single_flight(lock, read_cache, reload)
        else:
            channels = cached

        return self._finish_channels(account, channels)

    def _needs_channel_reload(self, account, model, scope, cached: List[Channel]) -> bool:
        if not cached:
            return True
        if account.mode == AccountMode.ITV:
            return bool(account.pause_caching) or self.configuration.pause_caching
        return not self.store.is_fresh(model, scope, self.configuration.cache_expiry_ms)

    def _finish_channels(self, account, channels: List[Channel]) -> List[Channel]:
        channels = self.content_filter.filter_channels(channels)
        if account.mode != AccountMode.ITV:
            channels = sort_by_season_episode(channels)
        return channels
