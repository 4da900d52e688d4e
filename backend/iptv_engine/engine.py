import logging
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from iptv_engine import schemas
from iptv_engine.core.config import Settings, settings as default_settings
from iptv_engine.models.account import AccountMode
from iptv_engine.models.channel import SeriesEpisode
from iptv_engine.schemas import Category, Channel, PlayerResponse
from iptv_engine.services.account import AccountNotFoundError, AccountService
from iptv_engine.services.bookmark import BookmarkService
from iptv_engine.services.cache_reload import CacheReloadService
from iptv_engine.services.cache_store import CacheStore
from iptv_engine.services.catalog.factory import CatalogAdapterFactory, catalog_adapter_for
from iptv_engine.services.catalog_sync import CHANNEL_MODEL_BY_MODE, CatalogSyncService
from iptv_engine.services.configuration import ConfigurationService
from iptv_engine.services.content_filter import ContentFilter
from iptv_engine.services.playback.factory import PlaybackStrategyFactory
from iptv_engine.services.playback.resolver import PlaybackResolver
from iptv_engine.services.playback.retry import RetryPolicy
from iptv_engine.services.playback.stalker import StalkerPlaybackStrategy
from iptv_engine.services.portal_discovery import PortalDiscovery
from iptv_engine.services.series_episodes import SeriesEpisodeService
from iptv_engine.services.session import SessionManager
from iptv_engine.services.stalker import StalkerClient
from iptv_engine.services.watch_state import WatchStateTracker

logger = logging.getLogger(__name__)

ALL_CATEGORY = "all"


def _is_all(category: Category) -> bool:
    return (category.title or "").strip().lower() == ALL_CATEGORY


def dedupe_channels(channels: List[Channel]) -> List[Channel]:
    seen = set()
    unique: List[Channel] = []
    for channel in channels:
        key: Tuple = (channel.channel_id, channel.cmd)
        if key in seen:
            continue
        seen.add(key)
        unique.append(channel)
    return unique


class Engine:
    """
    Entry point for callers (HTTP handlers, celery tasks). Wires every
    component once and exposes the catalog, playback and watch-state
    operations by account id.
    """

    def __init__(self, session_factory: Callable, http_client: httpx.Client,
                 settings: Optional[Settings] = None, clock: Optional[Callable[[], int]] = None):
        self.settings = settings or default_settings
        self.session_factory = session_factory
        self.http_client = http_client

        self.configuration = ConfigurationService(session_factory, self.settings)
        self.store = CacheStore(session_factory, clock=clock)
        self.portal_discovery = PortalDiscovery(http_client, probe_timeout=self.settings.PORTAL_PROBE_TIMEOUT)
        self.accounts = AccountService(session_factory, self.store, self.portal_discovery)
        self.bookmarks = BookmarkService(session_factory)

        self.session_manager = SessionManager(StalkerClient(http_client), self.accounts.ensure_server_portal_url)
        # Any account change drops the in-memory token
        self.accounts.add_change_listener(self.session_manager.invalidate)

        self.adapters = CatalogAdapterFactory(self.session_manager, http_client)
        self.catalog = CatalogSyncService(
            self.store, self.adapters, self.session_manager, ContentFilter(self.configuration), self.configuration,
        )
        self.episodes = SeriesEpisodeService(self.store, self.adapters, self.configuration)
        self.cache_reload = CacheReloadService(self.store, self.adapters, self.session_manager)

        stalker_playback = StalkerPlaybackStrategy(
            self.session_manager,
            self.accounts.ensure_server_portal_url,
            RetryPolicy(max_retries=self.settings.PLAYBACK_MAX_RETRIES),
        )
        self.playback = PlaybackResolver(PlaybackStrategyFactory(stalker_playback))
        self.watch_state = WatchStateTracker(session_factory, clock=clock)

    def close(self) -> None:
        self.http_client.close()

    def _account(self, account_id: int, mode: Optional[AccountMode] = None) -> schemas.Account:
        account = self.accounts.get(account_id)
        if mode is not None and AccountMode(mode) != account.mode:
            account = account.model_copy(update={"mode": AccountMode(mode)})
        return account

    def _account_or_none(self, account_id: int, mode: Optional[AccountMode] = None) -> Optional[schemas.Account]:
        try:
            return self._account(account_id, mode)
        except AccountNotFoundError:
            logger.warning(f"Unknown account {account_id}")
            return None

    # ========================================================================
    # Catalog
    # ========================================================================

    def get_categories(self, account_id: int, mode: Optional[AccountMode] = None) -> List[Category]:
        account = self._account_or_none(account_id, mode)
        if account is None:
            return []
        return self.catalog.get_categories(account)

    def get_channels(self, account_id: int, category_id: str, mode: Optional[AccountMode] = None,
                     movie_id: Optional[str] = None, season_id: Optional[str] = None) -> List[Channel]:
        account = self._account_or_none(account_id, mode)
        if account is None:
            return []

        if movie_id and account.mode == AccountMode.SERIES:
            if season_id:
                channels = self.catalog.get_channels(category_id, account, movie_id=movie_id, season_id=season_id)
                return self._with_watched(account, category_id, movie_id, dedupe_channels(channels))
            return self._series_episodes(account, movie_id, category_id)

        adapter = catalog_adapter_for(account, self.adapters)
        categories = self.catalog.get_categories(account)
        requested = next(
            (c for c in categories if category_id in (c.category_id, c.title)), None,
        )

        if (requested is not None and _is_all(requested)) or (category_id or "").strip().lower() == ALL_CATEGORY:
            targets = [c for c in categories if not _is_all(c)]
            if not targets:
                targets = [c for c in categories if _is_all(c)]
        elif requested is not None:
            targets = [requested]
        else:
            channels = self.catalog.get_channels(category_id, account)
            return dedupe_channels(channels)

        channels: List[Channel] = []
        for category in targets:
            scope_id = adapter.channel_scope(category)
            channels.extend(self.catalog.get_channels(scope_id, account, cache_scope_id=scope_id))
        return dedupe_channels(channels)

    def get_series_episodes(self, account_id: int, series_id: str, category_id: str = "") -> List[Channel]:
        account = self._account_or_none(account_id, AccountMode.SERIES)
        if account is None:
            return []
        return self._series_episodes(account, series_id, category_id)

    def _series_episodes(self, account, series_id: str, category_id: str) -> List[Channel]:
        episodes = self.episodes.get_episodes(account, category_id, series_id)
        return self._with_watched(account, category_id, series_id, dedupe_channels(episodes))

    def _with_watched(self, account, category_id: str, series_id: str, episodes: List[Channel]) -> List[Channel]:
        state = self.watch_state.get_series_last_watched(account.id, category_id, series_id)
        if state is None:
            return episodes
        return [
            episode.model_copy(update={"watched": self.watch_state.is_matching_episode(
                state, episode.channel_id, episode.season, episode.episode_num, episode.name,
            )})
            for episode in episodes
        ]

    def reload_account_cache(self, account_id: int) -> schemas.CacheReloadSummary:
        return self.cache_reload.reload_account(self._account(account_id))

    def verify_mac_address(self, account_id: int) -> bool:
        return self.cache_reload.verify_mac_address(self._account(account_id))

    # ========================================================================
    # Playback
    # ========================================================================

    def resolve_playback_url(self, account_id: Optional[int] = None, channel_id: Optional[str] = None,
                             mode: Optional[AccountMode] = None, cmd: Optional[str] = None,
                             bookmark_id: Optional[int] = None, category_id: str = "",
                             series_param: str = "", parent_series_id: str = "") -> PlayerResponse:
        if bookmark_id is not None:
            bookmark = self.bookmarks.get(bookmark_id)
            if bookmark is None:
                raise LookupError(f"Bookmark {bookmark_id} not found")
            account = self._account(bookmark.account_id, bookmark.mode)
            if bookmark.server_portal_url and not account.server_portal_url:
                account.server_portal_url = bookmark.server_portal_url
            channel = Channel(
                channel_id=bookmark.channel_id,
                name=bookmark.channel_name,
                cmd=bookmark.cmd,
                drm_type=bookmark.drm_type,
                drm_license_url=bookmark.drm_license_url,
                clear_keys=bookmark.clear_keys,
                inputstream_addon=bookmark.inputstream_addon,
                manifest_type=bookmark.manifest_type,
            )
        else:
            account = self._account(account_id, mode)
            channel = self._find_channel(account, channel_id, category_id, parent_series_id)
            if channel is None:
                channel = Channel(channel_id=channel_id, cmd=cmd)
            elif cmd and not channel.cmd:
                channel = channel.model_copy(update={"cmd": cmd})

        response = self.playback.resolve(account, channel, series_param, parent_series_id)
        if response.url and account.mode == AccountMode.SERIES:
            self.watch_state.on_playback_resolved(account, channel, series_param, parent_series_id, category_id)
        return response

    def _find_channel(self, account, channel_id: Optional[str], category_id: str,
                      parent_series_id: str) -> Optional[Channel]:
        if not channel_id:
            return None
        if account.mode == AccountMode.SERIES and parent_series_id:
            scope = {"account_id": account.id, "series_id": parent_series_id, "channel_id": channel_id}
            episodes = self.store.fetch(SeriesEpisode, scope)
            if episodes:
                matching = [e for e in episodes if e.category_id == category_id]
                return (matching or episodes)[0]
        rows = self.store.fetch(CHANNEL_MODEL_BY_MODE[account.mode], {"account_id": account.id, "channel_id": channel_id})
        return rows[0] if rows else None

    # ========================================================================
    # Watch state
    # ========================================================================

    def get_series_last_watched(self, account_id: int, category_id: str,
                                series_id: str) -> Optional[schemas.SeriesWatchState]:
        return self.watch_state.get_series_last_watched(account_id, category_id, series_id)

    def get_series_last_watched_by_account(self, account_id: int,
                                           category_id: str = "") -> Dict[str, schemas.SeriesWatchState]:
        return self.watch_state.get_series_last_watched_by_account(account_id, category_id)

    def mark_series_episode_manual(self, account_id: int, category_id: str, series_id: str, episode_id: str,
                                   episode_name: Optional[str] = None, season: Optional[str] = None,
                                   episode_num: Optional[str] = None) -> None:
        account = self._account(account_id, AccountMode.SERIES)
        self.watch_state.mark_series_episode_manual(
            account, category_id, series_id, episode_id, episode_name, season, episode_num,
        )

    def clear_series_last_watched(self, account_id: int, category_id: str, series_id: str) -> None:
        self.watch_state.clear_series_last_watched(account_id, category_id, series_id)


def build_engine(settings: Optional[Settings] = None, session_factory: Optional[Callable] = None,
                 http_client: Optional[httpx.Client] = None) -> Engine:
    settings = settings or default_settings
    if session_factory is None:
        from iptv_engine.db.session import SessionLocal
        session_factory = SessionLocal
    if http_client is None:
        http_client = httpx.Client(timeout=settings.HTTP_TIMEOUT, follow_redirects=True)
    return Engine(session_factory, http_client, settings)
