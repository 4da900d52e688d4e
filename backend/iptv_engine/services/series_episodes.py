import logging
from typing import List

from iptv_engine.models.account import AccountType
from iptv_engine.models.channel import SeriesEpisode
from iptv_engine.schemas import Channel
from iptv_engine.services.cache_store import CacheStore
from iptv_engine.services.catalog.base import CancelCheck
from iptv_engine.services.catalog.factory import CatalogAdapterFactory
from iptv_engine.services.configuration import ConfigurationService
from iptv_engine.services.watch_state import normalize_season, parse_episode_num

logger = logging.getLogger(__name__)

EPISODE_PROVIDERS = (AccountType.XTREME_API, AccountType.STALKER_PORTAL)


def extract_season(title: str) -> str:
    return normalize_season(None, title) or "1"


def extract_episode(title: str) -> str:
    episode = parse_episode_num(None, title)
    return str(episode) if episode > 0 else ""


def with_episode_numbers(episode: Channel) -> Channel:
    """Fill a missing season/episode number from the episode title."""
    updates = {}
    if not (episode.season or "").strip():
        updates["season"] = extract_season(episode.name)
    if not (episode.episode_num or "").strip():
        updates["episode_num"] = extract_episode(episode.name)
    return episode.model_copy(update=updates) if updates else episode


class SeriesEpisodeService:
    """Episode lists of one series, cached per (account, category, series)."""

    def __init__(self, store: CacheStore, adapters: CatalogAdapterFactory, configuration: ConfigurationService):
        self.store = store
        self.adapters = adapters
        self.configuration = configuration

    def get_episodes(self, account, category_id: str, series_id: str,
                     is_cancelled: CancelCheck = None) -> List[Channel]:
        if account is None or not (series_id or "").strip():
            return []
        scope = {"account_id": account.id, "category_id": category_id or "", "series_id": series_id}

        cached = self.store.fetch(SeriesEpisode, scope)
        if cached and self.store.is_fresh(SeriesEpisode, scope, self.configuration.cache_expiry_ms):
            return [with_episode_numbers(e) for e in cached]

        if account.type not in EPISODE_PROVIDERS:
            return []

        logger.info(f"Fetching episodes of series {series_id} (category {category_id}) for {account.name}")
        fetched = self.adapters.for_account(account).fetch_episodes(account, category_id or "", series_id, is_cancelled)
        if not fetched:
            return [with_episode_numbers(e) for e in cached]
        self.store.replace(SeriesEpisode, scope, fetched)
        return [with_episode_numbers(e) for e in self.store.fetch(SeriesEpisode, scope)]
