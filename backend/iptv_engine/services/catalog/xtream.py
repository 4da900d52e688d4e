import httpx
import json
import logging
from typing import Dict, List, Optional

from iptv_engine.models.account import AccountMode
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.catalog.base import CatalogAdapter, CancelCheck, expand_series_rows
from iptv_engine.services.xtream import XtreamClient

logger = logging.getLogger(__name__)

CATEGORY_METHODS = {
    AccountMode.ITV: XtreamClient.get_live_categories,
    AccountMode.VOD: XtreamClient.get_vod_categories,
    AccountMode.SERIES: XtreamClient.get_series_categories,
}

STREAM_TYPES = {
    AccountMode.ITV: "",
    AccountMode.VOD: "movie",
    AccountMode.SERIES: "series",
}


def _as_str(value) -> str:
    if value is None:
        return ""
    return str(value)


def parse_xtream_categories(data) -> List[Category]:
    if not isinstance(data, list):
        return []
    categories = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("category_name"))
        categories.append(Category(
            category_id=_as_str(item.get("category_id")),
            title=name,
            alias=name,
            active_sub=True,
            censored=0,
            extra_json=json.dumps(item),
        ))
    return categories


def parse_xtream_channels(data, client: XtreamClient, mode: AccountMode) -> List[Channel]:
    if not isinstance(data, list):
        return []
    stream_type = STREAM_TYPES[mode]
    channels = []
    for item in data:
        if not isinstance(item, dict):
            continue
        stream_id = _as_str(item.get("stream_id"))
        channel = Channel(
            channel_id=_as_str(item.get("series_id" if mode == AccountMode.SERIES else "stream_id")),
            name=_as_str(item.get("name")),
            number=_as_str(item.get("num")) or None,
            cmd=client.get_stream_url(stream_type, stream_id, item.get("container_extension")),
            logo=_as_str(item.get("cover" if mode == AccountMode.SERIES else "stream_icon")),
            category_id=_as_str(item.get("category_id")),
            extra_json=json.dumps(item),
        )
        episodes = item.get("episodes")
        if mode == AccountMode.SERIES and isinstance(episodes, list) and episodes:
            channels.extend(expand_series_rows(channel, episodes))
        else:
            channels.append(channel)
    return channels


def _episode_rows(episodes) -> List[Dict]:
    """``episodes`` is either a season -> list map or a flat list."""
    if isinstance(episodes, dict):
        rows = []
        for season_episodes in episodes.values():
            if isinstance(season_episodes, list):
                rows.extend(e for e in season_episodes if isinstance(e, dict))
        return rows
    if isinstance(episodes, list):
        return [e for e in episodes if isinstance(e, dict)]
    return []


def parse_xtream_episodes(data, client: XtreamClient, category_id: str) -> List[Channel]:
    if not isinstance(data, dict):
        return []
    channels = []
    for episode in _episode_rows(data.get("episodes")):
        info = episode.get("info") if isinstance(episode.get("info"), dict) else {}
        episode_id = _as_str(episode.get("id"))
        channels.append(Channel(
            channel_id=episode_id,
            name=_as_str(episode.get("title")),
            cmd=client.get_stream_url("series", episode_id, episode.get("container_extension")),
            logo=_as_str(info.get("movie_image")),
            category_id=category_id,
            season=_as_str(episode.get("season")) or None,
            episode_num=_as_str(episode.get("episode_num")) or None,
            description=_as_str(info.get("plot")) or None,
            release_date=_as_str(info.get("releasedate")) or None,
            rating=_as_str(info.get("rating")) or None,
            duration=_as_str(info.get("duration")) or None,
            extra_json=json.dumps(episode),
        ))
    return channels


class XtreamCatalogAdapter(CatalogAdapter):
    def __init__(self, http_client: Optional[httpx.Client] = None):
        self.http_client = http_client

    def client_for(self, account) -> XtreamClient:
        return XtreamClient.for_account(account, self.http_client)

    def fetch_categories(self, account) -> List[Category]:
        client = self.client_for(account)
        try:
            data = CATEGORY_METHODS[account.mode](client)
        except Exception as e:
            logger.error(f"Error fetching Xtream categories for {account.name}: {e}")
            return []
        return parse_xtream_categories(data)

    def fetch_channels(self, account, category_id: str, movie_id: Optional[str] = None,
                       season_id: Optional[str] = None, is_cancelled: CancelCheck = None) -> List[Channel]:
        try:
            return self.fetch_streams(account, category_id)
        except Exception as e:
            logger.error(f"Error fetching Xtream channels for category {category_id} on {account.name}: {e}")
            return []

    def fetch_streams(self, account, category_id: Optional[str] = None) -> List[Channel]:
        """Stream listing for the account's mode, all categories when none given. Raises XtreamError."""
        client = self.client_for(account)
        if account.mode == AccountMode.VOD:
            data = client.get_vod_streams(category_id)
        elif account.mode == AccountMode.SERIES:
            data = client.get_series(category_id)
        else:
            data = client.get_live_streams(category_id)
        return parse_xtream_channels(data, client, account.mode)

    def fetch_episodes(self, account, category_id: str, series_id: str,
                       is_cancelled: CancelCheck = None) -> List[Channel]:
        client = self.client_for(account)
        try:
            data = client.get_series_info(series_id)
        except Exception as e:
            logger.error(f"Error fetching Xtream series info {series_id} for {account.name}: {e}")
            return []
        return parse_xtream_episodes(data, client, category_id)
