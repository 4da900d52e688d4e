import logging
import math
from typing import Dict, List, Optional

from iptv_engine.models.account import AccountMode
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.catalog.base import (
    CatalogAdapter, CancelCheck, expand_series_rows, is_cancelled_now, truthy,
)
from iptv_engine.services.session import SessionManager
from iptv_engine.services.stalker import js_payload, js_timestamp, load_json, safe_int, safe_str

logger = logging.getLogger(__name__)


def category_params(mode: AccountMode) -> Dict[str, str]:
    return {
        "JsHttpRequest": js_timestamp(),
        "type": mode.value,
        "action": "get_genres" if mode == AccountMode.ITV else "get_categories",
    }


def ordered_list_params(category: str, page: int, mode: AccountMode,
                        movie_id: Optional[str] = None, season_id: Optional[str] = None) -> Dict[str, str]:
    params = {
        "type": mode.value,
        "action": "get_ordered_list",
        "genre": category or "",
        "force_ch_link_check": "",
        "fav": "0",
        "sortby": "added",
    }
    if mode == AccountMode.SERIES:
        params["movie_id"] = movie_id or "0"
        params["category"] = category or ""
        params["season_id"] = season_id or "0"
        params["episode_id"] = "0"
    params.update({
        "hd": "1",
        "p": str(page),
        "per_page": "999",
        "max_count": "0",
        "JsHttpRequest": js_timestamp(),
    })
    return params


def page_count(total_items: int, max_page_items: int) -> int:
    if max_page_items <= 0 or total_items <= 0:
        return 1
    return math.ceil(total_items / max_page_items)


def parse_pagination(body: str) -> Optional[int]:
    """Number of pages announced by a get_ordered_list envelope, or None."""
    js = js_payload(body)
    if not isinstance(js, dict):
        return None
    return page_count(safe_int(js, "total_items", -1), safe_int(js, "max_page_items", -1))


def parse_categories(body: str) -> List[Category]:
    js = js_payload(body)
    if not isinstance(js, list):
        logger.warning("Stalker category response has no js array")
        return []
    categories = []
    for item in js:
        if not isinstance(item, dict):
            continue
        categories.append(Category(
            category_id=safe_str(item, "id"),
            title=safe_str(item, "title"),
            alias=safe_str(item, "alias"),
            active_sub=truthy(item.get("active_sub", False)),
            censored=safe_int(item, "censored"),
        ))
    return categories


def _data_rows(body: str) -> List[dict]:
    root = load_json(body)
    if not isinstance(root, dict):
        return []
    js = root.get("js", root)
    data = js.get("data") if isinstance(js, dict) else None
    return [row for row in data if isinstance(row, dict)] if isinstance(data, list) else []


def parse_itv_channels(body: str) -> List[Channel]:
    channels = []
    for row in _data_rows(body):
        channels.append(Channel(
            channel_id=safe_str(row, "id"),
            name=safe_str(row, "name"),
            number=safe_str(row, "number"),
            cmd=safe_str(row, "cmd"),
            cmd_1=safe_str(row, "cmd_1"),
            cmd_2=safe_str(row, "cmd_2"),
            cmd_3=safe_str(row, "cmd_3"),
            logo=safe_str(row, "logo"),
            censored=safe_int(row, "censored"),
            status=safe_int(row, "status"),
            hd=safe_int(row, "hd"),
            category_id=safe_str(row, "tv_genre_id"),
        ))
    return channels


def parse_vod_channels(body: str, mode: AccountMode) -> List[Channel]:
    channels = []
    for row in _data_rows(body):
        name = safe_str(row, "name") or safe_str(row, "o_name")
        channel = Channel(
            channel_id=safe_str(row, "id"),
            name=name,
            number=safe_str(row, "id"),
            cmd=safe_str(row, "cmd"),
            logo=safe_str(row, "screenshot_uri"),
            censored=safe_int(row, "censored"),
            status=safe_int(row, "status"),
            hd=safe_int(row, "hd"),
            category_id=safe_str(row, "tv_genre_id"),
            description=safe_str(row, "description") or None,
        )
        series = row.get("series")
        if mode == AccountMode.SERIES and channel.cmd and isinstance(series, list) and series:
            channels.extend(expand_series_rows(channel, series))
        else:
            channels.append(channel)
    return channels


class StalkerCatalogAdapter(CatalogAdapter):
    def __init__(self, session_manager: SessionManager):
        self.session = session_manager

    def fetch_categories(self, account) -> List[Category]:
        logger.info(f"Fetching {account.mode.value} categories from Stalker Portal for {account.name}")
        if not self.session.ensure_connected(account):
            logger.warning(f"Not connected to {account.name}, no categories fetched")
            return []
        return parse_categories(self.session.fetch(account, category_params(account.mode)))

    def fetch_channels(self, account, category_id: str, movie_id: Optional[str] = None,
                       season_id: Optional[str] = None, is_cancelled: CancelCheck = None) -> List[Channel]:
        if not self.session.ensure_connected(account):
            logger.warning(f"Not connected to {account.name}, no channels fetched")
            return []
        mode = account.mode
        body = self.session.fetch(account, ordered_list_params(category_id, 1, mode, movie_id, season_id))
        pages = parse_pagination(body)
        if pages is None:
            logger.warning(f"No pagination envelope for category {category_id} on {account.name}")
            return []

        channels = self._parse(body, mode)
        for page in range(2, pages + 1):
            if is_cancelled_now(is_cancelled):
                logger.info(f"Channel fetch for category {category_id} cancelled at page {page}")
                break
            logger.debug(f"Fetching page {page}/{pages} of category {category_id}")
            body = self.session.fetch(account, ordered_list_params(category_id, page, mode, movie_id, season_id))
            channels.extend(self._parse(body, mode))
        return channels

    def fetch_episodes(self, account, category_id: str, series_id: str,
                       is_cancelled: CancelCheck = None) -> List[Channel]:
        series_account = account.model_copy(update={"mode": AccountMode.SERIES})
        return self.fetch_channels(series_account, category_id, movie_id=series_id,
                                   season_id="0", is_cancelled=is_cancelled)

    def _parse(self, body: str, mode: AccountMode) -> List[Channel]:
        if mode == AccountMode.ITV:
            return parse_itv_channels(body)
        return parse_vod_channels(body, mode)
