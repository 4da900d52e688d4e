import httpx
import logging
from typing import List, Optional

from iptv_engine.models.account import AccountType
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.catalog.base import CatalogAdapter, CancelCheck
from iptv_engine.services.m3u_parser import (
    PlaylistEntry, filter_entries_by_category, parse_m3u_categories, parse_m3u_entries,
    read_m3u_file, read_m3u_url,
)

logger = logging.getLogger(__name__)


def entry_to_channel(entry: PlaylistEntry) -> Channel:
    return Channel(
        channel_id=entry.id,
        name=entry.title,
        cmd=entry.url,
        logo=entry.logo,
        category_id=entry.group_title,
        drm_type=entry.drm_type,
        drm_license_url=entry.drm_license_url,
        clear_keys=entry.clear_keys,
        inputstream_addon=entry.inputstream_addon,
        manifest_type=entry.manifest_type,
    )


class M3uCatalogAdapter(CatalogAdapter):
    """Local playlist files and playlist URLs. Categories are the playlist's group titles."""

    def __init__(self, http_client: httpx.Client):
        self.http_client = http_client

    def read_playlist(self, account) -> str:
        if account.type == AccountType.M3U8_LOCAL:
            return read_m3u_file(account.m3u8_path)
        return read_m3u_url(account.m3u8_path or account.url, self.http_client)

    def fetch_categories(self, account) -> List[Category]:
        try:
            text = self.read_playlist(account)
        except Exception as e:
            logger.error(f"Error reading playlist for {account.name}: {e}")
            return []
        return [
            Category(category_id=group.id or group.group_title, title=group.group_title, alias=group.group_title)
            for group in parse_m3u_categories(text)
        ]

    def fetch_channels(self, account, category_id: str, movie_id: Optional[str] = None,
                       season_id: Optional[str] = None, is_cancelled: CancelCheck = None) -> List[Channel]:
        try:
            text = self.read_playlist(account)
        except Exception as e:
            logger.error(f"Error reading playlist for {account.name}: {e}")
            return []
        has_other_categories = len(parse_m3u_categories(text)) >= 2
        entries = filter_entries_by_category(parse_m3u_entries(text), category_id, has_other_categories)

        channels = []
        seen = set()
        for entry in entries:
            key = (entry.id, entry.url)
            if key in seen:
                continue
            seen.add(key)
            channels.append(entry_to_channel(entry))
        return channels

    def channel_scope(self, category: Category) -> str:
        return category.title or ""
