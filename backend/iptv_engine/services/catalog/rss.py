import httpx
import logging
import uuid
from typing import List, Optional

from iptv_engine.schemas import Category, Channel
from iptv_engine.services.catalog.base import CatalogAdapter, CancelCheck
from iptv_engine.services.m3u_parser import ALL_GROUP
from iptv_engine.services.rss import read_rss_items

logger = logging.getLogger(__name__)


class RssCatalogAdapter(CatalogAdapter):
    def __init__(self, http_client: httpx.Client):
        self.http_client = http_client

    def fetch_categories(self, account) -> List[Category]:
        return [Category(category_id=ALL_GROUP, title=ALL_GROUP, alias=ALL_GROUP)]

    def fetch_channels(self, account, category_id: str, movie_id: Optional[str] = None,
                       season_id: Optional[str] = None, is_cancelled: CancelCheck = None) -> List[Channel]:
        try:
            items = read_rss_items(account.url, self.http_client)
        except Exception as e:
            logger.error(f"Error reading RSS feed for {account.name}: {e}")
            return []
        return [
            Channel(
                channel_id=str(uuid.uuid4()),
                name=item.title,
                cmd=item.link,
                description=item.description or None,
                category_id=ALL_GROUP,
            )
            for item in items
        ]

    def channel_scope(self, category: Category) -> str:
        return category.title or ""
