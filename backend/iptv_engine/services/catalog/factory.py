import httpx
from typing import Dict

from iptv_engine.models.account import AccountType
from iptv_engine.services.catalog.base import CatalogAdapter
from iptv_engine.services.catalog.m3u import M3uCatalogAdapter
from iptv_engine.services.catalog.rss import RssCatalogAdapter
from iptv_engine.services.catalog.stalker import StalkerCatalogAdapter
from iptv_engine.services.catalog.xtream import XtreamCatalogAdapter
from iptv_engine.services.session import SessionManager


class CatalogAdapterFactory:
    """One adapter instance per provider kind, picked by ``account.type``."""

    def __init__(self, session_manager: SessionManager, http_client: httpx.Client):
        m3u = M3uCatalogAdapter(http_client)
        self._adapters: Dict[AccountType, CatalogAdapter] = {
            AccountType.STALKER_PORTAL: StalkerCatalogAdapter(session_manager),
            AccountType.XTREME_API: XtreamCatalogAdapter(http_client),
            AccountType.M3U8_LOCAL: m3u,
            AccountType.M3U8_URL: m3u,
            AccountType.RSS_FEED: RssCatalogAdapter(http_client),
        }

    def register(self, account_type: AccountType, adapter: CatalogAdapter) -> None:
        self._adapters[account_type] = adapter

    def for_account(self, account) -> CatalogAdapter:
        try:
            return self._adapters[account.type]
        except KeyError:
            raise ValueError(f"No catalog adapter for account type {account.type}")


def catalog_adapter_for(account, factory: CatalogAdapterFactory) -> CatalogAdapter:
    return factory.for_account(account)
