import logging
from typing import Dict, List, Optional

from iptv_engine.models.account import AccountMode, AccountType
from iptv_engine.models.category import Category as CategoryModel
from iptv_engine.models.channel import Channel as ChannelModel
from iptv_engine.schemas import CacheReloadSummary, Category, Channel
from iptv_engine.services.cache_store import CacheStore
from iptv_engine.services.catalog.base import CancelCheck, is_cancelled_now
from iptv_engine.services.catalog.factory import CatalogAdapterFactory
from iptv_engine.services.catalog.stalker import ordered_list_params, parse_itv_channels, parse_pagination
from iptv_engine.services.catalog_sync import CATEGORY_MODEL_BY_MODE, CHANNEL_MODEL_BY_MODE
from iptv_engine.services.session import SessionManager
from iptv_engine.services.stalker import js_timestamp

logger = logging.getLogger(__name__)

UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"


class CacheReloadError(RuntimeError):
    """Every channel request of a full reload failed."""


def all_channels_params(page: Optional[int] = None, per_page: Optional[int] = None) -> Dict[str, str]:
    params = {"type": "itv", "action": "get_all_channels"}
    if page is not None:
        params["p"] = str(page)
    if per_page is not None:
        params["per_page"] = str(per_page)
    params["JsHttpRequest"] = js_timestamp()
    return params


def _without_all(categories: List[Category]) -> List[Category]:
    return [c for c in categories if (c.title or "").lower() != "all"]


def _is_uncategorized(category: Category) -> bool:
    return category.category_id == UNCATEGORIZED_ID or (category.title or "").lower() == UNCATEGORIZED_NAME.lower()


def partition_by_category(categories: List[Category], channels: List[Channel]):
    """Group channels by their provider category id; unknown ids end up in the orphan list."""
    known = {c.category_id for c in categories if c.category_id}
    matched: Dict[str, List[Channel]] = {}
    orphans: List[Channel] = []
    for channel in channels:
        if channel.category_id and channel.category_id in known:
            matched.setdefault(channel.category_id, []).append(channel)
        else:
            orphans.append(channel)
    return matched, orphans


class CacheReloadService:
    """Full, out-of-band refresh of an account's live catalog."""

    def __init__(self, store: CacheStore, adapters: CatalogAdapterFactory, session_manager: SessionManager):
        self.store = store
        self.adapters = adapters
        self.session = session_manager

    def reload_account(self, account, is_cancelled: CancelCheck = None) -> CacheReloadSummary:
        logger.info(f"Reloading cache for account {account.name} ({account.type.value})")
        if account.type == AccountType.STALKER_PORTAL:
            return self._reload_stalker(account, is_cancelled)
        if account.type == AccountType.XTREME_API:
            return self._reload_xtream(account, is_cancelled)
        return self._reload_by_category(account, is_cancelled)

    def verify_mac_address(self, account) -> bool:
        if account.type != AccountType.STALKER_PORTAL:
            return False
        connected = self.session.connect(account)
        logger.info(f"MAC address check for {account.name}: {'ok' if connected else 'failed'}")
        return connected

    def channel_count(self, account) -> int:
        return self.store.count(ChannelModel, {"account_id": account.id})

    # ========================================================================
    # Persisting
    # ========================================================================

    def _save_live(self, account, categories: List[Category], matched: Dict[str, List[Channel]],
                   orphans: List[Channel]) -> CacheReloadSummary:
        to_save = list(categories)
        partitions = dict(matched)
        if orphans:
            uncategorized = next((c for c in categories if _is_uncategorized(c)), None)
            if uncategorized is None:
                uncategorized = Category(category_id=UNCATEGORIZED_ID, title=UNCATEGORIZED_NAME,
                                         active_sub=False, censored=0)
                to_save.append(uncategorized)
            partitions.setdefault(uncategorized.category_id, []).extend(orphans)

        scope = {"account_id": account.id}
        self.store.replace(CategoryModel, scope, to_save)
        total = self.store.replace_partitioned(ChannelModel, scope, "scope_id", partitions)
        logger.info(f"{len(to_save)} categories & {total} channels saved for {account.name} "
                    f"({len(orphans)} orphaned)")
        return CacheReloadSummary(account_id=account.id, status=STATUS_OK, categories=len(to_save), channels=total)

    def _refresh_vod_series_categories(self, account) -> int:
        adapter = self.adapters.for_account(account)
        total = 0
        for mode in (AccountMode.VOD, AccountMode.SERIES):
            mode_account = account.model_copy(update={"mode": mode})
            categories = adapter.fetch_categories(mode_account)
            if categories:
                self.store.replace(CATEGORY_MODEL_BY_MODE[mode], {"account_id": account.id}, categories)
                total += len(categories)
        return total

    def _refresh_mode_categories(self, account) -> CacheReloadSummary:
        categories = self.adapters.for_account(account).fetch_categories(account)
        if categories:
            self.store.replace(CATEGORY_MODEL_BY_MODE[account.mode], {"account_id": account.id}, categories)
        return CacheReloadSummary(account_id=account.id, status=STATUS_OK if categories else STATUS_EMPTY,
                                  categories=len(categories))

    # ========================================================================
    # Stalker
    # ========================================================================

    def _reload_stalker(self, account, is_cancelled: CancelCheck) -> CacheReloadSummary:
        if not self.session.connect(account):
            logger.warning(f"Handshake failed for: {account.name}")
            return CacheReloadSummary(account_id=account.id, status=STATUS_FAILED, message="Handshake failed")

        if account.mode != AccountMode.ITV:
            return self._refresh_mode_categories(account)

        adapter = self.adapters.for_account(account)
        categories = _without_all(adapter.fetch_categories(account))
        if not categories:
            logger.warning(f"No categories found for {account.name}, keeping existing cache")
            return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY)

        channels = self._fetch_all_stalker_channels(account)
        if not channels:
            logger.info("get_all_channels returned nothing, fetching category by category")
            channels = self._fetch_stalker_channels_by_category(account, categories, is_cancelled)
            if not channels:
                logger.warning(f"No channels found for {account.name}, keeping existing cache")
                return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY, categories=len(categories))

        matched, orphans = partition_by_category(categories, channels)
        summary = self._save_live(account, categories, matched, orphans)
        self._refresh_vod_series_categories(account)
        return summary

    def _fetch_all_stalker_channels(self, account) -> List[Channel]:
        for params in (all_channels_params(), all_channels_params(0, 99999), all_channels_params(1, 99999)):
            body = self.session.fetch(account, params)
            if not body:
                continue
            channels = parse_itv_channels(body)
            if channels:
                return channels
        return []

    def _fetch_stalker_channels_by_category(self, account, categories: List[Category],
                                            is_cancelled: CancelCheck) -> List[Channel]:
        unique: Dict[str, Channel] = {}
        for category in categories:
            if is_cancelled_now(is_cancelled):
                logger.info("Category-by-category reload cancelled")
                break
            if not category.category_id:
                continue
            channels = self._fetch_stalker_category(account, category.category_id, 0)
            if not channels:
                channels = self._fetch_stalker_category(account, category.category_id, 1)
            for channel in channels:
                if not channel.category_id:
                    channel.category_id = category.category_id
                unique.setdefault(channel.channel_id, channel)
        logger.info(f"Collected {len(unique)} channels category by category")
        return list(unique.values())

    def _fetch_stalker_category(self, account, category_id: str, start_page: int) -> List[Channel]:
        aggregated: List[Channel] = []
        max_additional_pages = 2
        page = start_page
        while page <= start_page + max_additional_pages:
            body = self.session.fetch(account, ordered_list_params(category_id, page, AccountMode.ITV))
            if not body:
                break
            if page == start_page:
                pages = parse_pagination(body)
                if pages is not None:
                    max_additional_pages = max(pages + 1, 2)
            page_channels = parse_itv_channels(body)
            if not page_channels:
                break
            aggregated.extend(page_channels)
            page += 1

        unique: Dict[str, Channel] = {}
        for channel in aggregated:
            if channel.channel_id:
                unique.setdefault(channel.channel_id, channel)
        return list(unique.values())

    # ========================================================================
    # Xtream
    # ========================================================================

    def _reload_xtream(self, account, is_cancelled: CancelCheck) -> CacheReloadSummary:
        if account.mode != AccountMode.ITV:
            return self._refresh_mode_categories(account)

        adapter = self.adapters.for_account(account)
        categories = _without_all(adapter.fetch_categories(account))
        if not categories:
            logger.warning(f"No categories found for {account.name}, keeping existing cache")
            return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY)

        summary = self._reload_xtream_global(account, adapter, categories)
        if summary is None:
            summary = self._reload_xtream_by_category(account, adapter, categories, is_cancelled)
        if summary.status == STATUS_OK:
            self._refresh_vod_series_categories(account)
        return summary

    def _reload_xtream_global(self, account, adapter, categories: List[Category]) -> Optional[CacheReloadSummary]:
        try:
            channels = adapter.fetch_streams(account)
        except Exception as e:
            logger.warning(f"Global Xtream channel lookup failed ({e}), falling back to category fetch")
            return None
        if not channels or not any(c.category_id for c in channels):
            logger.info("Global Xtream channel lookup gave no categorized rows, falling back to category fetch")
            return None
        matched, orphans = partition_by_category(categories, channels)
        return self._save_live(account, categories, matched, orphans)

    def _reload_xtream_by_category(self, account, adapter, categories: List[Category],
                                   is_cancelled: CancelCheck) -> CacheReloadSummary:
        matched: Dict[str, List[Channel]] = {}
        failed = 0
        for category in categories:
            if is_cancelled_now(is_cancelled):
                break
            try:
                channels = adapter.fetch_streams(account, category.category_id)
            except Exception as e:
                failed += 1
                logger.error(f"Category fetch failed ({category.title}): {e}")
                continue
            if channels:
                matched[category.category_id] = channels

        total = sum(len(rows) for rows in matched.values())
        if failed == len(categories):
            raise CacheReloadError("All category channel requests failed.")
        if total == 0:
            if failed:
                raise CacheReloadError("No usable channels loaded after category fetch failures.")
            logger.warning(f"No channels found in any category for {account.name}, keeping existing cache")
            return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY, categories=len(categories))
        return self._save_live(account, categories, matched, [])

    # ========================================================================
    # M3U / RSS
    # ========================================================================

    def _reload_by_category(self, account, is_cancelled: CancelCheck) -> CacheReloadSummary:
        adapter = self.adapters.for_account(account)
        categories = adapter.fetch_categories(account)
        if not categories:
            logger.warning(f"No categories found for {account.name}, keeping existing cache")
            return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY)

        partitions: Dict[str, List[Channel]] = {}
        for category in categories:
            if is_cancelled_now(is_cancelled):
                break
            scope_id = adapter.channel_scope(category)
            channels = adapter.fetch_channels(account, scope_id)
            if channels:
                partitions[scope_id] = channels

        if not partitions:
            logger.warning(f"No channels found in any category for {account.name}, keeping existing cache")
            return CacheReloadSummary(account_id=account.id, status=STATUS_EMPTY, categories=len(categories))

        scope = {"account_id": account.id}
        self.store.replace(CATEGORY_MODEL_BY_MODE[account.mode], scope, categories)
        total = self.store.replace_partitioned(CHANNEL_MODEL_BY_MODE[account.mode], scope, "scope_id", partitions)
        logger.info(f"{len(categories)} categories & {total} channels saved for {account.name}")
        return CacheReloadSummary(account_id=account.id, status=STATUS_OK, categories=len(categories), channels=total)
