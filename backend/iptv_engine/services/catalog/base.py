import logging
from typing import Callable, List, Optional

from iptv_engine.schemas import Category, Channel

logger = logging.getLogger(__name__)

CancelCheck = Optional[Callable[[], bool]]


class CatalogAdapter:
    """
    Fetches and normalizes one provider kind's catalog into Category and
    Channel records. Implementations never raise for network or parse
    problems: they log and return an empty list.
    """

    def fetch_categories(self, account) -> List[Category]:
        raise NotImplementedError

    def fetch_channels(self, account, category_id: str, movie_id: Optional[str] = None,
                       season_id: Optional[str] = None, is_cancelled: CancelCheck = None) -> List[Channel]:
        raise NotImplementedError

    def fetch_episodes(self, account, category_id: str, series_id: str,
                       is_cancelled: CancelCheck = None) -> List[Channel]:
        return []

    def channel_scope(self, category: Category) -> str:
        """Key used both to query the provider and to scope the channel cache."""
        return category.category_id or ""


# ============================================================================
# Shared helpers
# ============================================================================

def _name_part_as_int(name: Optional[str], index: int) -> int:
    parts = (name or "").split("-")
    if len(parts) <= index:
        return 0
    cleaned = parts[index].lower().replace(" ", "").replace("season", "").replace("episode", "")
    try:
        return int(cleaned)
    except ValueError:
        return 0


def compare_season(name: Optional[str]) -> int:
    return _name_part_as_int(name, 0)


def compare_episode(name: Optional[str]) -> int:
    return _name_part_as_int(name, 1)


def sort_by_season_episode(channels: List[Channel]) -> List[Channel]:
    return sorted(channels, key=lambda c: (compare_season(c.name), compare_episode(c.name)))


def expand_series_rows(parent: Channel, episode_ids: list) -> List[Channel]:
    """One ``<name> - Episode <n>`` row per id, sharing the parent's command."""
    rows = []
    for episode_id in episode_ids:
        rows.append(parent.model_copy(update={
            "channel_id": str(episode_id),
            "name": f"{parent.name} - Episode {episode_id}",
        }))
    return rows


def truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def is_cancelled_now(is_cancelled: CancelCheck) -> bool:
    return bool(is_cancelled and is_cancelled())
