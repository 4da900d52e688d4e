import logging
import re
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from iptv_engine import schemas
from iptv_engine.models.account import AccountMode
from iptv_engine.models.watch_state import SeriesWatchState
from iptv_engine.services.cache_store import CacheStoreError, now_ms

logger = logging.getLogger(__name__)

SXXEYY_PATTERN = re.compile(r"\bS(\d{1,2})E(\d{1,3})\b", re.IGNORECASE)
SEASON_PATTERN = re.compile(r"\bseason\s*(\d+)\b|\bS(\d{1,2})(?=\b|E\d+)|\b(\d{1,2})x\d{1,3}\b", re.IGNORECASE)
EPISODE_PATTERN = re.compile(r"\bepisode\s*(\d+)\b|\bE(\d{1,3})\b|\b\d{1,2}x(\d{1,3})\b", re.IGNORECASE)

SOURCE_AUTO = "AUTO"
SOURCE_MANUAL = "MANUAL"
SERIES_MODE = AccountMode.SERIES.value

# account_id is None after a global clear
WatchStateListener = Callable[[Optional[int], str], None]


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def strip_to_digits(value: Optional[str]) -> str:
    if _blank(value):
        return ""
    return re.sub(r"[^0-9]", "", str(value))


def normalize_category_id(category_id: Optional[str]) -> str:
    return "" if _blank(category_id) else str(category_id).strip()


def _first_group(match: Optional[re.Match]) -> str:
    if match:
        for value in match.groups():
            if value:
                return value
    return ""


def normalize_season(explicit_season: Optional[str], fallback_title: Optional[str]) -> str:
    digits = strip_to_digits(explicit_season)
    if digits:
        return str(int(digits))
    title = fallback_title or ""
    sxey = SXXEYY_PATTERN.search(title)
    if sxey:
        return str(int(sxey.group(1)))
    parsed = _first_group(SEASON_PATTERN.search(title))
    return str(int(parsed)) if parsed else ""


def parse_episode_num(explicit_episode_num: Optional[str], fallback_title: Optional[str]) -> int:
    digits = strip_to_digits(explicit_episode_num)
    if digits:
        return int(digits)
    title = fallback_title or ""
    sxey = SXXEYY_PATTERN.search(title)
    if sxey:
        return int(sxey.group(2))
    parsed = _first_group(EPISODE_PATTERN.search(title))
    return int(parsed) if parsed else 0


def parse_season_num(explicit_season: Optional[str], fallback_title: Optional[str]) -> int:
    normalized = normalize_season(explicit_season, fallback_title)
    return int(normalized) if normalized else 0


def should_advance_pointer(current_season: int, current_episode: int, next_season: int, next_episode: int) -> bool:
    """Monotonic (season, episode) rule for AUTO updates."""
    if next_season > 0 and current_season > 0:
        if next_season > current_season:
            return True
        if next_season < current_season:
            return False
    if next_episode <= 0:
        return False
    return current_episode <= 0 or next_episode > current_episode


class WatchStateTracker:
    """
    Per (account, category, series) "last watched episode" pointer.

    AUTO writes (from playback) only move the pointer forward; MANUAL
    writes always overwrite. Listeners get ``(account_id, series_id)``
    after every write or clear, and ``(None, "")`` after
    ``clear_all_series_last_watched``.
    """

    def __init__(self, session_factory: Callable, clock: Optional[Callable[[], int]] = None):
        self.session_factory = session_factory
        self.clock = clock or now_ms
        self._listeners: List[WatchStateListener] = []

    # ========================================================================
    # Listeners
    # ========================================================================

    def add_change_listener(self, listener: WatchStateListener) -> None:
        if listener is not None and listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: WatchStateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, account_id: Optional[int], series_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(account_id, series_id)
            except Exception as e:
                logger.warning(f"Watch state listener failed for series {series_id}: {e}")

    # Parsing rules, also reachable through the tracker
    parse_episode_num = staticmethod(parse_episode_num)
    parse_season_num = staticmethod(parse_season_num)
    should_advance_pointer = staticmethod(should_advance_pointer)

    # ========================================================================
    # Reads
    # ========================================================================

    def _query(self, db, account_id: int):
        return db.query(SeriesWatchState).filter(
            SeriesWatchState.account_id == account_id,
            SeriesWatchState.mode == SERIES_MODE,
        )

    def _get_exact(self, account_id: int, category_id: str, series_id: str) -> Optional[schemas.SeriesWatchState]:
        db = self.session_factory()
        try:
            row = self._query(db, account_id).filter(
                SeriesWatchState.category_id == category_id,
                SeriesWatchState.series_id == series_id,
            ).first()
            return schemas.SeriesWatchState.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read watch state: {e}") from e
        finally:
            db.close()

    def get_series_last_watched(self, account_id: int, category_id: str,
                                series_id: str) -> Optional[schemas.SeriesWatchState]:
        """Exact category first, else the latest pointer of the series in any category."""
        if account_id is None or _blank(series_id):
            return None
        exact = self._get_exact(account_id, normalize_category_id(category_id), series_id)
        if exact:
            return exact
        db = self.session_factory()
        try:
            row = self._query(db, account_id).filter(
                SeriesWatchState.series_id == series_id,
            ).order_by(SeriesWatchState.updated_at.desc()).first()
            return schemas.SeriesWatchState.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read watch state: {e}") from e
        finally:
            db.close()

    def get_all_series_last_watched_by_account(self, account_id: int) -> List[schemas.SeriesWatchState]:
        db = self.session_factory()
        try:
            rows = self._query(db, account_id).order_by(SeriesWatchState.id).all()
            return [schemas.SeriesWatchState.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read watch state: {e}") from e
        finally:
            db.close()

    def get_series_last_watched_by_account(self, account_id: int,
                                           category_id: str = "") -> Dict[str, schemas.SeriesWatchState]:
        states = self.get_all_series_last_watched_by_account(account_id)
        category = normalize_category_id(category_id)
        return {
            state.series_id: state
            for state in states
            if state.series_id and (not category or state.category_id == category)
        }

    def is_matching_episode(self, state: Optional[schemas.SeriesWatchState], episode_id: str,
                            season: Optional[str], episode_num: Optional[str], episode_name: Optional[str]) -> bool:
        if state is None or _blank(state.episode_id) or _blank(episode_id):
            return False
        if state.episode_id.strip() != str(episode_id).strip():
            return False

        watched_season = strip_to_digits(state.season)
        candidate_season = strip_to_digits(normalize_season(season, episode_name))
        if watched_season and watched_season != candidate_season:
            return False

        watched_episode = str(state.episode_num) if state.episode_num > 0 else ""
        candidate_episode = strip_to_digits(
            episode_num if not _blank(episode_num) else str(parse_episode_num("", episode_name))
        )
        if watched_episode and watched_episode != candidate_episode:
            return False
        return True

    # ========================================================================
    # Writes
    # ========================================================================

    def on_playback_resolved(self, account, channel, requested_series_id: str,
                             parent_series_id: str, category_id: str = "") -> None:
        if account is None or channel is None or account.mode != AccountMode.SERIES or account.id is None:
            return
        series_id = (parent_series_id or "").strip()
        episode_id = (channel.channel_id or "").strip()
        if not series_id or not episode_id:
            return
        # The pointer is keyed by the series, never by the episode itself
        if series_id == episode_id:
            return
        self._write_if_newer(account.id, normalize_category_id(category_id), series_id, episode_id,
                             channel.name, channel.season, channel.episode_num, SOURCE_AUTO)

    def mark_series_episode_manual(self, account, category_id: str, series_id: str, episode_id: str,
                                   episode_name: Optional[str], season: Optional[str],
                                   episode_num: Optional[str]) -> None:
        if account is None or account.id is None or _blank(series_id) or _blank(episode_id):
            return
        self._upsert(account.id, normalize_category_id(category_id), series_id, episode_id, episode_name,
                     season, parse_episode_num(episode_num, episode_name), SOURCE_MANUAL)

    def mark_series_episode_manual_if_newer(self, account, category_id: str, series_id: str, episode_id: str,
                                            episode_name: Optional[str], season: Optional[str],
                                            episode_num: Optional[str]) -> None:
        if account is None or account.id is None or _blank(series_id) or _blank(episode_id):
            return
        self._write_if_newer(account.id, normalize_category_id(category_id), series_id, episode_id,
                             episode_name, season, episode_num, SOURCE_MANUAL)

    def clear_series_last_watched(self, account_id: int, category_id: str, series_id: str) -> None:
        if account_id is None or _blank(series_id):
            return
        db = self.session_factory()
        try:
            self._query(db, account_id).filter(
                SeriesWatchState.category_id == normalize_category_id(category_id),
                SeriesWatchState.series_id == series_id,
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to clear watch state: {e}") from e
        finally:
            db.close()
        self._notify(account_id, series_id)

    def clear_all_series_last_watched(self) -> None:
        db = self.session_factory()
        try:
            db.query(SeriesWatchState).filter(SeriesWatchState.mode == SERIES_MODE).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to clear watch state: {e}") from e
        finally:
            db.close()
        self._notify(None, "")

    def _write_if_newer(self, account_id: int, category_id: str, series_id: str, episode_id: str,
                        episode_name: Optional[str], season: Optional[str], episode_num: Optional[str],
                        source: str) -> None:
        next_episode = parse_episode_num(episode_num, episode_name)
        next_season = parse_season_num(season, episode_name)
        existing = self._get_exact(account_id, category_id, series_id)
        if existing is None:
            self._upsert(account_id, category_id, series_id, episode_id, episode_name, season, next_episode, source)
            return

        if next_episode <= 0 and next_season <= 0:
            return
        current_season = parse_season_num(existing.season, existing.episode_name)
        if should_advance_pointer(current_season, existing.episode_num, next_season, next_episode):
            self._upsert(account_id, category_id, series_id, episode_id, episode_name, season, next_episode, source)
        else:
            logger.debug(f"Ignoring older episode {episode_id} for series {series_id}")

    def _upsert(self, account_id: int, category_id: str, series_id: str, episode_id: str,
                episode_name: Optional[str], season: Optional[str], episode_num: int, source: str) -> None:
        values = {
            "episode_id": episode_id,
            "episode_name": episode_name,
            "season": normalize_season(season, episode_name),
            "episode_num": episode_num if episode_num > 0 else parse_episode_num("", episode_name),
            "updated_at": self.clock(),
            "source": source,
        }
        db = self.session_factory()
        try:
            row = self._query(db, account_id).filter(
                SeriesWatchState.category_id == category_id,
                SeriesWatchState.series_id == series_id,
            ).first()
            if row is None:
                row = SeriesWatchState(account_id=account_id, mode=SERIES_MODE,
                                       category_id=category_id, series_id=series_id)
                db.add(row)
            for key, value in values.items():
                setattr(row, key, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to write watch state: {e}") from e
        finally:
            db.close()
        logger.info(f"{source} watch pointer for series {series_id} set to episode {episode_id}")
        self._notify(account_id, series_id)
