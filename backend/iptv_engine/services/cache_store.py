import logging
import time
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from iptv_engine import schemas
from iptv_engine.models.bookmark import Bookmark
from iptv_engine.models.category import Category, VodCategory, SeriesCategory
from iptv_engine.models.channel import Channel, VodChannel, SeriesChannel, SeriesEpisode
from iptv_engine.models.watch_state import SeriesWatchState

logger = logging.getLogger(__name__)

CATEGORY_MODELS = (Category, VodCategory, SeriesCategory)
CHANNEL_MODELS = (Channel, VodChannel, SeriesChannel, SeriesEpisode)

# Tables wiped when an account is deleted
ACCOUNT_SCOPED_MODELS = CATEGORY_MODELS + CHANNEL_MODELS + (SeriesWatchState, Bookmark)


class CacheStoreError(RuntimeError):
    """Raised when the local catalog store cannot be read or written."""


def now_ms() -> int:
    return int(time.time() * 1000)


def record_type_for(model) -> Type[BaseModel]:
    if model in CATEGORY_MODELS:
        return schemas.Category
    if model in CHANNEL_MODELS:
        return schemas.Channel
    raise ValueError(f"No record type registered for {model.__name__}")


class CacheStore:
    """
    Scope-keyed persistent store for normalized catalog rows.

    A scope is a dict of column values (for example
    ``{"account_id": 1, "scope_id": "12"}``). Every row written by
    ``replace`` carries the same ``cached_at`` stamp, which drives the
    freshness checks.
    """

    def __init__(self, session_factory: Callable, clock: Optional[Callable[[], int]] = None):
        self.session_factory = session_factory
        self.clock = clock or now_ms

    def _scoped_query(self, db, model, scope: Dict[str, Any]):
        query = db.query(model)
        for column, value in scope.items():
            query = query.filter(getattr(model, column) == value)
        return query

    def replace(self, model, scope: Dict[str, Any], rows: List[BaseModel]) -> int:
        """Swap the whole scope for ``rows`` inside a single transaction."""
        columns = set(model.__table__.columns.keys()) - set(scope) - {"id", "cached_at"}
        cached_at = self.clock()
        db = self.session_factory()
        try:
            self._scoped_query(db, model, scope).delete(synchronize_session=False)
            for row in rows:
                values = row.model_dump(include=columns)
                db.add(model(**values, **scope, cached_at=cached_at))
            db.commit()
            logger.debug(f"Cached {len(rows)} rows in {model.__tablename__} for {scope}")
            return len(rows)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to replace {model.__tablename__} scope {scope}: {e}")
            raise CacheStoreError(f"Unable to write {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def replace_partitioned(self, model, scope: Dict[str, Any], key_column: str,
                            partitions: Dict[str, List[BaseModel]]) -> int:
        """
        Replace every row under ``scope`` with the given partitions, each
        written under ``key_column = partition key``. Used by full reloads
        that refresh all categories of an account at once.
        """
        columns = set(model.__table__.columns.keys()) - set(scope) - {"id", "cached_at", key_column}
        cached_at = self.clock()
        db = self.session_factory()
        try:
            self._scoped_query(db, model, scope).delete(synchronize_session=False)
            total = 0
            for key, rows in partitions.items():
                for row in rows:
                    values = row.model_dump(include=columns)
                    values[key_column] = key
                    db.add(model(**values, **scope, cached_at=cached_at))
                    total += 1
            db.commit()
            return total
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to replace {model.__tablename__} partitions for {scope}: {e}")
            raise CacheStoreError(f"Unable to write {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def fetch(self, model, scope: Dict[str, Any]) -> List[BaseModel]:
        record_type = record_type_for(model)
        db = self.session_factory()
        try:
            rows = self._scoped_query(db, model, scope).order_by(model.id).all()
            return [record_type.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {model.__tablename__} scope {scope}: {e}")
            raise CacheStoreError(f"Unable to read {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def count(self, model, scope: Dict[str, Any]) -> int:
        db = self.session_factory()
        try:
            return self._scoped_query(db, model, scope).count()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to count {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def cached_at(self, model, scope: Dict[str, Any]) -> int:
        db = self.session_factory()
        try:
            query = db.query(func.max(model.cached_at))
            for column, value in scope.items():
                query = query.filter(getattr(model, column) == value)
            return query.scalar() or 0
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def is_fresh(self, model, scope: Dict[str, Any], max_age_ms: int) -> bool:
        cached_at = self.cached_at(model, scope)
        return cached_at > 0 and self.clock() - cached_at <= max_age_ms

    def clear(self, model, scope: Dict[str, Any]) -> int:
        db = self.session_factory()
        try:
            deleted = self._scoped_query(db, model, scope).delete(synchronize_session=False)
            db.commit()
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to clear {model.__tablename__}: {e}") from e
        finally:
            db.close()

    def delete_account(self, account_id: int) -> None:
        """Drop every cached row, watch pointer and bookmark of an account."""
        db = self.session_factory()
        try:
            for model in ACCOUNT_SCOPED_MODELS:
                db.query(model).filter(model.account_id == account_id).delete(synchronize_session=False)
            db.commit()
            logger.info(f"Cleared cached data for account {account_id}")
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to delete cached data for account {account_id}: {e}") from e
        finally:
            db.close()
