import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from iptv_engine import schemas
from iptv_engine.models.bookmark import Bookmark
from iptv_engine.services.cache_store import CacheStoreError

logger = logging.getLogger(__name__)


class BookmarkService:
    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def save(self, bookmark: schemas.BookmarkCreate) -> schemas.Bookmark:
        values = bookmark.model_dump()
        values["mode"] = bookmark.mode.value
        db = self.session_factory()
        try:
            db_bookmark = Bookmark(**values)
            db.add(db_bookmark)
            db.commit()
            db.refresh(db_bookmark)
            logger.info(f"Bookmarked {db_bookmark.channel_name} for account {db_bookmark.account_id}")
            return schemas.Bookmark.model_validate(db_bookmark)
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to save bookmark: {e}") from e
        finally:
            db.close()

    def get(self, bookmark_id: int) -> Optional[schemas.Bookmark]:
        db = self.session_factory()
        try:
            db_bookmark = db.query(Bookmark).filter(Bookmark.id == bookmark_id).first()
            return schemas.Bookmark.model_validate(db_bookmark) if db_bookmark else None
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read bookmark {bookmark_id}: {e}") from e
        finally:
            db.close()

    def list(self, account_id: Optional[int] = None) -> List[schemas.Bookmark]:
        db = self.session_factory()
        try:
            query = db.query(Bookmark)
            if account_id is not None:
                query = query.filter(Bookmark.account_id == account_id)
            return [schemas.Bookmark.model_validate(b) for b in query.order_by(Bookmark.id).all()]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to list bookmarks: {e}") from e
        finally:
            db.close()

    def delete(self, bookmark_id: int) -> bool:
        db = self.session_factory()
        try:
            deleted = db.query(Bookmark).filter(Bookmark.id == bookmark_id).delete(synchronize_session=False)
            db.commit()
            return bool(deleted)
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to delete bookmark {bookmark_id}: {e}") from e
        finally:
            db.close()
