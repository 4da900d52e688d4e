import logging
from typing import Callable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from iptv_engine import schemas
from iptv_engine.models.account import Account, AccountType
from iptv_engine.services.cache_store import CacheStore, CacheStoreError
from iptv_engine.services.portal_discovery import PortalDiscovery

logger = logging.getLogger(__name__)

AccountListener = Callable[[int], None]


class AccountNotFoundError(LookupError):
    pass


class AccountService:
    """
    Account persistence. Every save notifies the change listeners so the
    in-memory session token of the account is dropped.
    """

    def __init__(self, session_factory: Callable, store: CacheStore, portal_discovery: PortalDiscovery):
        self.session_factory = session_factory
        self.store = store
        self.portal_discovery = portal_discovery
        self._listeners: List[AccountListener] = []

    def add_change_listener(self, listener: AccountListener) -> None:
        self._listeners.append(listener)

    def _notify(self, account_id: int) -> None:
        for listener in self._listeners:
            listener(account_id)

    def create(self, account: schemas.AccountCreate) -> schemas.Account:
        db = self.session_factory()
        try:
            db_account = Account(**account.model_dump())
            db.add(db_account)
            db.commit()
            db.refresh(db_account)
            logger.info(f"Created account {db_account.name} ({db_account.type.value})")
            return schemas.Account.model_validate(db_account)
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to create account {account.name}: {e}") from e
        finally:
            db.close()

    def save(self, account: schemas.Account) -> schemas.Account:
        db = self.session_factory()
        try:
            db_account = db.query(Account).filter(Account.id == account.id).first()
            if not db_account:
                raise AccountNotFoundError(f"Account {account.id} not found")
            for key, value in account.model_dump(exclude={"id"}).items():
                setattr(db_account, key, value)
            db.commit()
            db.refresh(db_account)
            saved = schemas.Account.model_validate(db_account)
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to save account {account.name}: {e}") from e
        finally:
            db.close()
        self._notify(saved.id)
        return saved

    def get(self, account_id: int) -> schemas.Account:
        db = self.session_factory()
        try:
            db_account = db.query(Account).filter(Account.id == account_id).first()
            if not db_account:
                raise AccountNotFoundError(f"Account {account_id} not found")
            return schemas.Account.model_validate(db_account)
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read account {account_id}: {e}") from e
        finally:
            db.close()

    def get_by_name(self, name: str) -> Optional[schemas.Account]:
        db = self.session_factory()
        try:
            db_account = db.query(Account).filter(Account.name == name).first()
            return schemas.Account.model_validate(db_account) if db_account else None
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to read account {name}: {e}") from e
        finally:
            db.close()

    def list(self) -> List[schemas.Account]:
        db = self.session_factory()
        try:
            return [schemas.Account.model_validate(a) for a in db.query(Account).order_by(Account.id).all()]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Unable to list accounts: {e}") from e
        finally:
            db.close()

    def delete(self, account_id: int) -> None:
        db = self.session_factory()
        try:
            deleted = db.query(Account).filter(Account.id == account_id).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to delete account {account_id}: {e}") from e
        finally:
            db.close()
        if not deleted:
            raise AccountNotFoundError(f"Account {account_id} not found")
        self.store.delete_account(account_id)
        self._notify(account_id)
        logger.info(f"Deleted account {account_id}")

    def ensure_server_portal_url(self, account: Union[schemas.Account, None]) -> Optional[str]:
        """
        Discover and persist the portal API URL of a Stalker account the
        first time it is needed. The passed record is updated in place.
        """
        if account is None:
            return None
        if account.server_portal_url:
            return account.server_portal_url
        if account.type != AccountType.STALKER_PORTAL:
            return account.url

        portal_url = self.portal_discovery.discover(account)
        if not portal_url:
            return None
        account.server_portal_url = portal_url

        db = self.session_factory()
        try:
            db.query(Account).filter(Account.id == account.id).update(
                {Account.server_portal_url: portal_url}, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheStoreError(f"Unable to store portal URL for {account.name}: {e}") from e
        finally:
            db.close()
        logger.info(f"Resolved server portal URL for {account.name}: {portal_url}")
        return portal_url
