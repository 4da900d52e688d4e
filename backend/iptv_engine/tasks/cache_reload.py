import logging

from iptv_engine.core.celery_app import celery_app
from iptv_engine.engine import build_engine
from iptv_engine.services.account import AccountNotFoundError
from iptv_engine.services.cache_reload import CacheReloadError

logger = logging.getLogger(__name__)


@celery_app.task
def reload_account_cache_task(account_id: int):
    """Full cache reload of one account, run by the worker."""
    engine = build_engine()
    try:
        summary = engine.reload_account_cache(account_id)
        logger.info(f"Cache reload for account {account_id}: {summary.status} "
                    f"({summary.categories} categories, {summary.channels} channels)")
        return summary.model_dump()
    except AccountNotFoundError:
        logger.error(f"Account {account_id} not found")
        return {"account_id": account_id, "status": "failed", "message": "Account not found"}
    except CacheReloadError as e:
        logger.error(f"Cache reload failed for account {account_id}: {e}")
        return {"account_id": account_id, "status": "failed", "message": str(e)}
    finally:
        engine.close()
