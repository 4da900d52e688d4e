from celery import Celery
from iptv_engine.core.config import settings

celery_app = Celery("worker", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

celery_app.conf.update(task_track_started=True)
celery_app.conf.timezone = settings.TIMEZONE

# Import tasks to register them
from iptv_engine.tasks import cache_reload  # noqa
