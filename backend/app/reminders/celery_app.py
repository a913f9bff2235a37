import logging

from celery import Celery
from celery.signals import worker_init, worker_shutting_down
from kombu import Queue

from app.core.config import settings as core_settings
from .config import settings

logging.basicConfig(
    level=core_settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Ack on receipt: a redelivered tick could send a reminder twice
    task_acks_late=False,
    worker_prefetch_multiplier=1,
    # One process, one engine: the per-kind tick locks live in this process
    worker_pool="threads",
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    task_queues=(Queue(settings.CELERY_QUEUE, durable=True),),
    include=["app.reminders.tasks"],
    timezone=core_settings.DEFAULT_TIMEZONE,
)

# Ticks that wait longer than their own interval are dropped, not stacked
celery_app.conf.beat_schedule = {
    "reminders-24h": {
        "task": "reminders.tick_24h",
        "schedule": settings.TICK_24H_INTERVAL_SECONDS,
        "options": {"expires": settings.TICK_24H_INTERVAL_SECONDS},
    },
    "reminders-2h": {
        "task": "reminders.tick_2h",
        "schedule": settings.TICK_2H_INTERVAL_SECONDS,
        "options": {"expires": settings.TICK_2H_INTERVAL_SECONDS},
    },
    "reminders-channel-heartbeat": {
        "task": "reminders.channel_heartbeat",
        "schedule": 60,
        "options": {"expires": 60},
    },
}


@worker_init.connect
def _prepare_database(**kwargs):
    from app.db.session import init_db
    init_db()


@worker_shutting_down.connect
def _stop_engine(**kwargs):
    from .runtime import get_engine
    if get_engine.cache_info().currsize:
        get_engine().request_stop()
