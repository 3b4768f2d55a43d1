import logging

from celery import Celery
from celery.signals import worker_process_init

from app.core.config import settings
from app.core.telemetry import setup_worker_telemetry

logging.basicConfig(level=settings.log_level)

celery = Celery(
    "listing-publisher-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks_publish"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.publish_listing": {"queue": "publish"},
    },
)


@worker_process_init.connect
def _init_worker_process(**_kwargs) -> None:
    setup_worker_telemetry()
