from typing import Any

from celery import Celery
from celery.signals import setup_logging

from loyalty.core.config import get_settings
from loyalty.core.logging import configure_logging

settings = get_settings()

LEDGER_QUEUE = "q_normal"
RESULT_EXPIRES_SECONDS = 24 * 3600

celery_app = Celery(
    "loyalty_ledger",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "loyalty.workers.tasks.ledger_reconciliation",
    ],
)

celery_app.conf.update(
    task_default_queue=LEDGER_QUEUE,
    task_routes={"loyalty.workers.tasks.*": {"queue": LEDGER_QUEUE}},
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=RESULT_EXPIRES_SECONDS,
    timezone="UTC",
    enable_utc=True,
)


@setup_logging.connect
def _configure_worker_logging(**_kwargs: Any) -> None:
    # Connecting this signal stops Celery from installing its own root handlers.
    configure_logging(get_settings().log_level)


@celery_app.task(name="loyalty.workers.celery_app.ping")
def ping() -> str:
    return "pong"
