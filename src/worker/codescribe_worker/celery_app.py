from celery import Celery

from .config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

app = Celery(
    "codescribe_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["codescribe_worker.tasks"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A continuation is only acknowledged once its chunk has been persisted
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
