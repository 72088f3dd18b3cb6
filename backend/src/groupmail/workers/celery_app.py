"""Celery application.

Tasks are declared with @shared_task next to the code they serve and
registered here through `include`.

Run a worker with:
    celery -A groupmail.workers.celery_app worker --loglevel=info
"""

from celery import Celery

from ..config import get_settings

settings = get_settings()

celery_app = Celery(
    "groupmail",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["groupmail.notifications.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    task_ignore_result=True,
    timezone="UTC",
)
