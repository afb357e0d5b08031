from celery import Celery
from app.core.config import settings
from app.core.logging import configure_logging

configure_logging()

# The scan queue itself is provisioned outside this service; workers only consume from it.
celery_app = Celery(
    "ebsmanager_tasks",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        'app.services.tasks.scan_worker',
    ]
)

celery_app.conf.update(
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,
    # One scan per worker slot; the soft limit lets the orchestrator record a terminal status.
    worker_prefetch_multiplier=1,
    task_soft_time_limit=settings.SCAN_TIMEOUT_SECONDS + 30,
    task_time_limit=settings.SCAN_TIMEOUT_SECONDS + 60,
    worker_hijack_root_logger=False,
)

if __name__ == '__main__':
    celery_app.start()
