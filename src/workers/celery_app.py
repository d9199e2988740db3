from celery import Celery

from src.core.config import settings

celery_app = Celery(
    "bfit_activity_engine",
    broker=settings.celery_broker_url or str(settings.redis_url),
    backend=settings.celery_result_backend or str(settings.redis_url),
    include=[
        "src.workers.tasks.anticheat_tasks",
        "src.workers.tasks.strava_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_time_limit=settings.job_default_timeout,
    task_soft_time_limit=settings.job_default_timeout - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Tasks are queued from inside webhook requests; a broker outage must
    # fail fast instead of holding the provider's connection open.
    task_publish_retry_policy={
        "max_retries": 1,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 0.5,
    },
    # Overlap scans are cheap and frequent, backfills are slow and bursty
    task_routes={
        "src.workers.tasks.anticheat_tasks.*": {"queue": "anticheat"},
        "src.workers.tasks.strava_tasks.*": {"queue": "backfill"},
    },
    result_expires=3600,
)
