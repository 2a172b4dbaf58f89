"""Celery application configuration for revWave Worker."""

from celery import Celery
from celery.signals import worker_process_init

from revwave_core.config import get_settings

settings = get_settings()

app = Celery(
    "revwave_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "revwave_worker.tasks.sync",
        "revwave_worker.tasks.campaigns",
    ],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=1800,
    task_time_limit=3600,
    # Queue routing. The campaigns queue must be consumed with concurrency 1
    # so dispatches of the same campaign never overlap.
    task_routes={
        "sync.*": {"queue": "sync"},
        "campaigns.*": {"queue": "campaigns"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
)

app.conf.beat_schedule = {
    # Enqueue draft campaigns whose scheduled time has passed
    "process-scheduled-campaigns": {
        "task": "campaigns.process_scheduled",
        "schedule": 60.0,  # 1 minute
        "args": (),
    },
    # Sync every connected tenant
    "sync-all-tenants-hourly": {
        "task": "sync.run_all_tenants",
        "schedule": 3600.0,  # 1 hour
        "args": (),
    },
}


@worker_process_init.connect
def setup_logging(**kwargs) -> None:
    from revwave_core.observability import configure_logging

    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="revwave-worker",
    )


if __name__ == "__main__":
    app.start()
