from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from rq_scheduler import Scheduler

from watchtrail.core.config import settings
from watchtrail.jobs.metadata import refresh_metadata_job
from watchtrail.services.task_queue import task_queue

logger = logging.getLogger("watchtrail.jobs.schedule_registry")


def _schedule_entries() -> list[dict]:
    return [
        {
            "id": "metadata:refresh_stale_shows",
            "func": refresh_metadata_job,
            "interval": max(3600, settings.metadata_refresh_hours * 3600),
            "repeat": None,
            "queue_name": task_queue.queue_for("metadata"),
        },
    ]


def ensure_schedules() -> None:
    """Idempotently register periodic jobs with rq-scheduler."""
    if settings.environment.lower() == "test":
        return
    if not task_queue.connection:
        logger.info("Skipping scheduler bootstrap; queue connection is unavailable")
        return
    scheduler = Scheduler(connection=task_queue.connection, queue_name=task_queue.queue_names[0])
    for entry in _schedule_entries():
        if entry["id"] in scheduler:
            continue
        scheduler.schedule(
            scheduled_time=datetime.now(timezone.utc),
            func=entry["func"],
            interval=entry["interval"],
            repeat=entry["repeat"],
            id=entry["id"],
            queue_name=entry["queue_name"],
            result_ttl=int(timedelta(hours=1).total_seconds()),
        )
        logger.info("Scheduled job %s every %ss on queue %s", entry["id"], entry["interval"], entry["queue_name"])
