"""RQ task queue wrapper with inline fallback for local/test runs."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.job import Job, JobStatus
from rq.registry import FailedJobRegistry, ScheduledJobRegistry, StartedJobRegistry
from rq.worker import Worker

from watchtrail.core.config import settings

logger = logging.getLogger("watchtrail.services.task_queue")

# Catalog refreshes get a few chances with backoff.
DEFAULT_RETRY = Retry(max=3, interval=[5, 15, 30])
POLL_INTERVAL_SECONDS = 0.5


class JobFailedError(RuntimeError):
    """Raised when a worker reports a job as failed."""


def _wait_for(job: Job, timeout_seconds: int) -> Any:
    """Block until the job finishes and return its value."""
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        status = job.get_status(refresh=True)
        if status == JobStatus.FINISHED:
            return job.return_value()
        if status in (JobStatus.FAILED, JobStatus.STOPPED, JobStatus.CANCELED):
            raise JobFailedError(f"Job {job.id} ended as {status}")
        time.sleep(POLL_INTERVAL_SECONDS)
    raise TimeoutError(f"Job {job.id} did not finish within {timeout_seconds}s")


class TaskQueue:
    """Thin wrapper around RQ that can fall back to inline execution."""

    def __init__(self) -> None:
        self.queue_names: list[str] = settings.worker_queue_names or ["default"]
        self._connection: Redis | None = None
        self._enabled = False
        self._bootstrap()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connection(self) -> Redis | None:
        return self._connection

    def _bootstrap(self) -> None:
        """Connect to Redis unless running under tests."""
        if settings.environment.lower() == "test":
            logger.info("Task queue disabled in test environment")
            return
        try:
            connection = Redis.from_url(settings.redis_url)
            connection.ping()
        except (RedisError, OSError) as exc:  # pragma: no cover - network/redis specific
            logger.warning("Redis unavailable; running jobs inline: %s", exc)
            return
        self._connection = connection
        self._enabled = True
        logger.info("Task queue ready (queues: %s)", ", ".join(self.queue_names))

    def queue_for(self, preferred: str) -> str:
        return preferred if preferred in self.queue_names else self.queue_names[0]

    def get_queue(self, queue_name: str | None = None) -> Queue:
        if not self._connection:
            raise RuntimeError("Queue connection not initialized")
        return Queue(queue_name or self.queue_names[0], connection=self._connection)

    async def enqueue_metadata_refresh(
        self,
        *,
        user_id: uuid.UUID | None,
        only_missing: bool,
        fallback: Callable[[], Any],
    ) -> Any:
        """Refresh show metadata on a worker, or inline through ``fallback``."""
        from watchtrail.jobs.metadata import refresh_metadata_job

        return await self.enqueue_or_run(
            refresh_metadata_job,
            fallback=fallback,
            queue_name=self.queue_for("metadata"),
            timeout_seconds=300,
            description=f"metadata:{user_id or 'all'}",
            user_id=str(user_id) if user_id else None,
            only_missing=only_missing,
        )

    async def enqueue_or_run(
        self,
        func: Callable[..., Any],
        *,
        fallback: Callable[[], Any] | None = None,
        queue_name: str | None = None,
        timeout_seconds: int = 60,
        retry: Retry | None = DEFAULT_RETRY,
        description: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Enqueue a job and wait for its result; run it inline when the queue is unavailable."""

        async def _run_fallback() -> Any:
            result = fallback() if fallback else func(**kwargs)
            if asyncio.iscoroutine(result):
                return await result
            return result

        if not self._enabled or not self._connection:
            return await _run_fallback()

        def _enqueue_and_wait() -> Any:
            job = self.get_queue(queue_name).enqueue(
                func,
                kwargs=kwargs,
                job_timeout=timeout_seconds,
                description=description,
                retry=retry,
            )
            return _wait_for(job, timeout_seconds)

        try:
            return await asyncio.to_thread(_enqueue_and_wait)
        except (RedisError, OSError, TimeoutError, JobFailedError) as exc:  # pragma: no cover - network/redis specific
            logger.warning("Falling back to inline execution after queue failure: %s", exc)
            return await _run_fallback()

    def snapshot(self) -> dict[str, Any]:
        """Queue sizes and worker presence for diagnostics."""
        if not self._connection:
            return {"status": "offline", "queues": [], "workers": [], "redis_url": settings.redis_url}
        try:
            queues = [
                {
                    "name": name,
                    "size": queue.count,
                    "scheduled": len(ScheduledJobRegistry(queue=queue)),
                    "started": len(StartedJobRegistry(queue=queue)),
                    "failed": len(FailedJobRegistry(queue=queue)),
                }
                for name, queue in ((name, Queue(name, connection=self._connection)) for name in self.queue_names)
            ]
            workers = [worker.name for worker in Worker.all(connection=self._connection)]
        except RedisError as exc:  # pragma: no cover - network/redis specific
            logger.warning("Unable to inspect task queue: %s", exc)
            return {"status": "degraded", "queues": [], "workers": [], "error": str(exc)}
        return {
            "status": "online" if workers else "degraded",
            "queues": queues,
            "workers": workers,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }


task_queue = TaskQueue()
