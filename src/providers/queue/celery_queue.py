"""Celery-backed implementation of the job queue.

Every subscribed topic becomes a Celery task named ``docmind.<topic>``
whose body drives the async handler to completion.  Redis provides the
shared state that Celery task ids do not:

* **Retry** -- a handler exception schedules ``task.retry`` with a countdown
  of ``retry_backoff * attempt`` seconds.  The broker holds the message
  during the backoff, so the worker slot is free for other jobs.  After
  ``max_attempts`` attempts the job is pushed onto a Redis dead-letter list.
* **Per-key serialisation** -- a :class:`TaskLock` on ``<topic>:<key>`` is
  held while the handler runs.  A job that cannot get the lock within
  ``lock_wait`` seconds is re-published with a countdown instead of
  blocking.  In eager mode it spends an attempt instead.
* **Coalescing** -- enqueueing sets ``pending:<topic>:<key>`` to the new
  job id.  While that marker exists further enqueues return the same id.
  The job clears it when it starts, so a change made mid-run always gets
  its own pass.

In eager mode (``task_always_eager``) tasks run in a worker thread of the
calling process, and handlers are scheduled back onto the event loop that
called :meth:`CeleryJobQueue.start`.
"""

from __future__ import annotations

import asyncio
import functools
import uuid
from typing import Any

import redis
import structlog
from celery import Celery, Task
from pydantic import BaseModel

from src.config.settings import Settings
from src.interfaces.job_queue import DeadLetter, IJobQueue, Job, JobHandler
from src.providers.queue.task_lock import TaskLock
from src.utils.concurrency import run_async

logger = structlog.get_logger(logger_name=__name__)

TASK_PREFIX = "docmind."
_PENDING_PREFIX = "docmind:pending:"
_DEAD_LETTER_KEY = "docmind:dead_letters"


def create_celery_app(settings: Settings) -> Celery:
    """Build the Celery application from settings (Redis broker by default)."""
    app = Celery(
        "docmind",
        broker=settings.celery_broker_url or settings.redis_url,
        backend=settings.celery_result_backend or settings.redis_url,
        set_as_current=False,
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        worker_prefetch_multiplier=1,  # fair scheduling
        worker_concurrency=settings.worker_concurrency,
        worker_hijack_root_logger=False,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_track_started=True,
        result_expires=86400,
        task_always_eager=settings.celery_task_always_eager,
    )
    return app


def create_redis_client(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def _on_event_loop_thread() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class CeleryJobQueue(IJobQueue):
    """Topic-based job queue on Celery with Redis locks and markers.

    Parameters
    ----------
    celery_app:
        Application the topic tasks are registered on.
    redis_client:
        Client (``decode_responses=True``) for locks, pending markers and
        dead letters.
    max_attempts:
        Attempts per job before it is dead-lettered.
    retry_backoff:
        Base retry countdown in seconds; attempt *n* waits ``retry_backoff * n``.
    lock_ttl:
        Lifetime of a per-key lock and of a pending marker, in seconds.
    lock_wait:
        Seconds a job waits for a busy key before it is re-published.
    """

    def __init__(
        self,
        celery_app: Celery,
        redis_client: redis.Redis,
        max_attempts: int = 3,
        retry_backoff: float = 2.0,
        lock_ttl: int = 600,
        lock_wait: float = 5.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._app = celery_app
        self._redis = redis_client
        self._locks = TaskLock(redis_client)
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._lock_ttl = lock_ttl
        self._lock_wait = lock_wait
        self._tasks: dict[str, Task] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def celery_app(self) -> Celery:
        return self._app

    def task_for(self, topic: str) -> Task:
        """Return the Celery task consuming *topic*."""
        task = self._tasks.get(topic)
        if task is None:
            raise ValueError(f"No handler subscribed to topic '{topic}'")
        return task

    # ------------------------------------------------------------------
    # IJobQueue implementation
    # ------------------------------------------------------------------

    def subscribe(self, topic: str, handler: JobHandler) -> None:
        if topic in self._tasks:
            raise ValueError(f"Topic '{topic}' already has a handler")
        queue = self

        def run_job(task: Task, payload: dict[str, Any], key: str | None = None) -> Any:
            job = Job(
                id=task.request.id,
                topic=topic,
                payload=payload,
                key=key,
                attempts=task.request.retries + 1,
                max_attempts=task.max_retries + 1,
            )
            return queue._execute(task, job, handler)

        self._tasks[topic] = self._app.task(
            bind=True,
            name=f"{TASK_PREFIX}{topic}",
            max_retries=self._max_attempts - 1,
            acks_late=True,
            reject_on_worker_lost=True,
            shared=False,
            lazy=False,
        )(run_job)
        logger.info("queue_subscribed", topic=topic, task=f"{TASK_PREFIX}{topic}")

    async def enqueue(
        self,
        topic: str,
        payload: dict[str, Any],
        key: str | None = None,
    ) -> str:
        task = self.task_for(topic)
        job_id, waiting = await asyncio.to_thread(self._claim, topic, key)
        if waiting:
            logger.debug("job_coalesced", topic=topic, key=key, job_id=job_id)
            return job_id

        send = functools.partial(self._send, task, job_id, dict(payload), key)
        if self._app.conf.task_always_eager:
            dispatch = asyncio.create_task(asyncio.to_thread(send))
            self._inflight.add(dispatch)
            dispatch.add_done_callback(self._inflight.discard)
        else:
            await asyncio.to_thread(send)
        return job_id

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        logger.info(
            "queue_started",
            topics=sorted(self._tasks),
            eager=bool(self._app.conf.task_always_eager),
        )

    async def stop(self) -> None:
        await self.join()
        self._loop = None
        logger.info("queue_stopped")

    async def join(self) -> None:
        """Wait for jobs dispatched from this process in eager mode.

        With a real broker the jobs belong to the Celery workers, and this
        returns as soon as every publish has completed.
        """
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    def dead_letters(self) -> list[DeadLetter]:
        return [
            DeadLetter.model_validate_json(raw)
            for raw in self._redis.lrange(_DEAD_LETTER_KEY, 0, -1)
        ]

    # ------------------------------------------------------------------
    # Publishing (blocking; called from a thread)
    # ------------------------------------------------------------------

    @staticmethod
    def _pending_key(topic: str, key: str) -> str:
        return f"{_PENDING_PREFIX}{topic}:{key}"

    def _claim(self, topic: str, key: str | None) -> tuple[str, bool]:
        """Reserve a job id, or return the id of a job already waiting for *key*."""
        job_id = uuid.uuid4().hex
        if key is None:
            return job_id, False

        marker = self._pending_key(topic, key)
        if self._redis.set(marker, job_id, nx=True, ex=self._lock_ttl):
            return job_id, False
        waiting = self._redis.get(marker)
        if waiting is None:
            # Expired between the two calls.
            self._redis.set(marker, job_id, ex=self._lock_ttl)
            return job_id, False
        return waiting, True

    def _send(
        self,
        task: Task,
        job_id: str,
        payload: dict[str, Any],
        key: str | None,
        countdown: float | None = None,
    ) -> None:
        task.apply_async(
            kwargs={"payload": payload, "key": key},
            task_id=job_id,
            countdown=countdown,
        )
        logger.info("job_enqueued", task=task.name, key=key, job_id=job_id, countdown=countdown)

    # ------------------------------------------------------------------
    # Task body (runs on a Celery worker, or a thread in eager mode)
    # ------------------------------------------------------------------

    def _execute(self, task: Task, job: Job, handler: JobHandler) -> Any:
        if job.key is not None:
            marker = self._pending_key(job.topic, job.key)
            if self._redis.get(marker) == job.id:
                self._redis.delete(marker)

        lock_key = f"{job.topic}:{job.key if job.key is not None else job.id}"
        if not self._locks.acquire(lock_key, self._lock_ttl, job.id, wait=self._lock_wait):
            if self._app.conf.task_always_eager:
                # Eager re-publishing would recurse; spend an attempt instead.
                busy = TimeoutError(f"Key '{lock_key}' stayed locked for {self._lock_wait}s")
                return self._handle_failure(task, job, busy)
            self._defer(task, job)
            return None

        try:
            result = self._run_handler(handler, job.payload)
        except Exception as exc:
            return self._handle_failure(task, job, exc)
        finally:
            self._locks.release(lock_key, job.id)

        logger.info(
            "job_completed",
            topic=job.topic,
            key=job.key,
            job_id=job.id,
            attempt=job.attempts,
        )
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result

    def _run_handler(self, handler: JobHandler, payload: dict[str, Any]) -> Any:
        if _on_event_loop_thread():
            raise RuntimeError("Job handlers cannot run on an event loop thread; use enqueue()")
        loop = self._loop
        if loop is not None and loop.is_running():
            return asyncio.run_coroutine_threadsafe(handler(payload), loop).result()
        return run_async(handler(payload))

    def _defer(self, task: Task, job: Job) -> None:
        """Re-publish a job whose key is busy, unless a newer one already waits."""
        job_id, waiting = self._claim(job.topic, job.key)
        if waiting:
            logger.info("job_superseded", topic=job.topic, key=job.key, job_id=job.id, superseded_by=job_id)
            return
        logger.info(
            "job_deferred_key_busy",
            topic=job.topic,
            key=job.key,
            job_id=job.id,
            next_job_id=job_id,
            retry_in_s=self._retry_backoff,
        )
        self._send(task, job_id, job.payload, job.key, countdown=self._retry_backoff)

    def _handle_failure(self, task: Task, job: Job, exc: Exception) -> None:
        if job.attempts >= job.max_attempts:
            self._dead_letter(job, str(exc))
            raise exc

        if job.key is not None and self._redis.exists(self._pending_key(job.topic, job.key)):
            logger.info(
                "job_retry_superseded",
                topic=job.topic,
                key=job.key,
                job_id=job.id,
                superseded_by=self._redis.get(self._pending_key(job.topic, job.key)),
            )
            return None

        countdown = self._retry_backoff * job.attempts
        logger.warning(
            "job_failed_retrying",
            topic=job.topic,
            key=job.key,
            job_id=job.id,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            retry_in_s=countdown,
            error=str(exc),
        )
        raise task.retry(exc=exc, countdown=countdown)

    def _dead_letter(self, job: Job, error: str) -> None:
        self._redis.rpush(_DEAD_LETTER_KEY, DeadLetter(job=job, error=error).model_dump_json())
        logger.error(
            "job_dead_lettered",
            topic=job.topic,
            key=job.key,
            job_id=job.id,
            attempts=job.attempts,
            error=error,
        )
