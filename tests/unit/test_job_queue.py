"""Unit tests for CeleryJobQueue delivery rules.

Tasks run eagerly (``task_always_eager``) against an in-memory broker and a
fakeredis server, so retries, locks and dead letters exercise the real
Celery and Redis code paths without external services.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any
from unittest.mock import patch

import fakeredis
import pytest

from src.providers.queue.celery_queue import CeleryJobQueue, create_celery_app
from src.providers.queue.task_lock import TaskLock
from src.utils.concurrency import run_async, throttled_gather
from tests.conftest import make_settings


def _queue(redis_client: fakeredis.FakeRedis, **overrides: Any) -> CeleryJobQueue:
    settings = make_settings(**overrides)
    return CeleryJobQueue(
        create_celery_app(settings),
        redis_client,
        max_attempts=settings.embedding_max_attempts,
        retry_backoff=settings.embedding_retry_backoff,
        lock_ttl=settings.embedding_lock_ttl,
        lock_wait=settings.embedding_lock_wait,
    )


@pytest.fixture()
async def queue(redis_client: fakeredis.FakeRedis):
    q = _queue(redis_client)
    await q.start()
    yield q
    await q.stop()


# ======================================================================
# Delivery, retry, dead letters
# ======================================================================


async def test_delivers_payload_to_subscribed_handler(queue: CeleryJobQueue) -> None:
    received: list[dict[str, Any]] = []

    async def handler(payload: dict[str, Any]) -> None:
        received.append(payload)

    queue.subscribe("embedding", handler)
    await queue.enqueue("embedding", {"doc_id": "a"})
    await queue.join()

    assert received == [{"doc_id": "a"}]


async def test_subscribe_registers_named_task(queue: CeleryJobQueue) -> None:
    async def handler(_payload: dict[str, Any]) -> None:
        return None

    queue.subscribe("embedding", handler)

    task = queue.task_for("embedding")
    assert task.name == "docmind.embedding"
    assert task.max_retries == 2
    assert queue.celery_app.tasks["docmind.embedding"] is task


async def test_failed_job_is_retried_until_success(queue: CeleryJobQueue) -> None:
    attempts = 0

    async def flaky(_payload: dict[str, Any]) -> None:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise RuntimeError("transient")

    queue.subscribe("embedding", flaky)
    await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.join()

    assert attempts == 3
    assert queue.dead_letters() == []


async def test_exhausted_job_is_dead_lettered(
    queue: CeleryJobQueue, redis_client: fakeredis.FakeRedis
) -> None:
    async def always_fails(_payload: dict[str, Any]) -> None:
        raise RuntimeError("permanent")

    queue.subscribe("embedding", always_fails)
    job_id = await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.join()

    dead = queue.dead_letters()
    assert len(dead) == 1
    assert dead[0].job.id == job_id
    assert dead[0].job.attempts == 3
    assert dead[0].error == "permanent"
    # Dead letters live in Redis, so another process sees them too.
    assert len(_queue(redis_client).dead_letters()) == 1


async def test_retry_backoff_is_a_countdown_not_a_sleep(redis_client: fakeredis.FakeRedis) -> None:
    queue = _queue(redis_client, embedding_retry_backoff=30.0)
    finished: list[str] = []

    async def handler(payload: dict[str, Any]) -> None:
        if payload["doc_id"] == "bad":
            raise RuntimeError("provider down")
        finished.append(payload["doc_id"])

    queue.subscribe("embedding", handler)
    task = queue.task_for("embedding")
    await queue.start()

    started = time.monotonic()
    with patch.object(task, "retry", wraps=task.retry) as retry:
        await queue.enqueue("embedding", {"doc_id": "bad"}, key="bad")
        await queue.enqueue("embedding", {"doc_id": "good"}, key="good")
        await queue.join()
    elapsed = time.monotonic() - started
    await queue.stop()

    # Backoff is handed to the broker as a countdown; nothing sleeps on it.
    assert [c.kwargs["countdown"] for c in retry.call_args_list] == [30.0, 60.0]
    assert elapsed < 5.0
    assert finished == ["good"]
    assert len(queue.dead_letters()) == 1


async def test_unknown_topic_is_rejected(queue: CeleryJobQueue) -> None:
    with pytest.raises(ValueError, match="No handler"):
        await queue.enqueue("nobody-listens", {})


async def test_duplicate_subscription_rejected(queue: CeleryJobQueue) -> None:
    async def handler(_payload: dict[str, Any]) -> None:
        return None

    queue.subscribe("embedding", handler)
    with pytest.raises(ValueError, match="already has a handler"):
        queue.subscribe("embedding", handler)


def test_max_attempts_must_be_positive(redis_client: fakeredis.FakeRedis) -> None:
    with pytest.raises(ValueError):
        CeleryJobQueue(create_celery_app(make_settings()), redis_client, max_attempts=0)


# ======================================================================
# Coalescing and per-key serialisation
# ======================================================================


async def test_waiting_jobs_for_same_key_coalesce(redis_client: fakeredis.FakeRedis) -> None:
    # Non-eager: messages sit on the in-memory broker with nobody consuming.
    queue = _queue(redis_client, celery_task_always_eager=False)
    calls: list[str] = []

    async def handler(payload: dict[str, Any]) -> None:
        calls.append(payload["doc_id"])

    queue.subscribe("embedding", handler)
    first = await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    second = await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    other = await queue.enqueue("embedding", {"doc_id": "b"}, key="b")

    assert first == second
    assert other != first
    assert redis_client.get("docmind:pending:embedding:a") == first
    assert calls == []


async def test_started_job_clears_pending_marker(
    queue: CeleryJobQueue, redis_client: fakeredis.FakeRedis
) -> None:
    async def handler(_payload: dict[str, Any]) -> None:
        return None

    queue.subscribe("embedding", handler)
    first = await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.join()
    second = await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.join()

    assert first != second
    assert redis_client.get("docmind:pending:embedding:a") is None


async def test_jobs_for_same_key_never_overlap(queue: CeleryJobQueue) -> None:
    running: dict[str, int] = {}
    peak: dict[str, int] = {}
    started = asyncio.Event()
    release = asyncio.Event()
    runs = 0

    async def handler(payload: dict[str, Any]) -> None:
        nonlocal runs
        key = payload["doc_id"]
        running[key] = running.get(key, 0) + 1
        peak[key] = max(peak.get(key, 0), running[key])
        runs += 1
        started.set()
        await release.wait()
        running[key] -= 1

    queue.subscribe("embedding", handler)
    await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await asyncio.wait_for(started.wait(), timeout=2.0)

    # The first job has started, so this one is a separate job that must
    # wait for the key lock.
    await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await asyncio.sleep(0.1)
    assert runs == 1

    release.set()
    await queue.join()

    assert runs == 2
    assert peak["a"] == 1
    assert queue.dead_letters() == []


async def test_different_keys_run_concurrently(queue: CeleryJobQueue) -> None:
    both_running = asyncio.Event()
    active = 0

    async def handler(_payload: dict[str, Any]) -> None:
        nonlocal active
        active += 1
        if active == 2:
            both_running.set()
        await asyncio.wait_for(both_running.wait(), timeout=1.0)
        active -= 1

    queue.subscribe("embedding", handler)
    await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.enqueue("embedding", {"doc_id": "b"}, key="b")
    await queue.join()

    assert queue.dead_letters() == []


async def test_busy_key_republishes_with_countdown(redis_client: fakeredis.FakeRedis) -> None:
    queue = _queue(redis_client, celery_task_always_eager=False, embedding_lock_wait=0.0)
    calls: list[dict[str, Any]] = []

    async def handler(payload: dict[str, Any]) -> None:
        calls.append(payload)

    queue.subscribe("embedding", handler)
    TaskLock(redis_client).acquire("embedding:a", ttl_seconds=60, task_id="other-worker")

    task = queue.task_for("embedding")
    with patch.object(task, "apply_async") as apply_async:
        task.apply(kwargs={"payload": {"doc_id": "a"}, "key": "a"}, task_id="job-1")

    assert calls == []
    apply_async.assert_called_once()
    assert apply_async.call_args.kwargs["countdown"] == 0.0
    assert apply_async.call_args.kwargs["kwargs"] == {"payload": {"doc_id": "a"}, "key": "a"}
    assert redis_client.get("docmind:pending:embedding:a") == apply_async.call_args.kwargs["task_id"]


async def test_busy_key_in_eager_mode_spends_attempts(redis_client: fakeredis.FakeRedis) -> None:
    queue = _queue(redis_client, embedding_lock_wait=0.0)

    async def handler(_payload: dict[str, Any]) -> None:
        return None

    queue.subscribe("embedding", handler)
    TaskLock(redis_client).acquire("embedding:a", ttl_seconds=60, task_id="stale-worker")
    await queue.start()
    await queue.enqueue("embedding", {"doc_id": "a"}, key="a")
    await queue.stop()

    dead = queue.dead_letters()
    assert len(dead) == 1
    assert "locked" in dead[0].error


# ======================================================================
# Handler execution contexts
# ======================================================================


async def test_handler_runs_on_private_loop_when_queue_not_started(
    redis_client: fakeredis.FakeRedis,
) -> None:
    # Mirrors a Celery worker process: no application event loop to borrow.
    queue = _queue(redis_client)
    seen_loops: list[asyncio.AbstractEventLoop] = []

    async def handler(_payload: dict[str, Any]) -> dict[str, str]:
        seen_loops.append(asyncio.get_running_loop())
        return {"status": "ok"}

    queue.subscribe("embedding", handler)
    result = await asyncio.to_thread(
        queue.task_for("embedding").apply, kwargs={"payload": {"doc_id": "a"}, "key": "a"}
    )

    assert result.successful()
    assert result.result == {"status": "ok"}
    assert seen_loops[0] is not asyncio.get_running_loop()


async def test_handler_refuses_to_block_the_event_loop(queue: CeleryJobQueue) -> None:
    async def handler(_payload: dict[str, Any]) -> None:
        return None

    queue.subscribe("embedding", handler)
    queue.task_for("embedding").apply(kwargs={"payload": {}, "key": None})

    assert "event loop thread" in queue.dead_letters()[0].error


# ======================================================================
# TaskLock
# ======================================================================


class TestTaskLock:
    def test_acquire_and_release(self, redis_client: fakeredis.FakeRedis) -> None:
        lock = TaskLock(redis_client)
        assert lock.acquire("doc:1", ttl_seconds=30, task_id="t1") is True
        assert lock.acquire("doc:1", ttl_seconds=30, task_id="t2") is False
        assert lock.is_locked("doc:1")
        assert 0 < lock.get_ttl("doc:1") <= 30

        assert lock.release("doc:1", task_id="t1") is True
        assert not lock.is_locked("doc:1")

    def test_only_holder_can_release(self, redis_client: fakeredis.FakeRedis) -> None:
        lock = TaskLock(redis_client)
        lock.acquire("doc:1", task_id="t1")
        assert lock.release("doc:1", task_id="t2") is False
        assert lock.is_locked("doc:1")

    def test_wait_gives_up_after_deadline(self, redis_client: fakeredis.FakeRedis) -> None:
        lock = TaskLock(redis_client)
        lock.acquire("doc:1", task_id="t1")

        started = time.monotonic()
        assert lock.acquire("doc:1", task_id="t2", wait=0.2) is False
        assert time.monotonic() - started >= 0.2

    def test_context_manager_releases(self, redis_client: fakeredis.FakeRedis) -> None:
        lock = TaskLock(redis_client)
        with lock.lock("doc:1", task_id="t1") as acquired:
            assert acquired
            assert lock.is_locked("doc:1")
        assert not lock.is_locked("doc:1")
        assert lock.get_ttl("doc:1") == 0


# ======================================================================
# Concurrency helpers
# ======================================================================


def test_run_async_cancels_leftover_tasks() -> None:
    leftover: list[asyncio.Task[None]] = []

    async def main() -> str:
        leftover.append(asyncio.get_running_loop().create_task(asyncio.sleep(60)))
        return "done"

    assert run_async(main()) == "done"
    assert leftover[0].cancelled()


async def test_throttled_gather_limits_concurrency() -> None:
    active = 0
    peak = 0

    async def work(n: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return n

    results = await throttled_gather([work(i) for i in range(6)], semaphore=asyncio.Semaphore(2))

    assert results == list(range(6))
    assert peak <= 2


async def test_throttled_gather_returns_exceptions() -> None:
    async def boom() -> None:
        raise RuntimeError("x")

    async def ok() -> str:
        return "fine"

    results = await throttled_gather([boom(), ok()])
    assert isinstance(results[0], RuntimeError)
    assert results[1] == "fine"
