"""Abstract base class for the background job queue.

Document changes are decoupled from embedding work by publishing a message
on a topic.  A queue implementation delivers each job to the topic's
handler at least once.  It retries failures a bounded number of times
before dead-lettering them, and never runs two jobs with the same key
concurrently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

JobHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class Job(BaseModel):
    """Envelope for a queued message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique job identifier.")
    topic: str = Field(description='Topic the job was published on, e.g. "embedding".')
    payload: dict[str, Any] = Field(default_factory=dict)
    key: str | None = Field(
        default=None,
        description="Serialisation key; jobs sharing a key never run concurrently.",
    )
    attempts: int = Field(default=0, ge=0, description="Attempts made so far.")
    max_attempts: int = Field(default=3, ge=1)


class DeadLetter(BaseModel):
    """A job that exhausted its attempts, with the last error."""

    model_config = ConfigDict(frozen=True)

    job: Job
    error: str


class IJobQueue(ABC):
    """Contract for a topic-based, retrying job queue."""

    @abstractmethod
    def subscribe(self, topic: str, handler: JobHandler) -> None:
        """Register the single handler that consumes *topic*."""

    @abstractmethod
    async def enqueue(
        self,
        topic: str,
        payload: dict[str, Any],
        key: str | None = None,
    ) -> str:
        """Publish a job and return its id (fire-and-forget).

        If a job with the same *topic* and *key* is still waiting, the
        implementation may return that job's id instead of queueing a
        duplicate.
        """

    @abstractmethod
    async def start(self) -> None:
        """Start consuming subscribed topics."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop consuming after jobs dispatched from this process finish."""

    @abstractmethod
    async def join(self) -> None:
        """Wait until jobs dispatched from this process, including retries, finish."""

    @abstractmethod
    def dead_letters(self) -> list[DeadLetter]:
        """Return jobs that failed on every attempt."""
