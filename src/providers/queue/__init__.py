"""Job queue implementations (Celery tasks with Redis locks)."""

from src.providers.queue.celery_queue import CeleryJobQueue, create_celery_app, create_redis_client
from src.providers.queue.task_lock import TaskLock

__all__ = ["CeleryJobQueue", "TaskLock", "create_celery_app", "create_redis_client"]
