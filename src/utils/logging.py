"""structlog configuration shared by the API process and the Celery worker.

Both processes call :func:`configure_logging` at start-up; the worker calls
it again from Celery's ``after_setup_logger`` signals, so the function is
safe to run repeatedly.  It replaces only the handler it installed itself
and leaves any others on the root logger in place.

Events logged while a Celery task runs carry ``task_id`` and ``task_name``,
which ties a ``job_failed_retrying`` line in the worker log to the
``job_enqueued`` line the API wrote for the same job.

Rendering is JSON when ``json_output`` is set or ``APP_ENV`` is
``production``, and a coloured console layout otherwise.
"""

import logging
import os
import sys

import structlog
from celery import current_task

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "kombu", "celery.redirected")


class _DocmindHandler(logging.StreamHandler):
    """Root handler installed by :func:`configure_logging`."""


def add_task_context(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Attach the running Celery task's id and name, if any."""
    task = current_task
    request_id = getattr(getattr(task, "request", None), "id", None) if task else None
    if request_id:
        event_dict.setdefault("task_id", request_id)
        event_dict.setdefault("task_name", task.name)
    return event_dict


def _processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        add_task_context,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and route stdlib logging through the same renderer.

    Args:
        log_level: Level name such as ``"DEBUG"`` or ``"WARNING"``.
        json_output: Force JSON output regardless of ``APP_ENV``.

    Returns:
        The root structlog logger.
    """
    level = log_level.upper()
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer(colors=True)
    )
    processors = _processors()

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = _DocmindHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *processors,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, _DocmindHandler)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
