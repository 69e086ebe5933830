"""structlog setup shared by the duet-jobs CLI and the dev server.

Library modules only call ``logging.getLogger(__name__)``; rendering is decided
here, once, by whichever entry point is running.
"""

import logging
import sys

import structlog


def configure_logging(log_level: str = "info", json_output: bool = False) -> None:
    """Route stdlib and structlog records through one stderr handler.

    Output goes to stderr so ``duet-jobs`` can keep stdout for job lines.

    Args:
        log_level: ``DUET_LOG_LEVEL`` value (debug/info/warning/error).
        json_output: ``DUET_JSON_LOGS``; JSON lines instead of the console renderer.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Per-request lines from the HTTP client and the dev server access log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def bind_job_context(job_id: str, group_id: str | None = None) -> None:
    """Tag log lines from the current task with the job being followed."""
    ctx = {"job_id": job_id}
    if group_id:
        ctx["group_id"] = group_id
    structlog.contextvars.bind_contextvars(**ctx)


def clear_job_context() -> None:
    """Drop the tags set by ``bind_job_context``."""
    structlog.contextvars.unbind_contextvars("job_id", "group_id")
