from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(timeline_id)s | %(segment_id)s | %(job_id)s"
    " | %(message)s"
)
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_TIMELINE_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "log_timeline_id", default=None
)
LOG_SEGMENT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "log_segment_id", default=None
)
LOG_JOB_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_job_id", default=None)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.timeline_id = LOG_TIMELINE_ID.get() or "-"
        record.segment_id = LOG_SEGMENT_ID.get() or "-"
        record.job_id = LOG_JOB_ID.get() or "-"
        return True


@contextmanager
def log_context(
    timeline_id: Optional[str] = None,
    segment_id: Optional[str] = None,
    job_id: Optional[str] = None,
) -> Iterator[None]:
    tokens = []
    if timeline_id is not None:
        tokens.append((LOG_TIMELINE_ID, LOG_TIMELINE_ID.set(timeline_id)))
    if segment_id is not None:
        tokens.append((LOG_SEGMENT_ID, LOG_SEGMENT_ID.set(segment_id)))
    if job_id is not None:
        tokens.append((LOG_JOB_ID, LOG_JOB_ID.set(job_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging(
    log_file: str = "logs/framechain.log",
    level: Union[int, str] = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_framechain_logging_configured", False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    context_filter = ContextFilter()

    # Filters sit on the handlers so records from child loggers get the fields too.
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.addFilter(context_filter)
    root.addHandler(file_handler)

    if enable_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(context_filter)
        root.addHandler(stream_handler)

    root.setLevel(level)
    logging.captureWarnings(True)
    root._framechain_logging_configured = True
    return root
