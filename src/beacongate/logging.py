"""Logging setup shared by the worker, the API and the CLI.

Records carry the capture job and case they belong to, so interleaved output from concurrent
jobs can be told apart.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
from typing import Any, Iterator

from rich.logging import RichHandler

UNBOUND = "-"

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "redis", "urllib3", "fastembed")

_job_var: contextvars.ContextVar[str] = contextvars.ContextVar("beacongate_job", default=UNBOUND)
_case_var: contextvars.ContextVar[str] = contextvars.ContextVar("beacongate_case", default=UNBOUND)


class _JobContextFilter(logging.Filter):
    """Stamp the bound job and case ids onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.job = _job_var.get()  # type: ignore[attr-defined]
        record.case = _case_var.get()  # type: ignore[attr-defined]
        return True


@contextlib.contextmanager
def job_context(*, job_id: str, case_id: str | None = None) -> Iterator[None]:
    """Bind job (and optionally case) ids for everything logged inside the block.

    Context variables are per task, so concurrent jobs in one event loop keep separate ids.

    Args:
        job_id: The evidence id for capture jobs, or any id naming the unit of work.
        case_id: Case the work belongs to; inherits the outer binding when omitted.
    """

    job_token = _job_var.set(job_id)
    case_token = _case_var.set(case_id if case_id is not None else _case_var.get())
    try:
        yield
    finally:
        _case_var.reset(case_token)
        _job_var.reset(job_token)


def current_job() -> tuple[str, str]:
    """The (job, case) ids currently bound, ``"-"`` when unbound."""

    return _job_var.get(), _case_var.get()


def configure_logging(level: str = "INFO") -> None:
    """Install one rich handler on the root logger.

    Safe to call more than once: an existing rich handler is reconfigured instead of duplicated.

    Args:
        level: Logging level name for BeaconGate loggers.
    """

    formatter = logging.Formatter(
        fmt="job=%(job)s case=%(case)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    root.setLevel(level)

    handler = next((h for h in root.handlers if isinstance(h, RichHandler)), None)
    if handler is None:
        handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True, show_path=False)
        root.addHandler(handler)
    if not any(isinstance(f, _JobContextFilter) for f in handler.filters):
        handler.addFilter(_JobContextFilter())
    handler.setFormatter(formatter)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_exception(logger: logging.Logger, msg: str, **context: Any) -> None:
    """Log the active exception with extra key/value context appended."""

    if context:
        details = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        logger.exception("%s (%s)", msg, details)
    else:
        logger.exception("%s", msg)
