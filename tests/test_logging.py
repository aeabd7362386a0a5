"""Tests for job-scoped logging context."""

from __future__ import annotations

import asyncio
import logging

import pytest

from beacongate.logging import configure_logging, current_job, job_context, log_exception


def test_job_context_binds_and_restores() -> None:
    assert current_job() == ("-", "-")
    with job_context(job_id="ev_1", case_id="case_1"):
        assert current_job() == ("ev_1", "case_1")
        with job_context(job_id="ev_2"):
            assert current_job() == ("ev_2", "case_1")
        assert current_job() == ("ev_1", "case_1")
    assert current_job() == ("-", "-")


def test_concurrent_jobs_keep_separate_ids() -> None:
    """Each task sees only its own binding."""

    async def job(n: int) -> tuple[str, str]:
        with job_context(job_id=f"ev_{n}", case_id=f"case_{n}"):
            await asyncio.sleep(0)
            return current_job()

    async def main() -> list[tuple[str, str]]:
        return list(await asyncio.gather(job(1), job(2)))

    assert asyncio.run(main()) == [("ev_1", "case_1"), ("ev_2", "case_2")]


def test_configure_logging_is_idempotent() -> None:
    configure_logging("DEBUG")
    configure_logging("INFO")
    root = logging.getLogger()
    rich_handlers = [h for h in root.handlers if type(h).__name__ == "RichHandler"]
    assert len(rich_handlers) == 1
    assert len(rich_handlers[0].filters) == 1
    assert logging.getLogger("httpx").level == logging.WARNING


def test_log_exception_appends_context(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("beacongate.test")
    with caplog.at_level(logging.ERROR, logger="beacongate.test"):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            log_exception(logger, "Capture job failed", run_id="run_1")
    [record] = caplog.records
    assert record.getMessage() == "Capture job failed (run_id=run_1)"
    assert record.exc_info is not None
