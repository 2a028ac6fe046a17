"""Tests for progress reporters."""

import logging
from unittest.mock import MagicMock

from menuscan.db import JobsDB
from menuscan.progress import (
    CompositeProgressReporter,
    JobProgressReporter,
    LoggingProgressReporter,
    ProgressEvent,
    safe_report,
)


def test_event_to_dict():
    event = ProgressEvent("job-1", "upload", "2 documents", 1, 2)
    assert event.to_dict() == {
        "job_id": "job-1",
        "stage": "upload",
        "message": "2 documents",
        "completed": 1,
        "total": 2,
    }


def test_logging_reporter(caplog):
    with caplog.at_level(logging.INFO, logger="menuscan.progress"):
        LoggingProgressReporter().report(ProgressEvent("job-1", "fetch", "menu.pdf"))
    assert "[job-1] fetch menu.pdf" in caplog.text


def test_job_reporter_stores_latest_event(tmp_path):
    jobs = JobsDB(db_path=tmp_path / "test.db")
    jobs.create_job("job-1")
    reporter = JobProgressReporter(jobs)

    reporter.report(ProgressEvent("job-1", "fetch"))
    reporter.report(ProgressEvent("job-1", "parse", completed=3, total=3))

    progress = jobs.get_job("job-1")["progress"]
    assert progress["stage"] == "parse"
    assert progress["completed"] == 3
    jobs.close()


def test_failing_reporter_does_not_raise(caplog):
    broken = MagicMock()
    broken.report.side_effect = RuntimeError("socket closed")

    safe_report(broken, ProgressEvent("job-1", "prompt"))

    assert "failed at stage prompt" in caplog.text


def test_composite_reaches_every_reporter():
    broken = MagicMock()
    broken.report.side_effect = RuntimeError("boom")
    healthy = MagicMock()
    event = ProgressEvent("job-1", "persist")

    CompositeProgressReporter(broken, healthy).report(event)

    healthy.report.assert_called_once_with(event)


def test_io_flag_follows_reporters(tmp_path):
    jobs = JobsDB(db_path=tmp_path / "test.db")
    assert JobProgressReporter(jobs).performs_io
    assert not LoggingProgressReporter().performs_io
    assert not CompositeProgressReporter(LoggingProgressReporter()).performs_io
    assert CompositeProgressReporter(
        LoggingProgressReporter(), JobProgressReporter(jobs)
    ).performs_io
    jobs.close()
