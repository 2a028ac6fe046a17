"""Progress reporting for extraction runs."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .db import JobsDB

logger = logging.getLogger(__name__)

STAGES = (
    "accepted",
    "fetch",
    "classify",
    "upload",
    "prompt",
    "parse",
    "normalize",
    "persist",
    "complete",
    "failed",
)


@dataclass
class ProgressEvent:
    job_id: str
    stage: str
    message: str = ""
    completed: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ProgressReporter(ABC):
    """Receives a stage-entry event at each pipeline checkpoint.

    Reporters that set ``performs_io`` are called from a worker thread so a
    blocking write never stalls the event loop.
    """

    performs_io = False

    @abstractmethod
    def report(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressReporter(ProgressReporter):
    def report(self, event: ProgressEvent) -> None:
        if event.total:
            logger.info(
                "[%s] %s %d/%d %s",
                event.job_id, event.stage, event.completed, event.total, event.message,
            )
        else:
            logger.info("[%s] %s %s", event.job_id, event.stage, event.message)


class JobProgressReporter(ProgressReporter):
    """Stores the latest event in the job's ``progress`` column for pollers."""

    performs_io = True

    def __init__(self, jobs: JobsDB) -> None:
        self._jobs = jobs

    def report(self, event: ProgressEvent) -> None:
        self._jobs.set_progress(event.job_id, event.to_dict())


class CompositeProgressReporter(ProgressReporter):
    def __init__(self, *reporters: ProgressReporter) -> None:
        self._reporters = list(reporters)
        self.performs_io = any(r.performs_io for r in self._reporters)

    def report(self, event: ProgressEvent) -> None:
        for reporter in self._reporters:
            safe_report(reporter, event)


def safe_report(reporter: ProgressReporter, event: ProgressEvent) -> None:
    """Deliver ``event``; a failing reporter is logged and never fails the run."""
    try:
        reporter.report(event)
    except Exception:
        logger.exception(
            "Progress reporter %s failed at stage %s",
            type(reporter).__name__, event.stage,
        )
