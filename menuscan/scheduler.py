"""Scheduled background work: queued extraction runs and remote file eviction."""

from __future__ import annotations

import asyncio
import logging

from .db import JobsDB, RequestQueueDB
from .pipeline import ExtractionPipeline
from .progress import (
    CompositeProgressReporter,
    JobProgressReporter,
    LoggingProgressReporter,
)

logger = logging.getLogger(__name__)


class ExtractionWorker:
    """Drains queued extraction requests and sweeps stale remote files.

    Uses APScheduler for cron-based scheduling. One pipeline, and therefore one
    remote file cache, is shared by every run the worker starts.
    """

    def __init__(self, config, pipeline: ExtractionPipeline | None = None) -> None:
        """Initialize the worker with a MenuScanConfig.

        Args:
            config: MenuScanConfig instance.
            pipeline: Pipeline to run requests through; built from ``config``
                when omitted.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError("apscheduler is required: pip install apscheduler")

        self._config = config
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger
        self._running = False
        self._queue = RequestQueueDB(config.database.path)
        self._progress_jobs = JobsDB(config.database.path)
        if pipeline is None:
            pipeline = ExtractionPipeline.from_config(
                config,
                progress=CompositeProgressReporter(
                    LoggingProgressReporter(),
                    JobProgressReporter(self._progress_jobs),
                ),
            )
        self._pipeline = pipeline

    @property
    def pipeline(self) -> ExtractionPipeline:
        return self._pipeline

    def setup_jobs(self) -> None:
        """Register scheduled jobs based on config."""
        trigger = self._parse_cron(self._config.worker.poll_schedule)
        self._scheduler.add_job(
            self._job_process_requests,
            trigger=trigger,
            id="process_requests",
            name="Run queued extraction requests",
            replace_existing=True,
            max_instances=1,
        )
        logger.info("Registered request polling job: %s", self._config.worker.poll_schedule)

        trigger = self._parse_cron(self._config.cache.sweep_schedule)
        self._scheduler.add_job(
            self._job_sweep_remote_files,
            trigger=trigger,
            id="sweep_remote_files",
            name="Delete stale remote files",
            replace_existing=True,
        )
        logger.info("Registered remote file sweep job: %s", self._config.cache.sweep_schedule)

    def start(self) -> None:
        """Start the scheduler. Must be called with an event loop running."""
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("Worker started")

    def stop(self) -> None:
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Worker stopped")
        self._queue.close()
        self._progress_jobs.close()
        self._pipeline.close()

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            # Jobs added before start() have no next_run_time yet.
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(next_run) if next_run else None,
            })
        return jobs

    def _parse_cron(self, expr: str):
        """Parse a cron expression into a CronTrigger."""
        parts = expr.split()
        if len(parts) == 5:
            return self._CronTrigger(
                minute=parts[0],
                hour=parts[1],
                day=parts[2],
                month=parts[3],
                day_of_week=parts[4],
            )
        raise ValueError(f"Invalid cron expression: {expr}")

    async def process_requests(self) -> int:
        """Run every pending request claimed in this poll, concurrently.

        Returns:
            Number of requests processed.
        """
        requests = await asyncio.to_thread(
            self._queue.take_pending, self._config.worker.max_requests_per_poll
        )
        if not requests:
            return 0

        logger.info("Processing %d queued extraction requests", len(requests))
        outcomes = await asyncio.gather(
            *(self._pipeline.run(r["job_id"], r["documents"]) for r in requests),
            return_exceptions=True,
        )
        for request, outcome in zip(requests, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Request %d for job %s raised: %r", request["id"], request["job_id"], outcome
                )
                state = "failed"
            else:
                state = outcome.status
            await asyncio.to_thread(self._queue.mark_finished, request["id"], state)
        return len(requests)

    async def sweep_remote_files(self):
        return await self._pipeline.cache.delete_old_files(
            self._config.cache.max_age_seconds
        )

    async def _job_process_requests(self) -> None:
        try:
            await self.process_requests()
        except Exception:
            logger.exception("Error while processing queued extraction requests")

    async def _job_sweep_remote_files(self) -> None:
        logger.info("Sweeping remote files older than %ss", self._config.cache.max_age_seconds)
        try:
            summary = await self.sweep_remote_files()
            if summary.deleted or summary.failed:
                logger.info(
                    "Remote file sweep: %d deleted, %d failed", summary.deleted, summary.failed
                )
        except Exception:
            logger.exception("Error while sweeping remote files")
