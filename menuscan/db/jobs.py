"""Job status store: status, results payload and latest progress event."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from .schema import ensure_schema

JOB_STATUSES = ("draft", "processing", "complete", "failed")


class JobsDB:
    """Manages the jobs table."""

    def __init__(self, db_path: str | Path = "~/.config/menuscan/menuscan.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def create_job(self, job_id: str) -> None:
        """Create a job in ``draft`` state; existing jobs are left untouched."""
        with self._lock:
            conn = self._get_conn()
            conn.execute("INSERT OR IGNORE INTO jobs (id) VALUES (?)", (job_id,))
            conn.commit()

    def set_status(self, job_id: str, status: str, results: dict | None = None) -> None:
        """Set the job status and replace its results payload.

        The job is created if it does not exist yet.
        """
        if status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status: {status!r}")
        results_json = json.dumps(results) if results is not None else None
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT INTO jobs (id, status, results_json)
                   VALUES (?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       status = excluded.status,
                       results_json = excluded.results_json,
                       updated_at = datetime('now')""",
                (job_id, status, results_json),
            )
            conn.commit()

    def set_progress(self, job_id: str, progress: dict) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """UPDATE jobs
                   SET progress_json = ?, updated_at = datetime('now')
                   WHERE id = ?""",
                (json.dumps(progress), job_id),
            )
            conn.commit()

    def get_job(self, job_id: str) -> dict | None:
        """Return the job with ``results`` and ``progress`` decoded, or None."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if row is None:
            return None
        job = dict(row)
        job["results"] = json.loads(job.pop("results_json") or "null")
        job["progress"] = json.loads(job.pop("progress_json") or "null")
        return job

    def get_status(self, job_id: str) -> str | None:
        job = self.get_job(job_id)
        return job["status"] if job else None
