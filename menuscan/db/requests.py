"""Queue of extraction requests drained by the background worker."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from ..models import DocumentRef
from .schema import ensure_schema


class RequestQueueDB:
    """Manages the extraction_requests table."""

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

    def enqueue(self, job_id: str, documents: list[DocumentRef]) -> int:
        """Queue an extraction run. Returns the request ID."""
        payload = json.dumps(
            [{"url": d.url, "name": d.name, "mime_type": d.mime_type} for d in documents]
        )
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute(
                "INSERT INTO extraction_requests (job_id, documents_json) VALUES (?, ?)",
                (job_id, payload),
            )
            conn.commit()
        return cur.lastrowid

    def take_pending(self, limit: int = 5) -> list[dict]:
        """Claim up to ``limit`` pending requests, oldest first.

        Claimed requests move to ``taken`` so a second worker poll never sees
        them. Each returned dict carries ``documents`` as :class:`DocumentRef`.
        """
        with self._lock:
            conn = self._get_conn()
            rows = conn.execute(
                """SELECT * FROM extraction_requests
                   WHERE state = 'pending'
                   ORDER BY id
                   LIMIT ?""",
                (limit,),
            ).fetchall()
            conn.executemany(
                "UPDATE extraction_requests SET state = 'taken' WHERE id = ?",
                [(r["id"],) for r in rows],
            )
            conn.commit()

        requests = []
        for row in rows:
            request = dict(row)
            request["state"] = "taken"
            request["documents"] = [
                DocumentRef(
                    url=d.get("url", ""),
                    name=d.get("name", ""),
                    mime_type=d.get("mime_type", ""),
                )
                for d in json.loads(request.pop("documents_json"))
            ]
            requests.append(request)
        return requests

    def mark_finished(self, request_id: int, state: str) -> None:
        """Record the outcome of a taken request (``complete`` or ``failed``)."""
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "UPDATE extraction_requests SET state = ? WHERE id = ?",
                (state, request_id),
            )
            conn.commit()

    def count_by_state(self) -> dict[str, int]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT state, COUNT(*) AS n FROM extraction_requests GROUP BY state"
            ).fetchall()
        return {r["state"]: r["n"] for r in rows}
