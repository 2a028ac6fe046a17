"""Persisted menu items, their sizes and modifier groups."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .schema import ensure_schema

if TYPE_CHECKING:
    from ..models import NormalizedItem, NormalizedModifierGroup, NormalizedSize


class MenuItemsDB:
    """Manages the menu_items, item_sizes and item_modifiers tables.

    Items, sizes and modifiers are written by separate calls, each committed on
    its own. A failure in one call leaves the earlier calls committed.
    """

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

    def list_existing_names(self, job_id: str) -> list[str]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT name FROM menu_items WHERE job_id = ?", (job_id,)
            ).fetchall()
        return [r["name"] for r in rows]

    def insert_items(
        self,
        job_id: str,
        items: list[NormalizedItem],
        created_by: str = "extraction",
    ) -> dict[str, int]:
        """Insert menu items for a job.

        Items whose ``name_key`` already exists for the job are skipped.

        Returns:
            Mapping of ``name_key`` to the new row ID, for inserted items only.
        """
        inserted: dict[str, int] = {}
        with self._lock:
            conn = self._get_conn()
            try:
                for item in items:
                    cur = conn.execute(
                        """INSERT INTO menu_items
                           (job_id, name, name_key, description, subcategory,
                            menus, created_by)
                           VALUES (?, ?, ?, ?, ?, ?, ?)
                           ON CONFLICT(job_id, name_key) DO NOTHING""",
                        (
                            job_id,
                            item.name,
                            item.name_key,
                            item.description,
                            item.subcategory,
                            item.menus,
                            created_by,
                        ),
                    )
                    if cur.rowcount:
                        inserted[item.name_key] = cur.lastrowid
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        return inserted

    def insert_sizes(self, rows: list[tuple[int, NormalizedSize]]) -> int:
        """Insert ``(item_id, size)`` pairs. Returns the number of rows written."""
        with self._lock:
            conn = self._get_conn()
            try:
                conn.executemany(
                    "INSERT INTO item_sizes (item_id, size, price, active) VALUES (?, ?, ?, ?)",
                    [
                        (item_id, size.size, str(size.price), int(size.active))
                        for item_id, size in rows
                    ],
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        return len(rows)

    def insert_modifier_groups(
        self, rows: list[tuple[int, NormalizedModifierGroup]]
    ) -> int:
        """Insert ``(item_id, group)`` pairs. Returns the number of rows written."""
        with self._lock:
            conn = self._get_conn()
            try:
                conn.executemany(
                    """INSERT INTO item_modifiers (item_id, modifier_group, options_json)
                       VALUES (?, ?, ?)""",
                    [
                        (
                            item_id,
                            group.name,
                            json.dumps([o.to_dict() for o in group.options]),
                        )
                        for item_id, group in rows
                    ],
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        return len(rows)

    def count_items(self, job_id: str) -> int:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT COUNT(*) AS n FROM menu_items WHERE job_id = ?", (job_id,)
            ).fetchone()
        return row["n"]

    def list_items(self, job_id: str) -> list[dict]:
        """Return a job's items with active sizes and modifier groups attached."""
        with self._lock:
            conn = self._get_conn()
            items = [
                dict(r)
                for r in conn.execute(
                    "SELECT * FROM menu_items WHERE job_id = ? ORDER BY id", (job_id,)
                ).fetchall()
            ]
            sizes = conn.execute(
                """SELECT s.item_id, s.size, s.price FROM item_sizes s
                   JOIN menu_items m ON m.id = s.item_id
                   WHERE m.job_id = ? AND s.active = 1
                   ORDER BY s.id""",
                (job_id,),
            ).fetchall()
            modifiers = conn.execute(
                """SELECT g.item_id, g.modifier_group, g.options_json FROM item_modifiers g
                   JOIN menu_items m ON m.id = g.item_id
                   WHERE m.job_id = ?
                   ORDER BY g.id""",
                (job_id,),
            ).fetchall()

        by_id = {item["id"]: item for item in items}
        for item in items:
            item["sizes"] = []
            item["modifier_groups"] = []
        for row in sizes:
            by_id[row["item_id"]]["sizes"].append(
                {"size": row["size"], "price": row["price"]}
            )
        for row in modifiers:
            by_id[row["item_id"]]["modifier_groups"].append(
                {"name": row["modifier_group"], "options": json.loads(row["options_json"])}
            )
        return items
