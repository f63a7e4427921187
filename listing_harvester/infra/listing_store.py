"""SQLite-backed record store keyed by ``(source, external_id)``."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

from ..domain import Identity, Record
from ..errors import StoreError
from .storage import SQLiteManager


class SQLiteListingStore:
    """Existence checks and upserts of extracted listings."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    def exists(self, identity: Identity) -> bool:
        try:
            with self._lock:
                cur = self._conn.execute(
                    "SELECT 1 FROM listings WHERE source = ? AND external_id = ?",
                    (identity.source, identity.external_id),
                )
                return cur.fetchone() is not None
        except sqlite3.Error as exc:
            raise StoreError(f"Lookup failed for {identity}: {exc}") from exc

    def upsert(self, record: Record) -> None:
        payload = json.dumps(dict(record.data), ensure_ascii=False, default=str)
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO listings(source, external_id, url, payload, fetched_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(source, external_id) DO UPDATE SET
                        url = excluded.url,
                        payload = excluded.payload,
                        fetched_at = excluded.fetched_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        record.identity.source,
                        record.identity.external_id,
                        record.url,
                        payload,
                        record.fetched_at.isoformat(timespec="seconds"),
                        now,
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Upsert failed for {record.identity}: {exc}") from exc

    def get(self, identity: Identity) -> Record | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM listings WHERE source = ? AND external_id = ?",
                (identity.source, identity.external_id),
            ).fetchone()
        return self._to_record(row) if row is not None else None

    def recent(self, source: str | None = None, limit: int = 20) -> list[Record]:
        query = "SELECT * FROM listings"
        params: tuple = ()
        if source:
            query += " WHERE source = ?"
            params = (source,)
        query += " ORDER BY updated_at DESC, rowid DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(query, (*params, limit)).fetchall()
        return [self._to_record(row) for row in rows]

    def stale(self, source: str, older_than: datetime, limit: int | None = None) -> list[Record]:
        """Records of ``source`` last written before ``older_than``, oldest first."""

        cutoff = older_than.astimezone(timezone.utc).isoformat(timespec="seconds")
        query = (
            "SELECT * FROM listings WHERE source = ? AND updated_at < ?"
            " ORDER BY updated_at ASC, rowid ASC"
        )
        params: tuple = (source, cutoff)
        if limit is not None:
            query += " LIMIT ?"
            params = (*params, limit)
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._to_record(row) for row in rows]

    def count(self, source: str | None = None) -> int:
        with self._lock:
            if source:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM listings WHERE source = ?", (source,)
                ).fetchone()
            else:
                row = self._conn.execute("SELECT COUNT(*) FROM listings").fetchone()
        return int(row[0])

    def delete_source(self, source: str) -> int:
        with self._lock:
            cur = self._conn.execute("DELETE FROM listings WHERE source = ?", (source,))
            self._conn.commit()
            return cur.rowcount

    @staticmethod
    def _to_record(row: sqlite3.Row) -> Record:
        return Record(
            identity=Identity(source=row["source"], external_id=row["external_id"]),
            url=row["url"],
            data=json.loads(row["payload"]),
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
        )


__all__ = ["SQLiteListingStore"]
