"""
Cache store for gitstatus.

Two SQLite files under the database directory each hold one key/value
table keyed by repository path:

    repo_db.sqlite3     full snapshots (see gitstatus.schema for the format)
    summary_db.sqlite3  line-count summaries derived from the snapshots

Every operation opens its own short-lived connection, so the store can be
shared between threads. The files run in WAL mode: one writer at a time
(serialized by a lock), any number of concurrent readers.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from gitstatus.models import RepositorySnapshot, RepositorySummary, canonical_path
from gitstatus.schema import (
    RecordCorruptedError,
    decode_snapshot,
    decode_summary,
    encode_snapshot,
    encode_summary,
)

logger = logging.getLogger(__name__)

SNAPSHOT_DB_NAME = "repo_db.sqlite3"
SUMMARY_DB_NAME = "summary_db.sqlite3"


class CacheStoreError(Exception):
    """The storage engine failed (disk full, permissions, locked database)."""


class KeyValueFile:
    """One SQLite file holding a single key -> blob table.

    Schema:
        CREATE TABLE records (
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL
        );
    """

    PAGE_SIZE = 200

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._write_lock = threading.Lock()
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=30)

    def _init_database(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS records (
                        key TEXT PRIMARY KEY,
                        value BLOB NOT NULL
                    )
                """
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheStoreError(f"Cannot open {self.db_path}: {e}") from e

    def put(self, key: str, value: bytes) -> None:
        self.put_many([(key, value)])

    def put_many(self, items: Iterable[Tuple[str, bytes]]) -> None:
        """Insert or fully replace records in one transaction."""
        rows = list(items)
        with self._write_lock:
            try:
                conn = self._connect()
                try:
                    conn.executemany(
                        "INSERT OR REPLACE INTO records (key, value) VALUES (?, ?)",
                        rows,
                    )
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise CacheStoreError(f"Write to {self.db_path} failed: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM records WHERE key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheStoreError(f"Read from {self.db_path} failed: {e}") from e
        return bytes(row[0]) if row else None

    def _page(self, after: Optional[str]) -> List[Tuple[str, bytes]]:
        try:
            conn = self._connect()
            try:
                if after is None:
                    cursor = conn.execute(
                        "SELECT key, value FROM records ORDER BY key LIMIT ?",
                        (self.PAGE_SIZE,),
                    )
                else:
                    cursor = conn.execute(
                        "SELECT key, value FROM records WHERE key > ? ORDER BY key LIMIT ?",
                        (after, self.PAGE_SIZE),
                    )
                return [(key, bytes(value)) for key, value in cursor.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheStoreError(f"Read from {self.db_path} failed: {e}") from e

    def iter_items(self) -> Iterator[Tuple[str, bytes]]:
        """Yield every record in key order, one page at a time."""
        after = None
        while True:
            rows = self._page(after)
            if not rows:
                return
            yield from rows
            after = rows[-1][0]

    def count(self) -> int:
        try:
            conn = self._connect()
            try:
                return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise CacheStoreError(f"Read from {self.db_path} failed: {e}") from e


class SnapshotView:
    """Restartable, lazy view over every cached snapshot in key order.

    Records that cannot be decoded are skipped and collected in ``errors``
    for the most recent pass.
    """

    def __init__(self, records: KeyValueFile):
        self._records = records
        self.errors: List[RecordCorruptedError] = []

    def __iter__(self) -> Iterator[RepositorySnapshot]:
        self.errors = []
        for key, data in self._records.iter_items():
            try:
                snapshot = decode_snapshot(data)
            except RecordCorruptedError as e:
                error = RecordCorruptedError(str(e), key=key)
                logger.error("Skipping corrupt cache record %s", error)
                self.errors.append(error)
                continue
            yield snapshot


class CacheStore:
    """Path-keyed storage for repository snapshots and their summaries."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheStoreError(f"Cannot create {self.base_dir}: {e}") from e

        self.snapshots = KeyValueFile(self.base_dir / SNAPSHOT_DB_NAME)
        self.summaries = KeyValueFile(self.base_dir / SUMMARY_DB_NAME)

    def put(self, snapshot: RepositorySnapshot) -> None:
        """Store *snapshot*, replacing whatever was cached for its path."""
        self.snapshots.put(snapshot.path, encode_snapshot(snapshot))
        logger.debug("Saved to database successfully: %s", snapshot.path)

    def get(self, path: Union[str, Path]) -> Optional[RepositorySnapshot]:
        """Return the cached snapshot for *path*, or None if there is none.

        Raises:
            RecordCorruptedError: If the record exists but cannot be decoded.
        """
        key = canonical_path(path)
        data = self.snapshots.get(key)
        if data is None:
            return None
        try:
            return decode_snapshot(data)
        except RecordCorruptedError as e:
            raise RecordCorruptedError(str(e), key=key) from None

    def iterate(self) -> SnapshotView:
        return SnapshotView(self.snapshots)

    def rebuild_summaries(self) -> List[RepositorySummary]:
        """Recompute every summary from the current snapshots.

        Summaries at the same path are replaced; corrupt snapshots are
        skipped and logged.
        """
        summaries = [RepositorySummary.from_snapshot(s) for s in self.iterate()]
        self.summaries.put_many((s.path, encode_summary(s)) for s in summaries)
        logger.debug("Rebuilt %d summaries", len(summaries))
        return summaries

    def list_summaries(self) -> List[RepositorySummary]:
        summaries: List[RepositorySummary] = []
        for key, data in self.summaries.iter_items():
            try:
                summaries.append(decode_summary(data))
            except RecordCorruptedError as e:
                logger.error("Skipping corrupt summary record %s: %s", key, e)
        return summaries
