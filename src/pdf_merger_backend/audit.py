"""
Audit trail for completed operations.

AuditStore is a small SQLite append/query layer. AuditLogger hands records to
a background thread so that writing an audit entry never delays or fails the
request that produced it.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .errors import LoggingError
from .models import AuditRecord, OperationKind

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/audit.db")


def _serialize_datetime(dt: datetime) -> str:
    return dt.isoformat()


class AuditStore:
    """
    Append-only SQLite store of AuditRecord rows.

    Thread-safe: each call opens its own connection and SQLite serializes
    writers (WAL mode).
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._ready = False
        try:
            self._ensure_schema()
        except (sqlite3.Error, OSError) as exc:
            logger.error("Audit store %s unavailable, will retry on next use: %s", db_path, exc)

    def _ensure_schema(self) -> None:
        if self._ready:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        self._ready = True

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS operation_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    operation TEXT NOT NULL,
                    files_count INTEGER NOT NULL,
                    original_size INTEGER NOT NULL,
                    final_size INTEGER NOT NULL,
                    compression_ratio REAL NOT NULL DEFAULT 0,
                    timestamp TEXT NOT NULL,
                    user_ip TEXT,
                    server_ip TEXT,
                    branch TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_operation_logs_timestamp
                ON operation_logs(timestamp DESC)
            """)

    def append(self, record: AuditRecord) -> None:
        try:
            self._insert(record)
        except (sqlite3.Error, OSError) as exc:
            raise LoggingError(f"Could not store audit record: {exc}") from exc

    def _insert(self, record: AuditRecord) -> None:
        self._ensure_schema()
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO operation_logs (
                    operation, files_count, original_size, final_size,
                    compression_ratio, timestamp, user_ip, server_ip, branch
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.operation.value,
                record.files_count,
                record.original_size,
                record.final_size,
                record.compression_ratio,
                _serialize_datetime(record.timestamp),
                record.user_ip,
                record.server_ip,
                record.branch,
            ))

    def recent(self, limit: int = 100) -> List[AuditRecord]:
        """Most recent records first."""
        try:
            self._ensure_schema()
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM operation_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except (sqlite3.Error, OSError) as exc:
            raise LoggingError(f"Could not read audit records: {exc}") from exc
        return [self._row_to_record(row) for row in rows]

    def ping(self) -> bool:
        try:
            self._ensure_schema()
            with self._get_connection() as conn:
                conn.execute("SELECT 1 FROM operation_logs LIMIT 1").fetchall()
        except (sqlite3.Error, OSError) as exc:
            logger.warning("Audit store unavailable: %s", exc)
            return False
        return True

    def _row_to_record(self, row: sqlite3.Row) -> AuditRecord:
        return AuditRecord(
            operation=OperationKind(row["operation"]),
            files_count=row["files_count"],
            original_size=row["original_size"],
            final_size=row["final_size"],
            compression_ratio=row["compression_ratio"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            user_ip=row["user_ip"] or "unknown",
            server_ip=row["server_ip"] or "localhost",
            branch=row["branch"] or "",
        )


class AuditLogger:
    """Fire-and-forget writer in front of an AuditStore."""

    def __init__(self, store: AuditStore, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self.store = store
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit")

    def record(self, entry: AuditRecord) -> Optional[Future]:
        """
        Queue an append and return immediately.

        Returns:
            The queued future, or None if the executor no longer accepts work
        """
        try:
            return self._executor.submit(self._write, entry)
        except RuntimeError as exc:
            logger.error("Failed to queue %s audit record: %s", entry.operation.value, exc)
            return None

    def _write(self, entry: AuditRecord) -> bool:
        try:
            self.store.append(entry)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to log %s operation: %s", entry.operation.value, exc)
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every record queued so far has been handled."""
        self._executor.submit(lambda: None).result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

