"""Batched PostgreSQL sink for log entries."""

import asyncio
import contextlib
import json
import sys
import threading
from collections.abc import Sequence
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection

from src.logger.types import LogEntry

INSERT_LOGS_SQL = """
    INSERT INTO logs (
        timestamp, service_name, instance_id, environment,
        level, category, request_id,
        function_name, file_path, line_number,
        message, error_message, stack_trace, context,
        duration_ms, ingestion_time
    ) VALUES %s
"""


class PostgresWriter:
    """Buffers log entries and inserts them into the logs table in batches."""

    def __init__(
        self,
        dsn: str,
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        """
        Initialize PostgresWriter.

        Args:
            dsn: PostgreSQL connection string
            batch_size: Buffer size that triggers an immediate flush
            flush_interval: Seconds between background flushes
        """
        self.dsn = dsn
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer: list[LogEntry] = []
        # Entries arrive from both the event loop and request threads
        self._lock = threading.Lock()
        self._conn: Connection | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    async def connect(self) -> None:
        """Open the connection and start the background flush task."""
        try:
            self._open()
            self._flush_task = asyncio.create_task(self._background_flush())
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to connect to PostgreSQL: {e}",
                file=sys.stderr,
            )
            raise

    def _open(self) -> None:
        self._conn = psycopg2.connect(self.dsn)
        self._conn.set_session(autocommit=False)

    def _reconnect_if_closed(self) -> bool:
        """Reopen a connection the server dropped; False if still unreachable."""
        if self._conn is not None and not self._conn.closed:
            return True
        try:
            self._open()
        except psycopg2.Error as e:
            self._conn = None
            print(f"[LOGGER ERROR] Log database unreachable: {e}", file=sys.stderr)
            return False
        return True

    async def write(self, entry: LogEntry) -> None:
        self.write_nowait(entry)

    def write_nowait(self, entry: LogEntry) -> None:
        """Buffer an entry from synchronous code."""
        if self._closed:
            return

        with self._lock:
            self.buffer.append(entry)
            if len(self.buffer) >= self.batch_size:
                self._flush_locked()

    async def write_batch(self, entries: Sequence[LogEntry]) -> None:
        if self._closed:
            return

        with self._lock:
            self.buffer.extend(entries)
            if len(self.buffer) >= self.batch_size:
                self._flush_locked()

    async def flush(self) -> None:
        """Force the buffer into the database."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        """Insert the buffer; caller must hold the lock."""
        if not self.buffer:
            return
        if not self._reconnect_if_closed():
            self._fallback_to_stderr()
            self.buffer.clear()
            return

        try:
            values = [
                (
                    entry.timestamp,
                    entry.service_name,
                    entry.instance_id,
                    entry.environment,
                    entry.level.value,
                    entry.category.value if entry.category else None,
                    entry.request_id,
                    entry.function_name,
                    entry.file_path,
                    entry.line_number,
                    entry.message,
                    entry.error_message,
                    entry.stack_trace,
                    json.dumps(entry.context, default=str)
                    if entry.context is not None
                    else None,
                    entry.duration_ms,
                    entry.ingestion_time,
                )
                for entry in self.buffer
            ]

            with self._conn.cursor() as cursor:
                psycopg2.extras.execute_values(
                    cursor,
                    INSERT_LOGS_SQL,
                    values,
                    page_size=self.batch_size,
                )
                self._conn.commit()

            self.buffer.clear()

        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to insert logs into PostgreSQL: {e}",
                file=sys.stderr,
            )
            if self._conn:
                self._conn.rollback()
            self._fallback_to_stderr()
            self.buffer.clear()

    def _fallback_to_stderr(self) -> None:
        """Dump buffered entries as JSON lines when the database is down."""
        for entry in self.buffer:
            data: dict[str, Any] = {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level.value,
                "category": entry.category.value if entry.category else None,
                "message": entry.message,
                "service_name": entry.service_name,
                "environment": entry.environment,
            }
            if entry.error_message:
                data["error"] = entry.error_message
            if entry.context:
                data["context"] = entry.context

            print(json.dumps(data, default=str), file=sys.stderr)

    async def _background_flush(self) -> None:
        while not self._closed:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(f"[LOGGER ERROR] Background flush failed: {e}", file=sys.stderr)

    async def close(self) -> None:
        """Stop the background task, flush what is left and disconnect."""
        self._closed = True

        if self._flush_task:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

        await self.flush()

        if self._conn:
            self._conn.close()
            self._conn = None
