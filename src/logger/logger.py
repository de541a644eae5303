"""Structured logger used by every repository and service."""

import asyncio
import inspect
import os
import sys
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from src.logger.postgres_writer import PostgresWriter
from src.logger.types import Category, Field, Level, LogEntry

_LEVEL_ORDER = [Level.TRACE, Level.DEBUG, Level.INFO, Level.WARN, Level.ERROR, Level.FATAL]


class Logger:
    """Logger producing LogEntry records for a PostgresWriter."""

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: PostgresWriter | None = None,
        min_level: Level = Level.DEBUG,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Service name stamped on every entry
            environment: dev, stage or prod
            writer: PostgresWriter sink; entries go to stdout when absent
            min_level: Entries below this level are dropped
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.min_level = min_level
        self.instance_id = self._get_instance_id()

        self._fields: dict[str, Any] = {}
        self._category: Category | None = None
        self._request_id: str | None = None

    def trace(self, msg: str, *fields: Field) -> None:
        self._log(Level.TRACE, msg, None, *fields)

    def debug(self, msg: str, *fields: Field) -> None:
        self._log(Level.DEBUG, msg, None, *fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._log(Level.INFO, msg, None, *fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._log(Level.WARN, msg, None, *fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        self._log(Level.ERROR, msg, err, *fields)

    def fatal(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log fatal level message and exit."""
        self._log(Level.FATAL, msg, err, *fields)
        raise SystemExit(1)

    def _log(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        *fields: Field,
    ) -> None:
        if _LEVEL_ORDER.index(level) < _LEVEL_ORDER.index(self.min_level):
            return

        # Two frames up: public level method, then its caller
        frame = inspect.currentframe()
        caller_frame = frame.f_back.f_back if frame and frame.f_back else None

        function_name = None
        file_path = None
        line_number = None

        if caller_frame:
            function_name = caller_frame.f_code.co_name
            file_path = self._clean_file_path(caller_frame.f_code.co_filename)
            line_number = caller_frame.f_lineno

        context: dict[str, Any] = dict(self._fields)
        category = self._category

        for field in fields:
            if field.key == "_category":
                if isinstance(field.value, Category):
                    category = field.value
                continue
            context[field.key] = field.value

        duration_ms = context.pop("duration_ms", None)
        if duration_ms is not None:
            duration_ms = int(duration_ms)

        entry = LogEntry(
            timestamp=datetime.utcnow(),
            service_name=self.service_name,
            instance_id=self.instance_id,
            environment=self.environment,
            level=level,
            category=category,
            request_id=self._request_id,
            function_name=function_name,
            file_path=file_path,
            line_number=line_number,
            message=msg,
            context=context if context else None,
            duration_ms=duration_ms,
        )

        if err:
            entry.error_message = str(err)
            if level in (Level.ERROR, Level.FATAL):
                entry.stack_trace = "".join(
                    traceback.format_exception(type(err), err, err.__traceback__)
                )

        if self.writer:
            try:
                try:
                    loop = asyncio.get_running_loop()
                    loop.create_task(self.writer.write(entry))
                except RuntimeError:
                    # Called from sync code with no loop: buffer directly
                    self.writer.write_nowait(entry)
            except Exception as write_err:
                print(f"[LOGGER ERROR] Failed to write log: {write_err}", file=sys.stderr)
        else:
            cat = entry.category.value if entry.category else "-"
            suffix = f" {entry.context}" if entry.context else ""
            print(f"[{entry.level.value}] {cat}: {entry.message}{suffix}")

    def with_category(self, category: Category) -> "Logger":
        """Return a copy of the logger bound to a category."""
        new_logger = self._copy()
        new_logger._category = category
        return new_logger

    def with_request_id(self, request_id: str) -> "Logger":
        new_logger = self._copy()
        new_logger._request_id = request_id
        return new_logger

    def with_fields(self, *fields: Field) -> "Logger":
        """Return a copy of the logger carrying extra context fields."""
        new_logger = self._copy()
        for field in fields:
            new_logger._fields[field.key] = field.value
        return new_logger

    def _copy(self) -> "Logger":
        new_logger = Logger(self.service_name, self.environment, self.writer, self.min_level)
        new_logger.instance_id = self.instance_id
        new_logger._fields = dict(self._fields)
        new_logger._category = self._category
        new_logger._request_id = self._request_id
        return new_logger

    @staticmethod
    def _get_instance_id() -> str:
        if hostname := os.getenv("HOSTNAME"):
            return hostname
        if container_id := os.getenv("CONTAINER_ID"):
            return container_id
        return str(uuid.uuid4())

    @staticmethod
    def _clean_file_path(file_path: str) -> str:
        """Strip the absolute prefix up to the src package."""
        path = Path(file_path)
        parts = path.parts
        if "src" in parts:
            idx = parts.index("src")
            return str(Path(*parts[idx:]))
        return path.name


_global_logger: Logger | None = None


def get_logger() -> Logger:
    """Return the process-wide logger."""
    if _global_logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: PostgresWriter | None = None,
    level: str = "debug",
) -> Logger:
    """
    Initialize the process-wide logger.

    Args:
        service_name: Service name
        environment: dev, stage or prod
        writer: PostgresWriter for persisting entries
        level: Minimum level name (trace, debug, info, warn, error)

    Returns:
        Logger instance
    """
    global _global_logger
    _global_logger = Logger(service_name, environment, writer, Level(level.lower()))
    return _global_logger
