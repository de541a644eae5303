"""Types and constants for structured logging."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Severity of a log entry."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"  # recoverable
    FATAL = "fatal"  # process exits


class Category(str, Enum):
    """Category groups log entries by subsystem."""

    DATABASE = "database"  # Connection pool, schema, raw SQL
    CONFIG = "config"  # Config store reads/writes, fallbacks
    AUDIT = "audit"  # Config audit trail
    PRICING = "pricing"  # Quotation calculator
    QUOTATION = "quotation"  # Quotation lifecycle
    EQUIPMENT = "equipment"  # Equipment rate lookups


@dataclass
class LogEntry:
    """One row of the logs table."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    ingestion_time: datetime = field(default_factory=datetime.utcnow)
    category: Category | None = None
    request_id: str | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class Field:
    """Key/value pair attached to a log entry."""

    key: str
    value: Any


def category(cat: Category) -> Field:
    """Override the logger category for a single entry."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    return Field(key="duration_ms", value=value)


def error(err: Exception) -> Field:
    return Field(key="error", value=str(err))
