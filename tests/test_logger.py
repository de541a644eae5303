"""
test_logger.py: structured logger and batched PostgreSQL writer.
"""

from datetime import datetime
from unittest.mock import MagicMock

import psycopg2
import pytest

import src.logger.logger as logger_module
from src.logger import Category, Level, LogEntry, Logger, PostgresWriter, get_logger
from src.logger.types import category, duration_ms, param


def entry(message: str = "hello") -> LogEntry:
    return LogEntry(
        timestamp=datetime(2026, 1, 1),
        service_name="quotation-pricing-test",
        instance_id="test",
        environment="test",
        level=Level.INFO,
        message=message,
        category=Category.CONFIG,
        context={"name": "resourceRates"},
    )


class TestLogger:

    def test_console_output(self, capsys):
        log = Logger("svc", "test").with_category(Category.PRICING)
        log.info("Quotation priced", param("total_amount", "100.00"))
        out = capsys.readouterr().out
        assert "[info] pricing: Quotation priced" in out
        assert "total_amount" in out

    def test_min_level_filters(self, capsys):
        log = Logger("svc", "test", min_level=Level.WARN)
        log.info("dropped")
        log.warn("kept")
        out = capsys.readouterr().out
        assert "dropped" not in out
        assert "kept" in out

    def test_with_category_returns_copy(self, capsys):
        base = Logger("svc", "test")
        scoped = base.with_category(Category.AUDIT)
        base.info("base entry")
        scoped.info("scoped entry")
        out = capsys.readouterr().out
        assert "[info] -: base entry" in out
        assert "[info] audit: scoped entry" in out

    def test_category_field_overrides_once(self, capsys):
        log = Logger("svc", "test").with_category(Category.CONFIG)
        log.info("db entry", category(Category.DATABASE))
        assert "[info] database: db entry" in capsys.readouterr().out

    def test_entries_reach_writer(self):
        writer = MagicMock(spec=PostgresWriter)
        log = Logger("svc", "test", writer=writer).with_fields(param("request", "r-1"))
        err = ValueError("bad")
        log.error("failed", err, duration_ms(12))

        written = writer.write_nowait.call_args.args[0]
        assert written.level == Level.ERROR
        assert written.error_message == "bad"
        assert written.duration_ms == 12
        assert written.context == {"request": "r-1"}
        assert written.function_name == "test_entries_reach_writer"

    def test_get_logger_requires_init(self, monkeypatch):
        monkeypatch.setattr(logger_module, "_global_logger", None)
        with pytest.raises(RuntimeError):
            get_logger()


class TestPostgresWriter:

    def test_flushes_at_batch_size(self, monkeypatch):
        executed = []
        monkeypatch.setattr(
            "psycopg2.extras.execute_values",
            lambda cur, query, values, page_size: executed.append(values),
        )
        writer = PostgresWriter("dbname=test", batch_size=2)
        writer._conn = MagicMock()
        writer._conn.closed = 0

        writer.write_nowait(entry("one"))
        assert writer.buffer and not executed
        writer.write_nowait(entry("two"))

        assert writer.buffer == []
        assert len(executed[0]) == 2
        assert executed[0][0][4] == "info"
        assert executed[0][0][13] == '{"name": "resourceRates"}'
        writer._conn.commit.assert_called_once()

    def test_failed_flush_falls_back_to_stderr(self, monkeypatch, capsys):
        def boom(*args, **kwargs):
            raise RuntimeError("logs table missing")

        monkeypatch.setattr("psycopg2.extras.execute_values", boom)
        writer = PostgresWriter("dbname=test", batch_size=1)
        writer._conn = MagicMock()
        writer._conn.closed = 0

        writer.write_nowait(entry("lost?"))

        err = capsys.readouterr().err
        assert "logs table missing" in err
        assert '"message": "lost?"' in err
        assert writer.buffer == []
        writer._conn.rollback.assert_called_once()

    def test_closed_writer_drops_entries(self):
        writer = PostgresWriter("dbname=test")
        writer._closed = True
        writer.write_nowait(entry())
        assert writer.buffer == []

    def test_dropped_connection_reopened(self, monkeypatch):
        fresh = MagicMock()
        fresh.closed = 0
        monkeypatch.setattr("psycopg2.connect", lambda dsn: fresh)
        monkeypatch.setattr("psycopg2.extras.execute_values", lambda *args, **kwargs: None)
        writer = PostgresWriter("dbname=test", batch_size=1)
        writer._conn = MagicMock()
        writer._conn.closed = 1

        writer.write_nowait(entry())

        assert writer._conn is fresh
        fresh.commit.assert_called_once()

    def test_unreachable_database_falls_back_to_stderr(self, monkeypatch, capsys):
        def refuse(dsn):
            raise psycopg2.OperationalError("connection refused")

        monkeypatch.setattr("psycopg2.connect", refuse)
        writer = PostgresWriter("dbname=test", batch_size=1)

        writer.write_nowait(entry("kept on stderr"))

        err = capsys.readouterr().err
        assert "connection refused" in err
        assert '"message": "kept on stderr"' in err
        assert writer.buffer == []
