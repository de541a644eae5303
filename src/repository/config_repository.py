"""Configuration repository for PostgreSQL."""

from typing import Any

from psycopg2.extras import Json, RealDictCursor

from src.database.postgres import PostgresClient
from src.domain.config import ConfigEntry
from src.logger.logger import get_logger
from src.logger.types import Category, param


class ConfigRepository:
    """Repository for named configuration documents in PostgreSQL."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize ConfigRepository.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.DATABASE)

    def ping(self, timeout_ms: int) -> None:
        """Liveness probe; raises psycopg2.Error when the store is down."""
        self.postgres.ping(timeout_ms)

    def get(self, name: str) -> ConfigEntry | None:
        """
        Get configuration entry by name.

        Args:
            name: Configuration name

        Returns:
            ConfigEntry or None if not found
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, name, value, updated_at
                    FROM config
                    WHERE name = %s
                    """,
                    (name,),
                )
                row = cur.fetchone()
            conn.commit()

            return self._row_to_entry(row) if row else None
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

    def get_all(self) -> list[ConfigEntry]:
        """
        Get all configuration entries.

        Returns:
            List of ConfigEntry ordered by name
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, name, value, updated_at
                    FROM config
                    ORDER BY name
                    """
                )
                rows = cur.fetchall()
            conn.commit()

            return [self._row_to_entry(row) for row in rows]
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

    def upsert(
        self, name: str, value: dict[str, Any]
    ) -> tuple[ConfigEntry | None, ConfigEntry]:
        """
        Insert or replace a configuration document.

        The previous row is read under FOR UPDATE in the same transaction, so
        the returned snapshot is exactly what this write replaced.

        Args:
            name: Configuration name
            value: Validated document

        Returns:
            (previous entry or None if created, stored entry)
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, name, value, updated_at
                    FROM config
                    WHERE name = %s
                    FOR UPDATE
                    """,
                    (name,),
                )
                previous_row = cur.fetchone()

                cur.execute(
                    """
                    INSERT INTO config (name, value, updated_at)
                    VALUES (%s, %s, NOW())
                    ON CONFLICT (name) DO UPDATE SET
                        value = EXCLUDED.value,
                        updated_at = NOW()
                    RETURNING id, name, value, updated_at
                    """,
                    (name, Json(value)),
                )
                current_row = cur.fetchone()
            conn.commit()

            self.logger.info(
                "Config upserted",
                param("name", name),
                param("created", previous_row is None),
            )
            previous = self._row_to_entry(previous_row) if previous_row else None
            return previous, self._row_to_entry(current_row)

        except Exception as e:
            conn.rollback()
            self.logger.error(
                "Failed to upsert config",
                e,
                param("name", name),
            )
            raise
        finally:
            self.postgres.put_connection(conn)

    @staticmethod
    def _row_to_entry(row: dict[str, Any]) -> ConfigEntry:
        # value stays raw here; the store parses it against the schema
        return ConfigEntry(
            id=row["id"],
            name=row["name"],
            value=row["value"],
            updated_at=row["updated_at"],
        )
