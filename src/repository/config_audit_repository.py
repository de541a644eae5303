"""Config audit log repository for PostgreSQL."""

from typing import Any

from psycopg2 import Error as PsycopgError
from psycopg2.extras import Json, RealDictCursor

from src.database.postgres import PostgresClient
from src.domain.config import AuditAction, ConfigAuditRecord, ConfigChangeSummary
from src.domain.errors import AuditWriteError
from src.logger.logger import get_logger
from src.logger.types import Category, param


class ConfigAuditRepository:
    """Append-only store of config mutations."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize ConfigAuditRepository.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.AUDIT)

    def append(self, record: ConfigAuditRecord) -> int:
        """
        Append one audit record.

        Args:
            record: Record built from the pre- and post-write snapshots

        Returns:
            ID of inserted record

        Raises:
            AuditWriteError: the insert failed
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO config_audit_log (
                        config_id, config_name, action, old_value, new_value,
                        changed_by, changed_by_email, change_reason,
                        ip_address, user_agent, created_at
                    ) VALUES (
                        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW()
                    )
                    RETURNING id
                    """,
                    (
                        record.config_id,
                        record.config_name,
                        record.action.value,
                        Json(record.old_value) if record.old_value is not None else None,
                        Json(record.new_value),
                        record.changed_by,
                        record.changed_by_email,
                        record.change_reason,
                        record.ip_address,
                        record.user_agent,
                    ),
                )
                record_id = cur.fetchone()[0]
            conn.commit()

            self.logger.debug(
                f"Audit record added: {record.config_name}",
                param("record_id", record_id),
                param("action", record.action.value),
                param("changed_by", record.changed_by),
            )
            return record_id

        except PsycopgError as e:
            conn.rollback()
            raise AuditWriteError(
                f"Failed to append audit record for {record.config_name}: {e}"
            ) from e
        finally:
            self.postgres.put_connection(conn)

    def query(self, config_name: str | None = None, limit: int = 50) -> list[ConfigAuditRecord]:
        """
        Get audit records, most recent first.

        Args:
            config_name: Optional config name filter
            limit: Maximum records to return

        Returns:
            List of ConfigAuditRecord
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                if config_name:
                    cur.execute(
                        """
                        SELECT id, config_id, config_name, action, old_value, new_value,
                               changed_by, changed_by_email, change_reason,
                               ip_address, user_agent, created_at
                        FROM config_audit_log
                        WHERE config_name = %s
                        ORDER BY created_at DESC, id DESC
                        LIMIT %s
                        """,
                        (config_name, limit),
                    )
                else:
                    cur.execute(
                        """
                        SELECT id, config_id, config_name, action, old_value, new_value,
                               changed_by, changed_by_email, change_reason,
                               ip_address, user_agent, created_at
                        FROM config_audit_log
                        ORDER BY created_at DESC, id DESC
                        LIMIT %s
                        """,
                        (limit,),
                    )
                rows = cur.fetchall()
            conn.commit()

            return [self._row_to_record(row) for row in rows]
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

    def summarize(self, days: int = 30) -> list[ConfigChangeSummary]:
        """
        Count changes per (config, action, author) over the trailing window.

        Args:
            days: Window length in days

        Returns:
            List of ConfigChangeSummary, busiest groups first
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT config_name, action, changed_by,
                           COUNT(*) AS change_count,
                           MAX(created_at) AS last_changed_at
                    FROM config_audit_log
                    WHERE created_at >= NOW() - make_interval(days => %s)
                    GROUP BY config_name, action, changed_by
                    ORDER BY change_count DESC, last_changed_at DESC
                    """,
                    (days,),
                )
                rows = cur.fetchall()
            conn.commit()

            return [
                ConfigChangeSummary(
                    config_name=row["config_name"],
                    action=AuditAction(row["action"]),
                    changed_by=row["changed_by"],
                    change_count=int(row["change_count"]),
                    last_changed_at=row["last_changed_at"],
                )
                for row in rows
            ]
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> ConfigAuditRecord:
        return ConfigAuditRecord(
            id=row["id"],
            config_id=row["config_id"],
            config_name=row["config_name"],
            action=AuditAction(row["action"]),
            old_value=row["old_value"],
            new_value=row["new_value"],
            changed_by=row["changed_by"],
            changed_by_email=row["changed_by_email"],
            change_reason=row["change_reason"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            created_at=row["created_at"],
        )
