"""PostgreSQL client for the quotation pricing service."""

import os
from typing import Any

from psycopg2.extensions import connection as Connection
from psycopg2.pool import ThreadedConnectionPool


class PostgresConfig:
    """PostgreSQL connection configuration."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_conn: int = 2,
        max_conn: int = 10,
        statement_timeout_ms: int | None = None,
        connect_timeout: int | None = None,
    ) -> None:
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "asp_crm")
        self.user = user or os.getenv("DB_USER", "postgres")
        self.password = password or self._read_password()
        self.min_conn = min_conn
        self.max_conn = max_conn
        self.statement_timeout_ms = statement_timeout_ms or int(
            os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000")
        )
        self.connect_timeout = connect_timeout or int(os.getenv("DB_CONNECT_TIMEOUT", "5"))

    @staticmethod
    def _read_password() -> str:
        """Read password from Docker secret or env."""
        secret_file = "/run/secrets/db_password"
        if os.path.exists(secret_file):
            with open(secret_file) as f:
                return f.read().strip()
        return os.getenv("DB_PASSWORD", "postgres")

    @property
    def dsn(self) -> str:
        """Get PostgreSQL DSN."""
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password} "
            f"connect_timeout={self.connect_timeout} "
            f"options='-c statement_timeout={self.statement_timeout_ms}'"
        )


class PostgresClient:
    """PostgreSQL client with connection pooling."""

    def __init__(self, config: PostgresConfig | Any) -> None:
        """
        Initialize PostgreSQL client.

        Args:
            config: PostgresConfig or config dict
        """
        if isinstance(config, dict):
            self.config = PostgresConfig(**config)
        elif config is None:
            self.config = PostgresConfig()
        else:
            self.config = config

        self.pool: ThreadedConnectionPool | None = None

    async def connect(self) -> None:
        """Connect to database and create connection pool."""
        try:
            self.pool = ThreadedConnectionPool(
                minconn=self.config.min_conn,
                maxconn=self.config.max_conn,
                dsn=self.config.dsn,
            )
        except Exception as e:
            raise ConnectionError(f"Failed to create connection pool: {e}") from e

    async def close(self) -> None:
        """Close database connection pool."""
        if self.pool:
            self.pool.closeall()
            self.pool = None

    def get_connection(self) -> Connection:
        """Get connection from pool."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized. Call connect() first.")
        return self.pool.getconn()  # type: ignore[no-any-return]

    def put_connection(self, conn: Connection, close: bool = False) -> None:
        """Return connection to pool; close=True discards a broken one."""
        if self.pool:
            self.pool.putconn(conn, close=close)

    def ping(self, timeout_ms: int) -> None:
        """
        Run a liveness query under its own short statement timeout.

        Args:
            timeout_ms: statement_timeout applied to this probe only

        Raises:
            psycopg2.Error: the store did not answer
        """
        conn = self.get_connection()
        broken = False
        try:
            with conn.cursor() as cur:
                cur.execute("SET LOCAL statement_timeout = %s", (timeout_ms,))
                cur.execute("SELECT 1")
                cur.fetchone()
            conn.rollback()
        except Exception:
            broken = conn.closed != 0
            if not broken:
                conn.rollback()
            raise
        finally:
            self.put_connection(conn, close=broken)
