"""Settings module for the quotation pricing service."""

import os

from src.database.postgres import PostgresConfig


class StoreConfig:
    """Config store connectivity settings."""

    def __init__(self) -> None:
        # How long one connectivity probe result is trusted
        self.probe_ttl_seconds = float(os.getenv("CONFIG_PROBE_TTL_SECONDS", "30"))
        # Kept well below DB_STATEMENT_TIMEOUT_MS so a hung store cannot stall the probe
        self.probe_timeout_ms = int(os.getenv("CONFIG_PROBE_TIMEOUT_MS", "2000"))
        self.audit_history_limit = int(os.getenv("CONFIG_AUDIT_HISTORY_LIMIT", "50"))
        self.audit_summary_days = int(os.getenv("CONFIG_AUDIT_SUMMARY_DAYS", "30"))


class LogConfig:
    """Log writer settings."""

    def __init__(self) -> None:
        self.level = os.getenv("LOG_LEVEL", "debug")
        self.batch_size = int(os.getenv("LOG_BATCH_SIZE", "100"))
        self.flush_interval = float(os.getenv("LOG_FLUSH_INTERVAL", "5.0"))


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "quotation-pricing")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")

        self.postgres = PostgresConfig()
        self.store = StoreConfig()
        self.log = LogConfig()
