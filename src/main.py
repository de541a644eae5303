"""
Quotation pricing service bootstrap.

Wires settings, logging, the PostgreSQL pool, repositories and services.
Transport (HTTP routes) lives in the CRM backend, which calls build_services().
"""

import asyncio
from dataclasses import dataclass

from src.config.settings import Settings
from src.database.postgres import PostgresClient
from src.database.schema import ensure_schema
from src.logger.logger import get_logger, init_logger
from src.logger.postgres_writer import PostgresWriter
from src.logger.types import Category, category, param
from src.repository.config_audit_repository import ConfigAuditRepository
from src.repository.config_repository import ConfigRepository
from src.repository.equipment_repository import EquipmentRepository
from src.repository.quotation_repository import QuotationRepository
from src.services.config_store import ConfigStore
from src.services.connectivity import ConnectivityProbe
from src.services.quotation_service import QuotationService


@dataclass
class Services:
    postgres: PostgresClient
    log_writer: PostgresWriter
    config_store: ConfigStore
    quotation_service: QuotationService


def build_config_store(settings: Settings, postgres: PostgresClient) -> ConfigStore:
    config_repository = ConfigRepository(postgres)
    probe = ConnectivityProbe(
        ping=config_repository.ping,
        ttl_seconds=settings.store.probe_ttl_seconds,
        timeout_ms=settings.store.probe_timeout_ms,
    )
    return ConfigStore(config_repository, ConfigAuditRepository(postgres), probe)


async def build_services(settings: Settings | None = None) -> Services:
    """Connect everything and return ready-to-use services."""
    settings = settings or Settings()

    # Console logging until the logs table is known to exist
    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        level=settings.log.level,
    )

    postgres = PostgresClient(settings.postgres)
    await postgres.connect()
    ensure_schema(postgres)

    log_writer = PostgresWriter(
        dsn=settings.postgres.dsn,
        batch_size=settings.log.batch_size,
        flush_interval=settings.log.flush_interval,
    )
    await log_writer.connect()
    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        writer=log_writer,
        level=settings.log.level,
    )
    logger = get_logger()
    logger.info(
        "Starting quotation pricing service",
        param("environment", settings.environment),
        param("version", settings.service_version),
    )
    logger.info("Connected to PostgreSQL", category(Category.DATABASE))

    config_store = build_config_store(settings, postgres)
    quotation_service = QuotationService(
        config_store,
        QuotationRepository(postgres),
        EquipmentRepository(postgres),
    )
    return Services(
        postgres=postgres,
        log_writer=log_writer,
        config_store=config_store,
        quotation_service=quotation_service,
    )


async def shutdown(services: Services) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info("Shutting down quotation pricing service...")
    await services.postgres.close()
    await services.log_writer.close()


async def main() -> None:
    """Bootstrap once and report the configuration the service would price with."""
    services = await build_services()
    logger = get_logger()
    try:
        configs = services.config_store.get_all_configs()
        logger.info(
            "Configuration loaded",
            category(Category.CONFIG),
            param("names", sorted(configs)),
            param("defaults", sorted(name for name, e in configs.items() if e.is_default)),
        )
    finally:
        await shutdown(services)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
