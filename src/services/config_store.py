"""Config store: persisted, validated, audited configuration documents.

Reads degrade to built-in defaults when PostgreSQL is unreachable, except for
pricing-critical documents (resourceRates), which fail loudly instead.

A write is two sequential steps with separate failure modes:

1. upsert the document; a failure here raises ConfigWriteError
2. append one audit record; a failure here is logged and swallowed
"""

from typing import Any, cast

from psycopg2 import Error as PsycopgError
from psycopg2 import InterfaceError, OperationalError

from src.domain.config import (
    CONFIG_ADDITIONAL_PARAMS,
    CONFIG_DATABASE,
    CONFIG_QUOTATION,
    CONFIG_RESOURCE_RATES,
    CONFIG_SCHEMAS,
    CRITICAL_CONFIGS,
    AdditionalParams,
    AuditInfo,
    ConfigAuditRecord,
    ConfigChangeSummary,
    ConfigDocument,
    ConfigEntry,
    QuotationConfig,
    ResourceRates,
    default_document,
    parse_config,
    public_value,
)
from src.domain.errors import (
    AuditWriteError,
    ConfigParseError,
    ConfigUnavailable,
    ConfigValidationError,
    ConfigWriteError,
)
from src.domain.quotation import PricingConfig
from src.logger.logger import get_logger
from src.logger.types import Category, param
from src.repository.config_audit_repository import ConfigAuditRepository
from src.repository.config_repository import ConfigRepository
from src.services.connectivity import ConnectivityProbe


class ConfigStore:
    """Named configuration documents backed by PostgreSQL."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        audit_repository: ConfigAuditRepository,
        probe: ConnectivityProbe,
    ) -> None:
        """
        Initialize ConfigStore.

        Args:
            config_repository: Config table access
            audit_repository: Audit log access
            probe: Connectivity probe owned by this store
        """
        self.configs = config_repository
        self.audit = audit_repository
        self.probe = probe
        self.logger = get_logger().with_category(Category.CONFIG)

    def get_config(self, name: str) -> ConfigEntry:
        """
        Get one configuration document.

        Args:
            name: Configuration name

        Returns:
            ConfigEntry whose to_dict() is the value merged with updatedAt

        Raises:
            ConfigUnavailable: a critical config cannot be read
            ConfigValidationError: unknown configuration name
        """
        _, entry = self._load(name)
        return entry

    def get_all_configs(self) -> dict[str, ConfigEntry]:
        """
        Get every known configuration, stored values over defaults.

        Returns:
            Mapping of name to ConfigEntry; a critical config that cannot
            be served is left out rather than defaulted
        """
        stored: dict[str, ConfigEntry] = {}
        reachable = self.probe.is_available()
        if reachable:
            try:
                stored = {entry.name: entry for entry in self.configs.get_all()}
                self.probe.mark_available()
            except PsycopgError as e:
                self._note_failure(e)
                self.logger.warn(
                    "Failed to list configs, serving defaults", param("error", str(e))
                )
                reachable = False

        result: dict[str, ConfigEntry] = {}
        for name in sorted(CONFIG_SCHEMAS):
            try:
                if not reachable:
                    _, result[name] = self._fallback(name, "store unreachable")
                elif name in stored:
                    _, result[name] = self._parse_stored(stored[name])
                else:
                    _, result[name] = self._default_entry(name)
            except ConfigUnavailable as e:
                self.logger.error("Critical config left out of listing", e, param("name", name))
        return result

    def update_config(
        self,
        name: str,
        value: dict[str, Any],
        audit_info: AuditInfo | None = None,
    ) -> ConfigEntry:
        """
        Validate and store a configuration document, then audit the change.

        Non-critical documents are merged over the stored one, so callers may
        send only the fields they change. resourceRates must be complete.

        Args:
            name: Configuration name
            value: New document (camelCase keys)
            audit_info: Who is making the change

        Returns:
            The stored entry

        Raises:
            ConfigValidationError: document rejected by its schema
            ConfigWriteError: the store rejected or did not receive the write
        """
        audit_info = audit_info or AuditInfo()
        if name not in CONFIG_SCHEMAS:
            raise ConfigValidationError(name, ["unknown configuration name"])
        if not isinstance(value, dict):
            raise ConfigValidationError(name, ["value must be an object"])

        incoming = {k: v for k, v in value.items() if k != "updatedAt"}
        if name == CONFIG_DATABASE and not incoming.get("password"):
            # Empty password on the form means "keep the current one"
            incoming.pop("password", None)
        if name not in CRITICAL_CONFIGS:
            incoming = {**self._current_value(name), **incoming}

        try:
            document = parse_config(name, incoming)
        except ConfigParseError as e:
            raise ConfigValidationError(name, [e.reason]) from e

        # Step 1: primary write
        try:
            previous, current = self.configs.upsert(name, document.to_dict())
        except PsycopgError as e:
            self._note_failure(e)
            raise ConfigWriteError(f"Failed to store configuration '{name}': {e}") from e
        self.probe.mark_available()

        self.logger.info(
            "Config updated",
            param("name", name),
            param("changed_by", audit_info.user_id),
            param("created", previous is None),
        )

        # Step 2: best-effort audit
        self._append_audit(ConfigAuditRecord.for_mutation(previous, current, audit_info))

        return ConfigEntry(
            id=current.id,
            name=name,
            value=public_value(document),
            updated_at=current.updated_at,
        )

    def resolve_pricing_config(self) -> PricingConfig:
        """
        Resolve the three documents the calculator needs.

        Raises:
            ConfigUnavailable: resourceRates cannot be read
        """
        quotation, _ = self._load(CONFIG_QUOTATION)
        resource_rates, _ = self._load(CONFIG_RESOURCE_RATES)
        additional_params, _ = self._load(CONFIG_ADDITIONAL_PARAMS)
        return PricingConfig(
            quotation=cast(QuotationConfig, quotation),
            resource_rates=cast(ResourceRates, resource_rates),
            additional_params=cast(AdditionalParams, additional_params),
        )

    def get_config_audit_history(
        self, name: str | None = None, limit: int = 50
    ) -> list[ConfigAuditRecord]:
        """Audit records, newest first. Read errors propagate."""
        return self.audit.query(config_name=name, limit=limit)

    def get_config_changes_summary(self, days: int = 30) -> list[ConfigChangeSummary]:
        """Change counts per (config, action, author) over the last days."""
        return self.audit.summarize(days=days)

    def _append_audit(self, record: ConfigAuditRecord) -> None:
        try:
            self.audit.append(record)
        except AuditWriteError as e:
            self.logger.error(
                "Audit write failed, config change kept",
                e,
                param("name", record.config_name),
                param("action", record.action.value),
                param("changed_by", record.changed_by),
            )

    def _note_failure(self, error: PsycopgError) -> None:
        """Mark the store down on connection-level errors only."""
        if isinstance(error, (OperationalError, InterfaceError)):
            self.probe.mark_unavailable()

    def _current_value(self, name: str) -> dict[str, Any]:
        """Stored document to merge a partial update over; {} if none or unreadable."""
        try:
            entry = self.configs.get(name)
        except PsycopgError as e:
            self.logger.warn(
                "Could not read current config before update",
                param("name", name),
                param("error", str(e)),
            )
            return {}
        if entry is None or not isinstance(entry.value, dict):
            return {}
        return entry.value

    def _load(self, name: str) -> tuple[ConfigDocument, ConfigEntry]:
        if name not in CONFIG_SCHEMAS:
            raise ConfigValidationError(name, ["unknown configuration name"])

        if not self.probe.is_available():
            return self._fallback(name, "store unreachable")

        try:
            stored = self.configs.get(name)
        except PsycopgError as e:
            self._note_failure(e)
            self.logger.warn("Config read failed", param("name", name), param("error", str(e)))
            return self._fallback(name, f"read failed ({e})")
        self.probe.mark_available()

        if stored is None:
            return self._default_entry(name)
        return self._parse_stored(stored)

    def _parse_stored(self, stored: ConfigEntry) -> tuple[ConfigDocument, ConfigEntry]:
        name = stored.name
        try:
            document = parse_config(name, stored.value)
        except ConfigParseError as e:
            if name in CRITICAL_CONFIGS:
                raise
            self.logger.warn(
                "Stored config unparseable, using defaults",
                param("name", name),
                param("error", str(e)),
            )
            return self._default_entry(name)
        except ConfigValidationError as e:
            if name in CRITICAL_CONFIGS:
                raise ConfigUnavailable(name, f"stored document is incomplete: {e}") from e
            self.logger.warn(
                "Stored config invalid, using defaults",
                param("name", name),
                param("error", str(e)),
            )
            return self._default_entry(name)

        return document, ConfigEntry(
            id=stored.id,
            name=name,
            value=public_value(document),
            updated_at=stored.updated_at,
        )

    def _fallback(self, name: str, reason: str) -> tuple[ConfigDocument, ConfigEntry]:
        if name in CRITICAL_CONFIGS:
            raise ConfigUnavailable(name, reason)
        return self._default_entry(name)

    @staticmethod
    def _default_entry(name: str) -> tuple[ConfigDocument, ConfigEntry]:
        document = default_document(name)
        return document, ConfigEntry(name=name, value=public_value(document), is_default=True)
