"""Configuration domain models.

Every stored config document belongs to exactly one schema, selected by the
config name. Documents travel as camelCase JSON (the format the CRM frontend
writes) and are parsed into the dataclasses below on both read and write.
"""

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from src.domain.errors import ConfigParseError, ConfigValidationError

CONFIG_QUOTATION = "quotation"
CONFIG_RESOURCE_RATES = "resourceRates"
CONFIG_ADDITIONAL_PARAMS = "additionalParams"
CONFIG_DEFAULT_TEMPLATE = "defaultTemplate"
CONFIG_DATABASE = "database"

# Pricing-critical configs: never served from built-in defaults on failure
CRITICAL_CONFIGS = frozenset({CONFIG_RESOURCE_RATES})

ORDER_TYPES = ("micro", "small", "monthly", "yearly")

_MISSING = object()


def _number(
    data: dict[str, Any],
    key: str,
    errors: list[str],
    default: Any = _MISSING,
    minimum: float = 0,
) -> Any:
    """Read a non-negative number, recording a message instead of raising."""
    raw = data.get(key, _MISSING)
    if raw is _MISSING or raw is None:
        if default is _MISSING:
            errors.append(f"{key} is required")
            return None
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        try:
            raw = float(raw)
        except (TypeError, ValueError):
            errors.append(f"{key} must be a number")
            return None
    if not math.isfinite(raw):
        errors.append(f"{key} must be a finite number")
        return None
    if raw < minimum:
        errors.append(f"{key} must be >= {minimum}")
        return None
    return int(raw) if float(raw).is_integer() else float(raw)


def _factor_table(
    data: dict[str, Any], key: str, errors: list[str], default: dict[str, Any]
) -> dict[str, Any]:
    raw = data.get(key)
    if raw is None:
        return dict(default)
    if not isinstance(raw, dict):
        errors.append(f"{key} must be an object")
        return dict(default)
    table: dict[str, Any] = {}
    for option in raw:
        table[option] = _number(raw, option, errors)
    return table


class ConfigDocument(ABC):
    """Base for per-name config schemas."""

    config_name: ClassVar[str]

    @classmethod
    @abstractmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigDocument":
        """Validate a camelCase document, raising ConfigValidationError."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the stored camelCase form."""


@dataclass
class OrderTypeLimit:
    """Allowed day range for one order type."""

    min_days: int
    max_days: int
    # Days covered by one unit of the equipment rate (1 = daily rate)
    rate_basis_days: int = 1

    def contains(self, days: int) -> bool:
        return self.min_days <= days <= self.max_days


@dataclass
class QuotationConfig(ConfigDocument):
    config_name: ClassVar[str] = CONFIG_QUOTATION

    order_type_limits: dict[str, OrderTypeLimit]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuotationConfig":
        errors: list[str] = []
        defaults = DEFAULT_CONFIGS[CONFIG_QUOTATION]["orderTypeLimits"]
        raw_limits = data.get("orderTypeLimits") or {}
        if not isinstance(raw_limits, dict):
            raise ConfigValidationError(CONFIG_QUOTATION, ["orderTypeLimits must be an object"])

        limits: dict[str, OrderTypeLimit] = {}
        for order_type in ORDER_TYPES:
            raw = raw_limits.get(order_type) or defaults[order_type]
            fallback = defaults[order_type]
            if not isinstance(raw, dict):
                errors.append(f"orderTypeLimits.{order_type} must be an object")
                continue
            min_days = _number(raw, "minDays", errors, fallback["minDays"], minimum=1)
            max_days = _number(raw, "maxDays", errors, fallback["maxDays"], minimum=1)
            basis = _number(raw, "rateBasisDays", errors, fallback["rateBasisDays"], minimum=1)
            if min_days is not None and max_days is not None and min_days > max_days:
                errors.append(f"{order_type}.minDays must not exceed maxDays")
            limits[order_type] = OrderTypeLimit(
                min_days=int(min_days or 0),
                max_days=int(max_days or 0),
                rate_basis_days=int(basis or 1),
            )

        if errors:
            raise ConfigValidationError(CONFIG_QUOTATION, errors)
        return cls(order_type_limits=limits)

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderTypeLimits": {
                name: {
                    "minDays": limit.min_days,
                    "maxDays": limit.max_days,
                    "rateBasisDays": limit.rate_basis_days,
                }
                for name, limit in self.order_type_limits.items()
            }
        }


@dataclass
class ResourceRates(ConfigDocument):
    """Per-month food and accommodation rates for on-site crew."""

    config_name: ClassVar[str] = CONFIG_RESOURCE_RATES

    food_rate_per_month: float
    accommodation_rate_per_month: float
    transport_rate: float = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceRates":
        # No defaults for the monthly rates: a partial document is rejected
        errors: list[str] = []
        food = _number(data, "foodRatePerMonth", errors)
        accommodation = _number(data, "accommodationRatePerMonth", errors)
        transport = _number(data, "transportRate", errors, 0)
        if errors:
            raise ConfigValidationError(CONFIG_RESOURCE_RATES, errors)
        return cls(
            food_rate_per_month=food,
            accommodation_rate_per_month=accommodation,
            transport_rate=transport,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "foodRatePerMonth": self.food_rate_per_month,
            "accommodationRatePerMonth": self.accommodation_rate_per_month,
            "transportRate": self.transport_rate,
        }


@dataclass
class IncidentalOption:
    value: str
    label: str
    amount: float


@dataclass
class AdditionalParams(ConfigDocument):
    """Factor tables and flat amounts used by the calculator.

    Factor tables map an option (e.g. ``heavy``) to a percentage uplift.
    """

    config_name: ClassVar[str] = CONFIG_ADDITIONAL_PARAMS

    rigger_amount: float
    helper_amount: float
    incidental_options: list[IncidentalOption]
    usage_factors: dict[str, float]
    risk_factors: dict[str, float]
    shift_factors: dict[str, float]
    day_night_factors: dict[str, float]
    hourly_labor_rate: float
    gst_rate: float
    working_days_per_month: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdditionalParams":
        errors: list[str] = []
        defaults = DEFAULT_CONFIGS[CONFIG_ADDITIONAL_PARAMS]

        raw_options = data.get("incidentalOptions")
        if raw_options is None:
            raw_options = defaults["incidentalOptions"]
        options: list[IncidentalOption] = []
        if not isinstance(raw_options, list):
            errors.append("incidentalOptions must be a list")
        else:
            for idx, raw in enumerate(raw_options):
                if not isinstance(raw, dict) or not raw.get("value"):
                    errors.append(f"incidentalOptions[{idx}].value is required")
                    continue
                amount = _number(raw, "amount", errors)
                options.append(
                    IncidentalOption(
                        value=str(raw["value"]),
                        label=str(raw.get("label") or raw["value"]),
                        amount=amount or 0,
                    )
                )

        params = cls(
            rigger_amount=_number(data, "riggerAmount", errors, defaults["riggerAmount"]),
            helper_amount=_number(data, "helperAmount", errors, defaults["helperAmount"]),
            incidental_options=options,
            usage_factors=_factor_table(data, "usageFactors", errors, defaults["usageFactors"]),
            risk_factors=_factor_table(data, "riskFactors", errors, defaults["riskFactors"]),
            shift_factors=_factor_table(data, "shiftFactors", errors, defaults["shiftFactors"]),
            day_night_factors=_factor_table(
                data, "dayNightFactors", errors, defaults["dayNightFactors"]
            ),
            hourly_labor_rate=_number(
                data, "hourlyLaborRate", errors, defaults["hourlyLaborRate"]
            ),
            gst_rate=_number(data, "gstRate", errors, defaults["gstRate"]),
            working_days_per_month=_number(
                data, "workingDaysPerMonth", errors, defaults["workingDaysPerMonth"], minimum=1
            ),
        )
        if errors:
            raise ConfigValidationError(CONFIG_ADDITIONAL_PARAMS, errors)
        return params

    def incidental_amount(self, option_value: str) -> float | None:
        for option in self.incidental_options:
            if option.value == option_value:
                return option.amount
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "riggerAmount": self.rigger_amount,
            "helperAmount": self.helper_amount,
            "incidentalOptions": [
                {"value": o.value, "label": o.label, "amount": o.amount}
                for o in self.incidental_options
            ],
            "usageFactors": dict(self.usage_factors),
            "riskFactors": dict(self.risk_factors),
            "shiftFactors": dict(self.shift_factors),
            "dayNightFactors": dict(self.day_night_factors),
            "hourlyLaborRate": self.hourly_labor_rate,
            "gstRate": self.gst_rate,
            "workingDaysPerMonth": self.working_days_per_month,
        }


@dataclass
class DefaultTemplateConfig(ConfigDocument):
    config_name: ClassVar[str] = CONFIG_DEFAULT_TEMPLATE

    default_template_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DefaultTemplateConfig":
        template_id = data.get("defaultTemplateId")
        if template_id is not None and not isinstance(template_id, (str, int)):
            raise ConfigValidationError(
                CONFIG_DEFAULT_TEMPLATE, ["defaultTemplateId must be a string"]
            )
        return cls(default_template_id=str(template_id) if template_id is not None else None)

    def to_dict(self) -> dict[str, Any]:
        return {"defaultTemplateId": self.default_template_id}


@dataclass
class DatabaseConfig(ConfigDocument):
    """Connection settings shown on the admin screen; password is write-only."""

    config_name: ClassVar[str] = CONFIG_DATABASE

    host: str
    port: int
    database: str
    user: str
    ssl: bool = False
    password: str | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DatabaseConfig":
        errors: list[str] = []
        defaults = DEFAULT_CONFIGS[CONFIG_DATABASE]
        port = _number(data, "port", errors, defaults["port"], minimum=1)
        if errors:
            raise ConfigValidationError(CONFIG_DATABASE, errors)
        return cls(
            host=str(data.get("host") or defaults["host"]),
            port=int(port),
            database=str(data.get("database") or defaults["database"]),
            user=str(data.get("user") or defaults["user"]),
            ssl=bool(data.get("ssl", defaults["ssl"])),
            password=data.get("password") or None,
        )

    def to_dict(self, include_secrets: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "ssl": self.ssl,
        }
        if include_secrets and self.password:
            data["password"] = self.password
        return data


DEFAULT_CONFIGS: dict[str, dict[str, Any]] = {
    CONFIG_QUOTATION: {
        "orderTypeLimits": {
            "micro": {"minDays": 1, "maxDays": 10, "rateBasisDays": 1},
            "small": {"minDays": 11, "maxDays": 25, "rateBasisDays": 1},
            "monthly": {"minDays": 26, "maxDays": 365, "rateBasisDays": 30},
            "yearly": {"minDays": 366, "maxDays": 3650, "rateBasisDays": 30},
        }
    },
    # Seed only: returned when the store answers but has no row yet
    CONFIG_RESOURCE_RATES: {
        "foodRatePerMonth": 2500,
        "accommodationRatePerMonth": 4000,
        "transportRate": 0,
    },
    CONFIG_ADDITIONAL_PARAMS: {
        "riggerAmount": 40000,
        "helperAmount": 12000,
        "incidentalOptions": [
            {"value": "incident1", "label": "Incident 1", "amount": 5000},
            {"value": "incident2", "label": "Incident 2", "amount": 10000},
            {"value": "incident3", "label": "Incident 3", "amount": 15000},
        ],
        "usageFactors": {"normal": 0, "medium": 20, "heavy": 50},
        "riskFactors": {"low": 0, "medium": 10, "high": 20},
        "shiftFactors": {"single": 0, "double": 80},
        "dayNightFactors": {"day": 0, "night": 30},
        "hourlyLaborRate": 500,
        "gstRate": 18,
        "workingDaysPerMonth": 26,
    },
    CONFIG_DEFAULT_TEMPLATE: {"defaultTemplateId": None},
    CONFIG_DATABASE: {
        "host": "localhost",
        "port": 5432,
        "database": "asp_crm",
        "user": "postgres",
        "ssl": False,
    },
}

CONFIG_SCHEMAS: dict[str, type[ConfigDocument]] = {
    schema.config_name: schema
    for schema in (
        QuotationConfig,
        ResourceRates,
        AdditionalParams,
        DefaultTemplateConfig,
        DatabaseConfig,
    )
}


def parse_config(name: str, value: Any) -> ConfigDocument:
    """
    Parse a raw config value into the schema registered for its name.

    Args:
        name: Config name
        value: Stored value (dict, or JSON text)

    Returns:
        Schema instance

    Raises:
        ConfigValidationError: unknown name, or the document breaks its schema
        ConfigParseError: value is not a JSON object
    """
    schema = CONFIG_SCHEMAS.get(name)
    if schema is None:
        raise ConfigValidationError(name, ["unknown configuration name"])

    if isinstance(value, (str, bytes, bytearray)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise ConfigParseError(name, f"stored value is not valid JSON ({e})") from e
    if not isinstance(value, dict):
        raise ConfigParseError(name, "stored value is not a JSON object")

    return schema.from_dict(value)


def default_document(name: str) -> ConfigDocument:
    return CONFIG_SCHEMAS[name].from_dict(DEFAULT_CONFIGS[name])


def public_value(document: ConfigDocument) -> dict[str, Any]:
    """Document as returned to callers (secrets stripped)."""
    if isinstance(document, DatabaseConfig):
        return document.to_dict(include_secrets=False)
    return document.to_dict()


@dataclass
class ConfigEntry:
    """Single stored configuration document."""

    name: str
    value: dict[str, Any]
    updated_at: datetime | None = None
    id: int | None = None
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Value merged with updatedAt, the shape callers consume."""
        return {
            **self.value,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


@dataclass
class AuditInfo:
    """Who is making a config change, supplied per mutation."""

    user_id: str = "system"
    user_email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    reason: str | None = None


@dataclass
class ConfigAuditRecord:
    """Immutable before/after entry for one config mutation."""

    config_name: str
    action: AuditAction
    new_value: dict[str, Any]
    old_value: dict[str, Any] | None = None
    config_id: int | None = None
    changed_by: str = "system"
    changed_by_email: str | None = None
    change_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    id: int | None = None  # Set by database

    @classmethod
    def for_mutation(
        cls,
        previous: ConfigEntry | None,
        current: ConfigEntry,
        audit_info: AuditInfo,
    ) -> "ConfigAuditRecord":
        """Build the record for an upsert given the pre-write snapshot."""
        return cls(
            config_id=current.id,
            config_name=current.name,
            action=AuditAction.CREATE if previous is None else AuditAction.UPDATE,
            old_value=_redact(current.name, previous.value) if previous else None,
            new_value=_redact(current.name, current.value),
            changed_by=audit_info.user_id,
            changed_by_email=audit_info.user_email,
            change_reason=audit_info.reason,
            ip_address=audit_info.ip_address,
            user_agent=audit_info.user_agent,
        )


def _redact(name: str, value: dict[str, Any]) -> dict[str, Any]:
    if name == CONFIG_DATABASE and "password" in value:
        return {**value, "password": "***"}
    return value


@dataclass
class ConfigChangeSummary:
    """Aggregated audit counts for one (config, action, author) group."""

    config_name: str
    action: AuditAction
    changed_by: str
    change_count: int
    last_changed_at: datetime
