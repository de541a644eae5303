"""Quotation domain models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from src.domain.config import AdditionalParams, QuotationConfig, ResourceRates
from src.domain.errors import ValidationError


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (QuotationStatus.ACCEPTED, QuotationStatus.REJECTED)

    def can_transition_to(self, target: "QuotationStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[QuotationStatus, frozenset[QuotationStatus]] = {
    QuotationStatus.DRAFT: frozenset({QuotationStatus.DRAFT, QuotationStatus.SENT}),
    QuotationStatus.SENT: frozenset(
        {QuotationStatus.DRAFT, QuotationStatus.ACCEPTED, QuotationStatus.REJECTED}
    ),
    QuotationStatus.ACCEPTED: frozenset(),
    QuotationStatus.REJECTED: frozenset(),
}


@dataclass
class BaseRates:
    """Equipment rate per order type, as stored on the equipment catalog."""

    micro: Decimal = Decimal("0")
    small: Decimal = Decimal("0")
    monthly: Decimal = Decimal("0")
    yearly: Decimal = Decimal("0")

    def for_order_type(self, order_type: str) -> Decimal:
        return getattr(self, order_type)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaseRates":
        return cls(
            **{
                key: Decimal(str(data.get(key) or 0))
                for key in ("micro", "small", "monthly", "yearly")
            }
        )


@dataclass
class PricingConfig:
    """Configuration resolved for one calculation."""

    quotation: QuotationConfig
    resource_rates: ResourceRates
    additional_params: AdditionalParams


# Request attribute -> camelCase key used by the CRM frontend
REQUEST_FIELDS: dict[str, str] = {
    "order_type": "orderType",
    "number_of_days": "numberOfDays",
    "working_hours": "workingHours",
    "food_resources": "foodResources",
    "accom_resources": "accomResources",
    "site_distance": "siteDistance",
    "usage": "usage",
    "risk_factor": "riskFactor",
    "shift": "shift",
    "day_night": "dayNight",
    "mob_demob": "mobDemob",
    "mob_relaxation": "mobRelaxation",
    "running_cost_per_km": "runningCostPerKm",
    "extra_charge": "extraCharge",
    "incidental_charges": "incidentalCharges",
    "other_factors": "otherFactors",
    "other_factors_charge": "otherFactorsCharge",
    "include_gst": "includeGst",
    "sunday_working": "sundayWorking",
}


@dataclass
class QuotationRequest:
    """Rental parameters supplied by the sales user."""

    order_type: str
    number_of_days: int
    working_hours: Decimal = Decimal("8")
    food_resources: int = 0
    accom_resources: int = 0
    site_distance: Decimal = Decimal("0")
    usage: str = "normal"
    risk_factor: str = "low"
    shift: str = "single"
    day_night: str = "day"
    mob_demob: Decimal = Decimal("0")
    mob_relaxation: Decimal = Decimal("0")
    running_cost_per_km: Decimal = Decimal("0")
    extra_charge: Decimal = Decimal("0")
    incidental_charges: list[str] = field(default_factory=list)
    other_factors: list[str] = field(default_factory=list)
    other_factors_charge: Decimal = Decimal("0")
    include_gst: bool = True
    sunday_working: bool = False

    def __post_init__(self) -> None:
        for name in (
            "working_hours",
            "site_distance",
            "mob_demob",
            "mob_relaxation",
            "running_cost_per_km",
            "extra_charge",
            "other_factors_charge",
        ):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                value = Decimal(str(value or 0))
                setattr(self, name, value)
            if not value.is_finite():
                raise ValidationError(REQUEST_FIELDS[name], "must be a finite number")
        self.number_of_days = int(self.number_of_days)
        self.food_resources = int(self.food_resources or 0)
        self.accom_resources = int(self.accom_resources or 0)
        if isinstance(self.sunday_working, str):
            self.sunday_working = self.sunday_working.lower() in ("yes", "true", "1")
        self.incidental_charges = list(self.incidental_charges or [])
        self.other_factors = list(self.other_factors or [])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuotationRequest":
        """Build from either snake_case or camelCase keys."""
        kwargs: dict[str, Any] = {}
        for attr, camel in REQUEST_FIELDS.items():
            if attr in data:
                kwargs[attr] = data[attr]
            elif camel in data:
                kwargs[attr] = data[camel]
        if "order_type" not in kwargs or "number_of_days" not in kwargs:
            raise ValidationError("orderType", "orderType and numberOfDays are required")
        try:
            return cls(**kwargs)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError("request", f"malformed value ({e})") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in asdict(self).items()
        }


@dataclass
class PricingBreakdown:
    """Every figure produced by the calculator, kept for traceability."""

    base_rate: Decimal
    total_rent: Decimal
    usage_percent: Decimal
    usage_load_factor: Decimal
    risk_percent: Decimal
    risk_adjustment: Decimal
    working_cost: Decimal
    shift_percent: Decimal
    day_night_percent: Decimal
    shift_day_night_uplift: Decimal
    mob_demob_cost: Decimal
    food_accom_cost: Decimal
    extra_charge: Decimal
    incidental_total: Decimal
    other_factors_total: Decimal
    extras_total: Decimal
    subtotal: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {key: str(value) for key, value in asdict(self).items()}


@dataclass
class Quotation:
    """Persisted quotation: request, computed figures and lifecycle state."""

    id: str
    request: QuotationRequest
    breakdown: PricingBreakdown
    equipment_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    deal_id: str | None = None
    lead_id: str | None = None
    created_by: str = "system"
    status: QuotationStatus = QuotationStatus.DRAFT
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_amount(self) -> Decimal:
        return self.breakdown.total_amount


# Quotation columns that may be patched without repricing
METADATA_FIELDS = ("customer_id", "customer_name", "deal_id", "lead_id")
