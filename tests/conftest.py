"""
Shared pytest fixtures for the quotation pricing test suite.

Repositories are replaced by in-memory fakes with the same method surface.
Connectivity failures are simulated by raising real psycopg2 exceptions, so
the services under test take exactly the code paths they take in production.
"""

import copy
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import psycopg2
import pytest
from psycopg2.errors import QueryCanceled

from src.domain.config import (
    AuditAction,
    ConfigAuditRecord,
    ConfigChangeSummary,
    ConfigEntry,
    default_document,
)
from src.domain.errors import AuditWriteError, EquipmentNotFound, QuotationNotFound
from src.domain.quotation import (
    REQUEST_FIELDS,
    BaseRates,
    PricingBreakdown,
    PricingConfig,
    Quotation,
    QuotationStatus,
)
from src.logger.logger import init_logger
from src.repository.equipment_repository import EquipmentRates
from src.repository.quotation_repository import BREAKDOWN_COLUMNS, patch_pairs
from src.services.config_store import ConfigStore
from src.services.connectivity import ConnectivityProbe
from src.services.quotation_service import QuotationService

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


# ── Logging ───────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def logger():
    """Console-only logger; nothing is written to PostgreSQL."""
    return init_logger("quotation-pricing-test", "test")


# ── Clock ─────────────────────────────────────────────────────────────────────

class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ── Config store fakes ────────────────────────────────────────────────────────

class FakeConfigRepository:
    """In-memory config table.

    down: every call raises OperationalError (store unreachable)
    slow: ping raises QueryCanceled (probe timed out)
    rejects: upsert raises this error with the store still reachable
    """

    def __init__(self) -> None:
        self.rows: dict[str, ConfigEntry] = {}
        self.down = False
        self.slow = False
        self.rejects: psycopg2.Error | None = None
        self.ping_count = 0
        self._ids = itertools.count(1)
        self._ticks = itertools.count(1)

    def _check(self) -> None:
        if self.down:
            raise psycopg2.OperationalError("could not connect to server")

    def ping(self, timeout_ms: int) -> None:
        self.ping_count += 1
        if self.slow:
            raise QueryCanceled("canceling statement due to statement timeout")
        self._check()

    def seed(self, name: str, value: Any) -> None:
        """Store a raw value, bypassing validation."""
        self.rows[name] = ConfigEntry(
            id=next(self._ids),
            name=name,
            value=value,
            updated_at=T0,
        )

    def get(self, name: str) -> ConfigEntry | None:
        self._check()
        row = self.rows.get(name)
        return copy.deepcopy(row) if row else None

    def get_all(self) -> list[ConfigEntry]:
        self._check()
        return [copy.deepcopy(self.rows[name]) for name in sorted(self.rows)]

    def upsert(self, name: str, value: dict[str, Any]) -> tuple[ConfigEntry | None, ConfigEntry]:
        self._check()
        if self.rejects is not None:
            raise self.rejects
        previous = copy.deepcopy(self.rows.get(name))
        current = ConfigEntry(
            id=previous.id if previous else next(self._ids),
            name=name,
            value=copy.deepcopy(value),
            updated_at=T0 + timedelta(seconds=next(self._ticks)),
        )
        self.rows[name] = current
        return previous, copy.deepcopy(current)


class FakeAuditRepository:
    """In-memory audit log; failing makes append raise AuditWriteError."""

    def __init__(self) -> None:
        self.records: list[ConfigAuditRecord] = []
        self.failing = False
        self._ids = itertools.count(1)

    def append(self, record: ConfigAuditRecord) -> int:
        if self.failing:
            raise AuditWriteError(f"Failed to append audit record for {record.config_name}")
        stored = replace(record, id=next(self._ids), created_at=T0)
        self.records.append(stored)
        return stored.id

    def query(self, config_name: str | None = None, limit: int = 50) -> list[ConfigAuditRecord]:
        matching = [r for r in self.records if config_name is None or r.config_name == config_name]
        return list(reversed(matching))[:limit]

    def summarize(self, days: int = 30) -> list[ConfigChangeSummary]:
        groups: dict[tuple[str, AuditAction, str], list[ConfigAuditRecord]] = {}
        for record in self.records:
            key = (record.config_name, record.action, record.changed_by)
            groups.setdefault(key, []).append(record)
        return [
            ConfigChangeSummary(
                config_name=name,
                action=action,
                changed_by=changed_by,
                change_count=len(records),
                last_changed_at=max(r.created_at for r in records),
            )
            for (name, action, changed_by), records in groups.items()
        ]


@pytest.fixture
def config_repository():
    return FakeConfigRepository()


@pytest.fixture
def audit_repository():
    return FakeAuditRepository()


@pytest.fixture
def probe(config_repository, clock):
    return ConnectivityProbe(ping=config_repository.ping, ttl_seconds=30, clock=clock)


@pytest.fixture
def config_store(config_repository, audit_repository, probe):
    return ConfigStore(config_repository, audit_repository, probe)


@pytest.fixture
def pricing_config():
    """Configuration built from the shipped defaults."""
    return PricingConfig(
        quotation=default_document("quotation"),
        resource_rates=default_document("resourceRates"),
        additional_params=default_document("additionalParams"),
    )


# ── Quotation fakes ───────────────────────────────────────────────────────────

class FakeQuotationRepository:
    """In-memory quotations table with the same patch contract as PostgreSQL."""

    def __init__(self) -> None:
        self.rows: dict[str, Quotation] = {}

    def add(self, quotation: Quotation) -> Quotation:
        stored = replace(quotation, created_at=T0, updated_at=T0)
        self.rows[stored.id] = stored
        return copy.deepcopy(stored)

    def get(self, quotation_id: str) -> Quotation | None:
        row = self.rows.get(quotation_id)
        return copy.deepcopy(row) if row else None

    def list_recent(
        self, status: QuotationStatus | None = None, limit: int = 100
    ) -> list[Quotation]:
        rows = [q for q in self.rows.values() if status is None or q.status == status]
        rows.sort(key=lambda q: q.updated_at, reverse=True)
        return [copy.deepcopy(q) for q in rows[:limit]]

    def update(self, quotation_id: str, build_patch) -> Quotation:
        current = self.rows.get(quotation_id)
        if current is None:
            raise QuotationNotFound(quotation_id)

        # build_patch may raise; nothing is written in that case
        pairs = patch_pairs(build_patch(copy.deepcopy(current)))

        request_changes: dict[str, Any] = {}
        other: dict[str, Any] = {}
        breakdown = current.breakdown
        for column, value in pairs:
            if column in REQUEST_FIELDS:
                request_changes[column] = value
            elif column == "calculations":
                breakdown = PricingBreakdown(
                    **{key: Decimal(str(v)) for key, v in value.items()}
                )
            elif column == "status":
                other[column] = QuotationStatus(value)
            elif column not in BREAKDOWN_COLUMNS:
                other[column] = value

        updated = replace(
            current,
            request=replace(current.request, **request_changes),
            breakdown=breakdown,
            version=current.version + 1,
            updated_at=current.updated_at + timedelta(seconds=1),
            **other,
        )
        self.rows[quotation_id] = updated
        return copy.deepcopy(updated)


class FakeEquipmentRepository:
    def __init__(self) -> None:
        self.items: dict[str, EquipmentRates] = {}

    def add(self, rates: EquipmentRates) -> None:
        self.items[rates.equipment_id] = rates

    def get_rates(self, equipment_id: str) -> EquipmentRates:
        if equipment_id not in self.items:
            raise EquipmentNotFound(equipment_id)
        return self.items[equipment_id]


@pytest.fixture
def quotation_repository():
    return FakeQuotationRepository()


@pytest.fixture
def equipment_repository():
    repo = FakeEquipmentRepository()
    repo.add(
        EquipmentRates(
            equipment_id="crane-50t",
            name="50T Mobile Crane",
            base_rates=BaseRates(
                micro=Decimal("12000"),
                small=Decimal("10000"),
                monthly=Decimal("150000"),
                yearly=Decimal("120000"),
            ),
            running_cost_per_km=Decimal("100"),
        )
    )
    repo.add(
        EquipmentRates(
            equipment_id="crane-100t",
            name="100T Mobile Crane",
            base_rates=BaseRates(
                micro=Decimal("20000"),
                small=Decimal("18000"),
                monthly=Decimal("280000"),
                yearly=Decimal("240000"),
            ),
            running_cost_per_km=Decimal("400"),
        )
    )
    return repo


@pytest.fixture
def quotation_service(config_store, quotation_repository, equipment_repository):
    return QuotationService(config_store, quotation_repository, equipment_repository)


@pytest.fixture
def resource_rates():
    """A complete resourceRates document that differs from the seed."""
    return {
        "foodRatePerMonth": 3000,
        "accommodationRatePerMonth": 5200,
        "transportRate": 1500,
    }
