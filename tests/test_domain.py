"""
test_domain.py: config schemas, audit records and quotation value objects.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.domain.config import (
    DEFAULT_CONFIGS,
    AdditionalParams,
    AuditAction,
    AuditInfo,
    ConfigAuditRecord,
    ConfigDocument,
    ConfigEntry,
    DatabaseConfig,
    QuotationConfig,
    ResourceRates,
    default_document,
    parse_config,
    public_value,
)
from src.domain.errors import (
    ConfigParseError,
    ConfigUnavailable,
    ConfigValidationError,
    ValidationError,
)
from src.domain.quotation import QuotationRequest, QuotationStatus


class TestParseConfig:

    def test_base_document_is_abstract(self):
        with pytest.raises(TypeError):
            ConfigDocument()

    def test_non_finite_number_reported(self):
        with pytest.raises(ConfigValidationError) as exc:
            parse_config(
                "resourceRates",
                {"foodRatePerMonth": float("inf"), "accommodationRatePerMonth": 4000},
            )
        assert "foodRatePerMonth must be a finite number" in exc.value.errors

    def test_defaults_parse_for_every_name(self):
        for name, value in DEFAULT_CONFIGS.items():
            assert parse_config(name, value).to_dict() == value

    def test_json_text_accepted(self):
        doc = parse_config(
            "resourceRates", b'{"foodRatePerMonth": 1, "accommodationRatePerMonth": 2}'
        )
        assert isinstance(doc, ResourceRates)
        assert doc.transport_rate == 0

    def test_invalid_json(self):
        with pytest.raises(ConfigParseError):
            parse_config("quotation", "{oops")

    def test_non_object(self):
        with pytest.raises(ConfigParseError):
            parse_config("quotation", [1, 2])

    def test_parse_error_is_unavailable(self):
        assert issubclass(ConfigParseError, ConfigUnavailable)

    def test_unknown_name(self):
        with pytest.raises(ConfigValidationError):
            parse_config("theme", {})

    def test_resource_rates_requires_both_monthly_rates(self):
        with pytest.raises(ConfigValidationError) as exc:
            ResourceRates.from_dict({})
        assert exc.value.errors == [
            "foodRatePerMonth is required",
            "accommodationRatePerMonth is required",
        ]

    def test_numeric_strings_accepted(self):
        rates = ResourceRates.from_dict(
            {"foodRatePerMonth": "2500", "accommodationRatePerMonth": "4000.5"}
        )
        assert rates.food_rate_per_month == 2500
        assert rates.accommodation_rate_per_month == 4000.5

    def test_quotation_limits_must_be_ordered(self):
        with pytest.raises(ConfigValidationError):
            QuotationConfig.from_dict(
                {"orderTypeLimits": {"micro": {"minDays": 10, "maxDays": 2}}}
            )

    def test_quotation_limits_fill_missing_order_types(self):
        config = QuotationConfig.from_dict(
            {"orderTypeLimits": {"micro": {"minDays": 1, "maxDays": 7}}}
        )
        assert config.order_type_limits["micro"].max_days == 7
        assert config.order_type_limits["small"].min_days == 11
        assert config.order_type_limits["monthly"].rate_basis_days == 30

    def test_negative_factor_rejected(self):
        with pytest.raises(ConfigValidationError):
            AdditionalParams.from_dict({"usageFactors": {"normal": 0, "heavy": -10}})

    def test_incidental_lookup(self):
        params = default_document("additionalParams")
        assert params.incidental_amount("incident2") == 10000
        assert params.incidental_amount("incident9") is None


class TestPublicValues:

    def test_database_password_stripped(self):
        doc = DatabaseConfig.from_dict({"host": "db", "password": "s3cret"})
        assert doc.to_dict()["password"] == "s3cret"
        assert "password" not in public_value(doc)
        assert "s3cret" not in repr(doc)

    def test_entry_to_dict_merges_updated_at(self):
        stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        entry = ConfigEntry(
            name="defaultTemplate", value={"defaultTemplateId": "t1"}, updated_at=stamp
        )
        assert entry.to_dict() == {
            "defaultTemplateId": "t1",
            "updatedAt": "2026-03-01T12:00:00+00:00",
        }

    def test_default_entry_has_null_updated_at(self):
        entry = ConfigEntry(name="quotation", value={}, is_default=True)
        assert entry.to_dict() == {"updatedAt": None}


class TestAuditRecord:

    def test_create_when_no_previous(self):
        current = ConfigEntry(id=3, name="resourceRates", value={"foodRatePerMonth": 1})
        record = ConfigAuditRecord.for_mutation(None, current, AuditInfo(user_id="u-1"))
        assert record.action == AuditAction.CREATE
        assert record.old_value is None
        assert record.config_id == 3
        assert record.changed_by == "u-1"

    def test_update_keeps_previous_snapshot(self):
        previous = ConfigEntry(id=3, name="resourceRates", value={"foodRatePerMonth": 1})
        current = ConfigEntry(id=3, name="resourceRates", value={"foodRatePerMonth": 2})
        record = ConfigAuditRecord.for_mutation(previous, current, AuditInfo())
        assert record.action == AuditAction.UPDATE
        assert record.old_value == {"foodRatePerMonth": 1}
        assert record.new_value == {"foodRatePerMonth": 2}


class TestQuotationStatus:

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("draft", "sent", True),
            ("draft", "draft", True),
            ("draft", "accepted", False),
            ("sent", "draft", True),
            ("sent", "accepted", True),
            ("sent", "rejected", True),
            ("accepted", "sent", False),
            ("rejected", "draft", False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert QuotationStatus(current).can_transition_to(QuotationStatus(target)) is allowed

    def test_terminal_states(self):
        assert [s.value for s in QuotationStatus if s.is_terminal] == ["accepted", "rejected"]


class TestQuotationRequest:

    def test_from_camel_case(self):
        request = QuotationRequest.from_dict(
            {
                "orderType": "small",
                "numberOfDays": "12",
                "siteDistance": 42.5,
                "incidentalCharges": ["incident1"],
                "sundayWorking": "yes",
            }
        )
        assert request.number_of_days == 12
        assert request.site_distance == Decimal("42.5")
        assert request.incidental_charges == ["incident1"]
        assert request.sunday_working is True
        assert request.working_hours == Decimal("8")

    def test_snake_case_round_trip(self):
        request = QuotationRequest(
            order_type="micro", number_of_days=3, mob_demob=Decimal("1500.50")
        )
        assert QuotationRequest.from_dict(request.to_dict()) == request

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            QuotationRequest.from_dict({"orderType": "micro"})

    def test_malformed_number(self):
        with pytest.raises(ValidationError):
            QuotationRequest.from_dict(
                {"orderType": "micro", "numberOfDays": 2, "siteDistance": "far"}
            )
