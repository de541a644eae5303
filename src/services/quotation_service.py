"""Quotation pricing and lifecycle.

Prices requests with the current configuration and persists the result.
Every content or status change goes through QuotationRepository.update, which
locks the row and bumps the version in the same transaction.
"""

import time
import uuid
from dataclasses import replace
from typing import Any

from src.domain.errors import InvalidStatusTransition, QuotationNotFound, ValidationError
from src.domain.quotation import (
    METADATA_FIELDS,
    REQUEST_FIELDS,
    BaseRates,
    PricingBreakdown,
    PricingConfig,
    Quotation,
    QuotationRequest,
    QuotationStatus,
)
from src.features.pricing import compute_quotation
from src.logger.logger import get_logger
from src.logger.types import Category, duration_ms, param
from src.repository.equipment_repository import EquipmentRates, EquipmentRepository
from src.repository.quotation_repository import BREAKDOWN_COLUMNS, QuotationRepository
from src.services.config_store import ConfigStore

_CAMEL_TO_ATTR = {camel: attr for attr, camel in REQUEST_FIELDS.items()}
_METADATA_CAMEL = {
    "customerId": "customer_id",
    "customerName": "customer_name",
    "dealId": "deal_id",
    "leadId": "lead_id",
    "equipmentId": "equipment_id",
}


class QuotationService:
    """Entry point for pricing, creating and updating quotations."""

    def __init__(
        self,
        config_store: ConfigStore,
        quotation_repository: QuotationRepository,
        equipment_repository: EquipmentRepository,
    ) -> None:
        self.config_store = config_store
        self.quotations = quotation_repository
        self.equipment = equipment_repository
        self.logger = get_logger().with_category(Category.PRICING)

    def compute_quotation(
        self,
        request: QuotationRequest,
        equipment_id: str | None = None,
        base_rates: BaseRates | None = None,
        config: PricingConfig | None = None,
    ) -> PricingBreakdown:
        """
        Price a request without persisting it.

        Args:
            request: Rental parameters
            equipment_id: Equipment to read rates from (unless base_rates given)
            base_rates: Explicit rates, skips the equipment lookup
            config: Pre-resolved configuration, resolved from the store if None

        Raises:
            ValidationError: request outside configured bounds
            ConfigUnavailable: resourceRates cannot be read
        """
        if config is None:
            config = self.config_store.resolve_pricing_config()
        if base_rates is None:
            if equipment_id is None:
                raise ValidationError("equipmentId", "equipment or base rates are required")
            rates = self.equipment.get_rates(equipment_id)
            request = self._with_equipment_defaults(request, rates)
            base_rates = rates.base_rates

        start = time.monotonic()
        try:
            breakdown = compute_quotation(request, config, base_rates)
        except ValidationError as e:
            self.logger.warn(
                "Quotation request rejected",
                param("field", e.field),
                param("error", str(e)),
                param("order_type", request.order_type),
            )
            raise

        self.logger.debug(
            "Quotation priced",
            param("order_type", request.order_type),
            param("number_of_days", request.number_of_days),
            param("total_amount", str(breakdown.total_amount)),
            duration_ms(int((time.monotonic() - start) * 1000)),
        )
        return breakdown

    def create_quotation(
        self,
        request: QuotationRequest,
        equipment_id: str,
        customer_id: str | None = None,
        customer_name: str | None = None,
        deal_id: str | None = None,
        lead_id: str | None = None,
        created_by: str = "system",
    ) -> Quotation:
        """
        Price and store a new quotation as a version 1 draft.

        Raises:
            ValidationError, ConfigUnavailable, EquipmentNotFound
        """
        rates = self.equipment.get_rates(equipment_id)
        request = self._with_equipment_defaults(request, rates)
        breakdown = self.compute_quotation(request, base_rates=rates.base_rates)

        quotation = Quotation(
            id=str(uuid.uuid4()),
            request=request,
            breakdown=breakdown,
            equipment_id=equipment_id,
            customer_id=customer_id,
            customer_name=customer_name,
            deal_id=deal_id,
            lead_id=lead_id,
            created_by=created_by,
            status=QuotationStatus.DRAFT,
            version=1,
        )
        return self.quotations.add(quotation)

    def update_quotation(self, quotation_id: str, changes: dict[str, Any]) -> Quotation:
        """
        Apply content changes, repricing when a pricing input changes.

        Only supplied fields are written. Terminal quotations are locked.

        Args:
            quotation_id: Quotation ID
            changes: Request fields (snake_case or camelCase), equipment_id,
                and customer/deal/lead metadata

        Returns:
            Quotation at its new version

        Raises:
            QuotationNotFound, InvalidStatusTransition, ValidationError,
            ConfigUnavailable, EquipmentNotFound
        """
        request_changes, metadata_changes = self._split_changes(changes)
        if not request_changes and not metadata_changes:
            raise ValidationError("changes", "nothing to update")

        reprice = bool(request_changes) or "equipment_id" in metadata_changes
        config = self.config_store.resolve_pricing_config() if reprice else None

        def build_patch(current: Quotation) -> dict[str, Any]:
            if current.status.is_terminal:
                raise InvalidStatusTransition(current.status.value, "edited")

            patch: dict[str, Any] = dict(metadata_changes)
            if reprice:
                merged = {**current.request.to_dict(), **request_changes}
                equipment_id = metadata_changes.get("equipment_id", current.equipment_id)
                if equipment_id is None:
                    raise ValidationError("equipmentId", "quotation has no equipment")
                written = set(request_changes)
                if (
                    equipment_id != current.equipment_id
                    and "running_cost_per_km" not in request_changes
                ):
                    # Running cost was taken from the previous equipment
                    merged["running_cost_per_km"] = 0
                    written.add("running_cost_per_km")
                rates = self.equipment.get_rates(equipment_id)
                request = self._with_equipment_defaults(
                    QuotationRequest.from_dict(merged), rates
                )
                breakdown = self.compute_quotation(
                    request, base_rates=rates.base_rates, config=config
                )
                for attr in written:
                    patch[attr] = getattr(request, attr)
                for column in BREAKDOWN_COLUMNS:
                    patch[column] = getattr(breakdown, column)
                patch["calculations"] = breakdown.to_dict()
            return patch

        updated = self.quotations.update(quotation_id, build_patch)
        self.logger.info(
            "Quotation content updated",
            param("quotation_id", quotation_id),
            param("version", updated.version),
            param("repriced", reprice),
        )
        return updated

    def update_quotation_status(self, quotation_id: str, status: str) -> Quotation:
        """
        Move a quotation through draft -> sent -> accepted/rejected.

        Raises:
            ValidationError: unknown status
            InvalidStatusTransition: transition not allowed
            QuotationNotFound: no such quotation
        """
        try:
            target = QuotationStatus(status)
        except ValueError as e:
            raise ValidationError("status", f"unknown status '{status}'") from e

        def build_patch(current: Quotation) -> dict[str, Any]:
            if not current.status.can_transition_to(target):
                raise InvalidStatusTransition(current.status.value, target.value)
            return {"status": target}

        try:
            updated = self.quotations.update(quotation_id, build_patch)
        except InvalidStatusTransition as e:
            self.logger.warn(
                "Status transition blocked",
                param("quotation_id", quotation_id),
                param("from", e.current),
                param("to", e.requested),
            )
            raise

        self.logger.info(
            "Quotation status changed",
            param("quotation_id", quotation_id),
            param("status", updated.status.value),
            param("version", updated.version),
        )
        return updated

    def get_quotation(self, quotation_id: str) -> Quotation:
        quotation = self.quotations.get(quotation_id)
        if quotation is None:
            raise QuotationNotFound(quotation_id)
        return quotation

    def list_quotations(
        self, status: QuotationStatus | None = None, limit: int = 100
    ) -> list[Quotation]:
        return self.quotations.list_recent(status=status, limit=limit)

    @staticmethod
    def _with_equipment_defaults(
        request: QuotationRequest, rates: EquipmentRates
    ) -> QuotationRequest:
        """Use the equipment's running cost when the request leaves it empty."""
        if request.running_cost_per_km == 0 and rates.running_cost_per_km > 0:
            return replace(request, running_cost_per_km=rates.running_cost_per_km)
        return request

    @staticmethod
    def _split_changes(changes: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
        request_changes: dict[str, Any] = {}
        metadata_changes: dict[str, Any] = {}
        for key, value in changes.items():
            if key in REQUEST_FIELDS:
                request_changes[key] = value
            elif key in _CAMEL_TO_ATTR:
                request_changes[_CAMEL_TO_ATTR[key]] = value
            elif key in METADATA_FIELDS or key == "equipment_id":
                metadata_changes[key] = value
            elif key in _METADATA_CAMEL:
                metadata_changes[_METADATA_CAMEL[key]] = value
            else:
                raise ValidationError(key, "field cannot be updated")
        return request_changes, metadata_changes
