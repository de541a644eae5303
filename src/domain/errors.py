"""Domain exceptions for config and quotation handling."""


class QuotationCoreError(Exception):
    """Base class for every error raised by this service."""


class ConfigStoreError(QuotationCoreError):
    """Config store failure."""


class ConfigUnavailable(ConfigStoreError):
    """A config without a safe default could not be read."""

    def __init__(self, config_name: str, reason: str) -> None:
        self.config_name = config_name
        self.reason = reason
        super().__init__(
            f"Configuration '{config_name}' is unavailable: {reason}. "
            "Quotations cannot be priced until it is restored."
        )


class ConfigParseError(ConfigUnavailable):
    """Stored config value is not a valid document."""


class ConfigValidationError(ConfigStoreError):
    """Config document rejected on write."""

    def __init__(self, config_name: str, errors: list[str]) -> None:
        self.config_name = config_name
        self.errors = errors
        super().__init__(f"Invalid '{config_name}' configuration: {'; '.join(errors)}")


class ConfigWriteError(ConfigStoreError):
    """Upsert into the config table failed."""


class AuditWriteError(QuotationCoreError):
    """Audit record could not be appended."""


class ValidationError(QuotationCoreError):
    """Quotation request outside configured bounds."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class QuotationNotFound(QuotationCoreError):
    def __init__(self, quotation_id: str) -> None:
        self.quotation_id = quotation_id
        super().__init__(f"Quotation {quotation_id} not found")


class InvalidStatusTransition(QuotationCoreError):
    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Quotation status cannot change from '{current}' to '{requested}'")


class EquipmentNotFound(QuotationCoreError):
    def __init__(self, equipment_id: str) -> None:
        self.equipment_id = equipment_id
        super().__init__(f"Equipment {equipment_id} not found")
