"""Quotation pricing.

Turns a rental request plus resolved configuration into an itemized
breakdown. Pure and deterministic: no database, no logging, no clock.

Percentages in the factor tables are percent numbers (50 means 50%).
Every line item is rounded half-up to paise before it is summed.
"""

from decimal import ROUND_HALF_UP, Decimal

from src.domain.config import OrderTypeLimit
from src.domain.errors import ValidationError
from src.domain.quotation import BaseRates, PricingBreakdown, PricingConfig, QuotationRequest

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

OTHER_FACTORS = ("rigger", "helper")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _dec(value: float | int | Decimal) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _lookup_percent(table: dict[str, float], option: str, field: str) -> Decimal:
    """Percentage for an option; a missing option would misprice, so it fails."""
    if option not in table or table[option] is None:
        allowed = ", ".join(sorted(table)) or "none configured"
        raise ValidationError(field, f"unknown value '{option}' (allowed: {allowed})")
    return _dec(table[option])


def validate_request(request: QuotationRequest, config: PricingConfig) -> OrderTypeLimit:
    """
    Check a request against the configured bounds.

    Returns:
        The limits of the requested order type

    Raises:
        ValidationError: first violated rule
    """
    limit = config.quotation.order_type_limits.get(request.order_type)
    if limit is None:
        raise ValidationError(
            "orderType",
            f"unknown order type '{request.order_type}'",
        )
    if not limit.contains(request.number_of_days):
        raise ValidationError(
            "numberOfDays",
            f"{request.number_of_days} is outside {request.order_type} range "
            f"[{limit.min_days}, {limit.max_days}]",
        )

    for field_name, value in (
        ("workingHours", request.working_hours),
        ("foodResources", request.food_resources),
        ("accomResources", request.accom_resources),
        ("siteDistance", request.site_distance),
        ("mobDemob", request.mob_demob),
        ("runningCostPerKm", request.running_cost_per_km),
        ("extraCharge", request.extra_charge),
        ("otherFactorsCharge", request.other_factors_charge),
    ):
        if value < 0:
            raise ValidationError(field_name, "must not be negative")

    if not ZERO <= request.mob_relaxation <= HUNDRED:
        raise ValidationError("mobRelaxation", "must be a percentage between 0 and 100")

    for factor in request.other_factors:
        if factor not in OTHER_FACTORS:
            raise ValidationError("otherFactors", f"unknown value '{factor}'")

    return limit


def compute_quotation(
    request: QuotationRequest,
    config: PricingConfig,
    base_rates: BaseRates,
) -> PricingBreakdown:
    """
    Price a rental request.

    Args:
        request: Rental parameters
        config: Resolved quotation, resourceRates and additionalParams configs
        base_rates: Equipment rates per order type

    Returns:
        PricingBreakdown with every intermediate figure

    Raises:
        ValidationError: request outside configured bounds, or an option
            missing from its factor table
    """
    limit = validate_request(request, config)
    params = config.additional_params
    rates = config.resource_rates
    days = Decimal(request.number_of_days)

    # Rent: rate quoted per rate_basis_days (1 for daily, 30 for monthly)
    base_rate = base_rates.for_order_type(request.order_type)
    total_rent = _money(base_rate * days / Decimal(limit.rate_basis_days))

    usage_percent = _lookup_percent(params.usage_factors, request.usage, "usage")
    risk_percent = _lookup_percent(params.risk_factors, request.risk_factor, "riskFactor")
    usage_load_factor = _money(total_rent * usage_percent / HUNDRED)
    risk_adjustment = _money(total_rent * risk_percent / HUNDRED)

    working_cost = _money(request.working_hours * _dec(params.hourly_labor_rate) * days)
    shift_percent = _lookup_percent(params.shift_factors, request.shift, "shift")
    day_night_percent = _lookup_percent(params.day_night_factors, request.day_night, "dayNight")
    shift_day_night_uplift = _money(working_cost * (shift_percent + day_night_percent) / HUNDRED)

    mob_demob_cost = _mob_demob_cost(request, _dec(rates.transport_rate))

    food_accom_cost = _money(
        (
            request.food_resources * _dec(rates.food_rate_per_month)
            + request.accom_resources * _dec(rates.accommodation_rate_per_month)
        )
        * days
        / Decimal(params.working_days_per_month)
    )

    incidental_total = ZERO
    for option in request.incidental_charges:
        amount = params.incidental_amount(option)
        if amount is None:
            raise ValidationError("incidentalCharges", f"unknown option '{option}'")
        incidental_total += _dec(amount)
    incidental_total = _money(incidental_total)

    other_factors_total = request.other_factors_charge
    if "rigger" in request.other_factors:
        other_factors_total += _dec(params.rigger_amount)
    if "helper" in request.other_factors:
        other_factors_total += _dec(params.helper_amount)
    other_factors_total = _money(other_factors_total)

    extra_charge = _money(request.extra_charge)
    extras_total = extra_charge + incidental_total + other_factors_total

    subtotal = (
        total_rent
        + usage_load_factor
        + risk_adjustment
        + working_cost
        + shift_day_night_uplift
        + mob_demob_cost
        + food_accom_cost
        + extras_total
    )

    gst_rate = _dec(params.gst_rate) if request.include_gst else ZERO
    gst_amount = _money(subtotal * gst_rate / HUNDRED)

    return PricingBreakdown(
        base_rate=base_rate,
        total_rent=total_rent,
        usage_percent=usage_percent,
        usage_load_factor=usage_load_factor,
        risk_percent=risk_percent,
        risk_adjustment=risk_adjustment,
        working_cost=working_cost,
        shift_percent=shift_percent,
        day_night_percent=day_night_percent,
        shift_day_night_uplift=shift_day_night_uplift,
        mob_demob_cost=mob_demob_cost,
        food_accom_cost=food_accom_cost,
        extra_charge=extra_charge,
        incidental_total=incidental_total,
        other_factors_total=other_factors_total,
        extras_total=extras_total,
        subtotal=subtotal,
        gst_rate=gst_rate,
        gst_amount=gst_amount,
        total_amount=subtotal + gst_amount,
    )


def _mob_demob_cost(request: QuotationRequest, transport_rate: Decimal) -> Decimal:
    """Manual mob/demob amount, else a round trip priced by distance."""
    if request.mob_demob > 0:
        cost = request.mob_demob
    elif request.site_distance > 0:
        cost = request.site_distance * 2 * request.running_cost_per_km + transport_rate
    else:
        return ZERO.quantize(CENT)

    if request.mob_relaxation > 0:
        cost = cost * (HUNDRED - request.mob_relaxation) / HUNDRED
    return _money(cost)
