from datetime import date, timedelta
from decimal import Decimal
import math

from errors import InvalidDateRange, NegativeAmount
from models import PricingBreakdown, StayRequest
from rates import RateTable


HUNDRED = Decimal("100")
ZERO = Decimal("0")
SECONDS_PER_DAY = 24 * 60 * 60


def calculate_nights(check_in: date, check_out: date) -> int:
    """Calculate number of nights between dates, rounding partial days up."""
    delta = check_out - check_in
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def includes_weekend(check_in: date, check_out: date) -> bool:
    """Check whether any night of the stay falls on a Saturday or Sunday."""
    current = check_in
    while current < check_out:
        if current.weekday() >= 5:
            return True
        current += timedelta(days=1)
    return False


def compute(stay: StayRequest, rates: RateTable) -> PricingBreakdown:
    """
    Price a stay.

    Each stage consumes the result of the previous one. Amounts are kept
    as exact decimals; rounding is left to the display layer.
    """
    nights = calculate_nights(stay.check_in, stay.check_out)
    if nights < 1:
        raise InvalidDateRange(
            f"check_out ({stay.check_out.isoformat()}) must be after check_in ({stay.check_in.isoformat()})"
        )

    # Apply seasonal rate
    adjusted_base_rate = stay.base_rate * rates.multiplier(stay.seasonal_tier)
    base_amount = adjusted_base_rate * nights

    meal_amount = rates.meal_cost(stay.meal_plan) * nights * stay.guest_count

    surcharges = rates.surcharges_for(stay.accommodation_type)
    weekend_surcharge_amount = surcharges.weekend * nights if stay.apply_weekend_surcharge else ZERO
    holiday_surcharge_amount = surcharges.holiday * nights if stay.apply_holiday_surcharge else ZERO

    subtotal = base_amount + meal_amount + weekend_surcharge_amount + holiday_surcharge_amount

    # Strictly more nights than the threshold
    if nights > rates.long_stay_threshold_nights:
        long_stay_discount_amount = subtotal * rates.long_stay_discount_pct / HUNDRED
    else:
        long_stay_discount_amount = ZERO

    discounted_amount = subtotal - long_stay_discount_amount - stay.manual_discount
    if discounted_amount < 0:
        raise NegativeAmount(
            f"Discounts ({long_stay_discount_amount + stay.manual_discount}) exceed subtotal ({subtotal})"
        )

    # Tax and service charge share the same base and are not compounded
    tax_amount = discounted_amount * stay.tax_rate_pct / HUNDRED
    service_charge_amount = discounted_amount * stay.service_charge_rate_pct / HUNDRED

    total_amount = discounted_amount + tax_amount + service_charge_amount

    return PricingBreakdown(
        nights=nights,
        base_amount=base_amount,
        meal_amount=meal_amount,
        weekend_surcharge_amount=weekend_surcharge_amount,
        holiday_surcharge_amount=holiday_surcharge_amount,
        subtotal=subtotal,
        long_stay_discount_amount=long_stay_discount_amount,
        manual_discount_amount=stay.manual_discount,
        discounted_amount=discounted_amount,
        tax_amount=tax_amount,
        service_charge_amount=service_charge_amount,
        total_amount=total_amount,
        currency=rates.currency,
    )
