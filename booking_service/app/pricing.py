"""Booking price calculation.

Everything here is pure: no database access, no clock. The lifecycle calls
``price`` once per booking and the quote endpoint calls it as often as it likes.
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from . import config, errors, schemas

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        # str() keeps 0.1 from turning into 0.1000000000000000055...
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def rental_days(pickup: datetime, expected_return: datetime) -> int:
    """Whole rental days between two timestamps, partial days rounded up."""
    if expected_return <= pickup:
        raise errors.ValidationError("Expected return date must be after pickup date")

    duration = expected_return - pickup
    days = duration.days
    if duration - timedelta(days=days):
        days += 1
    return days


def price(daily_rate, total_days: int, discount=0, tax_rate=None) -> schemas.PriceBreakdown:
    if tax_rate is None:
        tax_rate = config.TAX_RATE
    if not isinstance(tax_rate, Decimal):
        tax_rate = Decimal(str(tax_rate))

    if total_days <= 0:
        raise errors.ValidationError("Total days must be positive")
    if tax_rate < 0:
        raise errors.ValidationError("Tax rate cannot be negative")

    daily_rate = to_money(daily_rate)
    discount = to_money(discount)
    if daily_rate <= 0:
        raise errors.ValidationError("Daily rate must be positive")

    base = daily_rate * total_days
    if discount < 0:
        raise errors.ValidationError("Discount cannot be negative")
    if discount > base:
        raise errors.ValidationError(f"Discount {discount} exceeds base amount {base}")

    tax = to_money(base * tax_rate)
    total = base - discount + tax

    return schemas.PriceBreakdown(
        daily_rate=daily_rate,
        total_days=total_days,
        base_amount=base,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=total,
    )
