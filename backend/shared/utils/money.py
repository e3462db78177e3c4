"""
Fixed-point money helpers.

All amounts are ``Decimal`` with two places, rounded half-up the way a
cashier would.
"""

from decimal import Decimal, ROUND_HALF_UP

from shared.config.constants import TWO_PLACES


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Convert to Decimal without inheriting binary float noise."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value: Decimal | int | float | str) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def order_total(subtotal: Decimal, discount: Decimal, tax_percentage: Decimal) -> tuple[Decimal, Decimal]:
    """
    Return ``(tax_amount, total_amount)`` for an order.

    ``subtotal`` and ``discount`` are already 2-place amounts, so
    ``total == taxable + tax_amount`` and
    ``total == round2((subtotal - discount) * (1 + tax / 100))`` both hold.
    """
    taxable = to_decimal(subtotal) - to_decimal(discount)
    rate = to_decimal(tax_percentage) / Decimal(100)
    tax_amount = round2(taxable * rate)
    total_amount = round2(taxable * (Decimal(1) + rate))
    return tax_amount, total_amount


def split_amount(amount: Decimal, commission_rate: Decimal | float) -> tuple[Decimal, Decimal]:
    """Return ``(platform_commission, vendor_amount)`` for a split payment."""
    commission = round2(to_decimal(amount) * to_decimal(commission_rate))
    vendor_amount = round2(to_decimal(amount) - commission)
    return commission, vendor_amount
