"""
Money arithmetic shared by the cart (client) and the bill workflow (server).

All arithmetic uses Decimal; floats only appear at the JSON/MongoDB edge.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, NamedTuple, Tuple

from config import GST_RATE

CENT = Decimal("0.01")


class Totals(NamedTuple):
    subtotal: Decimal
    tax: Decimal
    grand_total: Decimal


def to_money(value) -> Decimal:
    """Decimal from a price as it arrives (float, str, int, Decimal or None)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Could not parse '{value}' as a price.")


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, qty: int) -> Decimal:
    return unit_price * qty


def line_tax(unit_price: Decimal, qty: int, rate: Decimal = GST_RATE) -> Decimal:
    return quantize(unit_price * qty * rate)


def bill_totals(lines: Iterable[Tuple[Decimal, int]], rate: Decimal = GST_RATE) -> Totals:
    """
    Totals for (unit_price, qty) pairs. Lines with qty <= 0 are ignored.

    subtotal is the exact sum of price x qty; tax is subtotal x rate rounded
    half-up to the cent; grand_total = subtotal + tax.
    """
    subtotal = sum((price * qty for price, qty in lines if qty > 0), Decimal("0"))
    tax = quantize(subtotal * rate)
    return Totals(subtotal=subtotal, tax=tax, grand_total=subtotal + tax)


def as_float(amount: Decimal) -> float:
    return float(quantize(amount))


def format_currency(amount) -> str:
    return "₹" + format(quantize(to_money(amount)), "f")
