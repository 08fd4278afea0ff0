"""
Price helpers - Micro-unit conversion, display formatting and preferred price lookup.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

MICROS_PER_UNIT = 1_000_000

# en-US currency symbols; other currencies render with their ISO code
CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "KRW": "₩",
    "CNY": "CN¥",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "HKD": "HK$",
    "TWD": "NT$",
    "MXN": "MX$",
    "BRL": "R$",
    "ILS": "₪",
    "VND": "₫",
    "PHP": "₱",
}


def micros_to_amount(price_micros: int) -> float:
    """Convert store micro-units to a decimal amount (99000000 -> 99.0)."""
    return float(Decimal(price_micros) / Decimal(MICROS_PER_UNIT))


def format_price(amount: float, currency: str) -> str:
    """
    Format an amount the way an en-US storefront displays it.

    Always two fraction digits with thousands grouping: ``$99.00``,
    ``₹1,499.00``, ``CHF 5.00``.
    """
    quantized = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    number = f"{quantized:,.2f}"
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{code} {number}"
    return f"{symbol}{number}"


def pick_display_price(
    prices: Iterable[Mapping[str, Any]], preferred_currencies: Sequence[str]
) -> tuple[float, str] | None:
    """
    Choose the price shown for a product.

    Returns the first price in a preferred currency (in preference order),
    otherwise the first listed price, otherwise None.
    """
    entries = [p for p in prices if p.get("currency") and p.get("amount") is not None]
    if not entries:
        return None
    for currency in preferred_currencies:
        for entry in entries:
            if entry["currency"] == currency:
                return float(entry["amount"]), currency
    first = entries[0]
    return float(first["amount"]), str(first["currency"])
