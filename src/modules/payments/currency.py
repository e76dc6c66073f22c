"""Currency helpers: conversion between minor and major units.

Money is stored as integers in minor units.  Conversion to the decimal
strings providers expect uses ``Decimal`` so no float rounding leaks in.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Union


class CurrencyInfo(NamedTuple):
    code: str
    symbol: str
    decimals: int


SUPPORTED_CURRENCIES: dict[str, CurrencyInfo] = {
    "USD": CurrencyInfo("USD", "$", 2),
    "EUR": CurrencyInfo("EUR", "€", 2),
    "ILS": CurrencyInfo("ILS", "₪", 2),
}


def is_supported_currency(code: str) -> bool:
    return (code or "").upper() in SUPPORTED_CURRENCIES


def get_currency_info(code: str) -> CurrencyInfo:
    try:
        return SUPPORTED_CURRENCIES[(code or "").upper()]
    except KeyError:
        raise ValueError(f"Unsupported currency: {code}") from None


def minor_to_major_unit(amount: int, currency: str) -> Decimal:
    """``1050`` USD -> ``Decimal("10.50")``."""
    decimals = get_currency_info(currency).decimals
    exponent = Decimal(1).scaleb(-decimals)
    return (Decimal(amount) / (10**decimals)).quantize(exponent)


def major_unit_to_minor(amount: Union[str, Decimal, int], currency: str) -> int:
    """``"10.50"`` USD -> ``1050``; rounds half-up to the nearest minor unit."""
    decimals = get_currency_info(currency).decimals
    minor = Decimal(str(amount)) * (10**decimals)
    return int(minor.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_amount(amount: int, currency: str) -> str:
    """Human readable amount, e.g. ``$10.50``."""
    info = get_currency_info(currency)
    return f"{info.symbol}{minor_to_major_unit(amount, currency)}"
