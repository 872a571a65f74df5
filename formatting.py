"""pt-BR number parsing and display formatting.

Kept apart from the engine: everything here turns user text into floats or
floats into text, nothing else.
"""
from __future__ import annotations

import math

from config import settings

_MISSING = object()


def _to_float(cleaned: str, raw: str, default):
    try:
        value = float(cleaned)
    except ValueError:
        if default is _MISSING:
            raise ValueError(f"not a number: {raw!r}") from None
        return default
    if not math.isfinite(value):
        if default is _MISSING:
            raise ValueError(f"not a finite number: {raw!r}")
        return default
    return value


def parse_amount(text: str, default=_MISSING) -> float:
    """Parse a monetary amount with '.' thousands and ',' decimals ("6.000.000,50")."""
    cleaned = text.strip().replace(settings.CURRENCY_SYMBOL, "").replace(" ", "")
    return _to_float(cleaned.replace(".", "").replace(",", "."), text, default)


def parse_decimal(text: str, default=_MISSING) -> float:
    """Parse a plain decimal with ',' as separator ("16,5")."""
    return _to_float(text.strip().replace(",", "."), text, default)


def format_number(value: float, decimals: int = 0) -> str:
    s = f"{value:,.{decimals}f}"
    return s.replace(",", "X").replace(".", ",").replace("X", ".")


def format_currency(value: float, decimals: int = 0) -> str:
    sign = "-" if value < 0 and round(abs(value), decimals) != 0 else ""
    return f"{sign}{settings.CURRENCY_SYMBOL} {format_number(abs(value), decimals)}"


def format_accounting(value: float, decimals: int = 0) -> str:
    """Currency with negatives in parentheses, as in the cash-flow tables."""
    if value < 0 and round(abs(value), decimals) != 0:
        return f"({format_currency(abs(value), decimals)})"
    return format_currency(abs(value), decimals)


def format_percent(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return "–"
    return f"{format_number(value, decimals)}%"
