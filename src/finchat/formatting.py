"""Display formatting shared by tool renderers and the confirmation flow."""

from __future__ import annotations


def format_number(value: float) -> str:
    """Format *value* as US dollars, e.g. ``1500`` -> ``"$1,500.00"``."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def plain_number(value: float) -> int | float:
    """Drop a zero fractional part so ``1500.0`` prints as ``1500``."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
