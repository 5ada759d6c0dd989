"""Decimal helpers for chip and cash amounts."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a user or stored value into a Decimal.
    
    Accepts ints, floats, Decimals and numeric strings (``"$1,200"`` is
    accepted too). Returns None for anything that does not parse or is not
    finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        cleaned = str(value).strip().replace("$", "").replace(",", "")
        if not cleaned:
            return None
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return None
    if not result.is_finite():
        return None
    return result


def format_money(amount: Decimal) -> str:
    """Format an unsigned amount the way notes display it.
    
    Whole amounts drop their fractional part (``200`` not ``200.00``);
    anything else is shown with two decimals.
    """
    amount = abs(amount)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{amount:.2f}"


def format_signed(amount: Decimal) -> str:
    """Format a change as ``+$N`` or ``-$N``."""
    sign = "+" if amount >= 0 else "-"
    return f"{sign}${format_money(amount)}"
