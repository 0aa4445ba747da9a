"""
Display helpers for base-unit integers and addresses.

    format_balance(1234567890000000000000)  -> "1,234.57"
    format_balance(5 * 10**17)              -> "0.500000"
    format_balance(5 * 10**13)              -> "< 0.0001"
    parse_balance("1.5", 6)                 -> 1500000
    format_address("0x1234567890abcdef1234567890abcdef12345678") -> "0x123...5678"
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Union

from .errors import InvalidInput

Amount = Union[int, str]

_TINY = Decimal("0.0001")


def to_decimal(balance: Amount, decimals: int = 18) -> Decimal:
    """Base units → exact Decimal in whole-token units."""
    if isinstance(balance, bool):
        raise InvalidInput("balance must be an integer")
    raw = int(balance, 0) if isinstance(balance, str) else int(balance)
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(raw).scaleb(-int(decimals))


def format_balance(balance: Amount, decimals: int = 18) -> str:
    """
    Human-readable amount, as the web client shows it:
      0             -> "0"
      below 0.0001  -> "< 0.0001"
      below 1       -> exactly 6 decimals
      below 1000    -> exactly 4 decimals
      otherwise     -> thousands separators, at most 2 decimals
    Values are rounded half-up to the shown precision.
    """
    value = to_decimal(balance, decimals)
    if value == 0:
        return "0"
    with localcontext() as ctx:
        ctx.prec = 100
        return _format_nonzero(value)


def _format_nonzero(value: Decimal) -> str:
    sign = "-" if value < 0 else ""
    value = abs(value)
    if value < _TINY:
        return f"{sign}< 0.0001"
    if value < 1:
        return sign + f"{value.quantize(Decimal('0.000001'), rounding=ROUND_HALF_UP):f}"
    if value < 1000:
        return sign + f"{value.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP):f}"
    q = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    whole, _, frac = f"{q:f}".partition(".")
    out = f"{int(whole):,}"
    frac = frac.rstrip("0")
    return sign + (f"{out}.{frac}" if frac else out)


def parse_balance(amount: str, decimals: int = 18) -> int:
    """Decimal string in whole-token units → base units. Rejects excess precision."""
    text = str(amount).strip().replace(",", "")
    if not text:
        raise InvalidInput("amount is empty")
    try:
        d = Decimal(text)
    except InvalidOperation as e:
        raise InvalidInput(f"invalid amount: {amount!r}") from e
    if not d.is_finite() or d < 0:
        raise InvalidInput(f"invalid amount: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = d.scaleb(int(decimals))
    if scaled != scaled.to_integral_value():
        raise InvalidInput(f"amount {amount!r} has more than {decimals} decimal places")
    return int(scaled)


def format_address(address: str, length: int = 10) -> str:
    """Shorten an address to roughly `length` visible characters plus "0x"."""
    if not address or len(address) <= length + 2:
        return address or ""
    visible = max(length - 3, 2)
    start = visible // 2
    end = math.ceil(visible / 2)
    return f"{address[: start + 2]}...{address[-end:]}"


__all__ = ["to_decimal", "format_balance", "parse_balance", "format_address"]
