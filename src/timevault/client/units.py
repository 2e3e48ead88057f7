"""Ether/wei conversion for user-facing amounts."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from eth_utils import from_wei, to_wei

from ..core.vault_exceptions import InvalidParameter

WEI_PER_ETHER = 10**18


def parse_ether(amount: Union[str, int, Decimal]) -> int:
    """
    Convert a decimal ether string ("0.01") into integer wei.

    Raises:
        InvalidParameter: Not a number, negative, or finer than 1 wei
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise InvalidParameter(f"Invalid ether amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise InvalidParameter(f"Ether amount must be a non-negative number, got {amount!r}")
    if (value * WEI_PER_ETHER) % 1 != 0:
        raise InvalidParameter(f"Ether amount {amount!r} has more than 18 decimal places")
    try:
        return int(to_wei(value, "ether"))
    except ValueError as exc:
        raise InvalidParameter(f"Ether amount {amount!r} is out of range") from exc


def format_ether(wei: int) -> str:
    """Render integer wei as a plain decimal ether string ("0.01")."""
    if wei == 0:
        return "0"
    value = Decimal(from_wei(abs(wei), "ether")).normalize()
    text = format(value, "f")
    return f"-{text}" if wei < 0 else text
