"""
Conversions between on-chain base units and human-readable token amounts.
"""

from decimal import Decimal, ROUND_DOWN
from typing import Any, Mapping, Optional


def scale_amount(base_units: int, decimals: int) -> Decimal:
    """Base units to token units, e.g. 1_500_000 with 6 decimals is 1.5."""
    return Decimal(int(base_units)).scaleb(-decimals)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Token units to base units, truncating sub-unit dust."""
    quantum = Decimal(1).scaleb(-decimals)
    return int(Decimal(amount).quantize(quantum, rounding=ROUND_DOWN).scaleb(decimals))


def parsed_token_amount(token_amount: Optional[Mapping[str, Any]], default_decimals: int) -> Decimal:
    """
    Read a jsonParsed ``tokenAmount`` object.

    Prefers the exact integer ``amount``; falls back to ``uiAmountString``
    when an RPC node omits it.
    """
    if not token_amount:
        return Decimal(0)
    decimals = token_amount.get("decimals", default_decimals)
    raw = token_amount.get("amount")
    if raw is not None:
        return scale_amount(int(raw), decimals)
    ui_amount = token_amount.get("uiAmountString")
    return Decimal(ui_amount) if ui_amount else Decimal(0)
