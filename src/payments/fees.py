"""Platform fee and currency normalisation for checkout requests.

Rounding rule: the fee is amount * percent / 100 computed exactly in
Decimal and rounded half away from zero to whole minor units
(ROUND_HALF_UP in decimal terms). 10001 @ 5% = 500.05 -> 500;
25 @ 10% = 2.5 -> 3.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_CURRENCY = "usd"

_CURRENCY_RE = re.compile(r"^[a-z]{3}$")


def platform_fee(amount: int, percent: float) -> int:
    """Platform fee in minor units for ``amount`` at ``percent`` (0..100)."""
    if amount < 0:
        raise ValueError("amount must be non-negative")
    if not 0 <= percent <= 100:
        raise ValueError("percent must be between 0 and 100")
    fee = Decimal(amount) * Decimal(str(percent)) / Decimal(100)
    return int(fee.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize_currency(currency: str | None) -> str:
    """Lower-case an ISO currency code, defaulting to usd.

    Raises ValueError for anything that is not three letters.
    """
    code = (currency or "").strip().lower() or DEFAULT_CURRENCY
    if not _CURRENCY_RE.match(code):
        raise ValueError(f"invalid currency code: {currency!r}")
    return code


def format_percent(value: float) -> str:
    """Shortest decimal form of a percent for provider metadata (10.0 -> "10")."""
    return format(Decimal(str(value)).normalize(), "f")
