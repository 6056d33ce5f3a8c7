"""Commission split for invoices.

All money math is Decimal, quantized to cents with ROUND_HALF_UP. The
platform commission is rounded; talent earnings are the remainder, so the
two always add back up to the invoice total exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..core.config import settings

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommissionSplit:
    total_amount: Decimal
    commission_rate: Decimal
    platform_commission: Decimal
    talent_earnings: Decimal


def to_money(value: Decimal | int | float | str) -> Decimal:
    # str() first so floats like 0.1 do not drag binary noise into Decimal
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def commission_rate_for(is_pro_subscriber: bool) -> Decimal:
    """Return the platform commission percentage for a talent's tier."""
    rate = settings.COMMISSION_RATE_PRO if is_pro_subscriber else settings.COMMISSION_RATE_STANDARD
    return Decimal(str(rate)).quantize(CENT)


def split_amount(total: Decimal | int | float | str, rate_percent: Decimal | int | float | str) -> CommissionSplit:
    total_dec = to_money(total)
    rate = Decimal(str(rate_percent))
    if rate < 0 or rate > 100:
        raise ValueError("commission rate must be between 0 and 100")
    commission = (total_dec * rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return CommissionSplit(
        total_amount=total_dec,
        commission_rate=rate.quantize(CENT),
        platform_commission=commission,
        talent_earnings=total_dec - commission,
    )


def rate_amount(hourly_rate: Optional[Decimal], duration_hours: Optional[Decimal]) -> Decimal:
    """Invoice total for direct bookings: hourly rate x booked hours."""
    if hourly_rate is None or duration_hours is None:
        return Decimal("0.00")
    return to_money(Decimal(str(hourly_rate)) * Decimal(str(duration_hours)))
