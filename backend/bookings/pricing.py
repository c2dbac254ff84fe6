from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

HOST_SHARE = Decimal("0.90")
PLATFORM_COMMISSION_RATE = Decimal("1") - HOST_SHARE


def round_amount(value: Decimal | int | float) -> int:
    """Round to whole currency units, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PricingBreakdown:
    base_price: int
    number_of_nights: int
    cleaning_fee: int
    service_fee: int
    total_amount: int
    host_amount: int
    platform_commission: int

    def as_dict(self) -> dict:
        return {
            "base_price": self.base_price,
            "number_of_nights": self.number_of_nights,
            "cleaning_fee": self.cleaning_fee,
            "service_fee": self.service_fee,
            "total_amount": self.total_amount,
            "host_amount": self.host_amount,
            "platform_commission": self.platform_commission,
        }


def split_total(total_amount: int) -> tuple[int, int]:
    """
    Split a booking total into (host_amount, platform_commission).

    The host share is rounded; whatever rounding leaves over goes to the platform
    commission so the two parts always add back to the total.
    """
    if total_amount < 0:
        raise ValueError("Total amount cannot be negative")
    host_amount = round_amount(Decimal(total_amount) * HOST_SHARE)
    return host_amount, total_amount - host_amount


def calculate_pricing(
    *,
    base_price: int,
    number_of_nights: int,
    cleaning_fee: int = 0,
    service_fee: int = 0,
) -> PricingBreakdown:
    if number_of_nights < 1:
        raise ValueError("A booking must cover at least one night")
    total_amount = base_price * number_of_nights + cleaning_fee + service_fee
    host_amount, platform_commission = split_total(total_amount)
    return PricingBreakdown(
        base_price=base_price,
        number_of_nights=number_of_nights,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        total_amount=total_amount,
        host_amount=host_amount,
        platform_commission=platform_commission,
    )
