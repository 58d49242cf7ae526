"""
Fee & pricing engine.

All amounts are integer cents. Three outcomes:
- full: client pays service + add-ons + booking fee online
- fee_only: client pays only the booking fee online, the service is settled in person
- operator bypass: nothing is charged, the payout is recorded for the provider's books
"""

from dataclasses import asdict, dataclass
from typing import Iterable, Union

from ... import config
from ...models import PaymentMode
from ...shared.errors import InvariantViolation


@dataclass(frozen=True)
class FeeSchedule:
    booking_fee: int = config.BOOKING_FEE_CENTS
    platform_share: int = config.PLATFORM_SHARE_CENTS
    platform_share_reduced: int = config.PLATFORM_SHARE_REDUCED_CENTS

    def __post_init__(self):
        for name, value in asdict(self).items():
            if not isinstance(value, int) or value < 0:
                raise InvariantViolation(f"{name} must be a non-negative integer amount of cents")
        if self.platform_share > self.booking_fee or self.platform_share_reduced > self.booking_fee:
            raise InvariantViolation("The platform share cannot exceed the booking fee")


DEFAULT_FEES = FeeSchedule()


@dataclass(frozen=True)
class ChargeBreakdown:
    total: int
    platform_fee: int
    provider_payout: int
    base_price: int
    addon_total: int

    def to_dict(self) -> dict:
        return asdict(self)


def _require_cents(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvariantViolation(f"{label} must be an integer amount of cents")
    if value < 0:
        raise InvariantViolation(f"{label} cannot be negative")
    return value


def compute_charge(
    service_price: int,
    addon_prices: Iterable[int],
    payment_mode: Union[PaymentMode, str],
    is_operator_bypass: bool,
    fees: FeeSchedule = DEFAULT_FEES,
) -> ChargeBreakdown:
    """Compute what is charged and how it splits between platform and provider"""
    base_price = _require_cents(service_price, "Service price")
    addon_total = sum(_require_cents(p, "Add-on price") for p in addon_prices)
    try:
        mode = PaymentMode(payment_mode)
    except ValueError as e:
        raise InvariantViolation(f"Unknown payment mode: {payment_mode}") from e

    if is_operator_bypass:
        return ChargeBreakdown(
            total=0,
            platform_fee=0,
            provider_payout=base_price,
            base_price=base_price,
            addon_total=addon_total,
        )

    if mode is PaymentMode.FEE_ONLY:
        return ChargeBreakdown(
            total=fees.booking_fee,
            platform_fee=fees.platform_share_reduced,
            provider_payout=fees.booking_fee - fees.platform_share_reduced,
            base_price=base_price,
            addon_total=addon_total,
        )

    total = base_price + addon_total + fees.booking_fee
    return ChargeBreakdown(
        total=total,
        platform_fee=fees.platform_share,
        provider_payout=total - fees.platform_share,
        base_price=base_price,
        addon_total=addon_total,
    )
