"""Order pricing.

    subtotal  = Σ unit_price × quantity          (reservation snapshots)
    discount  = coupon evaluation, 0 without coupon
    tax       = (subtotal − discount) × tax_rate, half-up to the cent
    shipping  = Σ per-item shipping × quantity when any line carries one,
                else the flat default, waived above the free-shipping threshold
    total     = subtotal − discount + tax + shipping
"""
from collections.abc import Sequence
from dataclasses import dataclass

from config.settings import settings
from src.mk_common.money import Money, sum_money
from src.mk_order.domain.models import OrderLine, PriceBreakdown


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate_bps: int
    default_shipping_cents: int
    free_shipping_threshold_cents: int

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        return cls(
            tax_rate_bps=settings.TAX_RATE_BPS,
            default_shipping_cents=settings.DEFAULT_SHIPPING_CENTS,
            free_shipping_threshold_cents=settings.FREE_SHIPPING_THRESHOLD_CENTS,
        )


def subtotal_of(lines: Sequence[OrderLine], currency: str) -> Money:
    return sum_money([line.line_total for line in lines], currency)


def shipping_for(lines: Sequence[OrderLine], subtotal: Money, policy: PricingPolicy) -> Money:
    if any(line.shipping is not None for line in lines):
        return sum_money(
            [line.shipping.times(line.quantity) for line in lines if line.shipping is not None],
            subtotal.currency,
        )
    if subtotal.cents > policy.free_shipping_threshold_cents:
        return Money.zero(subtotal.currency)
    return Money(policy.default_shipping_cents, subtotal.currency)


def price_order(
    lines: Sequence[OrderLine], discount: Money, policy: PricingPolicy
) -> PriceBreakdown:
    currency = lines[0].unit_price.currency
    subtotal = subtotal_of(lines, currency)
    discounted = subtotal - discount
    tax = discounted.apply_bps(policy.tax_rate_bps)
    shipping = shipping_for(lines, subtotal, policy)
    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=discounted + tax + shipping,
    )
