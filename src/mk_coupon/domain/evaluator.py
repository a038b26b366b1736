"""Coupon discount evaluation: pure, no I/O, no side effects.

Checks run in a fixed order so the caller always sees the same error for the
same input: validity window, global usage cap, minimum purchase, product /
category applicability. The result is clamped to [0, cart_total].
"""
from collections.abc import Iterable
from datetime import datetime

from src.mk_common.enums import DiscountType
from src.mk_common.errors import (
    CouponExpiredError,
    CouponMinimumNotMetError,
    CouponNotApplicableError,
    CouponUsageLimitReachedError,
)
from src.mk_common.money import Money
from src.mk_coupon.domain.models import Coupon


def _is_applicable(
    coupon: Coupon, product_ids: Iterable[str], category_ids: Iterable[str]
) -> bool:
    if not coupon.is_restricted:
        return True
    if set(coupon.applicable_product_ids) & set(product_ids):
        return True
    return bool(set(coupon.applicable_category_ids) & set(category_ids))


def raw_discount(coupon: Coupon, cart_total: Money) -> Money:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = cart_total.percent(coupon.discount_value)
        if coupon.max_discount is not None and discount > coupon.max_discount:
            discount = Money(coupon.max_discount.cents, cart_total.currency)
        return discount
    return Money(coupon.discount_value, cart_total.currency)


def evaluate(
    coupon: Coupon,
    cart_total: Money,
    applicable_product_ids: Iterable[str],
    now: datetime,
    category_ids: Iterable[str] = (),
) -> Money:
    """Discount this coupon gives on `cart_total`, or raise why it does not apply."""
    if now < coupon.starts_at:
        raise CouponExpiredError(coupon.code, "Coupon is not yet valid")
    if now > coupon.ends_at:
        raise CouponExpiredError(coupon.code)
    if coupon.usage_exhausted:
        raise CouponUsageLimitReachedError(coupon.code)
    if cart_total < coupon.min_purchase:
        raise CouponMinimumNotMetError(coupon.code, coupon.min_purchase.cents)
    if not _is_applicable(coupon, applicable_product_ids, category_ids):
        raise CouponNotApplicableError(coupon.code)

    zero = Money.zero(cart_total.currency)
    return raw_discount(coupon, cart_total).clamp(zero, cart_total)
