"""Coupon domain models: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass, field
from datetime import datetime

from src.mk_common.money import Money


@dataclass
class Coupon:
    id: str
    code: str  # stored upper-case
    discount_type: str  # DiscountType value
    discount_value: int  # whole percent (1-100) or cents
    starts_at: datetime
    ends_at: datetime
    seller_id: str
    min_purchase: Money
    description: str = ""
    max_discount: Money | None = None  # percentage coupons only
    usage_cap: int | None = None  # None = unlimited
    used_count: int = 0
    per_user_limit: int | None = 1  # None = unlimited
    applicable_product_ids: list[str] = field(default_factory=list)
    applicable_category_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def currency(self) -> str:
        return self.min_purchase.currency

    @property
    def is_restricted(self) -> bool:
        return bool(self.applicable_product_ids or self.applicable_category_ids)

    @property
    def usage_exhausted(self) -> bool:
        return self.usage_cap is not None and self.used_count >= self.usage_cap


@dataclass
class CouponRedemption:
    coupon_id: str
    user_id: str
    order_id: str
    created_at: datetime
    id: int | None = None  # BIGSERIAL, assigned on insert
