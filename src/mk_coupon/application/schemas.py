"""Pydantic schemas for mk_coupon API requests/responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from src.mk_common.money import Money
from src.mk_coupon.domain.models import Coupon


class CreateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=500)
    discount_type: Literal["percentage", "fixed"]
    discount_value: int = Field(..., gt=0, description="Whole percent, or cents for fixed")
    max_discount_cents: int | None = Field(None, gt=0)
    min_purchase_cents: int = Field(0, ge=0)
    usage_cap: int | None = Field(None, ge=1)
    per_user_limit: int | None = Field(1, ge=1)
    applicable_product_ids: list[str] = Field(default_factory=list)
    applicable_category_ids: list[str] = Field(default_factory=list)
    starts_at: datetime
    ends_at: datetime

    @field_validator("code")
    @classmethod
    def no_whitespace(cls, v: str) -> str:
        if not v.strip() or " " in v.strip():
            raise ValueError("code must not contain whitespace")
        return v.strip()


class CouponResponse(BaseModel):
    id: str
    code: str
    description: str
    discount_type: str
    discount_value: int
    currency: str
    max_discount_cents: int | None
    min_purchase_cents: int
    usage_cap: int | None
    used_count: int
    per_user_limit: int | None
    applicable_product_ids: list[str]
    applicable_category_ids: list[str]
    starts_at: datetime
    ends_at: datetime
    seller_id: str
    is_active: bool

    @classmethod
    def from_domain(cls, c: Coupon) -> "CouponResponse":
        return cls(
            id=c.id,
            code=c.code,
            description=c.description,
            discount_type=c.discount_type,
            discount_value=c.discount_value,
            currency=c.currency,
            max_discount_cents=c.max_discount.cents if c.max_discount else None,
            min_purchase_cents=c.min_purchase.cents,
            usage_cap=c.usage_cap,
            used_count=c.used_count,
            per_user_limit=c.per_user_limit,
            applicable_product_ids=list(c.applicable_product_ids),
            applicable_category_ids=list(c.applicable_category_ids),
            starts_at=c.starts_at,
            ends_at=c.ends_at,
            seller_id=c.seller_id,
            is_active=c.is_active,
        )


class CouponPreviewResponse(BaseModel):
    code: str
    cart_total_cents: int
    discount_cents: int
    discount_display: str
    total_after_discount_cents: int

    @classmethod
    def build(cls, coupon: Coupon, cart_total: Money, discount: Money) -> "CouponPreviewResponse":
        return cls(
            code=coupon.code,
            cart_total_cents=cart_total.cents,
            discount_cents=discount.cents,
            discount_display=discount.display(),
            total_after_discount_cents=(cart_total - discount).cents,
        )
