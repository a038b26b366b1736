# src/mk_coupon/infrastructure/persistence.py
"""CouponRepository: raw SQL persistence implementation."""
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.money import Money
from src.mk_coupon.domain.models import Coupon, CouponRedemption

_COLUMNS = """
    id, code, description, discount_type, discount_value, currency,
    max_discount_cents, min_purchase_cents, usage_cap, used_count, per_user_limit,
    applicable_product_ids, applicable_category_ids, starts_at, ends_at,
    seller_id, is_active, created_at
"""

_INSERT_COUPON_SQL = text("""
    INSERT INTO coupons (id, code, description, discount_type, discount_value, currency,
        max_discount_cents, min_purchase_cents, usage_cap, used_count, per_user_limit,
        applicable_product_ids, applicable_category_ids, starts_at, ends_at,
        seller_id, is_active, created_at)
    VALUES (:id, :code, :description, :discount_type, :discount_value, :currency,
        :max_discount_cents, :min_purchase_cents, :usage_cap, 0, :per_user_limit,
        :applicable_product_ids, :applicable_category_ids, :starts_at, :ends_at,
        :seller_id, :is_active, :created_at)
""")

_GET_BY_CODE_SQL = text(f"SELECT {_COLUMNS} FROM coupons WHERE code = UPPER(:code)")

# Serializes redemptions of one coupon so the per-user count below it is current.
_GET_BY_CODE_FOR_UPDATE_SQL = text(
    f"SELECT {_COLUMNS} FROM coupons WHERE code = UPPER(:code) FOR UPDATE"
)

# Conditional increment: no row back means the cap was reached concurrently.
_INCREMENT_USAGE_SQL = text("""
    UPDATE coupons
    SET used_count = used_count + 1
    WHERE id = :id
      AND (usage_cap IS NULL OR used_count < usage_cap)
    RETURNING used_count
""")

_COUNT_REDEMPTIONS_SQL = text("""
    SELECT COUNT(*) FROM coupon_redemptions
    WHERE coupon_id = :coupon_id AND user_id = :user_id
""")

_INSERT_REDEMPTION_SQL = text("""
    INSERT INTO coupon_redemptions (coupon_id, user_id, order_id, created_at)
    VALUES (:coupon_id, :user_id, :order_id, :created_at)
    RETURNING id
""")


def _row_to_coupon(row: Any) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        description=row.description or "",
        discount_type=row.discount_type,
        discount_value=row.discount_value,
        max_discount=(
            Money(row.max_discount_cents, row.currency)
            if row.max_discount_cents is not None
            else None
        ),
        min_purchase=Money(row.min_purchase_cents, row.currency),
        usage_cap=row.usage_cap,
        used_count=row.used_count,
        per_user_limit=row.per_user_limit,
        applicable_product_ids=list(row.applicable_product_ids or []),
        applicable_category_ids=list(row.applicable_category_ids or []),
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        seller_id=row.seller_id,
        is_active=row.is_active,
        created_at=row.created_at,
    )


class CouponRepository:
    """Concrete implementation of CouponRepositoryProtocol using raw SQL."""

    async def insert(self, coupon: Coupon, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_COUPON_SQL,
            {
                "id": coupon.id,
                "code": coupon.code,
                "description": coupon.description,
                "discount_type": coupon.discount_type,
                "discount_value": coupon.discount_value,
                "currency": coupon.currency,
                "max_discount_cents": coupon.max_discount.cents if coupon.max_discount else None,
                "min_purchase_cents": coupon.min_purchase.cents,
                "usage_cap": coupon.usage_cap,
                "per_user_limit": coupon.per_user_limit,
                "applicable_product_ids": list(coupon.applicable_product_ids),
                "applicable_category_ids": list(coupon.applicable_category_ids),
                "starts_at": coupon.starts_at,
                "ends_at": coupon.ends_at,
                "seller_id": coupon.seller_id,
                "is_active": coupon.is_active,
                "created_at": coupon.created_at,
            },
        )

    async def get_by_code(self, code: str, db: AsyncSession) -> Coupon | None:
        row = (await db.execute(_GET_BY_CODE_SQL, {"code": code.strip()})).fetchone()
        return _row_to_coupon(row) if row else None

    async def get_by_code_for_update(self, code: str, db: AsyncSession) -> Coupon | None:
        row = (await db.execute(_GET_BY_CODE_FOR_UPDATE_SQL, {"code": code.strip()})).fetchone()
        return _row_to_coupon(row) if row else None

    async def try_increment_usage(self, coupon_id: str, db: AsyncSession) -> int | None:
        row = (await db.execute(_INCREMENT_USAGE_SQL, {"id": coupon_id})).fetchone()
        return row.used_count if row else None

    async def count_redemptions(self, coupon_id: str, user_id: str, db: AsyncSession) -> int:
        result = await db.execute(
            _COUNT_REDEMPTIONS_SQL, {"coupon_id": coupon_id, "user_id": user_id}
        )
        return int(result.scalar_one())

    async def insert_redemption(self, redemption: CouponRedemption, db: AsyncSession) -> None:
        result = await db.execute(
            _INSERT_REDEMPTION_SQL,
            {
                "coupon_id": redemption.coupon_id,
                "user_id": redemption.user_id,
                "order_id": redemption.order_id,
                "created_at": redemption.created_at,
            },
        )
        redemption.id = result.scalar_one()
