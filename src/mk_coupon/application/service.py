"""CouponService: coupon creation, preview and redemption.

Redemption is called by settlement inside its savepoint, so the usage
increment and the redemption row roll back together with the order.
"""
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.datetime_utils import ensure_utc, utc_now
from src.mk_common.enums import DiscountType
from src.mk_common.errors import (
    CouponCodeExistsError,
    CouponNotFoundError,
    CouponUsageLimitReachedError,
    CouponUserLimitReachedError,
    InvalidCouponError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.money import Money
from src.mk_coupon.domain.evaluator import evaluate
from src.mk_coupon.domain.models import Coupon, CouponRedemption
from src.mk_coupon.domain.repository import CouponRepositoryProtocol
from src.mk_coupon.infrastructure.persistence import CouponRepository

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def coupon_lock_key(code: str) -> str:
    """Keyed-lock name for redemptions of one coupon."""
    return f"coupon:{normalize_code(code)}"


class CouponService:
    def __init__(
        self,
        repo: CouponRepositoryProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: CouponRepositoryProtocol = repo or CouponRepository()
        self._clock = clock

    async def create_coupon(
        self,
        db: AsyncSession,
        seller_id: str,
        code: str,
        discount_type: str,
        discount_value: int,
        starts_at: datetime,
        ends_at: datetime,
        description: str = "",
        max_discount_cents: int | None = None,
        min_purchase_cents: int = 0,
        usage_cap: int | None = None,
        per_user_limit: int | None = 1,
        applicable_product_ids: Iterable[str] = (),
        applicable_category_ids: Iterable[str] = (),
        currency: str = "USD",
    ) -> Coupon:
        code = normalize_code(code)
        if not code:
            raise InvalidCouponError("code must not be empty")
        if discount_type == DiscountType.PERCENTAGE:
            if not 1 <= discount_value <= 100:
                raise InvalidCouponError("percentage must be between 1 and 100")
        elif discount_type == DiscountType.FIXED:
            if discount_value <= 0:
                raise InvalidCouponError("fixed discount must be greater than 0")
            if max_discount_cents is not None:
                raise InvalidCouponError("max discount applies to percentage coupons only")
        else:
            raise InvalidCouponError(f"unknown discount type {discount_type}")
        if max_discount_cents is not None and max_discount_cents <= 0:
            raise InvalidCouponError("max discount must be greater than 0")
        if min_purchase_cents < 0:
            raise InvalidCouponError("minimum purchase must not be negative")
        if usage_cap is not None and usage_cap < 1:
            raise InvalidCouponError("usage cap must be at least 1")
        if per_user_limit is not None and per_user_limit < 1:
            raise InvalidCouponError("per-user limit must be at least 1")
        starts_at, ends_at = ensure_utc(starts_at), ensure_utc(ends_at)
        if ends_at <= starts_at:
            raise InvalidCouponError("end date must be after start date")

        if await self._repo.get_by_code(code, db) is not None:
            raise CouponCodeExistsError(code)

        coupon = Coupon(
            id=generate_id(),
            code=code,
            description=description,
            discount_type=DiscountType(discount_type).value,
            discount_value=discount_value,
            max_discount=Money(max_discount_cents, currency) if max_discount_cents else None,
            min_purchase=Money(min_purchase_cents, currency),
            usage_cap=usage_cap,
            per_user_limit=per_user_limit,
            applicable_product_ids=list(applicable_product_ids),
            applicable_category_ids=list(applicable_category_ids),
            starts_at=starts_at,
            ends_at=ends_at,
            seller_id=seller_id,
            created_at=self._clock(),
        )
        # The unique index on code is the final guard against a concurrent create.
        try:
            async with db.begin_nested():
                await self._repo.insert(coupon, db)
        except IntegrityError:
            raise CouponCodeExistsError(code) from None
        logger.info("Coupon %s created by seller %s", code, seller_id)
        return coupon

    async def get_active(self, db: AsyncSession, code: str) -> Coupon:
        coupon = await self._repo.get_by_code(normalize_code(code), db)
        if coupon is None or not coupon.is_active:
            raise CouponNotFoundError(normalize_code(code))
        return coupon

    async def preview(
        self,
        db: AsyncSession,
        code: str,
        cart_total: Money,
        product_ids: Iterable[str],
        category_ids: Iterable[str] = (),
        user_id: str | None = None,
    ) -> tuple[Coupon, Money]:
        """Evaluate without redeeming."""
        coupon = await self.get_active(db, code)
        discount = evaluate(coupon, cart_total, product_ids, self._clock(), category_ids)
        if user_id is not None:
            await self._check_user_limit(db, coupon, user_id)
        return coupon, discount

    async def redeem(
        self,
        db: AsyncSession,
        code: str,
        user_id: str,
        order_id: str,
        cart_total: Money,
        product_ids: Iterable[str],
        category_ids: Iterable[str] = (),
    ) -> tuple[Coupon, Money]:
        """Evaluate, count one use and record the redemption.

        Must run inside the caller's savepoint, holding `coupon_lock_key(code)`.
        The coupon row stays locked until the transaction ends, so a second
        checkout by the same user waits and then sees this redemption.
        """
        coupon = await self._repo.get_by_code_for_update(normalize_code(code), db)
        if coupon is None or not coupon.is_active:
            raise CouponNotFoundError(normalize_code(code))
        now = self._clock()
        discount = evaluate(coupon, cart_total, product_ids, now, category_ids)
        await self._check_user_limit(db, coupon, user_id)

        used = await self._repo.try_increment_usage(coupon.id, db)
        if used is None:
            logger.debug("Coupon %s hit its usage cap concurrently", coupon.code)
            raise CouponUsageLimitReachedError(coupon.code)
        coupon.used_count = used
        await self._repo.insert_redemption(
            CouponRedemption(coupon_id=coupon.id, user_id=user_id, order_id=order_id, created_at=now),
            db,
        )
        return coupon, discount

    async def _check_user_limit(self, db: AsyncSession, coupon: Coupon, user_id: str) -> None:
        if coupon.per_user_limit is None:
            return
        used_by_user = await self._repo.count_redemptions(coupon.id, user_id, db)
        if used_by_user >= coupon.per_user_limit:
            raise CouponUserLimitReachedError(coupon.code)
