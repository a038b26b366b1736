"""CouponRepository Protocol: interface contract for persistence layer.

`try_increment_usage` is a conditional update: it returns the new used_count,
or None when the usage cap was already reached. `get_by_code_for_update` row-locks
the coupon until the surrounding transaction ends.
"""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_coupon.domain.models import Coupon, CouponRedemption


class CouponRepositoryProtocol(Protocol):
    async def insert(self, coupon: Coupon, db: AsyncSession) -> None: ...

    async def get_by_code(self, code: str, db: AsyncSession) -> Coupon | None: ...

    async def get_by_code_for_update(self, code: str, db: AsyncSession) -> Coupon | None: ...

    async def try_increment_usage(self, coupon_id: str, db: AsyncSession) -> int | None: ...

    async def count_redemptions(self, coupon_id: str, user_id: str, db: AsyncSession) -> int: ...

    async def insert_redemption(self, redemption: CouponRedemption, db: AsyncSession) -> None: ...
