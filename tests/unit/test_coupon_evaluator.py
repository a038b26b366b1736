"""Tests for the pure coupon evaluator."""
from datetime import UTC, datetime, timedelta

import pytest

from src.mk_common.errors import (
    CouponExpiredError,
    CouponMinimumNotMetError,
    CouponNotApplicableError,
    CouponUsageLimitReachedError,
)
from src.mk_common.money import Money
from src.mk_coupon.domain.evaluator import evaluate, raw_discount
from src.mk_coupon.domain.models import Coupon

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _make_coupon(**kwargs) -> Coupon:
    defaults = dict(
        id="C-1", code="SAVE10", discount_type="percentage", discount_value=10,
        starts_at=NOW - timedelta(days=1), ends_at=NOW + timedelta(days=1),
        seller_id="seller-1", min_purchase=Money(2000),
    )
    defaults.update(kwargs)
    return Coupon(**defaults)


class TestDiscountAmount:
    def test_save10_on_fifty_dollars(self) -> None:
        assert evaluate(_make_coupon(), Money(5000), [], NOW) == Money(500)

    def test_percentage_floors_fraction(self) -> None:
        assert evaluate(_make_coupon(), Money(2999), [], NOW) == Money(299)

    def test_percentage_capped_by_max_discount(self) -> None:
        coupon = _make_coupon(discount_value=50, max_discount=Money(1500))
        assert evaluate(coupon, Money(10000), [], NOW) == Money(1500)

    def test_fixed_discount(self) -> None:
        coupon = _make_coupon(discount_type="fixed", discount_value=700)
        assert evaluate(coupon, Money(5000), [], NOW) == Money(700)

    def test_fixed_discount_clamped_to_total(self) -> None:
        coupon = _make_coupon(discount_type="fixed", discount_value=3000, min_purchase=Money(0))
        assert evaluate(coupon, Money(2000), [], NOW) == Money(2000)

    def test_full_percentage(self) -> None:
        coupon = _make_coupon(discount_value=100, min_purchase=Money(0))
        assert evaluate(coupon, Money(1234), [], NOW) == Money(1234)

    @pytest.mark.parametrize("total", [2000, 2001, 4999, 10_000, 123_457])
    def test_discount_within_zero_and_total(self, total: int) -> None:
        for coupon in (
            _make_coupon(),
            _make_coupon(discount_type="fixed", discount_value=5000),
        ):
            discount = evaluate(coupon, Money(total), [], NOW)
            assert 0 <= discount.cents <= total

    def test_raw_discount_is_unclamped(self) -> None:
        coupon = _make_coupon(discount_type="fixed", discount_value=3000)
        assert raw_discount(coupon, Money(2000)) == Money(3000)


class TestRejections:
    def test_below_minimum(self) -> None:
        with pytest.raises(CouponMinimumNotMetError):
            evaluate(_make_coupon(), Money(1500), [], NOW)

    def test_minimum_is_inclusive(self) -> None:
        assert evaluate(_make_coupon(), Money(2000), [], NOW) == Money(200)

    def test_not_yet_valid(self) -> None:
        coupon = _make_coupon(starts_at=NOW + timedelta(hours=1))
        with pytest.raises(CouponExpiredError, match="not yet valid"):
            evaluate(coupon, Money(5000), [], NOW)

    def test_expired(self) -> None:
        coupon = _make_coupon(ends_at=NOW - timedelta(seconds=1))
        with pytest.raises(CouponExpiredError, match="expired"):
            evaluate(coupon, Money(5000), [], NOW)

    def test_window_bounds_inclusive(self) -> None:
        coupon = _make_coupon(starts_at=NOW, ends_at=NOW + timedelta(days=1))
        assert evaluate(coupon, Money(5000), [], NOW) == Money(500)
        assert evaluate(coupon, Money(5000), [], coupon.ends_at) == Money(500)

    def test_usage_cap_reached(self) -> None:
        coupon = _make_coupon(usage_cap=3, used_count=3)
        with pytest.raises(CouponUsageLimitReachedError):
            evaluate(coupon, Money(5000), [], NOW)

    def test_expiry_checked_before_minimum(self) -> None:
        coupon = _make_coupon(ends_at=NOW - timedelta(days=1))
        with pytest.raises(CouponExpiredError):
            evaluate(coupon, Money(100), [], NOW)


class TestApplicability:
    def test_product_restriction(self) -> None:
        coupon = _make_coupon(applicable_product_ids=["L-1"])
        assert evaluate(coupon, Money(5000), ["L-9", "L-1"], NOW) == Money(500)
        with pytest.raises(CouponNotApplicableError):
            evaluate(coupon, Money(5000), ["L-9"], NOW)

    def test_category_restriction(self) -> None:
        coupon = _make_coupon(applicable_category_ids=["cat-books"])
        assert evaluate(coupon, Money(5000), ["L-9"], NOW, ["cat-books"]) == Money(500)
        with pytest.raises(CouponNotApplicableError):
            evaluate(coupon, Money(5000), ["L-9"], NOW, ["cat-toys"])

    def test_unrestricted_applies_to_anything(self) -> None:
        assert evaluate(_make_coupon(), Money(5000), ["anything"], NOW) == Money(500)
