"""Order pricing: subtotal, coupon discount, tax and shipping."""
import pytest

from src.mk_common.money import Money
from src.mk_order.domain.models import OrderLine
from src.mk_order.domain.pricing import PricingPolicy, price_order, shipping_for, subtotal_of

POLICY = PricingPolicy(tax_rate_bps=1000, default_shipping_cents=599, free_shipping_threshold_cents=5000)


def _line(unit_cents: int, quantity: int = 1, shipping: int | None = None, seller: str = "s1") -> OrderLine:
    return OrderLine(
        listing_id=f"L-{unit_cents}",
        seller_id=seller,
        title="item",
        quantity=quantity,
        unit_price=Money(unit_cents),
        shipping=Money(shipping) if shipping is not None else None,
    )


class TestPriceOrder:
    def test_two_items_default_shipping(self) -> None:
        breakdown = price_order([_line(2500, 2)], Money(0), POLICY)
        assert breakdown.subtotal == Money(5000)
        assert breakdown.tax == Money(500)
        assert breakdown.shipping == Money(599)
        assert breakdown.total == Money(6099)

    def test_free_shipping_above_threshold(self) -> None:
        breakdown = price_order([_line(3000, 2)], Money(0), POLICY)
        assert breakdown.shipping == Money(0)
        assert breakdown.total == Money(6600)

    def test_threshold_itself_still_pays_shipping(self) -> None:
        assert shipping_for([_line(5000)], Money(5000), POLICY) == Money(599)

    def test_per_item_shipping_is_summed(self) -> None:
        breakdown = price_order([_line(1000, 2, shipping=300)], Money(0), POLICY)
        assert breakdown.shipping == Money(600)

    def test_per_item_shipping_overrides_free_threshold(self) -> None:
        lines = [_line(4000, 2, shipping=250), _line(1000, 1)]
        assert price_order(lines, Money(0), POLICY).shipping == Money(500)

    def test_tax_applies_after_discount(self) -> None:
        breakdown = price_order([_line(2500, 2)], Money(500), POLICY)
        assert breakdown.discount == Money(500)
        assert breakdown.tax == Money(450)
        assert breakdown.total == Money(5000 - 500 + 450 + 599)

    @pytest.mark.parametrize(("subtotal", "tax"), [(1004, 100), (1005, 101), (1, 0), (5, 1)])
    def test_tax_rounds_half_up(self, subtotal: int, tax: int) -> None:
        assert price_order([_line(subtotal)], Money(0), POLICY).tax == Money(tax)

    def test_total_identity_holds(self) -> None:
        lines = [_line(1999, 3, seller="s1"), _line(749, 2, seller="s2")]
        b = price_order(lines, Money(321), POLICY)
        assert b.total == b.subtotal - b.discount + b.tax + b.shipping

    def test_subtotal_of(self) -> None:
        assert subtotal_of([_line(100, 3), _line(250, 2)], "USD") == Money(800)
