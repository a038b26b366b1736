"""Integer money arithmetic for the marketplace.

All prices, discounts, taxes and totals are int minor units (cents) tagged
with a currency code. No float, no Decimal. Rounding happens only where a
rate is applied (tax, percentage discount) and when formatting for display.
"""

from dataclasses import dataclass
from functools import total_ordering


class CurrencyMismatchError(ValueError):
    def __init__(self, left: str, right: str) -> None:
        super().__init__(f"Currency mismatch: {left} vs {right}")


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"


def apply_bps_half_up(cents: int, rate_bps: int) -> int:
    """cents * rate_bps / 10000, rounded half-up to the cent (used for tax)."""
    if cents == 0 or rate_bps == 0:
        return 0
    return (cents * rate_bps + 5000) // 10000


def percent_floor(cents: int, percent: int) -> int:
    """cents * percent / 100, floored (the buyer never gets a fraction of a cent)."""
    return (cents * percent) // 100


@total_ordering
@dataclass(frozen=True)
class Money:
    cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.cents, int) or isinstance(self.cents, bool):
            raise TypeError(f"Money.cents must be int, got {type(self.cents).__name__}")

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(0, currency)

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.cents + other.cents, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.cents - other.cents, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.cents < other.cents

    def times(self, quantity: int) -> "Money":
        return Money(self.cents * quantity, self.currency)

    def percent(self, percent: int) -> "Money":
        return Money(percent_floor(self.cents, percent), self.currency)

    def apply_bps(self, rate_bps: int) -> "Money":
        return Money(apply_bps_half_up(self.cents, rate_bps), self.currency)

    def clamp(self, low: "Money", high: "Money") -> "Money":
        self._check(low)
        self._check(high)
        return Money(max(low.cents, min(self.cents, high.cents)), self.currency)

    @property
    def is_zero(self) -> bool:
        return self.cents == 0

    @property
    def is_negative(self) -> bool:
        return self.cents < 0

    def display(self) -> str:
        return cents_to_display(self.cents)


def sum_money(items: list[Money], currency: str = "USD") -> Money:
    total = Money.zero(currency)
    for m in items:
        total = total + m
    return total
