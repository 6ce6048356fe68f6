"""
Two-currency amounts.

USD is a Decimal with two places, LBP is an integer. Floats
are rejected outright so rounding drift can never reach the
ledger.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from delivery_ledger.exceptions import InvalidAmount

USD_PLACES = Decimal("0.01")


def to_usd(value, field: str = "amount_usd") -> Decimal:
    """Convert input to a 2-place Decimal, rejecting floats and extra precision."""
    if isinstance(value, (float, bool)):
        raise InvalidAmount(f"{field} must be a decimal, not {type(value).__name__}")
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{field} is not a number: {value!r}")
    if not amount.is_finite():
        raise InvalidAmount(f"{field} is not a number: {value!r}")
    if amount != amount.quantize(USD_PLACES):
        raise InvalidAmount(f"{field} has more than 2 decimal places: {value}")
    return amount.quantize(USD_PLACES)


def to_lbp(value, field: str = "amount_lbp") -> int:
    """Convert input to whole Lebanese pounds."""
    if isinstance(value, (float, bool)):
        raise InvalidAmount(f"{field} must be an integer, not {type(value).__name__}")
    if isinstance(value, int):
        return value
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{field} is not a number: {value!r}")
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise InvalidAmount(f"{field} must be a whole number of LBP: {value}")
    return int(amount)


@dataclass(frozen=True)
class Money:
    """An amount in both currencies. Either side may be negative."""

    usd: Decimal = Decimal("0.00")
    lbp: int = 0

    @classmethod
    def of(cls, usd=0, lbp=0) -> "Money":
        return cls(to_usd(usd), to_lbp(lbp))

    @classmethod
    def non_negative(cls, usd=0, lbp=0) -> "Money":
        """Parse user input for an operation amount; negatives are refused."""
        money = cls.of(usd, lbp)
        if money.usd < 0 or money.lbp < 0:
            raise InvalidAmount(
                f"Amounts must not be negative: usd={money.usd}, lbp={money.lbp}"
            )
        return money

    @classmethod
    def zero(cls) -> "Money":
        return cls()

    def is_zero(self) -> bool:
        return self.usd == 0 and self.lbp == 0

    def is_negative(self) -> bool:
        """True if either currency is below zero."""
        return self.usd < 0 or self.lbp < 0

    def positive_part(self) -> "Money":
        return Money(max(self.usd, Decimal("0.00")), max(self.lbp, 0))

    def negative_part(self) -> "Money":
        """Magnitude of the negative components, as a non-negative amount."""
        return Money(max(-self.usd, Decimal("0.00")), max(-self.lbp, 0))

    def __add__(self, other: "Money") -> "Money":
        return Money(self.usd + other.usd, self.lbp + other.lbp)

    def __sub__(self, other: "Money") -> "Money":
        return Money(self.usd - other.usd, self.lbp - other.lbp)

    def __neg__(self) -> "Money":
        return Money(-self.usd, -self.lbp)

    def __str__(self) -> str:
        return f"{self.usd} USD / {self.lbp} LBP"
