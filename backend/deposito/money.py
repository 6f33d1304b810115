# Overview: Fixed-point currency value type; every financial amount in the engine is a Money.

"""
Money invariants (authoritative)

- Amounts are whole minor units (centavos), stored as int. No float path.
- Parsing from a decimal string/number rounds to the nearest centavo, half-up.
- Subtraction may go negative (variance); callers check sign where it matters.
- Conversion to display currency happens only at the boundary (format()).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvalidAmount


CENTS_PER_UNIT = 100

# Maximum price: R$9.999.999,99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def _check_cents(value) -> int:
    # bool is an int subclass; True must not become one centavo
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(
            "amount must be an integer number of cents",
            details={"value": repr(value)},
        )
    return value


@dataclass(frozen=True, order=True)
class Money:
    cents: int

    def __post_init__(self):
        _check_cents(self.cents)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def from_decimal(cls, value, *, allow_negative: bool = False, field: str = "amount") -> "Money":
        """
        Parse a display amount ("6.99", 6.99, Decimal("6.99"), 7) into Money.

        Floats go through str() first so 6.99 stays 6.99 instead of
        6.9900000000000002131628...
        """
        if isinstance(value, bool) or value is None:
            raise InvalidAmount(f"{field} is not a valid amount", details={"field": field})

        raw = str(value).strip() if not isinstance(value, Decimal) else value
        try:
            dec = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise InvalidAmount(f"{field} is not a valid amount", details={"field": field, "value": str(value)})

        if not dec.is_finite():
            raise InvalidAmount(f"{field} is not a valid amount", details={"field": field, "value": str(value)})

        if dec < 0 and not allow_negative:
            raise InvalidAmount(f"{field} cannot be negative", details={"field": field, "value": str(value)})

        cents = (dec * CENTS_PER_UNIT).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return cls(int(cents))

    @classmethod
    def sum(cls, amounts) -> "Money":
        total = cls.zero()
        for amount in amounts:
            total = total + amount
        return total

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: "Money") -> "Money":
        return Money(self.cents + _as_money(other).cents)

    def subtract(self, other: "Money") -> "Money":
        return Money(self.cents - _as_money(other).cents)

    def multiply(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Money can only be multiplied by an integer quantity")
        return Money(self.cents * quantity)

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __rmul__ = multiply

    def __neg__(self) -> "Money":
        return Money(-self.cents)

    # ------------------------------------------------------------------
    # Predicates / conversion
    # ------------------------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return self.cents == 0

    @property
    def is_negative(self) -> bool:
        return self.cents < 0

    @property
    def is_positive(self) -> bool:
        return self.cents > 0

    def to_decimal(self) -> Decimal:
        return (Decimal(self.cents) / CENTS_PER_UNIT).quantize(Decimal("0.01"))

    def format(self, symbol: str = "R$") -> str:
        """Brazilian display format: R$ 1.234,56 / -R$ 1,50."""
        sign = "-" if self.cents < 0 else ""
        units, minor = divmod(abs(self.cents), CENTS_PER_UNIT)
        grouped = f"{units:,}".replace(",", ".")
        return f"{sign}{symbol} {grouped},{minor:02d}"

    def __str__(self) -> str:
        return self.format()


def _as_money(value) -> Money:
    if not isinstance(value, Money):
        raise TypeError(f"expected Money, got {type(value).__name__}")
    return value


def require_non_negative(amount: Money, field: str = "amount") -> Money:
    if not isinstance(amount, Money):
        raise InvalidAmount(f"{field} must be a Money value", details={"field": field})
    if amount.is_negative:
        raise InvalidAmount(f"{field} cannot be negative", details={"field": field, "cents": amount.cents})
    return amount


def require_positive(amount: Money, field: str = "amount") -> Money:
    if not isinstance(amount, Money):
        raise InvalidAmount(f"{field} must be a Money value", details={"field": field})
    if not amount.is_positive:
        raise InvalidAmount(f"{field} must be greater than zero", details={"field": field, "cents": amount.cents})
    return amount


def optional_money(cents: int | None) -> Money | None:
    """Wrap a nullable *_cents column value."""
    return Money(cents) if cents is not None else None
