"""Exact decimal currency amounts.

Money never passes through binary floating point: it is built from strings,
integers or Decimals, always carries exactly two fraction digits, and every
operation that could lose precision either rounds explicitly (half-up) or
refuses the input with InvalidAmount.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from stms_billing.domain.exceptions import InvalidAmount

CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")  # weights, distances, fuel, odometer readings
HUNDRED = Decimal(100)


def _to_decimal(value) -> Decimal:
    """Coerce an input to Decimal, rejecting floats and malformed strings"""
    if isinstance(value, Money):
        return value.amount
    # bool is an int subclass; floats are never exact
    if isinstance(value, (bool, float)):
        raise InvalidAmount(f"Amount must be an exact decimal, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as e:
            raise InvalidAmount(f"Malformed amount: {value!r}") from e
    else:
        raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {value!r}")
    return result


def _exact(value: Decimal, step: Decimal) -> Decimal:
    try:
        quantized = value.quantize(step)
    except InvalidOperation as e:
        raise InvalidAmount(f"Amount out of range: {value}") from e
    if quantized != value:
        raise InvalidAmount(f"{value} has more precision than {step}")
    return quantized


def parse_quantity(value, step: Decimal = QUANTITY_STEP) -> Decimal:
    """Parse a non-currency measurement (weight, distance, fuel) exactly"""
    return _exact(_to_decimal(value), step)


@dataclass(frozen=True, order=True)
class Money:
    """Currency amount with exactly two fraction digits"""

    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _exact(_to_decimal(self.amount), CENT))

    @classmethod
    def of(cls, value: Union["Money", Decimal, int, str]) -> "Money":
        if isinstance(value, Money):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal("0"))

    @classmethod
    def rounded(cls, value: Union[Decimal, int, str]) -> "Money":
        """Round an arbitrary-precision value half-up to the cent"""
        return cls(_to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))

    @classmethod
    def from_minor_units(cls, paise: int) -> "Money":
        return cls(Decimal(paise).scaleb(-2))

    def to_minor_units(self) -> int:
        return int(self.amount.scaleb(2))

    def add(self, other: "Money") -> "Money":
        return Money(self.amount + Money.of(other).amount)

    def subtract(self, other: "Money", *, clamp: bool) -> "Money":
        """
        Subtract other from self.

        Callers must say whether the domain forbids a negative result
        (clamp=True floors at zero) or wants the raw difference.
        """
        result = Money(self.amount - Money.of(other).amount)
        if clamp and result.is_negative():
            return Money.zero()
        return result

    def percentage_of(self, pct: Union[Decimal, int, str]) -> "Money":
        """pct percent of this amount, rounded half-up to the cent"""
        return Money.rounded(self.amount * _to_decimal(pct) / HUNDRED)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __radd__(self, other) -> "Money":
        # lets sum() start from the integer 0
        if other == 0:
            return self
        return NotImplemented

    def __str__(self) -> str:
        return str(self.amount)
