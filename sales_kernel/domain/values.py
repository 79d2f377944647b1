"""
Values -- Immutable, self-validating money value object.

Responsibility:
    Provides ``Money``, the fixed-point two-decimal amount used by every
    monetary field in the sale-to-cash core (sale totals, line subtotals,
    ledger balances, payment amounts).  Replaces raw ``Decimal``/``float``
    wherever money appears in domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every module.  No outward dependencies except
    ``sales_kernel.exceptions``.

Invariants enforced:
    - Scale is always exactly 2 (``MONEY_DECIMAL_PLACES``).
    - Construction never rounds: an input carrying more than two decimals,
      or a NaN/infinite input, is rejected with ``InvalidAmountError``.
    - The only rounding operation is ``percent_of`` / ``round_half_up``,
      applied once per call with ROUND_HALF_UP.
    - Floats are accepted only through their shortest ``repr`` so that
      ``0.1`` becomes ``Decimal("0.1")``; they are never summed.

Failure modes:
    - InvalidAmountError on NaN, infinity, booleans, unparsable strings,
      over-precise values, or negatives without ``signed=True``.
    - NegativeResultError when ``subtract`` would drop below zero and the
      caller did not allow it.
    - TypeError when arithmetic mixes Money with non-Money operands.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from sales_kernel.exceptions import InvalidAmountError, NegativeResultError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
_HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """
    Convert raw numeric input to a finite ``Decimal`` without rounding.

    Raises:
        InvalidAmountError: for booleans, unsupported types, unparsable
            strings and NaN/infinite values.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value, "booleans are not amounts")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidAmountError(value, "not a finite number")
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as e:
            raise InvalidAmountError(value, "not a number") from e
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    return result


def _to_scale(value: Decimal, original: Any) -> Decimal:
    try:
        scaled = value.quantize(_QUANTUM)
    except InvalidOperation as e:
        raise InvalidAmountError(original, "too large to represent") from e
    if scaled != value:
        raise InvalidAmountError(
            original, f"more than {MONEY_DECIMAL_PLACES} decimal places"
        )
    # Normalize negative zero
    return scaled.copy_abs() if scaled.is_zero() else scaled


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Wraps a ``Decimal`` quantized to exactly two places.  Arithmetic
        between Money values is exact; nothing is ever rounded implicitly.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - ``amount`` is always a finite Decimal with exponent -2
        - ``add``/``subtract``/``multiply_by_quantity`` are lossless

    Non-goals:
        - Does NOT carry a currency (single-currency ledger)
        - Does NOT allow division; use ``percent_of`` for proportional amounts
    """

    amount: Decimal

    def __post_init__(self) -> None:
        original = self.amount
        object.__setattr__(self, "amount", _to_scale(to_decimal(original), original))

    @classmethod
    def of(cls, value: Money | Decimal | int | str | float, *, signed: bool = False) -> Money:
        """
        Factory method for creating Money from raw input.

        Preconditions:
            - value has at most two decimal places
            - value is non-negative unless ``signed`` is True

        Raises:
            InvalidAmountError: If value is malformed, over-precise, or
                negative without ``signed=True``.
        """
        money = value if isinstance(value, Money) else cls(value)
        if money.amount < 0 and not signed:
            raise InvalidAmountError(value, "negative amounts require signed=True")
        return money

    @classmethod
    def zero(cls) -> Money:
        """Create a zero amount."""
        return cls(Decimal("0"))

    @classmethod
    def sum(cls, amounts: Iterable[Money]) -> Money:
        """Exact sum of Money values (zero for an empty iterable)."""
        total = Decimal("0")
        for money in amounts:
            total += _require_money(money).amount
        return cls(total)

    @classmethod
    def round_half_up(cls, value: Decimal | int | str) -> Money:
        """Round an arbitrary-precision value to the money scale, once."""
        decimal_value = to_decimal(value)
        return cls(decimal_value.quantize(_QUANTUM, rounding=DEFAULT_ROUNDING))

    @property
    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        """Check if amount is positive."""
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        """Check if amount is negative."""
        return self.amount < 0

    def add(self, other: Money) -> Money:
        return Money(self.amount + _require_money(other).amount)

    def subtract(self, other: Money, *, allow_negative: bool = False) -> Money:
        """
        Subtract ``other`` from this amount.

        Balance-style callers keep the default and get
        ``NegativeResultError`` instead of a negative result.
        """
        result = self.amount - _require_money(other).amount
        if result < 0 and not allow_negative:
            raise NegativeResultError(self, other)
        return Money(result)

    def multiply_by_quantity(self, quantity: int) -> Money:
        """Multiply by a whole quantity (exact)."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError(f"quantity must be int, got {type(quantity).__name__}")
        return Money(self.amount * quantity)

    def percent_of(self, percent: Decimal | int | str) -> Money:
        """``percent`` % of this amount, rounded half-up exactly once."""
        return Money.round_half_up(self.amount * to_decimal(percent) / _HUNDRED)

    def compare(self, other: Money) -> int:
        """Return -1, 0 or 1 as this amount is below, equal to or above ``other``."""
        other_amount = _require_money(other).amount
        if self.amount < other_amount:
            return -1
        if self.amount > other_amount:
            return 1
        return 0

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.subtract(other)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money({str(self.amount)!r})"


def _require_money(value: Any) -> Money:
    if not isinstance(value, Money):
        raise TypeError(f"expected Money, got {type(value).__name__}")
    return value
