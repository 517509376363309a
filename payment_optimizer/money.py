from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from payment_optimizer.errors import ValidationError

SCALE = 2
ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

_QUANTUM = Decimal(1).scaleb(-SCALE)
_INTERMEDIATE_QUANTUM = Decimal(1).scaleb(-(SCALE + 2))

AmountLike = Union[str, int, float, Decimal]


def to_decimal(raw: AmountLike) -> Decimal:
    """Convert raw input into a Decimal going through str() for floats."""
    if isinstance(raw, bool):
        raise ValidationError(f"Not a monetary amount: {raw!r}")
    if isinstance(raw, Decimal):
        value = raw
    else:
        try:
            value = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Not a monetary amount: {raw!r}") from e
    if not value.is_finite():
        raise ValidationError(f"Not a monetary amount: {raw!r}")
    try:
        value.quantize(_QUANTUM, rounding=ROUNDING)
    except InvalidOperation as e:
        raise ValidationError(f"Amount out of range: {raw!r}") from e
    return value


def normalize(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return ZERO
    return value.quantize(_QUANTUM, rounding=ROUNDING)


def _invalid(value: Optional[Decimal], percent: int) -> bool:
    return value is None or percent < 0 or percent > 100


def apply_discount(value: Optional[Decimal], percent: int) -> Optional[Decimal]:
    """
    Amount left to pay after a percentage discount.

    The product is divided at 4 fractional digits and then normalized to 2,
    so `.xx5` boundaries round the same way on every run.
    Out-of-range percents and missing values are returned untouched.
    """
    if _invalid(value, percent):
        return value
    to_pay = value * Decimal(100 - percent) / HUNDRED
    return normalize(to_pay.quantize(_INTERMEDIATE_QUANTUM, rounding=ROUNDING))


def discount_amount(value: Optional[Decimal], percent: int) -> Decimal:
    """Money saved by the discount; scale follows plain subtraction."""
    if _invalid(value, percent):
        return Decimal(0)
    return value - apply_discount(value, percent)


def min_amount(a: Optional[Decimal], b: Optional[Decimal]) -> Optional[Decimal]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def percent_of(value: Decimal, share: Decimal) -> Decimal:
    return normalize(value * share)
