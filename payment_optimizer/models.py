from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from payment_optimizer.errors import ValidationError
from payment_optimizer.money import ZERO, normalize, to_decimal


def _require_id(raw_id: object, kind: str) -> str:
    if not isinstance(raw_id, str) or not raw_id.strip():
        raise ValidationError(f"{kind} id is missing")
    return raw_id


def _amount(raw: object, what: str) -> Decimal:
    try:
        return to_decimal(raw)
    except ValidationError as e:
        raise ValidationError(f"{what}: {e}") from e


@dataclass(slots=True)
class Order:
    """
    Order to be paid in full by one or more instruments.

    `promotions` lists instrument ids that give a discount on this order.
    `paid` only ever flips from False to True.
    """

    id: str
    value: Decimal
    promotions: Tuple[str, ...] = ()
    paid: bool = False

    def __post_init__(self) -> None:
        self.id = _require_id(self.id, "Order")
        if self.value is None:
            raise ValidationError(f"Order value is missing: {self.id}")
        value = _amount(self.value, f"Invalid order value for {self.id}")
        if value < 0:
            raise ValidationError(f"Order value must be non-negative: {self.id}")
        self.value = normalize(value)
        self.promotions = _promotion_ids(self.id, self.promotions)

    def mark_paid(self) -> None:
        self.paid = True

    def is_eligible(self, instrument_id: str) -> bool:
        return instrument_id in self.promotions


def _promotion_ids(order_id: str, promotions: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if promotions is None:
        return ()
    if isinstance(promotions, str):
        raise ValidationError(f"Order promotions must be a list of ids: {order_id}")
    ids: List[str] = []
    for promo in promotions:
        if not isinstance(promo, str) or not promo:
            raise ValidationError(f"Invalid promotion id {promo!r} on order {order_id}")
        if promo not in ids:
            ids.append(promo)
    return tuple(ids)


@dataclass(slots=True)
class Instrument:
    """
    Payment instrument with a percentage discount and a spending limit.

    `remaining_limit` and `total_spent` form the ledger; together they always
    add up to `limit`. The ledger does not check for overdraft, callers do.
    """

    id: str
    discount: int
    limit: Decimal
    remaining_limit: Decimal = field(init=False)
    total_spent: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.id = _require_id(self.id, "Instrument")
        if isinstance(self.discount, bool) or not isinstance(self.discount, int):
            raise ValidationError(f"Discount must be an integer for: {self.id}")
        if self.discount < 0 or self.discount > 100:
            raise ValidationError(f"Discount must be 0-100 for: {self.id}")
        if self.limit is None:
            raise ValidationError(f"Limit is missing for: {self.id}")
        limit = _amount(self.limit, f"Invalid limit for {self.id}")
        if limit < 0:
            raise ValidationError(f"Limit must be >= 0 for: {self.id}")
        self.limit = normalize(limit)
        self.remaining_limit = self.limit
        self.total_spent = ZERO

    def credit_spend(self, amount: Decimal) -> None:
        if amount < 0:
            return
        self.total_spent += amount

    def debit_limit(self, amount: Decimal) -> None:
        if amount < 0:
            return
        self.remaining_limit -= amount

    def revert_limit(self, amount: Decimal) -> None:
        if amount is None or amount <= 0:
            return
        self.remaining_limit += amount

    def revert_spend(self, amount: Decimal) -> None:
        if amount is None or amount <= 0:
            return
        self.total_spent -= amount

    def covers(self, amount: Decimal) -> bool:
        return self.remaining_limit >= amount

    def is_balanced(self) -> bool:
        return self.remaining_limit + self.total_spent == self.limit


@dataclass(frozen=True, slots=True)
class Candidate:
    """Discounted single-instrument payment proposed for an order."""

    order: Order
    instrument: Instrument
    amount_to_pay: Decimal
    discount_amount: Decimal


@dataclass(slots=True)
class Result:
    spent: Dict[str, Decimal] = field(default_factory=dict)

    def total(self) -> Decimal:
        return sum(self.spent.values(), ZERO)

    def lines(self) -> List[str]:
        return [f"{instrument_id} {normalize(amount)}" for instrument_id, amount in self.spent.items()]

    def render(self) -> str:
        return "\n".join(self.lines())
