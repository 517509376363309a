from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal

from payment_optimizer.ledger import POINTS_ID
from payment_optimizer.money import CENT


def _default_parallelism() -> int:
    return os.cpu_count() or 1


@dataclass(slots=True)
class OptimizerConfig:
    """
    Engine knobs.

    partial_points_discount is the flat percent granted when points cover at
    least min_points_share of an order; it ignores the points' own discount.
    """

    parallelism: int = field(default_factory=_default_parallelism)
    timeout_seconds: float = 10.0
    points_id: str = POINTS_ID
    min_points_share: Decimal = Decimal("0.10")
    partial_points_discount: int = 10
    min_card_payment: Decimal = CENT

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ValueError(f"parallelism must be >= 1, got {self.parallelism}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if not 0 <= self.partial_points_discount <= 100:
            raise ValueError(f"partial_points_discount must be 0-100, got {self.partial_points_discount}")
