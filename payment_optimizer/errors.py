from __future__ import annotations

from typing import Iterable, List


class PaymentOptimizerError(Exception):
    pass


class ValidationError(PaymentOptimizerError, ValueError):
    """Malformed or out-of-range order/instrument field."""


class DuplicateIdError(PaymentOptimizerError):
    def __init__(self, kind: str, item_id: str):
        super().__init__(f"Duplicate {kind}: {item_id}")
        self.kind = kind
        self.item_id = item_id


class InsufficientLimitError(PaymentOptimizerError):
    pass


class InfeasibleAllocationError(PaymentOptimizerError):
    def __init__(self, order_ids: Iterable[str]):
        self.order_ids: List[str] = list(order_ids)
        super().__init__(
            f"Unable to allocate payments for orders: {', '.join(self.order_ids)}. "
            "Check instrument limits."
        )


class AllocationError(PaymentOptimizerError):
    """A worker failed while resolving remaining orders."""


class AllocationTimeoutError(PaymentOptimizerError, TimeoutError):
    pass
