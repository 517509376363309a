from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from payment_optimizer.errors import InsufficientLimitError
from payment_optimizer.ledger import Ledger
from payment_optimizer.models import Instrument, Order


class Step(ABC):
    def __init__(self, ledger: Ledger, order: Order):
        self.ledger = ledger
        self.order = order

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def execute(self) -> None: ...

    @abstractmethod
    def compensate(self) -> None: ...

    def run(self) -> None:
        self.execute()
        self.ledger.log(f"[order={self.order.id}] STEP {self.name()} OK")

    def run_compensation(self) -> None:
        self.compensate()
        self.ledger.log(f"[order={self.order.id}] COMPENSATE {self.name()} OK")


class ChargeInstrument(Step):
    def __init__(self, ledger: Ledger, order: Order, instrument: Instrument, amount: Decimal):
        super().__init__(ledger, order)
        self.instrument = instrument
        self.amount = amount

    def name(self) -> str:
        return f"Charge {self.instrument.id} {self.amount}"

    def execute(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Cannot charge a negative amount: {self.amount}")
        if not self.instrument.covers(self.amount):
            raise InsufficientLimitError(
                f"Insufficient limit on {self.instrument.id}: "
                f"have={self.instrument.remaining_limit}, need={self.amount}"
            )
        self.instrument.debit_limit(self.amount)
        self.instrument.credit_spend(self.amount)

    def compensate(self) -> None:
        self.instrument.revert_limit(self.amount)
        self.instrument.revert_spend(self.amount)


class MarkOrderPaid(Step):
    def name(self) -> str:
        return "MarkOrderPaid"

    def execute(self) -> None:
        self.order.mark_paid()

    def compensate(self) -> None:
        # A paid order is final.
        self.ledger.log(f"[order={self.order.id}] paid flag has no compensation")


class PaymentTransaction:
    """
    Reserve/commit/rollback boundary around one order's ledger mutations.

        with PaymentTransaction(ledger, order) as tx:
            tx.charge(points, Decimal("15.00"))
            if not covered:
                return False          # leaving without commit rolls back
            tx.charge(card, Decimal("75.00"))
            tx.commit()

    Charges are applied immediately so later lookups see the reduced limits.
    Leaving the block without commit(), or with an exception, compensates
    every completed charge in reverse order.
    """

    def __init__(self, ledger: Ledger, order: Order):
        self.ledger = ledger
        self.order = order
        self.completed: List[ChargeInstrument] = []
        self.committed = False
        self.rolled_back = False

    def __enter__(self) -> PaymentTransaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.committed and not self.rolled_back:
            reason = f"{exc_type.__name__}: {exc}" if exc_type else "not committed"
            self.rollback(reason)
        return False

    def charge(self, instrument: Instrument, amount: Decimal) -> None:
        if self.committed or self.rolled_back:
            raise RuntimeError(f"Transaction for order {self.order.id} is closed")
        step = ChargeInstrument(self.ledger, self.order, instrument, amount)
        step.run()
        self.completed.append(step)

    def charged(self) -> Decimal:
        return sum((step.amount for step in self.completed), Decimal("0.00"))

    def commit(self) -> None:
        if self.rolled_back:
            raise RuntimeError(f"Transaction for order {self.order.id} was rolled back")
        MarkOrderPaid(self.ledger, self.order).run()
        self.committed = True
        self.ledger.log(f"[order={self.order.id}] TX OK paid={self.charged()}")

    def rollback(self, reason: str) -> None:
        self.ledger.log(f"[order={self.order.id}] TX ROLLBACK: {reason}")
        for step in reversed(self.completed):
            step.run_compensation()
        self.completed.clear()
        self.rolled_back = True
