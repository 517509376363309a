from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from typing import Iterable, List, Mapping, Optional, Set

from payment_optimizer.config import OptimizerConfig
from payment_optimizer.errors import (
    AllocationError,
    AllocationTimeoutError,
    InfeasibleAllocationError,
    PaymentOptimizerError,
    ValidationError,
)
from payment_optimizer.ledger import Ledger
from payment_optimizer.models import Candidate, Instrument, Order, Result
from payment_optimizer.money import ZERO
from payment_optimizer.services import CardService, PointsService

logger = logging.getLogger(__name__)


class PaymentOptimizer:
    """
    Allocates every order to instruments in three phases:

    1. points, smallest orders first, unless a promoted card beats them
    2. discounted single-card payments, biggest saving first
    3. leftover points, any single card, card splits, then anything at all

    Phase 2 enumeration and phase 3 resolution run on a thread pool; every
    ledger mutation happens under one lock owned by the optimizer.
    """

    def __init__(
        self,
        orders: Iterable[Order],
        instruments: Mapping[str, Instrument],
        config: Optional[OptimizerConfig] = None,
    ):
        self.config = config or OptimizerConfig()
        self.orders: List[Order] = list(orders)

        for instrument_id, instrument in instruments.items():
            if instrument_id != instrument.id:
                raise ValidationError(f"Instrument keyed as {instrument_id} has id {instrument.id}")
        self.ledger = Ledger(instruments.values(), points_id=self.config.points_id)

        self.cards = CardService(self.ledger, self.config)
        self.points = PointsService(self.ledger, self.config, self.cards)

        self._lock = threading.Lock()
        self._abandoned = threading.Event()

        logger.info("Initialized optimizer with %d orders and %d instruments (%d threads)",
                    len(self.orders), len(self.ledger.instruments), self.config.parallelism)
        self._warn_about_instruments()

    def _warn_about_instruments(self) -> None:
        has_cards = bool(self.ledger.cards())
        if self.ledger.points is None:
            logger.warning("Instrument '%s' not found; points payments are not available", self.ledger.points_id)
            if not has_cards:
                logger.error("No instruments at all; every non-zero order will fail")
        elif not has_cards:
            logger.warning("No card instruments; only %s payments are possible", self.ledger.points_id)

        for instrument in self.ledger.instruments.values():
            if instrument.limit == 0:
                logger.warning("Instrument %s has zero limit", instrument.id)
            logger.debug("  - %s: discount=%d%%, limit=%s", instrument.id, instrument.discount, instrument.limit)

    def _unpaid(self) -> List[Order]:
        return [order for order in self.orders if not order.paid]

    def optimize(self) -> Result:
        logger.info("Starting payment optimization for %d orders", len(self.orders))
        started = time.monotonic()

        executor = ThreadPoolExecutor(max_workers=self.config.parallelism, thread_name_prefix="payment-optimizer")
        try:
            paid = self.allocate_points()
            logger.info("Phase 1: %d orders paid with points", paid)

            paid = self.allocate_discounted_cards(executor)
            logger.info("Phase 2: %d orders paid with discounted cards", paid)

            paid = self.allocate_remaining(executor)
            logger.info("Phase 3: %d orders paid by fallback strategies", paid)

            self._verify()
            result = self.ledger.snapshot()
        except PaymentOptimizerError as e:
            logger.error("Payment optimization failed: %s", e)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Payment optimization completed in %.0fms", (time.monotonic() - started) * 1000)
        self._log_summary(result)
        return result

    # Phase 1

    def _orders_better_paid_by_card(self) -> Set[str]:
        deferred = set()
        for order in self._unpaid():
            if not order.promotions:
                continue
            best_card = self.points.best_card_discount(order)
            if best_card > 0 and not self.points.prefers_points(order, best_card):
                deferred.add(order.id)
        return deferred

    def allocate_points(self) -> int:
        if not self.points.available():
            logger.debug("Points instrument not available or has zero limit")
            return 0

        with self._lock:
            deferred = self._orders_better_paid_by_card()
            queue = sorted((o for o in self._unpaid() if o.id not in deferred), key=lambda o: o.value)

            paid = 0
            for order in queue:
                if not order.paid and self.points.pay(order):
                    paid += 1
                if not self.points.available():
                    logger.debug("Points limit depleted, stopping points allocation")
                    break

        logger.debug("Deferred %d orders to cards, remaining points limit: %s",
                     len(deferred), self.ledger.points.remaining_limit)
        return paid

    # Phase 2

    def _enumerate_candidates(self, executor: Executor, orders: List[Order]) -> List[Candidate]:
        futures = [executor.submit(self.cards.candidates_for, order) for order in orders]
        done, not_done = wait(futures, timeout=self.config.timeout_seconds)
        if not_done:
            for future in not_done:
                future.cancel()
            logger.error("Timeout after %ss while generating payment candidates; skipping discounted cards",
                         self.config.timeout_seconds)
            return []

        candidates: List[Candidate] = []
        for future in futures:
            error = future.exception()
            if error is not None:
                logger.error("Error generating payment candidates: %s", error, exc_info=error)
                return []
            candidates.extend(future.result())
        return candidates

    def allocate_discounted_cards(self, executor: Executor) -> int:
        unpaid = self._unpaid()
        if not unpaid:
            return 0

        candidates = self._enumerate_candidates(executor, unpaid)
        logger.debug("Generated %d card payment candidates", len(candidates))

        # sorted() is stable, equal savings keep order/promotion order
        ranked = sorted(candidates, key=lambda c: c.discount_amount, reverse=True)

        paid = 0
        with self._lock:
            for candidate in ranked:
                if self.cards.apply_candidate(candidate):
                    paid += 1
        return paid

    # Phase 3

    def _resolve(self, order: Order) -> bool:
        with self._lock:
            if self._abandoned.is_set() or order.paid:
                return False

            strategies = (
                self.points.pay_with_leftover,
                self.cards.pay_with_single_card,
                self.cards.pay_with_multiple_cards,
                self.cards.pay_with_anything,
            )
            for strategy in strategies:
                if strategy(order):
                    logger.debug("Order %s paid by %s", order.id, strategy.__name__)
                    return True

        logger.warning("Failed to find payment strategy for order %s", order.id)
        return False

    def allocate_remaining(self, executor: Executor) -> int:
        unpaid = self._unpaid()
        if not unpaid:
            return 0

        futures = [executor.submit(self._resolve, order) for order in unpaid]
        done, not_done = wait(futures, timeout=self.config.timeout_seconds)
        if not_done:
            self._abandoned.set()
            for future in not_done:
                future.cancel()
            raise AllocationTimeoutError(
                f"Timeout after {self.config.timeout_seconds}s during payment allocation, "
                f"{len(not_done)} orders outstanding"
            )

        paid = 0
        for future in futures:
            error = future.exception()
            if error is not None:
                raise AllocationError(f"Execution error during payment allocation: {error}") from error
            if future.result():
                paid += 1
        return paid

    # Finalization

    def _verify(self) -> None:
        unbalanced = self.ledger.unbalanced()
        if unbalanced:
            raise AllocationError(f"Ledger out of balance for instruments: {', '.join(unbalanced)}")

        unpaid = [order.id for order in self._unpaid()]
        if unpaid:
            for instrument in self.ledger.instruments.values():
                logger.debug("  - %s: remaining=%s", instrument.id, instrument.remaining_limit)
            raise InfeasibleAllocationError(unpaid)
        logger.info("All %d orders successfully paid", len(self.orders))

    def _log_summary(self, result: Result) -> None:
        for instrument_id, amount in result.spent.items():
            logger.info("  - %s: %s", instrument_id, amount)
        original = sum((order.value for order in self.orders), ZERO)
        spent = result.total()
        logger.info("Total original value: %s, total spent: %s, total savings: %s", original, spent, original - spent)
