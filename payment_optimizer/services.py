from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from payment_optimizer.config import OptimizerConfig
from payment_optimizer.ledger import Ledger
from payment_optimizer.models import Candidate, Instrument, Order
from payment_optimizer.money import CENT, apply_discount, discount_amount, min_amount, percent_of
from payment_optimizer.transaction import PaymentTransaction

logger = logging.getLogger(__name__)

Plan = List[Tuple[Instrument, Decimal]]


def split(amount: Decimal, instruments: Iterable[Instrument], min_payment: Decimal = CENT) -> Optional[Plan]:
    """
    Spread `amount` over `instruments` in the given order, no discounts.

    Every contribution is at least `min_payment`. Returns None when the
    instruments cannot cover the whole amount.
    """
    plan: Plan = []
    left = amount
    for instrument in instruments:
        if left <= 0:
            break
        if instrument.remaining_limit <= 0:
            continue
        part = min(instrument.remaining_limit, left)
        if part < min_payment:
            continue
        plan.append((instrument, part))
        left -= part
    if left > 0:
        return None
    return plan


class CardService:
    def __init__(self, ledger: Ledger, config: OptimizerConfig):
        self.ledger = ledger
        self.config = config

    def promoted_cards(self, order: Order) -> List[Instrument]:
        cards = []
        for promo_id in order.promotions:
            card = self.ledger.get(promo_id)
            if card is not None and not self.ledger.is_points(card):
                cards.append(card)
        return cards

    def candidates_for(self, order: Order) -> List[Candidate]:
        """Discounted single-card payments the order could take right now."""
        if order.paid:
            return []
        candidates = []
        for card in self.promoted_cards(order):
            if not card.covers(order.value):
                logger.debug("Card %s has insufficient limit for full payment of order %s", card.id, order.id)
                continue
            saved = discount_amount(order.value, card.discount)
            if saved <= 0:
                continue
            candidates.append(
                Candidate(
                    order=order,
                    instrument=card,
                    amount_to_pay=apply_discount(order.value, card.discount),
                    discount_amount=saved,
                )
            )
        return candidates

    def apply_candidate(self, candidate: Candidate) -> bool:
        order, card = candidate.order, candidate.instrument
        if order.paid:
            return False
        if not card.covers(candidate.amount_to_pay):
            logger.debug("Candidate %s/%s no longer fits remaining limit %s", order.id, card.id, card.remaining_limit)
            return False
        if not order.is_eligible(card.id) or not card.covers(order.value):
            logger.debug("Card %s no longer eligible for discount on order %s", card.id, order.id)
            return False

        with PaymentTransaction(self.ledger, order) as tx:
            tx.charge(card, candidate.amount_to_pay)
            tx.commit()
        return True

    def cover_remainder(self, tx: PaymentTransaction, amount: Decimal) -> bool:
        """Charge `amount` to one card, or failing that to several; no discount."""
        card = self.ledger.first_card_covering(amount)
        if card is not None:
            tx.charge(card, amount)
            return True

        plan = split(amount, self.ledger.cards_by_remaining_limit(), self.config.min_card_payment)
        if plan is None:
            logger.debug("Could not cover remainder %s of order %s with cards", amount, tx.order.id)
            return False
        for instrument, part in plan:
            tx.charge(instrument, part)
        return True

    def find_promoted_card(self, order: Order) -> Optional[Instrument]:
        for card in self.promoted_cards(order):
            if card.discount > 0 and card.covers(apply_discount(order.value, card.discount)):
                return card
        return None

    def pay_with_single_card(self, order: Order) -> bool:
        card = self.find_promoted_card(order)
        if card is not None:
            amount = apply_discount(order.value, card.discount)
        else:
            card = self.ledger.first_card_covering(order.value)
            amount = order.value
        if card is None:
            return False

        with PaymentTransaction(self.ledger, order) as tx:
            tx.charge(card, amount)
            tx.commit()
        return True

    def pay_with_multiple_cards(self, order: Order) -> bool:
        plan = split(order.value, self.ledger.cards_by_remaining_limit(), self.config.min_card_payment)
        if plan is None:
            return False
        if len(plan) < 2:
            # single-card payments belong to pay_with_single_card
            return False

        with PaymentTransaction(self.ledger, order) as tx:
            for card, part in plan:
                tx.charge(card, part)
            tx.commit()
        return True

    def pay_with_anything(self, order: Order) -> bool:
        instruments: List[Instrument] = []
        points = self.ledger.points
        if points is not None and points.remaining_limit > 0:
            instruments.append(points)
        instruments.extend(self.ledger.cards_by_remaining_limit())

        plan = split(order.value, instruments, self.config.min_card_payment)
        if plan is None:
            return False

        with PaymentTransaction(self.ledger, order) as tx:
            for instrument, part in plan:
                tx.charge(instrument, part)
            tx.commit()
        return True


class PointsService:
    def __init__(self, ledger: Ledger, config: OptimizerConfig, cards: CardService):
        self.ledger = ledger
        self.config = config
        self.cards = cards

    @property
    def points(self) -> Optional[Instrument]:
        return self.ledger.points

    def available(self) -> bool:
        return self.points is not None and self.points.remaining_limit > 0

    def min_points_for_discount(self, value: Decimal) -> Decimal:
        return percent_of(value, self.config.min_points_share)

    def best_card_discount(self, order: Order) -> int:
        best = 0
        for card in self.cards.promoted_cards(order):
            if card.discount > best and card.covers(order.value):
                best = card.discount
        return best

    def prefers_points(self, order: Order, best_card: int) -> bool:
        points = self.points
        if points is None:
            return False
        if points.covers(order.value):
            return points.discount >= best_card
        if points.covers(self.min_points_for_discount(order.value)):
            return self.config.partial_points_discount >= best_card
        return False

    def pay_in_full(self, order: Order) -> bool:
        points = self.points
        if points is None or order.paid or not points.covers(order.value):
            return False

        amount = apply_discount(order.value, points.discount)
        with PaymentTransaction(self.ledger, order) as tx:
            tx.charge(points, amount)
            tx.commit()
        return True

    def pay_partially(self, order: Order) -> bool:
        """
        Points cover part of the order and earn the flat partial discount.

        At least min_points_share of the original value has to come from
        points. Whatever the points leave of the discounted total goes to one
        card, or to several when no single card is large enough; if even that
        fails the points reservation is rolled back.
        """
        points = self.points
        if points is None or order.paid:
            return False

        minimum = self.min_points_for_discount(order.value)
        if not points.covers(minimum):
            logger.debug("Insufficient points for order %s: required=%s, available=%s",
                         order.id, minimum, points.remaining_limit)
            return False

        discounted_total = apply_discount(order.value, self.config.partial_points_discount)
        from_points = min_amount(discounted_total, points.remaining_limit)
        if from_points < minimum:
            return False
        remainder = discounted_total - from_points

        with PaymentTransaction(self.ledger, order) as tx:
            tx.charge(points, from_points)
            if remainder > 0 and not self.cards.cover_remainder(tx, remainder):
                return False
            tx.commit()
        return True

    def pay_without_discount(self, order: Order) -> bool:
        """Spend whatever points are left at face value and cover the rest with cards."""
        points = self.points
        if points is None or order.paid:
            return False

        from_points = min(points.remaining_limit, order.value)
        if from_points <= 0:
            return False
        remainder = order.value - from_points

        with PaymentTransaction(self.ledger, order) as tx:
            tx.charge(points, from_points)
            if remainder > 0 and not self.cards.cover_remainder(tx, remainder):
                return False
            tx.commit()
        return True

    def pay(self, order: Order) -> bool:
        """Full points payment when the balance allows it, else the partial rule."""
        points = self.points
        if points is None:
            return False
        if points.covers(order.value):
            return self.pay_in_full(order)
        if points.remaining_limit > 0:
            return self.pay_partially(order)
        return False

    def pay_with_leftover(self, order: Order) -> bool:
        if not self.available():
            return False
        if self.pay(order):
            return True
        if self.points.covers(self.min_points_for_discount(order.value)):
            return False
        return self.pay_without_discount(order)
