from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from payment_optimizer.errors import DuplicateIdError
from payment_optimizer.models import Instrument, Result

logger = logging.getLogger(__name__)

POINTS_ID = "PUNKTY"


class Ledger:
    """
    Arena of instruments indexed by id.

    Holds:
    - the instruments in input order (points included, when present)
    - an audit trail of every ledger mutation (for diagnostics and tests)

    Mutation goes through PaymentTransaction only; this class answers
    queries and snapshots the totals at the end of a run.
    """

    def __init__(self, instruments: Iterable[Instrument] = (), points_id: str = POINTS_ID) -> None:
        self.points_id = points_id
        self.instruments: Dict[str, Instrument] = {}
        self.logs: List[str] = []

        for instrument in instruments:
            self.add_instrument(instrument)

    def log(self, message: str) -> None:
        self.logs.append(message)
        logger.info(message)

    def add_instrument(self, instrument: Instrument) -> None:
        if instrument.id in self.instruments:
            raise DuplicateIdError("instrument", instrument.id)
        self.instruments[instrument.id] = instrument

    def get(self, instrument_id: str) -> Optional[Instrument]:
        return self.instruments.get(instrument_id)

    @property
    def points(self) -> Optional[Instrument]:
        return self.instruments.get(self.points_id)

    def is_points(self, instrument: Instrument) -> bool:
        return instrument.id == self.points_id

    def cards(self) -> List[Instrument]:
        return [i for i in self.instruments.values() if i.id != self.points_id]

    def cards_by_remaining_limit(self) -> List[Instrument]:
        available = [card for card in self.cards() if card.remaining_limit > 0]
        return sorted(available, key=lambda card: card.remaining_limit, reverse=True)

    def first_card_covering(self, amount: Decimal) -> Optional[Instrument]:
        if amount <= 0:
            return None
        for card in self.cards():
            if card.covers(amount):
                return card
        return None

    def unbalanced(self) -> List[str]:
        return [i.id for i in self.instruments.values() if not i.is_balanced()]

    def snapshot(self) -> Result:
        return Result(spent={i.id: i.total_spent for i in self.instruments.values()})
