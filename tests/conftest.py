"""Pytest fixtures for payment optimizer tests."""

from decimal import Decimal

import pytest

from payment_optimizer.config import OptimizerConfig
from payment_optimizer.ledger import Ledger
from payment_optimizer.models import Instrument, Order
from payment_optimizer.services import CardService, PointsService


@pytest.fixture
def make_instruments():
    def build(*rows):
        # rows: (id, discount, limit)
        return {iid: Instrument(id=iid, discount=discount, limit=Decimal(limit)) for iid, discount, limit in rows}

    return build


@pytest.fixture
def make_orders():
    def build(*rows):
        # rows: (id, value) or (id, value, promotions)
        orders = []
        for row in rows:
            promotions = row[2] if len(row) > 2 else None
            orders.append(Order(id=row[0], value=Decimal(row[1]), promotions=promotions))
        return orders

    return build


@pytest.fixture
def config() -> OptimizerConfig:
    return OptimizerConfig(parallelism=4, timeout_seconds=5.0)


@pytest.fixture
def ledger(make_instruments) -> Ledger:
    return Ledger(
        make_instruments(
            ("PUNKTY", 15, "100.00"),
            ("mZysk", 10, "180.00"),
            ("BosBankrut", 5, "200.00"),
            ("Empty", 0, "0.00"),  # Zero limit
        ).values()
    )


@pytest.fixture
def cards(ledger, config) -> CardService:
    return CardService(ledger, config)


@pytest.fixture
def points(ledger, config, cards) -> PointsService:
    return PointsService(ledger, config, cards)
