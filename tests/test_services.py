"""Tests for the individual points and card payment strategies."""
from decimal import Decimal

from payment_optimizer.config import OptimizerConfig
from payment_optimizer.ledger import Ledger
from payment_optimizer.models import Order
from payment_optimizer.services import CardService, PointsService, split


def _services(instruments):
    ledger = Ledger(instruments.values())
    config = OptimizerConfig(parallelism=1)
    cards = CardService(ledger, config)
    return ledger, cards, PointsService(ledger, config, cards)


def test_split_in_given_order(make_instruments):
    """Instruments are filled greedily in the order given."""
    inst = make_instruments(("A", 0, "40.00"), ("B", 0, "40.00"), ("C", 0, "20.00"))
    plan = split(Decimal("90.00"), inst.values())
    assert [(i.id, amount) for i, amount in plan] == [
        ("A", Decimal("40.00")),
        ("B", Decimal("40.00")),
        ("C", Decimal("10.00")),
    ]


def test_split_uncovered_returns_none(make_instruments):
    """A split that leaves money uncovered yields no plan."""
    inst = make_instruments(("A", 0, "40.00"), ("B", 0, "0.00"))
    assert split(Decimal("50.00"), inst.values()) is None


def test_split_skips_contributions_below_minimum(make_instruments):
    """Parts smaller than the minimum card payment are skipped."""
    inst = make_instruments(("A", 0, "0.01"), ("B", 0, "10.00"))
    plan = split(Decimal("5.00"), inst.values(), min_payment=Decimal("0.05"))
    assert [(i.id, amount) for i, amount in plan] == [("B", Decimal("5.00"))]


def test_candidates_only_for_promoted_cards_covering_full_value(cards, ledger):
    """Only promoted cards able to cover the full value become candidates."""
    order = Order(id="ORDER1", value=Decimal("190.00"), promotions=["PUNKTY", "mZysk", "BosBankrut", "Unknown"])
    candidates = cards.candidates_for(order)

    # mZysk (180) cannot cover 190, PUNKTY is never a card candidate
    assert [(c.instrument.id, c.amount_to_pay, c.discount_amount) for c in candidates] == [
        ("BosBankrut", Decimal("180.50"), Decimal("9.50")),
    ]


def test_zero_discount_yields_no_candidate(make_instruments):
    """A promoted card with no discount saves nothing and is not a candidate."""
    ledger, cards, _ = _services(make_instruments(("Plain", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"), promotions=["Plain"])
    assert cards.candidates_for(order) == []


def test_apply_candidate_revalidates(cards, ledger):
    """A candidate built before capacity was consumed is rejected."""
    first = Order(id="ORDER1", value=Decimal("150.00"), promotions=["mZysk"])
    second = Order(id="ORDER2", value=Decimal("100.00"), promotions=["mZysk"])
    stale = cards.candidates_for(second)[0]

    assert cards.apply_candidate(cards.candidates_for(first)[0]) is True
    assert ledger.get("mZysk").remaining_limit == Decimal("45.00")

    # capacity was consumed after the candidate was built
    assert cards.apply_candidate(stale) is False
    assert second.paid is False
    assert ledger.get("mZysk").remaining_limit == Decimal("45.00")


def test_single_card_prefers_discounted_amount_fit(make_instruments):
    """A promoted card covering the discounted amount is preferred."""
    ledger, cards, _ = _services(make_instruments(("mZysk", 10, "95.00"), ("Plain", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"), promotions=["mZysk"])

    assert cards.pay_with_single_card(order) is True
    assert ledger.get("mZysk").total_spent == Decimal("90.00")
    assert ledger.get("Plain").total_spent == Decimal("0.00")


def test_single_card_falls_back_to_full_value(make_instruments):
    """Without a fitting promoted card the first card covering full value pays."""
    ledger, cards, _ = _services(make_instruments(("mZysk", 10, "50.00"), ("Plain", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"), promotions=["mZysk"])

    assert cards.pay_with_single_card(order) is True
    assert ledger.get("Plain").total_spent == Decimal("100.00")


def test_multi_card_rejects_single_card_plan(make_instruments):
    """A plan that needs only one card is left to the single-card strategy."""
    ledger, cards, _ = _services(make_instruments(("Big", 0, "500.00"), ("Small", 0, "10.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert cards.pay_with_multiple_cards(order) is False
    assert order.paid is False
    assert ledger.get("Big").remaining_limit == Decimal("500.00")


def test_pay_with_anything_uses_points_first(make_instruments):
    """The last-resort split drains points before the cards."""
    ledger, cards, _ = _services(
        make_instruments(("A", 0, "40.00"), ("PUNKTY", 0, "30.00"), ("B", 0, "50.00"))
    )
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert cards.pay_with_anything(order) is True
    assert ledger.snapshot().spent == {
        "A": Decimal("20.00"),
        "PUNKTY": Decimal("30.00"),
        "B": Decimal("50.00"),
    }


def test_points_preference(points):
    """Points win against a card discount up to their full or partial rate."""
    # mZysk offers 10%, points cover fully at 15%
    order = Order(id="ORDER1", value=Decimal("100.00"), promotions=["mZysk"])
    assert points.best_card_discount(order) == 10
    assert points.prefers_points(order, 10) is True
    assert points.prefers_points(order, 20) is False

    # points only reach the partial threshold, which is worth 10%
    big = Order(id="ORDER2", value=Decimal("150.00"), promotions=["mZysk"])
    assert points.prefers_points(big, 10) is True
    assert points.prefers_points(big, 11) is False


def test_best_card_ignores_cards_that_cannot_cover(points):
    """Cards too small for the order do not count as the best discount."""
    order = Order(id="ORDER1", value=Decimal("190.00"), promotions=["mZysk", "BosBankrut"])
    assert points.best_card_discount(order) == 5


def test_partial_points_rolls_back_when_remainder_uncovered(make_instruments):
    """Points reserved for a partial payment are returned when cards fall short."""
    ledger, _, points = _services(make_instruments(("PUNKTY", 15, "20.00"), ("Small", 0, "10.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert points.pay_partially(order) is False
    assert order.paid is False
    assert ledger.points.remaining_limit == Decimal("20.00")
    assert ledger.points.total_spent == Decimal("0.00")
    assert ledger.get("Small").remaining_limit == Decimal("10.00")
    assert any("TX ROLLBACK" in l for l in ledger.logs)


def test_partial_points_with_multi_card_remainder(make_instruments):
    """The remainder after partial points may be split across cards."""
    ledger, _, points = _services(
        make_instruments(("PUNKTY", 15, "10.00"), ("A", 0, "45.00"), ("B", 0, "45.00"))
    )
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert points.pay_partially(order) is True
    assert ledger.snapshot().spent == {
        "PUNKTY": Decimal("10.00"),
        "A": Decimal("45.00"),
        "B": Decimal("35.00"),
    }


def test_partial_points_below_threshold(make_instruments):
    """Points below the minimum share do not qualify for the partial discount."""
    ledger, _, points = _services(make_instruments(("PUNKTY", 15, "9.99"), ("A", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert points.pay_partially(order) is False
    assert ledger.points.remaining_limit == Decimal("9.99")


def test_leftover_points_below_threshold_spent_without_discount(make_instruments):
    """Points below the threshold are spent at face value."""
    ledger, _, points = _services(make_instruments(("PUNKTY", 15, "5.00"), ("A", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert points.pay_with_leftover(order) is True
    assert ledger.snapshot().spent == {"PUNKTY": Decimal("5.00"), "A": Decimal("95.00")}


def test_leftover_points_full_payment_uses_points_discount(make_instruments):
    """Leftover points covering the order still earn the points discount."""
    ledger, _, points = _services(make_instruments(("PUNKTY", 20, "500.00"), ("A", 0, "500.00")))
    order = Order(id="ORDER1", value=Decimal("100.00"))

    assert points.pay_with_leftover(order) is True
    assert ledger.points.total_spent == Decimal("80.00")
