from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, TypeVar, Union

from payment_optimizer.errors import DuplicateIdError, ValidationError
from payment_optimizer.models import Instrument, Order

logger = logging.getLogger(__name__)

T = TypeVar("T", Order, Instrument)

PathLike = Union[str, Path]


def _read_entries(path: PathLike, kind: str) -> List[Any]:
    logger.info("Loading %s from %s", kind, path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f, parse_float=Decimal)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read {kind} file {path}: {e}") from e
    if not isinstance(raw, list):
        raise ValidationError(f"{kind} file {path} must contain a JSON array")
    return raw


def _field(entry: Dict[str, Any], name: str) -> Any:
    if name not in entry:
        raise ValidationError(f"missing field '{name}'")
    return entry[name]


def parse_order(entry: Any) -> Order:
    if not isinstance(entry, dict):
        raise ValidationError("entry is not an object")
    return Order(
        id=_field(entry, "id"),
        value=_field(entry, "value"),
        promotions=entry.get("promotions") or (),
    )


def parse_instrument(entry: Any) -> Instrument:
    if not isinstance(entry, dict):
        raise ValidationError("entry is not an object")
    discount = _field(entry, "discount")
    if isinstance(discount, str) and discount.strip().isdigit():
        discount = int(discount)
    return Instrument(id=_field(entry, "id"), discount=discount, limit=_field(entry, "limit"))


def _index_unique(entries: List[Any], kind: str, parse: Callable[[Any], T]) -> Dict[str, T]:
    items: Dict[str, T] = {}
    for entry in entries:
        try:
            item = parse(entry)
        except ValidationError as e:
            raise ValidationError(f"Invalid {kind} entry {entry!r}: {e}") from e
        if item.id in items:
            logger.error("Duplicate %s found: %s", kind, item.id)
            raise DuplicateIdError(kind, item.id)
        items[item.id] = item
    return items


def load_orders(path: PathLike) -> List[Order]:
    orders = _index_unique(_read_entries(path, "orders"), "order", parse_order)
    logger.info("Loaded %d unique orders", len(orders))
    return list(orders.values())


def load_instruments(path: PathLike) -> Dict[str, Instrument]:
    instruments = _index_unique(_read_entries(path, "instruments"), "instrument", parse_instrument)
    logger.info("Loaded %d unique instruments", len(instruments))
    return instruments
