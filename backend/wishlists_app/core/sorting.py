"""
Sorting and status filtering of an already fetched item list.

Items may be ORM objects, pydantic models or plain mappings. Every function
returns a new list and leaves its input untouched. Python's sort is stable,
also with ``reverse=True``, so equal items always keep their input order.
"""
import unicodedata
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any

PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}

ITEM_SORT_OPTIONS: list[tuple[str, str]] = [
    ("priority-desc", "Priorité (haute → basse)"),
    ("priority-asc", "Priorité (basse → haute)"),
    ("price-asc", "Prix croissant"),
    ("price-desc", "Prix décroissant"),
    ("name-asc", "Nom (A → Z)"),
    ("name-desc", "Nom (Z → A)"),
    ("date-desc", "Plus récents"),
    ("date-asc", "Plus anciens"),
]
SORT_KEYS = frozenset(key for key, _ in ITEM_SORT_OPTIONS)

STATUS_FILTER_ALL = "all"
STATUS_FILTERS = (STATUS_FILTER_ALL, "available", "reserved", "purchased")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _priority_key(item: Any) -> int:
    value = _field(item, "priority")
    return PRIORITY_WEIGHTS.get(getattr(value, "value", value), 0)


def _price_key(item: Any) -> float:
    price = _field(item, "price")
    return float(price) if price else 0.0


def collation_key(text: str | None) -> str:
    """Case and accent insensitive key, so "Écharpe" sorts next to "echarpe"."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _name_key(item: Any) -> str:
    return collation_key(_field(item, "title"))


def _date_key(item: Any) -> datetime:
    value = _field(item, "created_at")
    if value is None:
        return _EPOCH
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


_SORTS = {
    "priority-desc": (_priority_key, True),
    "priority-asc": (_priority_key, False),
    "price-asc": (_price_key, False),
    "price-desc": (_price_key, True),
    "name-asc": (_name_key, False),
    "name-desc": (_name_key, True),
    "date-desc": (_date_key, True),
    "date-asc": (_date_key, False),
}


def sort_items(items: Iterable[Any], sort_by: str | None) -> list[Any]:
    copied = list(items)
    spec = _SORTS.get(sort_by or "")
    if spec is None:
        return copied
    key, reverse = spec
    return sorted(copied, key=key, reverse=reverse)


def _status_of(item: Any) -> str | None:
    value = _field(item, "status")
    return getattr(value, "value", value)


def filter_items_by_status(items: Iterable[Any], status_filter: str | None) -> list[Any]:
    if not status_filter or status_filter == STATUS_FILTER_ALL:
        return list(items)
    return [item for item in items if _status_of(item) == status_filter]


def count_items_by_status(items: Iterable[Any]) -> dict[str, int]:
    counts = {name: 0 for name in STATUS_FILTERS}
    for item in items:
        counts[STATUS_FILTER_ALL] += 1
        status = _status_of(item)
        if status in counts:
            counts[status] += 1
    return counts


def apply_item_view(items: Iterable[Any], sort_by: str | None, status_filter: str | None) -> list[Any]:
    return sort_items(filter_items_by_status(items, status_filter), sort_by)
