"""Filter and sort pipeline applied to the order collection before aggregation."""

from __future__ import annotations

import locale
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Union

from delivery_dashboard.config import MetricsSettings
from delivery_dashboard.models import Order
from delivery_dashboard.services.durations import total_minutes
from delivery_dashboard.services.storage import KeyValueStore
from delivery_dashboard.services.summary import effective_durations

logger = logging.getLogger(__name__)

SORT_ASC = "asc"
SORT_DESC = "desc"

SORT_FIELDS: Dict[str, Callable[[Order], Any]] = {
    "id": lambda order: order.id,
    "code": lambda order: order.code,
    "pharmacy": lambda order: order.pharmacy_name,
    "customer": lambda order: order.customer_name,
    "creation_date": lambda order: order.creation_date,
    "delivered_at": lambda order: order.delivered_at,
    "total_time": total_minutes,
    "invoice_total": lambda order: order.invoice_total,
}


@dataclass(frozen=True)
class SortState:
    field: Optional[str] = None
    direction: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.field is not None and self.direction in {SORT_ASC, SORT_DESC}


@dataclass(frozen=True)
class FilterCriteria:
    start_date: Optional[Union[datetime, date]] = None
    end_date: Optional[Union[datetime, date]] = None
    pharmacies: FrozenSet[str] = frozenset()
    excluded_ids: FrozenSet[int] = frozenset()
    sort: SortState = field(default_factory=SortState)
    pharmacy_sort: Optional[str] = None
    metrics: MetricsSettings = field(default_factory=MetricsSettings)


def next_sort_state(current: SortState, field_name: str) -> SortState:
    """Column activation cycle: asc, then desc, then unsorted."""
    if field_name not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field '{field_name}'. Allowed values: {sorted(SORT_FIELDS)}")
    if current.field != field_name or current.direction is None:
        return SortState(field_name, SORT_ASC)
    if current.direction == SORT_ASC:
        return SortState(field_name, SORT_DESC)
    return SortState()


def use_system_collation() -> str:
    """Adopt the user's collation for string sorting; keeps the current one if unsupported."""
    try:
        return locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logger.warning("System collation unavailable, keeping %s: %s", locale.setlocale(locale.LC_COLLATE), exc)
        return locale.setlocale(locale.LC_COLLATE)


def _normalize(value: Optional[Union[datetime, date]], *, pad_end: bool) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        time_part = datetime.max.time() if pad_end else datetime.min.time()
        dt = datetime.combine(value, time_part)
    else:
        raise TypeError(f"Unsupported date value: {type(value)!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        return locale.strxfrm(value.casefold())
    if isinstance(value, datetime):
        return value.timestamp()
    return value


def _sorted(orders: Sequence[Order], accessor: Callable[[Order], Any], direction: str) -> List[Order]:
    present = [order for order in orders if accessor(order) is not None]
    missing = [order for order in orders if accessor(order) is None]
    ordered = sorted(present, key=lambda order: _comparable(accessor(order)), reverse=direction == SORT_DESC)
    return ordered + missing


def _accessor(field_name: str, settings: MetricsSettings) -> Callable[[Order], Any]:
    if field_name == "total_time":
        return lambda order: effective_durations(
            order,
            clamp_negative=settings.clamp_negative,
            max_total_minutes=settings.max_total_minutes,
        ).total
    return SORT_FIELDS[field_name]


def filter_by_date(
    orders: Iterable[Order],
    start_date: Optional[Union[datetime, date]],
    end_date: Optional[Union[datetime, date]],
) -> List[Order]:
    start_dt = _normalize(start_date, pad_end=False)
    end_dt = _normalize(end_date, pad_end=True)
    if start_dt and end_dt and end_dt < start_dt:
        raise ValueError("Start date must be before or equal to end date.")
    if start_dt is None and end_dt is None:
        return list(orders)
    selected = []
    for order in orders:
        created = order.creation_date
        if created is None:
            continue
        if start_dt is not None and created < start_dt:
            continue
        if end_dt is not None and created > end_dt:
            continue
        selected.append(order)
    return selected


def filter_sort(orders: Sequence[Order], criteria: FilterCriteria) -> List[Order]:
    selected = filter_by_date(orders, criteria.start_date, criteria.end_date)
    if criteria.pharmacies:
        selected = [order for order in selected if order.pharmacy_name in criteria.pharmacies]
    if criteria.excluded_ids:
        selected = [order for order in selected if order.id not in criteria.excluded_ids]

    if criteria.pharmacy_sort in {SORT_ASC, SORT_DESC}:
        return _sorted(selected, SORT_FIELDS["pharmacy"], criteria.pharmacy_sort)
    if criteria.sort.active:
        return _sorted(selected, _accessor(criteria.sort.field, criteria.metrics), criteria.sort.direction)
    return selected


def pharmacy_names(orders: Iterable[Order]) -> List[str]:
    names = {order.pharmacy_name for order in orders if order.pharmacy_name}
    return sorted(names, key=lambda name: locale.strxfrm(name.casefold()))


def search_orders(orders: Iterable[Order], query: str) -> List[Order]:
    """Orders whose id or code contains ``query`` (case-insensitive)."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(orders)
    return [order for order in orders if needle in str(order.id) or needle in order.code.lower()]


class ExclusionSet:
    """Order ids the user removed from every metric for this session."""

    STORE_KEY = "excluded_order_ids"

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self._store = store
        initial = store.get(self.STORE_KEY) if store is not None else None
        self._ids = set(initial or ())

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._ids))

    @property
    def ids(self) -> FrozenSet[int]:
        return frozenset(self._ids)

    def _persist(self) -> None:
        if self._store is not None:
            self._store.set(self.STORE_KEY, frozenset(self._ids))

    def add(self, order_id: int) -> None:
        self._ids.add(order_id)
        self._persist()

    def discard(self, order_id: int) -> None:
        self._ids.discard(order_id)
        self._persist()

    def toggle(self, order_id: int) -> bool:
        """Flip membership; returns True when the order is now excluded."""
        if order_id in self._ids:
            self.discard(order_id)
            return False
        self.add(order_id)
        return True

    def replace(self, order_ids: Iterable[int]) -> None:
        self._ids = set(order_ids)
        self._persist()

    def clear(self) -> None:
        self._ids.clear()
        if self._store is not None:
            self._store.clear(self.STORE_KEY)
