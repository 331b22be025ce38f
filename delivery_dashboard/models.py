"""Plain data types shared by the clients, the metrics engine and the UI.

Everything here is immutable. Upstream payloads are mapped with
``order_from_payload`` / ``pharmacy_from_payload`` which never raise on
missing or malformed fields: absent values become ``None`` or empty strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple, Union

STATUS_NEW = "NEW"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_READY = "READY"
STATUS_WAITING_FOR_COURIER = "WAITING_FOR_COURIER"
STATUS_GIVEN_TO_COURIER = "GIVEN_TO_COURIER"
STATUS_PICKED_UP = "PICKED_UP"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELED = "CANCELED"
STATUS_CREATED = "CREATED"


@dataclass(frozen=True)
class CourierActor:
    name: str


@dataclass(frozen=True)
class PharmacyEmployeeActor:
    chat_name: str


@dataclass(frozen=True)
class AdminUserActor:
    first_name: Optional[str]
    last_name: Optional[str]
    phone: str = ""


@dataclass(frozen=True)
class UnknownActor:
    pass


Actor = Union[CourierActor, PharmacyEmployeeActor, AdminUserActor, UnknownActor]


@dataclass(frozen=True)
class RawHistoryRecord:
    new_status: str
    updated_at: Optional[datetime]
    actor: Actor = field(default_factory=UnknownActor)
    old_status: Optional[str] = None


@dataclass(frozen=True)
class Order:
    id: int
    code: str
    creation_date: Optional[datetime]
    pharmacy_id: Optional[int] = None
    pharmacy_name: str = ""
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    location_name: str = ""
    delivered_at: Optional[datetime] = None
    histories: Tuple[RawHistoryRecord, ...] = ()
    invoice_total: float = 0.0

    @property
    def is_legacy(self) -> bool:
        return not self.histories

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()


@dataclass(frozen=True)
class PharmacyDetails:
    id: int
    name: str
    code: str = ""
    address: str = ""
    phone: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class TimelineEvent:
    status: str
    timestamp: Optional[datetime]
    performed_by: str
    is_origin: bool = False


@dataclass(frozen=True)
class PhaseDurations:
    """Per-order phase durations in whole minutes; ``None`` means not computable."""

    preparation: Optional[int]
    courier_waiting: Optional[int]
    in_transit: Optional[int]
    total: Optional[int]

    def as_minutes(self) -> Dict[str, int]:
        """Legacy view where a missing duration reads as ``0``."""
        return {
            "preparation": self.preparation or 0,
            "courier_waiting": self.courier_waiting or 0,
            "in_transit": self.in_transit or 0,
            "total": self.total or 0,
        }


@dataclass(frozen=True)
class DeliveryMetrics:
    avg_total_time: int = 0
    avg_preparation_time: int = 0
    avg_courier_waiting_time: int = 0
    avg_delivery_time: int = 0
    on_time_percentage: int = 0
    total_orders: int = 0


BUCKET_LABELS: Tuple[str, ...] = ("0-30", "30-60", "60-90", "90+")


@dataclass(frozen=True)
class TimeDistribution:
    under_30: int = 0
    from_30_to_60: int = 0
    from_60_to_90: int = 0
    over_90: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(BUCKET_LABELS, (self.under_30, self.from_30_to_60, self.from_60_to_90, self.over_90)))

    @property
    def total(self) -> int:
        return self.under_30 + self.from_30_to_60 + self.from_60_to_90 + self.over_90


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def actor_from_payload(history: Mapping[str, Any]) -> Actor:
    """Pick the single populated actor reference of a history record."""
    courier_name = history.get("courierName")
    if courier_name:
        return CourierActor(name=str(courier_name))
    chat = _as_mapping(history.get("marketChat"))
    if chat.get("name"):
        return PharmacyEmployeeActor(chat_name=str(chat["name"]))
    updater = history.get("updater")
    if isinstance(updater, Mapping):
        return AdminUserActor(
            first_name=updater.get("firstName") or None,
            last_name=updater.get("lastName") or None,
            phone=_as_text(updater.get("phone")),
        )
    return UnknownActor()


def history_from_payload(history: Mapping[str, Any]) -> RawHistoryRecord:
    return RawHistoryRecord(
        new_status=_as_text(history.get("newStatus")).upper(),
        updated_at=parse_timestamp(history.get("updatedAt")),
        actor=actor_from_payload(history),
        old_status=_as_text(history.get("oldStatus")).upper() or None,
    )


def order_from_payload(payload: Mapping[str, Any]) -> Order:
    market = _as_mapping(payload.get("market"))
    customer = _as_mapping(payload.get("customer"))
    location = _as_mapping(payload.get("location"))
    invoice = _as_mapping(payload.get("invoice"))
    raw_histories = payload.get("histories")
    histories = tuple(
        history_from_payload(item)
        for item in (raw_histories if isinstance(raw_histories, list) else [])
        if isinstance(item, Mapping)
    )
    return Order(
        id=_as_int(payload.get("id")) or 0,
        code=_as_text(payload.get("code")),
        creation_date=parse_timestamp(payload.get("creationDate")),
        pharmacy_id=_as_int(market.get("id")),
        pharmacy_name=_as_text(market.get("name")),
        customer_first_name=customer.get("firstName") or None,
        customer_last_name=customer.get("lastName") or None,
        location_name=_as_text(location.get("name")),
        delivered_at=parse_timestamp(payload.get("deliveredAt")),
        histories=histories,
        invoice_total=_as_float(invoice.get("total")),
    )


def pharmacy_from_payload(payload: Mapping[str, Any]) -> Optional[PharmacyDetails]:
    pharmacy_id = _as_int(payload.get("id"))
    if pharmacy_id is None:
        return None
    return PharmacyDetails(
        id=pharmacy_id,
        name=_as_text(payload.get("name")),
        code=_as_text(payload.get("code")),
        address=_as_text(payload.get("address")),
        phone=payload.get("phone") or None,
        active=bool(payload.get("active", True)),
    )
