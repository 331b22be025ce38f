"""Phase durations derived from an order's raw status history.

The functions read ``order.histories`` directly and re-derive chronology from
the timestamps; they never look at the display timeline. Every function
returns whole minutes rounded down, or ``None`` when a boundary is missing.

Out-of-order upstream clocks can make a phase negative. Negative minutes are
propagated unless ``clamp_negative=True`` is passed, in which case they
become ``0``. Preparation is the exception: a ready transition that is not
after creation is treated as not computable.
"""

from datetime import datetime
from typing import FrozenSet, Optional

from delivery_dashboard.models import (
    STATUS_COMPLETED,
    STATUS_GIVEN_TO_COURIER,
    STATUS_PICKED_UP,
    STATUS_READY,
    STATUS_WAITING_FOR_COURIER,
    Order,
    PhaseDurations,
)

READY_STATUSES: FrozenSet[str] = frozenset({STATUS_READY, STATUS_WAITING_FOR_COURIER})
HANDOFF_STATUSES: FrozenSet[str] = frozenset({STATUS_GIVEN_TO_COURIER, STATUS_PICKED_UP})


def _minutes_between(
    start: Optional[datetime],
    end: Optional[datetime],
    *,
    clamp_negative: bool = False,
) -> Optional[int]:
    if start is None or end is None:
        return None
    minutes = int((end - start).total_seconds() // 60)
    if clamp_negative and minutes < 0:
        return 0
    return minutes


def first_transition(order: Order, statuses: FrozenSet[str]) -> Optional[datetime]:
    """Earliest timestamp at which the order entered one of ``statuses``."""
    stamps = [
        record.updated_at
        for record in order.histories
        if record.new_status in statuses and record.updated_at is not None
    ]
    return min(stamps) if stamps else None


def completion_time(order: Order) -> Optional[datetime]:
    """``delivered_at`` when set, else the latest COMPLETED history entry."""
    if order.delivered_at is not None:
        return order.delivered_at
    stamps = [
        record.updated_at
        for record in order.histories
        if record.new_status == STATUS_COMPLETED and record.updated_at is not None
    ]
    return max(stamps) if stamps else None


def preparation_minutes(order: Order, *, clamp_negative: bool = False) -> Optional[int]:
    ready_at = first_transition(order, READY_STATUSES)
    if ready_at is None or order.creation_date is None or ready_at <= order.creation_date:
        return None
    return _minutes_between(order.creation_date, ready_at, clamp_negative=clamp_negative)


def courier_waiting_minutes(order: Order, *, clamp_negative: bool = False) -> Optional[int]:
    return _minutes_between(
        first_transition(order, READY_STATUSES),
        first_transition(order, HANDOFF_STATUSES),
        clamp_negative=clamp_negative,
    )


def in_transit_minutes(order: Order, *, clamp_negative: bool = False) -> Optional[int]:
    return _minutes_between(
        first_transition(order, HANDOFF_STATUSES),
        completion_time(order),
        clamp_negative=clamp_negative,
    )


def total_minutes(order: Order, *, clamp_negative: bool = False) -> Optional[int]:
    return _minutes_between(order.creation_date, completion_time(order), clamp_negative=clamp_negative)


def compute_durations(order: Order, *, clamp_negative: bool = False) -> PhaseDurations:
    return PhaseDurations(
        preparation=preparation_minutes(order, clamp_negative=clamp_negative),
        courier_waiting=courier_waiting_minutes(order, clamp_negative=clamp_negative),
        in_transit=in_transit_minutes(order, clamp_negative=clamp_negative),
        total=total_minutes(order, clamp_negative=clamp_negative),
    )
