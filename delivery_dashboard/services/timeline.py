from typing import List

from delivery_dashboard.models import (
    STATUS_COMPLETED,
    STATUS_CREATED,
    Actor,
    AdminUserActor,
    CourierActor,
    Order,
    PharmacyEmployeeActor,
    TimelineEvent,
    UnknownActor,
)


def actor_label(order: Order, actor: Actor) -> str:
    """Human label for whoever performed a status change."""
    if isinstance(actor, CourierActor):
        return actor.name
    if isinstance(actor, PharmacyEmployeeActor):
        return f"{order.pharmacy_name} / {actor.chat_name}"
    if isinstance(actor, AdminUserActor):
        if actor.first_name and actor.last_name:
            return f"{actor.first_name} {actor.last_name}"
        return actor.phone
    if isinstance(actor, UnknownActor):
        return ""
    raise TypeError(f"Unsupported actor reference: {type(actor)!r}")


def origin_label(order: Order) -> str:
    return f"{order.customer_first_name or ''} {order.customer_last_name or ''} / {order.location_name}"


def _origin_event(order: Order) -> TimelineEvent:
    return TimelineEvent(
        status=STATUS_CREATED,
        timestamp=order.creation_date,
        performed_by=origin_label(order),
        is_origin=True,
    )


def normalize_events(order: Order) -> List[TimelineEvent]:
    """Map an order's raw history to uniform events, ending with the origin.

    Legacy orders (no history) yield a completion event when ``delivered_at``
    is known plus the origin. Duplicates are kept as reported upstream.
    """
    events: List[TimelineEvent] = []
    if order.is_legacy:
        if order.delivered_at is not None:
            events.append(
                TimelineEvent(status=STATUS_COMPLETED, timestamp=order.delivered_at, performed_by="")
            )
    else:
        for record in order.histories:
            events.append(
                TimelineEvent(
                    status=record.new_status,
                    timestamp=record.updated_at,
                    performed_by=actor_label(order, record.actor),
                )
            )
    events.append(_origin_event(order))
    return events


def build_timeline(order: Order) -> List[TimelineEvent]:
    """Display timeline: newest first, origin event always last."""
    events = normalize_events(order)
    origin = [event for event in events if event.is_origin]
    regular = [event for event in events if not event.is_origin]
    # sorted() with reverse=True keeps ties in their upstream order
    dated = sorted(
        (event for event in regular if event.timestamp is not None),
        key=lambda event: event.timestamp,
        reverse=True,
    )
    undated = [event for event in regular if event.timestamp is None]
    return dated + undated + origin
