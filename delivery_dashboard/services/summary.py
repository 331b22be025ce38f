import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from delivery_dashboard.config import MetricsSettings
from delivery_dashboard.models import BUCKET_LABELS, DeliveryMetrics, Order, PhaseDurations, TimeDistribution
from delivery_dashboard.services.durations import compute_durations

ON_TIME_THRESHOLD_MINUTES = 60

_NOT_COMPUTABLE = PhaseDurations(preparation=None, courier_waiting=None, in_transit=None, total=None)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def effective_durations(
    order: Order,
    *,
    clamp_negative: bool = False,
    max_total_minutes: Optional[int] = None,
) -> PhaseDurations:
    """Durations as the aggregates see them: outliers above the cap count as missing."""
    durations = compute_durations(order, clamp_negative=clamp_negative)
    if max_total_minutes is not None and durations.total is not None and durations.total > max_total_minutes:
        return _NOT_COMPUTABLE
    return durations


def bucket_for(total: Optional[int]) -> Optional[str]:
    """Histogram bucket for a total duration; upper bounds are inclusive."""
    if total is None or total <= 0:
        return None
    if total <= 30:
        return "0-30"
    if total <= 60:
        return "30-60"
    if total <= 90:
        return "60-90"
    return "90+"


def is_on_time(durations: PhaseDurations) -> bool:
    total = durations.total
    return total is not None and 0 < total <= ON_TIME_THRESHOLD_MINUTES


def _average(values: Sequence[Optional[int]], *, exclude_missing: bool) -> int:
    if exclude_missing:
        computed = [value for value in values if value is not None]
        if not computed:
            return 0
        return _round_half_up(sum(computed) / len(computed))
    if not values:
        return 0
    return _round_half_up(sum(value or 0 for value in values) / len(values))


def compute_metrics(
    orders: Sequence[Order],
    *,
    clamp_negative: bool = False,
    exclude_missing: bool = False,
    max_total_minutes: Optional[int] = None,
) -> DeliveryMetrics:
    """KPIs over ``orders``.

    By default a not-computable duration counts as ``0`` in the averages, so
    sparse data pulls the averages down. ``exclude_missing=True`` averages
    only the computed values instead. The on-time share is always taken over
    orders with a positive total.
    """
    if not orders:
        return DeliveryMetrics()
    durations = [
        effective_durations(order, clamp_negative=clamp_negative, max_total_minutes=max_total_minutes)
        for order in orders
    ]
    positive_totals = [d.total for d in durations if d.total is not None and d.total > 0]
    on_time = sum(1 for total in positive_totals if total <= ON_TIME_THRESHOLD_MINUTES)
    on_time_percentage = _round_half_up(on_time * 100 / len(positive_totals)) if positive_totals else 0
    return DeliveryMetrics(
        avg_total_time=_average([d.total for d in durations], exclude_missing=exclude_missing),
        avg_preparation_time=_average([d.preparation for d in durations], exclude_missing=exclude_missing),
        avg_courier_waiting_time=_average([d.courier_waiting for d in durations], exclude_missing=exclude_missing),
        avg_delivery_time=_average([d.in_transit for d in durations], exclude_missing=exclude_missing),
        on_time_percentage=on_time_percentage,
        total_orders=len(orders),
    )


def compute_distribution(
    orders: Sequence[Order],
    *,
    clamp_negative: bool = False,
    max_total_minutes: Optional[int] = None,
) -> TimeDistribution:
    counts = dict.fromkeys(BUCKET_LABELS, 0)
    for order in orders:
        durations = effective_durations(order, clamp_negative=clamp_negative, max_total_minutes=max_total_minutes)
        bucket = bucket_for(durations.total)
        if bucket is not None:
            counts[bucket] += 1
    return TimeDistribution(
        under_30=counts["0-30"],
        from_30_to_60=counts["30-60"],
        from_60_to_90=counts["60-90"],
        over_90=counts["90+"],
    )


def orders_in_bucket(
    orders: Sequence[Order],
    bucket: str,
    *,
    clamp_negative: bool = False,
    max_total_minutes: Optional[int] = None,
) -> List[Order]:
    if bucket not in BUCKET_LABELS:
        raise ValueError(f"Unknown bucket '{bucket}'. Allowed values: {', '.join(BUCKET_LABELS)}")
    return [
        order
        for order in orders
        if bucket_for(
            effective_durations(order, clamp_negative=clamp_negative, max_total_minutes=max_total_minutes).total
        ) == bucket
    ]


def build_summary(
    orders: Sequence[Order],
    *,
    settings: Optional[MetricsSettings] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, object]:
    def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    settings = settings or MetricsSettings()
    options = {
        "clamp_negative": settings.clamp_negative,
        "max_total_minutes": settings.max_total_minutes,
    }

    rows = []
    for order in orders:
        durations = effective_durations(order, **options)
        rows.append({
            "order": order,
            "durations": durations,
            "bucket": bucket_for(durations.total),
            "on_time": None if durations.total is None else is_on_time(durations),
        })

    return {
        "metrics": compute_metrics(orders, exclude_missing=settings.exclude_missing, **options),
        "distribution": compute_distribution(orders, **options),
        "rows": rows,
        "orders_total": len(orders),
        "start_date": _as_utc(start_date),
        "end_date": _as_utc(end_date),
    }
