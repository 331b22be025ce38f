"""
Tests for delivery_dashboard.services.summary
"""

from datetime import datetime, timedelta, timezone

import pytest

from delivery_dashboard.config import MetricsSettings
from delivery_dashboard.models import DeliveryMetrics, TimeDistribution
from delivery_dashboard.services.summary import (
    bucket_for,
    build_summary,
    compute_distribution,
    compute_metrics,
    orders_in_bucket,
)


@pytest.fixture
def order_with_total(make_order, at):
    """Order that took exactly ``minutes`` from creation to delivery."""
    def _make(order_id, minutes):
        created = at(8, 0)
        return make_order(order_id, created=created, delivered=created + timedelta(minutes=minutes))
    return _make


class TestBucketFor:
    """Histogram bucket boundaries"""

    @pytest.mark.parametrize("total,expected", [
        (1, "0-30"),
        (30, "0-30"),
        (31, "30-60"),
        (60, "30-60"),
        (61, "60-90"),
        (90, "60-90"),
        (91, "90+"),
        (600, "90+"),
    ])
    def test_upper_bounds_are_inclusive(self, total, expected):
        assert bucket_for(total) == expected

    def test_zero_negative_and_missing_have_no_bucket(self):
        assert bucket_for(0) is None
        assert bucket_for(-5) is None
        assert bucket_for(None) is None


class TestComputeMetrics:
    """KPI averages and on-time share"""

    def test_empty_input_gives_zeroes(self):
        assert compute_metrics([]) == DeliveryMetrics()
        assert compute_metrics([]).total_orders == 0

    def test_missing_phases_count_as_zero(self, scenario_a_order, legacy_order):
        metrics = compute_metrics([scenario_a_order, legacy_order])
        assert metrics.avg_total_time == 48
        assert metrics.avg_preparation_time == 10
        assert metrics.avg_courier_waiting_time == 3
        assert metrics.avg_delivery_time == 13
        assert metrics.on_time_percentage == 100
        assert metrics.total_orders == 2

    def test_exclude_missing_averages_only_computed_values(self, scenario_a_order, legacy_order):
        metrics = compute_metrics([scenario_a_order, legacy_order], exclude_missing=True)
        assert metrics.avg_total_time == 48
        assert metrics.avg_preparation_time == 20
        assert metrics.avg_courier_waiting_time == 5
        assert metrics.avg_delivery_time == 25

    def test_exactly_sixty_minutes_is_on_time(self, order_with_total):
        metrics = compute_metrics([order_with_total(1, 60), order_with_total(2, 61)])
        assert metrics.on_time_percentage == 50

    def test_on_time_ignores_non_positive_totals(self, scenario_a_order, skewed_order, order_with_total):
        metrics = compute_metrics([scenario_a_order, skewed_order, order_with_total(4, 75)])
        assert metrics.on_time_percentage == 50
        assert 0 <= metrics.on_time_percentage <= 100

    def test_only_non_positive_totals_gives_zero_share(self, skewed_order):
        assert compute_metrics([skewed_order]).on_time_percentage == 0
        assert compute_metrics([skewed_order], clamp_negative=True).on_time_percentage == 0

    def test_outlier_cap_treats_long_orders_as_missing(self, order_with_total):
        orders = [order_with_total(1, 40), order_with_total(2, 2000)]
        assert compute_metrics(orders).avg_total_time == 1020
        capped = compute_metrics(orders, max_total_minutes=1440)
        assert capped.avg_total_time == 20
        assert capped.on_time_percentage == 100
        assert capped.total_orders == 2


class TestComputeDistribution:
    def test_counts_per_bucket(self, order_with_total):
        orders = [order_with_total(i, minutes) for i, minutes in enumerate([10, 30, 45, 60, 89, 120])]
        assert compute_distribution(orders) == TimeDistribution(
            under_30=2, from_30_to_60=2, from_60_to_90=1, over_90=1
        )

    def test_sum_matches_orders_with_positive_total(self, scenario_a_order, legacy_order, skewed_order, make_order, at):
        undelivered = make_order(8, created=at(10, 0))
        distribution = compute_distribution([scenario_a_order, legacy_order, skewed_order, undelivered])
        assert distribution.total == 2

    def test_sixty_minutes_lands_in_second_bucket(self, order_with_total):
        assert compute_distribution([order_with_total(1, 60)]).as_dict()["30-60"] == 1


class TestOrdersInBucket:
    def test_selects_matching_orders(self, scenario_a_order, order_with_total):
        slow = order_with_total(5, 95)
        orders = [scenario_a_order, slow]
        assert orders_in_bucket(orders, "30-60") == [scenario_a_order]
        assert orders_in_bucket(orders, "90+") == [slow]
        assert orders_in_bucket(orders, "0-30") == []

    def test_unknown_bucket_raises(self, scenario_a_order):
        with pytest.raises(ValueError):
            orders_in_bucket([scenario_a_order], "2h+")


class TestBuildSummary:
    """Summary payload consumed by the main window"""

    def test_payload_shape(self, scenario_a_order, legacy_order):
        summary = build_summary(
            [scenario_a_order, legacy_order],
            start_date=datetime(2024, 5, 1),
            end_date=datetime(2024, 5, 1, 23, 59, tzinfo=timezone(timedelta(hours=5))),
        )
        assert summary["orders_total"] == 2
        assert summary["metrics"].avg_total_time == 48
        assert summary["distribution"].as_dict()["30-60"] == 2
        assert summary["start_date"] == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert summary["end_date"] == datetime(2024, 5, 1, 18, 59, tzinfo=timezone.utc)

        first_row = summary["rows"][0]
        assert first_row["order"] is scenario_a_order
        assert first_row["durations"].total == 50
        assert first_row["bucket"] == "30-60"
        assert first_row["on_time"] is True

    def test_settings_are_applied(self, skewed_order):
        summary = build_summary([skewed_order], settings=MetricsSettings(clamp_negative=True))
        row = summary["rows"][0]
        assert row["durations"].courier_waiting == 0
        assert row["bucket"] is None
        assert row["on_time"] is False

    def test_empty_collection(self):
        summary = build_summary([])
        assert summary["metrics"] == DeliveryMetrics()
        assert summary["distribution"].total == 0
        assert summary["rows"] == []

    def test_rows_without_total_have_no_on_time_verdict(self, make_order, at, order_with_total):
        undelivered = make_order(8, created=at(10, 0))
        stale = order_with_total(9, 2000)
        summary = build_summary([undelivered, stale], settings=MetricsSettings(max_total_minutes=1440))
        assert [row["on_time"] for row in summary["rows"]] == [None, None]
        assert [row["bucket"] for row in summary["rows"]] == [None, None]

    def test_late_rows_are_flagged(self, order_with_total):
        summary = build_summary([order_with_total(1, 61)])
        assert summary["rows"][0]["on_time"] is False
