"""
Tests for delivery_dashboard.services.timeline
"""

import pytest

from delivery_dashboard.models import (
    AdminUserActor,
    CourierActor,
    PharmacyEmployeeActor,
    UnknownActor,
)
from delivery_dashboard.services.timeline import (
    actor_label,
    build_timeline,
    normalize_events,
    origin_label,
)


class TestActorLabel:
    """Labels for each actor kind"""

    def test_courier_uses_name(self, scenario_a_order):
        assert actor_label(scenario_a_order, CourierActor("Akmal Rashidov")) == "Akmal Rashidov"

    def test_pharmacy_employee_is_prefixed_with_pharmacy(self, scenario_a_order):
        assert actor_label(scenario_a_order, PharmacyEmployeeActor("Kamola")) == "Apteka 1 / Kamola"

    def test_admin_with_full_name(self, scenario_a_order):
        actor = AdminUserActor("Ali", "Valiyev", "+998900000000")
        assert actor_label(scenario_a_order, actor) == "Ali Valiyev"

    def test_admin_without_full_name_falls_back_to_phone(self, scenario_a_order):
        assert actor_label(scenario_a_order, AdminUserActor("Ali", None, "+998900000000")) == "+998900000000"
        assert actor_label(scenario_a_order, AdminUserActor(None, "Valiyev", "+998900000000")) == "+998900000000"

    def test_unknown_actor_is_blank(self, scenario_a_order):
        assert actor_label(scenario_a_order, UnknownActor()) == ""

    def test_unsupported_reference_raises(self, scenario_a_order):
        with pytest.raises(TypeError):
            actor_label(scenario_a_order, "courier")


class TestOriginLabel:
    def test_customer_and_location(self, scenario_a_order):
        assert origin_label(scenario_a_order) == "Dilnoza Yusupova / Home"

    def test_missing_name_parts_are_blank(self, make_order):
        order = make_order(9, customer_first_name=None, customer_last_name="Karimova")
        assert origin_label(order) == " Karimova / Home"


class TestNormalizeEvents:
    """Raw history to uniform events"""

    def test_one_event_per_history_entry_plus_origin(self, scenario_a_order):
        events = normalize_events(scenario_a_order)
        assert len(events) == len(scenario_a_order.histories) + 1
        assert [event.is_origin for event in events].count(True) == 1

    def test_legacy_order_gets_completion_and_origin(self, legacy_order, at):
        events = normalize_events(legacy_order)
        assert len(events) == 2
        assert events[0].status == "COMPLETED"
        assert events[0].timestamp == at(9, 45)
        assert events[0].performed_by == ""
        assert events[1].is_origin
        assert events[1].status == "CREATED"

    def test_legacy_order_without_delivery_has_only_origin(self, make_order, at):
        events = normalize_events(make_order(4, created=at(9, 0)))
        assert len(events) == 1
        assert events[0].is_origin

    def test_duplicate_statuses_are_kept(self, make_order, at):
        order = make_order(
            5,
            created=at(10, 0),
            history=[("READY", at(10, 10)), ("READY", at(10, 12)), ("COMPLETED", at(10, 40))],
        )
        statuses = [event.status for event in normalize_events(order)]
        assert statuses == ["READY", "READY", "COMPLETED", "CREATED"]


class TestBuildTimeline:
    """Display ordering"""

    def test_newest_first_with_origin_last(self, scenario_a_order, at):
        timeline = build_timeline(scenario_a_order)
        assert [event.status for event in timeline] == [
            "COMPLETED",
            "GIVEN_TO_COURIER",
            "READY",
            "CONFIRMED",
            "CREATED",
        ]
        assert timeline[-1].is_origin
        assert timeline[-1].timestamp == at(10, 0)
        assert timeline[-1].performed_by == "Dilnoza Yusupova / Home"
        assert timeline[1].performed_by == "Akmal Rashidov"
        assert timeline[2].performed_by == "Apteka 1 / Operator"

    def test_origin_stays_last_even_when_clocks_disagree(self, skewed_order):
        timeline = build_timeline(skewed_order)
        assert [event.status for event in timeline] == ["READY", "GIVEN_TO_COURIER", "COMPLETED", "CREATED"]
        assert timeline[-1].is_origin
        assert timeline[2].performed_by == "+998900000000"

    def test_equal_timestamps_keep_upstream_order(self, make_order, at):
        order = make_order(
            6,
            created=at(10, 0),
            history=[
                ("READY", at(10, 15), PharmacyEmployeeActor("First")),
                ("READY", at(10, 15), PharmacyEmployeeActor("Second")),
            ],
        )
        timeline = build_timeline(order)
        assert [event.performed_by for event in timeline[:2]] == ["Apteka 1 / First", "Apteka 1 / Second"]

    def test_undated_events_come_after_dated_ones(self, make_order, at):
        order = make_order(
            7,
            created=at(10, 0),
            history=[("CONFIRMED", None), ("READY", at(10, 15))],
        )
        timeline = build_timeline(order)
        assert [event.status for event in timeline] == ["READY", "CONFIRMED", "CREATED"]

    def test_legacy_timeline(self, legacy_order):
        timeline = build_timeline(legacy_order)
        assert len(timeline) <= 2
        assert timeline[-1].is_origin
