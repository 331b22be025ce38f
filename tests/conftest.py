"""
Pytest configuration and shared fixtures for all tests
Upstream-shaped order payloads and ready-made orders
"""

import os
import sys
from datetime import datetime, timezone

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from delivery_dashboard.models import (  # noqa: E402
    AdminUserActor,
    CourierActor,
    Order,
    PharmacyEmployeeActor,
    RawHistoryRecord,
)


def _at(hour, minute=0, day=1):
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def at():
    """Timestamp factory on 2024-05-<day> in UTC."""
    return _at


@pytest.fixture
def make_order():
    """
    Builds an Order directly. ``history`` is a list of
    (status, timestamp, actor) tuples; actor may be omitted.
    """
    def _make(order_id=1, *, created=None, delivered=None, history=(), pharmacy="Apteka 1", **extra):
        records = []
        for entry in history:
            status, stamp = entry[0], entry[1]
            kwargs = {"actor": entry[2]} if len(entry) > 2 else {}
            records.append(RawHistoryRecord(new_status=status, updated_at=stamp, **kwargs))
        fields = dict(
            id=order_id,
            code=f"D-{order_id}",
            creation_date=created,
            delivered_at=delivered,
            pharmacy_id=order_id % 3 + 1,
            pharmacy_name=pharmacy,
            customer_first_name="Dilnoza",
            customer_last_name="Yusupova",
            location_name="Home",
            histories=tuple(records),
            invoice_total=150000.0,
        )
        fields.update(extra)
        return Order(**fields)
    return _make


@pytest.fixture
def scenario_a_order(make_order):
    """Created 10:00, ready 10:20, courier 10:25, delivered 10:50."""
    return make_order(
        1,
        created=_at(10, 0),
        delivered=_at(10, 50),
        history=[
            ("CONFIRMED", _at(10, 2), PharmacyEmployeeActor("Operator")),
            ("READY", _at(10, 20), PharmacyEmployeeActor("Operator")),
            ("GIVEN_TO_COURIER", _at(10, 25), CourierActor("Akmal Rashidov")),
            ("COMPLETED", _at(10, 50), CourierActor("Akmal Rashidov")),
        ],
    )


@pytest.fixture
def legacy_order(make_order):
    """Order without any history, created 09:00 and delivered 09:45."""
    return make_order(2, created=_at(9, 0), delivered=_at(9, 45))


@pytest.fixture
def skewed_order(make_order):
    """
    Upstream clocks disagree: handoff (12:10) reported before ready (12:20)
    and delivery (11:55) reported before creation (12:00).
    """
    return make_order(
        3,
        created=_at(12, 0),
        delivered=_at(11, 55),
        history=[
            ("READY", _at(12, 20)),
            ("GIVEN_TO_COURIER", _at(12, 10), CourierActor("Jasur Karimov")),
            ("COMPLETED", _at(11, 55), AdminUserActor("Ali", None, "+998900000000")),
        ],
    )


@pytest.fixture
def order_payload():
    """Upstream JSON for a single completed order."""
    return {
        "id": 501,
        "code": "D-501",
        "creationDate": "2024-05-01T10:00:00Z",
        "deliveredAt": "2024-05-01T10:50:00.000+00:00",
        "market": {"id": 7, "name": "Oxy Med"},
        "customer": {"firstName": "Timur", "lastName": "Nazarov", "phone": "+998901112233"},
        "location": {"name": "Office"},
        "invoice": {"total": 215000},
        "histories": [
            {
                "id": 1,
                "oldStatus": "NEW",
                "newStatus": "READY",
                "updatedAt": "2024-05-01T10:20:00Z",
                "updater": None,
                "marketChat": {"id": 3, "name": "Kamola", "username": None},
                "courierName": None,
            },
            {
                "id": 2,
                "oldStatus": "READY",
                "newStatus": "GIVEN_TO_COURIER",
                "updatedAt": "2024-05-01T10:25:00Z",
                "updater": {"id": 9, "firstName": "Admin", "lastName": "User", "phone": "+998900000001"},
                "marketChat": None,
                "courierName": "Bekzod Aliyev",
            },
            {
                "id": 3,
                "oldStatus": "GIVEN_TO_COURIER",
                "newStatus": "COMPLETED",
                "updatedAt": "2024-05-01T10:50:00Z",
                "updater": {"id": 9, "firstName": None, "lastName": "User", "phone": "+998900000001"},
                "marketChat": None,
                "courierName": None,
            },
        ],
    }
