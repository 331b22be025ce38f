import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from delivery_dashboard.models import Order, PharmacyDetails, order_from_payload
from delivery_dashboard.services.client_interface import DataClientInterface
from delivery_dashboard.services.filters import filter_by_date

MOCK_PHARMACIES = (
    (101, "Dori-Darmon Chilonzor"),
    (102, "Oxy Med Yunusobod"),
    (103, "Arzon Apteka Sergeli"),
    (104, "Grand Pharm Mirzo Ulugbek"),
    (105, "Nur Farm Yakkasaroy"),
)
MOCK_COURIERS = ("Akmal Rashidov", "Jasur Karimov", "Bekzod Aliyev", "Sardor Tursunov")
MOCK_CUSTOMERS = (("Dilnoza", "Yusupova"), ("Timur", "Nazarov"), ("Malika", None), ("Rustam", "Ergashev"))


class MockDataClient(DataClientInterface):
    """Deterministic offline dataset used when no upstream is configured or reachable."""

    def __init__(
        self,
        *,
        seed: int = 42,
        order_count: int = 120,
        days: int = 30,
        anchor: Optional[datetime] = None,
    ) -> None:
        self.seed = seed
        self.order_count = order_count
        self.days = days
        self.anchor = anchor or datetime.now(timezone.utc).replace(second=0, microsecond=0)
        self._payloads: Optional[List[Dict[str, Any]]] = None

    @staticmethod
    def _stamp(value: datetime) -> str:
        return value.isoformat()

    def _history(self, status: str, at: datetime, actor: Dict[str, Any]) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"newStatus": status, "updatedAt": self._stamp(at), "marketChat": None}
        entry.update(actor)
        return entry

    def _build_payload(self, rng: random.Random, index: int) -> Dict[str, Any]:
        pharmacy_id, pharmacy_name = MOCK_PHARMACIES[index % len(MOCK_PHARMACIES)]
        first_name, last_name = MOCK_CUSTOMERS[index % len(MOCK_CUSTOMERS)]
        created = self.anchor - timedelta(minutes=rng.randint(60, self.days * 24 * 60))
        ready = created + timedelta(minutes=rng.randint(5, 45))
        handoff = ready + timedelta(minutes=rng.randint(0, 25))
        delivered = handoff + timedelta(minutes=rng.randint(10, 60))

        courier = {"courierName": rng.choice(MOCK_COURIERS)}
        employee = {"marketChat": {"name": f"Operator {pharmacy_id}"}}
        admin = {"updater": {"firstName": None, "lastName": None, "phone": "+998901234567"}}

        histories: List[Dict[str, Any]] = []
        kind = index % 10
        if kind != 0:
            histories = [
                self._history("CONFIRMED", created + timedelta(minutes=1), employee),
                self._history("READY", ready, employee),
                self._history("GIVEN_TO_COURIER", handoff, courier),
                self._history("COMPLETED", delivered, courier),
            ]
            if kind == 3:
                histories.append(self._history("READY", ready + timedelta(minutes=2), employee))
            if kind == 7:
                histories.append(self._history("COMPLETED", delivered, admin))
        return {
            "id": 10000 + index,
            "code": f"D-{10000 + index}",
            "creationDate": self._stamp(created),
            "deliveredAt": self._stamp(delivered) if kind != 9 else None,
            "market": {"id": pharmacy_id, "name": pharmacy_name},
            "customer": {"firstName": first_name, "lastName": last_name},
            "location": {"name": f"Home {index % 7 + 1}"},
            "invoice": {"total": float(rng.randint(20, 400) * 1000)},
            "histories": histories,
        }

    def _dataset(self) -> List[Dict[str, Any]]:
        if self._payloads is None:
            rng = random.Random(self.seed)
            self._payloads = [self._build_payload(rng, index) for index in range(self.order_count)]
        return self._payloads

    def fetch_orders(
        self,
        start_date: Optional[Union[datetime, date]] = None,
        end_date: Optional[Union[datetime, date]] = None,
    ) -> List[Order]:
        orders = [order_from_payload(payload) for payload in self._dataset()]
        return filter_by_date(orders, start_date, end_date)

    def fetch_pharmacy_lookup(self) -> Dict[int, PharmacyDetails]:
        return {
            pharmacy_id: PharmacyDetails(id=pharmacy_id, name=name, code=f"PH-{pharmacy_id}")
            for pharmacy_id, name in MOCK_PHARMACIES
        }
