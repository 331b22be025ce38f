import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from threading import Lock
from typing import Dict, List, Optional, Tuple, Union

from delivery_dashboard.models import Order, PharmacyDetails
from delivery_dashboard.services.client_interface import DataClientInterface
from delivery_dashboard.services.filters import filter_by_date
from delivery_dashboard.services.mock_client import MockDataClient

logger = logging.getLogger(__name__)

SOURCE_LIVE = "live"
SOURCE_CACHED = "cached"
SOURCE_MOCK = "mock"

DateLike = Optional[Union[datetime, date]]


@dataclass(frozen=True)
class LoadResult:
    generation: int
    orders: List[Order]
    pharmacies: Dict[int, PharmacyDetails] = field(default_factory=dict)
    source: str = SOURCE_LIVE
    error: Optional[str] = None


class DashboardDataLoader:
    """Fetches the order snapshot and the pharmacy lookup side by side.

    Each load is tagged with a generation number taken from a monotonically
    increasing counter; callers use ``is_current`` to drop responses that a
    newer load has superseded.
    """

    def __init__(
        self,
        client: DataClientInterface,
        *,
        fallback_client: Optional[DataClientInterface] = None,
    ) -> None:
        self._client = client
        self._fallback = fallback_client or MockDataClient()
        self._lock = Lock()
        self._generation = 0
        self._last_good: Optional[LoadResult] = None

    def next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    @property
    def last_good(self) -> Optional[LoadResult]:
        return self._last_good

    def fetch_snapshot(
        self,
        start_date: DateLike = None,
        end_date: DateLike = None,
    ) -> Tuple[List[Order], Dict[int, PharmacyDetails]]:
        """Run both upstream calls concurrently; an order fetch failure propagates."""
        with ThreadPoolExecutor(max_workers=2) as executor:
            orders_future = executor.submit(self._client.fetch_orders, start_date, end_date)
            lookup_future = executor.submit(self._client.fetch_pharmacy_lookup)
            orders = orders_future.result()
            try:
                pharmacies = lookup_future.result()
            except RuntimeError as exc:
                logger.warning("Pharmacy lookup failed, continuing without it: %s", exc)
                pharmacies = {}
        return orders, pharmacies

    def load(
        self,
        start_date: DateLike = None,
        end_date: DateLike = None,
        *,
        generation: Optional[int] = None,
    ) -> LoadResult:
        if generation is None:
            generation = self.next_generation()
        try:
            orders, pharmacies = self.fetch_snapshot(start_date, end_date)
        except RuntimeError as exc:
            return self._fallback_result(generation, start_date, end_date, exc)

        result = LoadResult(generation=generation, orders=orders, pharmacies=pharmacies)
        with self._lock:
            if self._last_good is None or self._last_good.generation < generation:
                self._last_good = result
        if not self.is_current(generation):
            logger.debug("Load %d finished after a newer load started", generation)
        return result

    def _fallback_result(
        self,
        generation: int,
        start_date: DateLike,
        end_date: DateLike,
        exc: Exception,
    ) -> LoadResult:
        message = str(exc)
        last_good = self._last_good
        if last_good is not None:
            logger.warning("Order fetch failed, using last good snapshot: %s", message)
            return replace(
                last_good,
                generation=generation,
                orders=filter_by_date(last_good.orders, start_date, end_date),
                source=SOURCE_CACHED,
                error=message,
            )
        logger.warning("Order fetch failed, using mock dataset: %s", message)
        return LoadResult(
            generation=generation,
            orders=self._fallback.fetch_orders(start_date, end_date),
            pharmacies=self._fallback.fetch_pharmacy_lookup(),
            source=SOURCE_MOCK,
            error=message,
        )
