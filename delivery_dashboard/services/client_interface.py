from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, List, Optional, Union

from delivery_dashboard.models import Order, PharmacyDetails


class DataClientInterface(ABC):
    """Abstract interface so the HTTP and mock clients share one contract."""

    @abstractmethod
    def fetch_orders(
        self,
        start_date: Optional[Union[datetime, date]] = None,
        end_date: Optional[Union[datetime, date]] = None,
    ) -> List[Order]:
        """Fetch completed orders, with their status history, created within the range."""
        pass

    @abstractmethod
    def fetch_pharmacy_lookup(self) -> Dict[int, PharmacyDetails]:
        """Fetch pharmacy details keyed by pharmacy id."""
        pass
