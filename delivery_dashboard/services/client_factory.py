from typing import Optional

from delivery_dashboard.config import get_data_provider
from delivery_dashboard.services.client_interface import DataClientInterface
from delivery_dashboard.services.delivery_client import DeliveryAPIClient, DeliveryAPIError
from delivery_dashboard.services.mock_client import MockDataClient
from delivery_dashboard.services.storage import KeyValueStore


def create_data_client(store: Optional[KeyValueStore] = None) -> DataClientInterface:
    """Factory function to create the appropriate data client based on configuration."""
    provider = get_data_provider()

    if provider == "api":
        try:
            return DeliveryAPIClient(store=store)
        except (RuntimeError, ValueError) as exc:
            raise DeliveryAPIError(f"Failed to initialize delivery API client: {exc}") from exc
    elif provider == "mock":
        return MockDataClient()
    else:
        raise ValueError(f"Unknown data provider: {provider}. Valid options are 'api' and 'mock'.")
