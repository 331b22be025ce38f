import logging
import sys

from PySide6.QtWidgets import QApplication, QMessageBox

from delivery_dashboard.config import get_data_provider, get_delivery_api_settings, get_log_level, is_frozen_build
from delivery_dashboard.services.client_factory import create_data_client
from delivery_dashboard.services.connectivity import ConnectivityError, ensure_online_connectivity
from delivery_dashboard.services.delivery_client import DeliveryAPIError
from delivery_dashboard.services.filters import use_system_collation
from delivery_dashboard.services.storage import InMemoryStore
from delivery_dashboard.ui.main_window import launch_app


def main() -> None:
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    use_system_collation()
    store = InMemoryStore()
    try:
        if get_data_provider() == "api":
            base_url = get_delivery_api_settings().base_url
            timeout = 3.0 if is_frozen_build() else 5.0
            ensure_online_connectivity(base_url, timeout=timeout)
        client = create_data_client(store)
    except (RuntimeError, DeliveryAPIError, ValueError, ConnectivityError) as exc:
        logging.getLogger(__name__).error("Startup failed: %s", exc)
        app = QApplication.instance() or QApplication([])
        QMessageBox.critical(None, "Invalid configuration", str(exc))
        sys.exit(1)
    launch_app(client, store=store)


if __name__ == "__main__":
    main()
