import logging

import requests

logger = logging.getLogger(__name__)

PROBE_PATH = "auth/admin-login"


class ConnectivityError(RuntimeError):
    """Raised when the dashboard cannot reach the delivery API."""


def probe_url(base_url: str) -> str:
    target = (base_url or "").strip().rstrip("/")
    if not target:
        raise ConnectivityError("Delivery API endpoint is not configured.")
    return f"{target}/{PROBE_PATH}"


def ensure_online_connectivity(base_url: str, *, timeout: float = 3.0) -> int:
    """Send a HEAD to the login endpoint and return the HTTP status.

    Any HTTP answer counts as reachable, including 401/404/405; only transport
    failures raise ``ConnectivityError``.
    """
    url = probe_url(base_url)
    with requests.Session() as session:
        session.headers["User-Agent"] = "DeliveryDashboard/1.0"
        try:
            response = session.head(url, timeout=timeout, allow_redirects=False)
        except requests.Timeout as exc:
            raise ConnectivityError(
                f"The delivery API did not answer within {timeout:.0f}s. Check the network connection."
            ) from exc
        except requests.RequestException as exc:
            raise ConnectivityError(
                "Could not reach the delivery API. Check the network connection and try again."
            ) from exc
        status = response.status_code
        response.close()
    logger.debug("Connectivity check %s answered HTTP %d", url, status)
    return status
