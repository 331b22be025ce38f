import logging
import time
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Union

import jwt
import requests

from delivery_dashboard.config import DeliveryAPISettings, get_delivery_api_settings, is_frozen_build
from delivery_dashboard.models import Order, PharmacyDetails, order_from_payload, pharmacy_from_payload
from delivery_dashboard.services.client_interface import DataClientInterface
from delivery_dashboard.services.filters import filter_by_date
from delivery_dashboard.services.storage import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
TOKEN_EXP_KEY = "auth_token_exp"
PHARMACY_PAGE_SIZE = 1000


class DeliveryAPIError(RuntimeError):
    pass


def retry_after_seconds(value: Optional[str], *, default: float) -> float:
    """Seconds to wait for a `Retry-After` header given as seconds or an HTTP-date."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, when.timestamp() - time.time())


class DeliveryAPIClient(DataClientInterface):
    def __init__(
        self,
        settings: Optional[DeliveryAPISettings] = None,
        *,
        store: Optional[KeyValueStore] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or get_delivery_api_settings()
        self.store = store if store is not None else InMemoryStore()
        self.session = session or requests.Session()

    def _is_token_expired(self) -> bool:
        token = self.store.get(TOKEN_KEY)
        expires_at = float(self.store.get(TOKEN_EXP_KEY, 0.0) or 0.0)
        return not token or time.time() >= expires_at

    def _clear_token(self) -> None:
        self.store.clear(TOKEN_KEY)
        self.store.clear(TOKEN_EXP_KEY)

    def _token_expiry(self, token: str) -> float:
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            claims = {}
        exp = claims.get("exp")
        if isinstance(exp, (int, float)):
            return float(exp)
        return time.time() + self.settings.token_ttl

    def _authenticate(self) -> None:
        url = f"{self.settings.base_url}/auth/admin-login"
        body = {"login": self.settings.login, "password": self.settings.password}
        timeout = 10 if is_frozen_build() else 30
        try:
            response = self.session.post(url, json=body, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            self._clear_token()
            raise DeliveryAPIError(f"Auth request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            self._clear_token()
            raise DeliveryAPIError("Auth response is not JSON") from exc

        if not isinstance(payload, dict):
            payload = {}
        inner = payload.get("payload")
        token_info = inner.get("token") if isinstance(inner, dict) else None
        token = token_info.get("token") if isinstance(token_info, dict) else None
        if not token:
            self._clear_token()
            message = payload.get("message")
            raise DeliveryAPIError(f"Auth error: {message or 'no token in response'}")

        self.store.set(TOKEN_KEY, token)
        self.store.set(TOKEN_EXP_KEY, self._token_expiry(token))

    def _request(self, method, path: str, *, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.settings.base_url}/{path.lstrip('/')}"
        frozen = is_frozen_build()
        delay = 0.5 if frozen else 1.0
        max_attempts = 2 if frozen else 5
        timeout = 10 if frozen else 30
        for _ in range(max_attempts):
            if self._is_token_expired():
                self._authenticate()
            headers = {
                "Authorization": f"Bearer {self.store.get(TOKEN_KEY)}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
            try:
                resp = method(url, json=body, headers=headers, timeout=timeout)
            except requests.Timeout:
                logger.warning("Timeout calling %s, retrying in %.1fs", url, delay)
                time.sleep(delay)
                delay = min(delay * 2, 4 if frozen else 16)
                continue
            except requests.RequestException as exc:
                raise DeliveryAPIError(f"Request failed: {exc}") from exc

            if resp.status_code == 401:
                self._clear_token()
                time.sleep(delay)
                delay = min(delay * 2, 4 if frozen else 16)
                continue
            if resp.status_code == 429:
                retry_after = resp.headers.get("Retry-After")
                wait_s = retry_after_seconds(retry_after, default=delay)
                logger.warning("Rate limited by %s, waiting %.1fs", url, wait_s)
                time.sleep(wait_s)
                delay = min(delay * 2, 4 if frozen else 16)
                continue

            try:
                resp.raise_for_status()
            except requests.RequestException as exc:
                raise DeliveryAPIError(f"HTTP {resp.status_code}: {resp.text}") from exc

            try:
                return resp.json()
            except ValueError as exc:
                raise DeliveryAPIError("Response is not JSON") from exc

        raise DeliveryAPIError(f"Failed request after retries: {url}")

    @staticmethod
    def _extract_list(payload: Any) -> List[Dict[str, Any]]:
        inner = payload.get("payload") if isinstance(payload, dict) else None
        items = inner.get("list") if isinstance(inner, dict) else None
        if not isinstance(items, list):
            raise DeliveryAPIError("Unexpected response shape: missing payload.list")
        return [item for item in items if isinstance(item, dict)]

    def fetch_orders(
        self,
        start_date: Optional[Union[datetime, date]] = None,
        end_date: Optional[Union[datetime, date]] = None,
    ) -> List[Order]:
        """Fetch completed orders page by page, keeping those created within the range."""
        page_size = self.settings.page_size
        orders: List[Order] = []
        page = 0
        while True:
            body = {"page": page, "size": page_size, "status": "COMPLETED"}
            payload = self._request(self.session.post, "order/list", body=body)
            items = self._extract_list(payload)
            orders.extend(order_from_payload(item) for item in items)

            if len(items) < page_size:
                break
            page += 1
            if page >= self.settings.max_pages:
                logger.warning(
                    "Reached maximum page limit (%d pages of %d orders); result is truncated",
                    self.settings.max_pages,
                    page_size,
                )
                break
        return filter_by_date(orders, start_date, end_date)

    def fetch_pharmacy_lookup(self) -> Dict[int, PharmacyDetails]:
        lookup: Dict[int, PharmacyDetails] = {}
        page = 0
        while page < self.settings.max_pages:
            body = {"searchKey": "", "page": page, "size": PHARMACY_PAGE_SIZE, "active": None}
            payload = self._request(self.session.post, "market/list", body=body)
            items = self._extract_list(payload)
            for item in items:
                details = pharmacy_from_payload(item)
                if details is not None:
                    lookup[details.id] = details
            if len(items) < PHARMACY_PAGE_SIZE:
                break
            page += 1
        return lookup
