import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent
load_dotenv(ROOT.parent / ".env")

DEFAULT_API_BASE_URL = "https://api.davodelivery.uz/api"
VALID_PROVIDERS = {"api", "mock"}


@dataclass
class DeliveryAPISettings:
    base_url: str
    login: str
    password: str
    page_size: int = 10000
    max_pages: int = 5
    token_ttl: int = 3300


@dataclass
class MetricsSettings:
    clamp_negative: bool = False
    exclude_missing: bool = False
    max_total_minutes: Optional[int] = None


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def get_delivery_api_settings() -> DeliveryAPISettings:
    base_url = os.getenv("DELIVERY_API_BASE_URL", "").strip() or DEFAULT_API_BASE_URL
    login = os.getenv("DELIVERY_API_LOGIN", "")
    password = os.getenv("DELIVERY_API_PASSWORD", "")
    page_size = int(os.getenv("DELIVERY_API_PAGE_SIZE", "10000"))
    max_pages = int(os.getenv("DELIVERY_API_MAX_PAGES", "5"))
    token_ttl = int(os.getenv("DELIVERY_API_TOKEN_TTL_S", "3300"))

    missing = [
        name for name, value in (
            ("DELIVERY_API_LOGIN", login),
            ("DELIVERY_API_PASSWORD", password),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing environment variables: {', '.join(missing)}")
    if page_size <= 0 or max_pages <= 0:
        raise ValueError("DELIVERY_API_PAGE_SIZE and DELIVERY_API_MAX_PAGES must be positive.")

    return DeliveryAPISettings(
        base_url=base_url.rstrip("/"),
        login=login,
        password=password,
        page_size=page_size,
        max_pages=max_pages,
        token_ttl=token_ttl,
    )


def get_metrics_settings() -> MetricsSettings:
    cap_raw = os.getenv("METRICS_MAX_TOTAL_MINUTES", "").strip()
    max_total = int(cap_raw) if cap_raw else None
    if max_total is not None and max_total <= 0:
        raise ValueError("METRICS_MAX_TOTAL_MINUTES must be a positive number of minutes.")
    return MetricsSettings(
        clamp_negative=_env_flag("METRICS_CLAMP_NEGATIVE"),
        exclude_missing=_env_flag("METRICS_EXCLUDE_MISSING"),
        max_total_minutes=max_total,
    )


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_data_provider() -> str:
    """Returns the configured data provider: 'api' or 'mock'."""
    if is_frozen_build():
        return "api"
    return os.getenv("DATA_PROVIDER", "api").lower()


def is_frozen_build() -> bool:
    """True when running from a PyInstaller/standalone bundle."""
    return bool(getattr(sys, "frozen", False))
