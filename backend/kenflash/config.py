"""Environment-driven settings for the subscription service.

Values are read from the process environment (optionally seeded from a
``.env`` file) each time :func:`get_settings` is called, so tests can change
them with ``monkeypatch.setenv``.

Server-only:
- KORAPAY_SECRET_KEY: Bearer key for the Korapay merchant API
- DATABASE_URL: SQLAlchemy URL for subscription records (default: SQLite file)
- PLATFORM_ADMIN_KEY: Enables the admin payment review endpoints
- RATE_LIMIT_PAYMENTS, RATE_LIMIT_WINDOW_SECONDS: Payment function request budget per client
- RATE_LIMIT_DISABLED: Set to "1" to turn rate limiting off (tests)
- TRUST_PROXY_HEADERS: Set to "1" behind a reverse proxy so X-Forwarded-For names the client

Shared with the viewer side:
- KORAPAY_PUBLIC_KEY: Public key for the embedded checkout widget
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_KORAPAY_BASE_URL = "https://api.korapay.com"
DEFAULT_REDIRECT_URL = "https://ken-flash.vercel.app/"
DEFAULT_VERIFY_ALLOWED_ORIGINS = ("http://localhost:3000", "https://ken-flash.vercel.app")
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


def _split_origins(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not raw:
        return default
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    """Snapshot of the service configuration."""
    database_url: str
    korapay_secret_key: str | None
    korapay_public_key: str | None
    korapay_base_url: str
    korapay_currency: str
    redirect_url: str
    notification_url: str | None
    verify_allowed_origins: tuple[str, ...]
    platform_admin_key: str | None
    support_email: str
    log_level: str
    db_pool_size: int
    db_max_overflow: int
    cors_origins: tuple[str, ...]
    rate_limit_payments: int
    rate_limit_window_seconds: int
    rate_limit_disabled: bool
    trust_proxy_headers: bool


def get_settings() -> Settings:
    """Read the current settings from the environment."""
    return Settings(
        database_url=os.environ.get("DATABASE_URL", "sqlite:///./kenflash.db"),
        korapay_secret_key=os.environ.get("KORAPAY_SECRET_KEY") or None,
        korapay_public_key=os.environ.get("KORAPAY_PUBLIC_KEY") or None,
        korapay_base_url=os.environ.get("KORAPAY_BASE_URL") or DEFAULT_KORAPAY_BASE_URL,
        korapay_currency=os.environ.get("KORAPAY_CURRENCY", "KES"),
        redirect_url=os.environ.get("KORAPAY_REDIRECT_URL") or DEFAULT_REDIRECT_URL,
        notification_url=os.environ.get("KORAPAY_NOTIFICATION_URL") or None,
        verify_allowed_origins=_split_origins(os.environ.get("VERIFY_ALLOWED_ORIGINS"), DEFAULT_VERIFY_ALLOWED_ORIGINS),
        platform_admin_key=os.environ.get("PLATFORM_ADMIN_KEY") or None,
        support_email=os.environ.get("SUPPORT_EMAIL", "support@draftey.com"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        db_pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
        db_max_overflow=int(os.environ.get("DB_MAX_OVERFLOW", "10")),
        cors_origins=_split_origins(os.environ.get("CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
        rate_limit_payments=int(os.environ.get("RATE_LIMIT_PAYMENTS", "20")),
        rate_limit_window_seconds=int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60")),
        rate_limit_disabled=os.environ.get("RATE_LIMIT_DISABLED", "0") == "1",
        trust_proxy_headers=os.environ.get("TRUST_PROXY_HEADERS", "0") == "1",
    )
