"""Centralized application configuration for all environments."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Final

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

# Load environment variables once, prioritizing runtime env over file values
load_dotenv(dotenv_path=ENV_PATH, override=False)


def _str_to_bool(value: str | bool | None, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _determine_database_url() -> str:
    """
    Return a connection string using the following precedence:
    1. Explicit DATABASE_URL
    2. Individual DB_* components (for PostgreSQL)
    3. Local SQLite fallback (for onboarding / tests)
    """
    explicit_url = os.getenv("DATABASE_URL")
    if explicit_url:
        return explicit_url

    username = os.getenv("DB_USERNAME")
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST")
    port = os.getenv("DB_PORT")
    name = os.getenv("DB_NAME")

    if all([username, password, host, port, name]):
        driver = os.getenv("DB_DRIVER", "postgresql+psycopg2")
        return f"{driver}://{username}:{password}@{host}:{port}/{name}"

    fallback_path = BASE_DIR / "db" / "app.db"
    fallback_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{fallback_path.as_posix()}"


class Config:
    """Default runtime configuration shared across Flask, services, and gateways."""

    APP_NAME: Final[str] = os.getenv("APP_NAME", "Storefront API")
    APP_ENV: Final[str] = os.getenv("APP_ENV", "development")

    SECRET_KEY: Final[str] = os.getenv("SECRET_KEY", "change-me-in-prod")
    DEBUG: Final[bool] = _str_to_bool(os.getenv("FLASK_DEBUG"), default=APP_ENV == "development")
    TESTING: Final[bool] = _str_to_bool(os.getenv("FLASK_TESTING"), default=False)

    # Flask run configuration (used by run.py + Docker)
    FLASK_RUN_HOST: Final[str] = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    FLASK_RUN_PORT: Final[int] = int(os.getenv("FLASK_RUN_PORT", os.getenv("PORT", "3001")))
    FRONTEND_URL: Final[str] = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Database
    DATABASE_URL: Final[str] = _determine_database_url()
    SQL_ECHO: Final[bool] = _str_to_bool(os.getenv("SQL_ECHO"), default=False)
    DB_POOL_SIZE: Final[int] = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: Final[int] = int(os.getenv("DB_MAX_OVERFLOW", "20"))

    # Identity provider + object storage (Supabase REST)
    SUPABASE_URL: Final[str] = os.getenv("SUPABASE_URL", "").rstrip("/")
    SUPABASE_SERVICE_ROLE_KEY: Final[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    STORAGE_DESIGNS_BUCKET: Final[str] = os.getenv("STORAGE_DESIGNS_BUCKET", "designs")
    STORAGE_PRODUCT_IMAGES_BUCKET: Final[str] = os.getenv("STORAGE_PRODUCT_IMAGES_BUCKET", "product-images")
    SIGNED_URL_TTL_SECONDS: Final[int] = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))
    HTTP_TIMEOUT_SECONDS: Final[float] = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # Payments (Stripe REST)
    STRIPE_SECRET_KEY: Final[str] = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: Final[str] = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: Final[int] = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    # Accepting unsigned webhook events is only meant for local development.
    STRIPE_WEBHOOK_ALLOW_UNVERIFIED: Final[bool] = _str_to_bool(
        os.getenv("STRIPE_WEBHOOK_ALLOW_UNVERIFIED"), default=False
    )
    PAYMENT_CURRENCY: Final[str] = os.getenv("PAYMENT_CURRENCY", "usd")
    MIN_CHARGE_CENTS: Final[int] = int(os.getenv("MIN_CHARGE_CENTS", "50"))
    DEFAULT_SHIPPING_COUNTRY: Final[str] = os.getenv("DEFAULT_SHIPPING_COUNTRY", "US")

    # Admin back-office
    ADMIN_SECRET: Final[str] = os.getenv("ADMIN_SECRET", "")
    ADMIN_ORDERS_PAGE_SIZE: Final[int] = int(os.getenv("ADMIN_ORDERS_PAGE_SIZE", "20"))
    DASHBOARD_WINDOW_DAYS: Final[int] = int(os.getenv("DASHBOARD_WINDOW_DAYS", "30"))
    DASHBOARD_TOP_PRODUCTS: Final[int] = int(os.getenv("DASHBOARD_TOP_PRODUCTS", "5"))
    DASHBOARD_RECENT_ORDERS: Final[int] = int(os.getenv("DASHBOARD_RECENT_ORDERS", "6"))

    # Order confirmation email
    RESEND_API_KEY: Final[str] = os.getenv("RESEND_API_KEY", "")
    ORDER_EMAIL_FROM: Final[str] = os.getenv("ORDER_EMAIL_FROM", "")
    STORE_NAME: Final[str] = os.getenv("STORE_NAME", "PrintShop")

    # Observability
    STRUCTURED_LOGS_ENABLED: Final[bool] = _str_to_bool(os.getenv("STRUCTURED_LOGS_ENABLED"), default=True)
    LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")
    REQUEST_ID_HEADER: Final[str] = os.getenv("REQUEST_ID_HEADER", "X-Request-ID")
    OBSERVABILITY_ENABLED: Final[bool] = _str_to_bool(os.getenv("OBSERVABILITY_ENABLED"), default=True)

    @classmethod
    def configure_app(cls, app: Any) -> None:
        """Apply core configuration to a Flask app instance."""
        app.config["SECRET_KEY"] = cls.SECRET_KEY
        app.config["ENV"] = cls.APP_ENV
        app.config["DEBUG"] = cls.DEBUG
        app.config["TESTING"] = cls.TESTING
        app.config["SQLALCHEMY_DATABASE_URI"] = cls.DATABASE_URL
        app.config["SQLALCHEMY_ECHO"] = cls.SQL_ECHO
        app.config["FRONTEND_URL"] = cls.FRONTEND_URL
        app.config["STRUCTURED_LOGS_ENABLED"] = cls.STRUCTURED_LOGS_ENABLED
        app.config["OBSERVABILITY_ENABLED"] = cls.OBSERVABILITY_ENABLED
        app.config["JSON_SORT_KEYS"] = False
