from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import ClassVar
from pathlib import Path


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # JWT verification for tokens issued by the identity provider
    # (provide a fallback for local development)
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'qtalent.db'}"

    # Redis connection URL for the realtime notification bus
    REDIS_URL: str = "redis://localhost:6379/0"
    REALTIME_BUS_ENABLED: bool = False

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Base frontend URL used for checkout redirects and notification links
    FRONTEND_URL: str = "http://localhost:5173"

    # Default currency code used when an invoice omits one
    DEFAULT_CURRENCY: str = "USD"

    # Commission schedule (percent of the invoice kept by the platform).
    # Frozen into each Payment row at issuance time.
    COMMISSION_RATE_STANDARD: float = 20.0
    COMMISSION_RATE_PRO: float = 10.0

    # Stripe checkout + webhooks
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    # Stripe accepts 30 minutes to 24 hours
    CHECKOUT_SESSION_TTL_MINUTES: int = 1440

    # PayPal subscription webhooks
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""
    PAYPAL_WEBHOOK_ID: str = ""
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"

    # Pending payments older than this are expired by the maintenance sweep.
    # Keep it longer than CHECKOUT_SESSION_TTL_MINUTES so an open checkout can
    # never complete against an expired payment.
    PAYMENT_PENDING_TTL_HOURS: int = 48
    MAINTENANCE_INTERVAL_SECONDS: int = 1800
    MAINTENANCE_ENABLED: bool = True

    # SMTP email settings
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "no-reply@localhost"
    EMAIL_ENABLED: bool = False

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v):
        """Accept a comma separated string as well as a JSON list."""
        if isinstance(v, str) and not v.strip().startswith("["):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("COMMISSION_RATE_STANDARD", "COMMISSION_RATE_PRO")
    @classmethod
    def rate_in_range(cls, v: float) -> float:
        if v < 0 or v > 100:
            raise ValueError("commission rate must be between 0 and 100")
        return v


settings = Settings()

FRONTEND_URL = settings.FRONTEND_URL.rstrip("/")
REDIS_URL = settings.REDIS_URL
