from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    DB_AUTO_CREATE: bool = False  # create_all on startup instead of running alembic
    DOCUMENT_NUMBER_ATTEMPTS: int = 5  # Inserts retried when a booking/invoice/claim number is taken

    # JWT Settings (tokens are issued by the identity platform, only decoded here)
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60  # For locally issued service and test tokens

    # App Settings
    APP_NAME: str = "Warehouse Marketplace API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    MEMBERSHIP_CACHE_TTL: int = 300  # 5 minutes for membership tier settings
    PRICING_CACHE_TTL: int = 300  # 5 minutes for warehouse rate plans

    # Razorpay Payment Gateway
    RAZORPAY_KEY_ID: str = ""  # Razorpay Key ID
    RAZORPAY_KEY_SECRET: str = ""  # Razorpay Key Secret
    PAYMENT_CURRENCY: str = "USD"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 15.0  # Per gateway call

    # Notifications
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0  # Per dispatch, failures are only logged
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None  # Relay that fans out email/push/SMS; log-only when unset

    # Static pricing used when a warehouse has no active rate plan
    PRICING_PALLET_IN: float = 5.00  # One-off handling charge per pallet
    PRICING_STORAGE_PER_PALLET_PER_MONTH: float = 17.50
    PRICING_AREA_RENTAL_PER_SQFT_PER_YEAR: float = 20.00
    PRICING_AREA_RENTAL_MIN_SQFT: int = 40000
    PRICING_AREA_RENTAL_FLOOR: int = 3  # Floor that hosts area rentals
    # Pallet count threshold -> discount percent
    PRICING_VOLUME_DISCOUNTS: dict[int, float] = {50: 10.0, 100: 15.0, 250: 20.0}
    # Tier -> discount percent, used when membership settings can't be read
    MEMBERSHIP_DEFAULT_DISCOUNTS: dict[str, float] = {
        "bronze": 0.0,
        "silver": 5.0,
        "gold": 10.0,
        "platinum": 15.0,
    }
    # Tier -> minimum cumulative spend, seeded into membership_settings on first start
    MEMBERSHIP_DEFAULT_THRESHOLDS: dict[str, float] = {
        "bronze": 0.0,
        "silver": 10000.0,
        "gold": 50000.0,
        "platinum": 100000.0,
    }

    # Invoicing
    INVOICE_TAX_RATE: float = 0.08  # Flat sales tax on subtotal
    INVOICE_DUE_DAYS: int = 30

    # Task Assignment
    TASK_MAX_CONCURRENT: int = 5  # In-progress tasks before a worker is unavailable

    # Claims
    CLAIM_ESCALATION_DAYS: int = 7

    # Background Scheduler
    SCHEDULER_ENABLED: bool = True
    MONTHLY_INVOICE_DAY: int = 1  # Day of month for recurring storage invoices
    MONTHLY_INVOICE_HOUR: int = 6
    CLAIM_ESCALATION_HOUR: int = 9
    AUTO_ASSIGN_INTERVAL_MINUTES: int = 15  # How often pending tasks are auto-assigned

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('INVOICE_TAX_RATE')
    @classmethod
    def validate_tax_rate(cls, v):
        if not 0 <= v < 1:
            raise ValueError("INVOICE_TAX_RATE must be a fraction between 0 and 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
