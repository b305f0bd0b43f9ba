"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional
import warnings


INSECURE_SECRET_KEYS = [
    "your-super-secret-key-change-in-production-min-32-chars",
    "dev-secret-key-change-in-production",
    "secret-key",
    "change-me",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "GST Book API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./gstbook.db"

    # Security
    SECRET_KEY: str = "your-super-secret-key-change-in-production-min-32-chars"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    CRON_SECRET: Optional[str] = None
    BANK_WEBHOOK_SECRET: Optional[str] = None  # HMAC-SHA256 key for bank notifications
    DK_BANK_MERCHANT_ID: str = "UNKNOWN"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 100  # Per client IP for mutating API calls
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    REDIS_URL: Optional[str] = None  # Distributed limiter when set

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Email
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = "billing@gstbook.bt"

    # Billing
    DEFAULT_CURRENCY: str = "BTN"
    REMINDER_BATCH_LIMIT: int = 50
    REMINDER_INTERVAL_DAYS: int = 7
    QR_EXPIRY_MINUTES: int = 30
    POS_CREDIT_DAYS: int = 30

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            return f"sqlite:///{url[5:]}"
        # Managed Postgres providers still hand out the legacy scheme
        if url.startswith("postgres://"):
            return "postgresql://" + url[len("postgres://"):]
        return url

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def validate_security_settings(self):
        """Validate security settings and warn about insecure defaults"""
        if self.SECRET_KEY in INSECURE_SECRET_KEYS or len(self.SECRET_KEY) < 32:
            if self.is_production:
                raise ValueError(
                    "CRITICAL: Insecure SECRET_KEY detected in production! "
                    "Set SECRET_KEY to a random value of at least 32 characters."
                )
            warnings.warn(
                "WARNING: Using an insecure SECRET_KEY. "
                "Set SECRET_KEY environment variable for production.",
                UserWarning
            )

        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        if self.is_production and not self.CRON_SECRET:
            warnings.warn(
                "WARNING: CRON_SECRET is not set. Scheduled reminder runs will be rejected.",
                UserWarning
            )

        if self.is_production and not self.REDIS_URL:
            warnings.warn(
                "WARNING: REDIS_URL is not set. The in-memory rate limiter "
                "is not shared between instances.",
                UserWarning
            )

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()

try:
    settings.validate_security_settings()
except ValueError as e:
    if settings.is_production:
        raise
    warnings.warn(str(e), UserWarning)
