"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from decimal import Decimal
from typing import List
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "PharmaPOS Settlement API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./pharmapos.db"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True

    # CORS
    CORS_ORIGINS: str = "http://localhost:4200,http://127.0.0.1:4200"

    # Money and tax
    CURRENCY_CODE: str = "KES"
    DEFAULT_TAX_RATE: Decimal = Decimal("16.00")
    DEFAULT_REDUCED_TAX_RATE: Decimal = Decimal("8.00")
    DEFAULT_PRICING_MODE: str = "EXCLUSIVE"
    TAX_POLICY_CACHE_TTL_SECONDS: int = 300
    PAYMENT_TOLERANCE: Decimal = Decimal("0.01")  # Non-credit tenders vs sale total

    # Transactions
    TX_RETRY_ATTEMPTS: int = 3
    TX_RETRY_BASE_DELAY_MS: int = 50

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            # Convert file: URL to SQLite URL
            path = url[5:]
            return f"sqlite:///{path}"
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() == "production"

    def validate_settings(self):
        """Reject nonsensical values and warn about risky ones"""
        for name in ("DEFAULT_TAX_RATE", "DEFAULT_REDUCED_TAX_RATE"):
            rate = getattr(self, name)
            if rate < 0 or rate > 100:
                raise ValueError(f"{name} must be between 0 and 100, got {rate}")

        if self.DEFAULT_PRICING_MODE.upper() not in ("INCLUSIVE", "EXCLUSIVE"):
            raise ValueError(
                f"DEFAULT_PRICING_MODE must be INCLUSIVE or EXCLUSIVE, got {self.DEFAULT_PRICING_MODE}"
            )

        if self.TX_RETRY_ATTEMPTS < 1:
            raise ValueError("TX_RETRY_ATTEMPTS must be at least 1")

        if self.TAX_POLICY_CACHE_TTL_SECONDS < 0:
            raise ValueError("TAX_POLICY_CACHE_TTL_SECONDS cannot be negative")

        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        if self.is_production and self.DATABASE_URL.startswith("sqlite"):
            warnings.warn(
                "WARNING: SQLite is configured in production. "
                "Row locks are not available; only optimistic version checks apply.",
                UserWarning
            )

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# Validate on import (but don't crash in development)
try:
    settings.validate_settings()
except ValueError as e:
    if settings.is_production:
        raise
    else:
        warnings.warn(str(e), UserWarning)
