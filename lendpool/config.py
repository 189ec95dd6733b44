"""Application configuration using pydantic-settings."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./lendpool.db"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Lending parameters
    FUNDING_WINDOW_DAYS: int = 30
    PROFIT_MARGIN: Decimal = Decimal("0.05")

    # Market rate supplier ("bank_of_canada" or "static")
    RATE_PROVIDER: str = "bank_of_canada"
    STATIC_RATES: dict[int, Decimal] = {
        6: Decimal("4.50"),
        12: Decimal("4.25"),
        24: Decimal("3.90"),
        36: Decimal("3.75"),
        48: Decimal("3.70"),
        60: Decimal("3.65"),
    }
    BANK_OF_CANADA_BONDS_URL: str = (
        "https://www.bankofcanada.ca/valet/observations/group/bond_yields_benchmark/json"
    )
    BANK_OF_CANADA_BILLS_URL: str = (
        "https://www.bankofcanada.ca/valet/observations/group/tbill_all/json"
    )
    RATE_PROVIDER_TIMEOUT: float = 10.0
    RATE_PROVIDER_MAX_RETRIES: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
