"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Centralised settings, read from the environment and .env."""

    # Database
    database_url: str = Field(
        "sqlite+aiosqlite:///./storefront.db", env="DATABASE_URL"
    )

    # Security
    service_token: str = Field("change-me", env="SERVICE_TOKEN")
    allowed_origins: str = Field(
        "http://localhost:5173,http://localhost:3000",
        env="ALLOWED_ORIGINS",
    )

    # App
    app_env: str = Field("development", env="APP_ENV")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    # Geocoding (Nominatim allows one request per second)
    geocoder_url: str = Field(
        "https://nominatim.openstreetmap.org/search", env="GEOCODER_URL"
    )
    geocoder_user_agent: str = Field("storefront/1.0", env="GEOCODER_USER_AGENT")
    geocoder_timeout_seconds: float = Field(8.0, env="GEOCODER_TIMEOUT_SECONDS")
    geocoder_min_interval_seconds: float = Field(
        1.0, env="GEOCODER_MIN_INTERVAL_SECONDS"
    )
    geocoder_cache_ttl_seconds: int = Field(86_400, env="GEOCODER_CACHE_TTL_SECONDS")

    # Points: seed values for the first points_config row
    default_points_per_order: int = Field(10, env="DEFAULT_POINTS_PER_ORDER")
    default_points_per_review: int = Field(5, env="DEFAULT_POINTS_PER_REVIEW")
    default_points_per_referral: int = Field(20, env="DEFAULT_POINTS_PER_REFERRAL")
    default_points_expiration_days: int = Field(
        180, env="DEFAULT_POINTS_EXPIRATION_DAYS"
    )

    # Derived
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
