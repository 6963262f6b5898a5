"""Application configuration"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # MRMS NCEP directory (primary)
    mrms_base_url: str = "https://mrms.ncep.noaa.gov"
    mrms_product: str = "BREF_1HR_MAX"
    mrms_listing_timeout: int = 15  # seconds
    mrms_download_timeout: int = 30  # seconds

    # MRMS viewer API (secondary)
    viewer_url: str = "https://mrms.nssl.noaa.gov/qvs/product_viewer/"
    viewer_timeout: int = 10

    # NWS forecast API (tertiary)
    nws_api_url: str = "https://api.weather.gov"
    nws_timeout: int = 10
    nws_station_limit: int = 5
    nws_max_workers: int = 4
    nws_forecast_periods: int = 3

    user_agent: str = "RadarApp/1.0 (radar-app@example.com)"
    # MRMS rejects obvious non-browser clients on the directory listing
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Decoding
    max_points_per_field: int = 1000

    # Storage
    database_url: Optional[str] = None  # Postgres when set, SQLite otherwise
    sqlite_path: str = "data/radar.db"

    # Scheduling
    scheduler_enabled: bool = True
    update_interval_minutes: int = 5
    cleanup_interval_minutes: int = 60
    retention_hours: int = 24

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=5000, validation_alias=AliasChoices("PORT", "API_PORT"))
    api_prefix: str = "/api"
    cors_origins: str = "*"
    docs_url: str = "/api-docs"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def database_url_resolved(self) -> str:
        """SQLAlchemy URL for the configured database"""
        if self.database_url:
            url = self.database_url
            # Heroku-style URLs name neither the dialect nor a driver SQLAlchemy accepts
            for prefix in ("postgres://", "postgresql://"):
                if url.startswith(prefix):
                    return "postgresql+psycopg://" + url[len(prefix):]
            return url
        return f"sqlite:///{Path(self.sqlite_path)}"

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Settings for entry points; components receive them as arguments"""
    return Settings()
