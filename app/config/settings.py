"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class Settings:
    """Centralised project settings based on OS environment variables."""

    environment: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./ayna_mirror.db"

    weather_api_key: str = ""
    weather_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_timeout_seconds: float = 10.0
    forecast_timeout_seconds: float = 15.0

    default_latitude: float = 40.7128
    default_longitude: float = -74.0060
    default_city: str = "New York"

    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    dev_event_log: bool = True
    dev_event_log_dir: str = "logs/user_events"


def _build_settings() -> Settings:
    # existing environment variables win over .env entries
    load_dotenv(".env", override=False)

    return Settings(
        environment=os.getenv("APP_ENV", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./ayna_mirror.db"),
        weather_api_key=os.getenv("OPENWEATHER_API_KEY", ""),
        weather_base_url=os.getenv(
            "WEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5"
        ).rstrip("/"),
        weather_timeout_seconds=_env_float("WEATHER_TIMEOUT_SECONDS", 10.0),
        forecast_timeout_seconds=_env_float("FORECAST_TIMEOUT_SECONDS", 15.0),
        default_latitude=_env_float("DEFAULT_LATITUDE", 40.7128),
        default_longitude=_env_float("DEFAULT_LONGITUDE", -74.0060),
        default_city=os.getenv("DEFAULT_CITY", "New York"),
        retry_base_delay_seconds=_env_float("RETRY_BASE_DELAY_SECONDS", 1.0),
        retry_max_delay_seconds=_env_float("RETRY_MAX_DELAY_SECONDS", 10.0),
        dev_event_log=_env_flag("DEV_EVENT_LOG", True),
        dev_event_log_dir=os.getenv("DEV_EVENT_LOG_DIR", "logs/user_events"),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
