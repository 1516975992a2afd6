"""
Configuration management for Follo
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Follo"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./follo.db"
    DATABASE_ECHO: bool = False

    # Scheduling horizon
    HORIZON_DAYS: int = 30
    UPCOMING_HOURS: int = 4

    # Adherence
    ADHERENCE_WINDOW_DAYS: int = 7
    HISTORY_DAYS: int = 30
    STREAK_MAX_LOOKBACK_DAYS: int = 365

    # Alarm delivery
    ALARM_LOAD_TIMEOUT_SECONDS: float = 5.0
    DEFAULT_PROFILE_ID: Optional[str] = None

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class SchedulingConfig:
    """Fixed rules of the scheduling engine"""

    # Sources
    MEDICATION_REFILL_THRESHOLD: int = 7
    SUPPLEMENT_REFILL_THRESHOLD: int = 10

    # Insights
    CONSISTENCY_LOOKBACK_DAYS: int = 30
    CONSISTENCY_MAX_DEVIATION_MINUTES: int = 120
    CONSISTENCY_DEVIATION_DECAY: float = 0.8   # score points lost per minute of average deviation
    CONSISTENCY_ADHERENCE_WEIGHT: float = 0.7
    CONSISTENCY_TIMING_WEIGHT: float = 0.3
    CONSISTENCY_EXCELLENT_SCORE: int = 80
    REFILL_WARNING_DAYS: int = 7
    TREND_DELTA_PERCENT: int = 5

    # Day periods used for "best time" insight (start hour inclusive)
    DAY_PERIODS: list[tuple[int, str]] = [
        (0, "morning"), (12, "afternoon"), (17, "evening"), (21, "night")
    ]


# Database table names
class TableNames:
    PROFILES = "profiles"
    MEDICATIONS = "medications"
    SUPPLEMENTS = "supplements"
    MEDICATION_HISTORY = "medication_history"
    SUPPLEMENT_HISTORY = "supplement_history"
    CALENDAR_EVENTS = "calendar_events"


settings = get_settings()
scheduling_config = SchedulingConfig()
