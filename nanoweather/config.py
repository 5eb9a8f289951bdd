from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    OPENWEATHER_API_KEY: str = Field(
        "demo",
        validation_alias=AliasChoices("VITE_OPENWEATHER_API_KEY", "OPENWEATHER_API_KEY"),
    )
    WEATHER_API_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    GEO_API_URL: str = "https://api.openweathermap.org/geo/1.0/direct"
    WEATHER_API_TIMEOUT: float = 10.0
    SUGGESTION_LIMIT: int = 5

    MAX_CONCURRENT_WEATHER_REQUESTS: int = 10

    GEMINI_API_KEY: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("VITE_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    GEMINI_IMAGE_MODEL: str = Field(
        "gemini-2.5-flash-image",
        validation_alias=AliasChoices("VITE_GEMINI_IMAGE_MODEL", "GEMINI_IMAGE_MODEL"),
    )
    GEMINI_TEXT_MODEL: str = Field(
        "gemini-2.0-flash",
        validation_alias=AliasChoices("VITE_GEMINI_TEXT_MODEL", "GEMINI_TEXT_MODEL"),
    )

    # Base URL of a remote deployment exposing /api/generate-image and
    # /api/generate-roast. Unset means Gemini is called in process.
    GENERATION_ENDPOINT: Optional[str] = None

    RECENT_SEARCHES_LIMIT: int = 15
    ACTIVITY_FEED_LIMIT: int = 10

    ACHIEVEMENT_NOTICE_SECONDS: int = 3
    STREAK_UPDATE_ATTEMPTS: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
