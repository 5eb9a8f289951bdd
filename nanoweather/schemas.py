"""
Pydantic models for the JSON exchanged with clients and generation endpoints.

Weather, roast and streak shapes serialize with camelCase keys; history rows
keep their column names.
"""
import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WeatherSnapshot(CamelModel):
    """Current conditions for one place. Replaced wholesale on each search."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    city: str
    country: str
    temperature: int
    feels_like: int
    description: str
    humidity: int
    wind_speed: float
    pressure: int
    visibility: float  # km
    icon: str
    timezone: int  # UTC offset in seconds
    timestamp: int  # capture instant, epoch milliseconds


class CitySuggestion(CamelModel):
    name: str
    country: str
    state: Optional[str] = None
    lat: float
    lon: float


class GeneratedImage(CamelModel):
    image_url: str
    prompt: str


class WeatherRoast(CamelModel):
    roast: str
    vibe: str
    emoji: str
    share_text: str
    personality: str


class RoastWeather(CamelModel):
    """Subset of a snapshot that the roast prompt needs."""
    city: str
    country: str
    temperature: float
    description: str
    humidity: float
    wind_speed: float


class CoordsWeather(CamelModel):
    weather: WeatherSnapshot
    search_location: str


class VisualizeRequest(CamelModel):
    weather: WeatherSnapshot
    search_location: Optional[str] = None


class StreakState(CamelModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_check_date: Optional[str] = None  # ISO date
    total_searches: int = 0
    achievements: List[str] = Field(default_factory=list)


class StreakResponse(StreakState):
    new_achievement: Optional[str] = None
    notice_expires_at: Optional[datetime.datetime] = None


class AchievementOut(BaseModel):
    id: str
    name: str
    description: str
    threshold: int


class SearchRecordIn(BaseModel):
    weather: WeatherSnapshot
    image_data: Optional[str] = None
    prompt: str = ""
    search_location: Optional[str] = None


class SearchHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    city: str
    country: str
    temperature: float
    condition: str
    image_data: Optional[str] = None
    prompt: Optional[str] = None
    search_location: Optional[str] = None
    searched_at: Optional[datetime.datetime] = None


class ActivityItem(BaseModel):
    id: str
    city: str
    country: str
    temperature: float
    condition: str
    searched_at: Optional[datetime.datetime] = None
    time_ago: str


class ActivityFeed(BaseModel):
    items: List[ActivityItem]
    total_count: int


class FavoriteCity(BaseModel):
    favorite_city: Optional[str] = None
