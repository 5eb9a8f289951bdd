"""
Weather data fetching and mapping module.

Integrates with the OpenWeatherMap current-conditions and geocoding APIs and
maps their JSON into WeatherSnapshot / CitySuggestion.
"""
import httpx
import asyncio
import logging
import math
import time
from typing import Optional, Dict, List, Any
from .config import settings
from .schemas import CitySuggestion, WeatherSnapshot

logger = logging.getLogger(__name__)

# Semaphore to limit concurrent API requests (prevents rate limiting)
_SEM: asyncio.Semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_WEATHER_REQUESTS)


class WeatherServiceError(Exception):
    """Upstream weather provider failed or could not be reached."""


class WeatherNotFoundError(WeatherServiceError):
    """Provider answered with a non-2xx status for the requested place."""


def round_half_up(value: float) -> int:
    """Round like the provider's web client does (0.5 always rounds up)."""
    return math.floor(value + 0.5)


def map_weather_data(data: Dict[str, Any], captured_at_ms: Optional[int] = None) -> WeatherSnapshot:
    """
    Convert an OpenWeatherMap /weather payload into a WeatherSnapshot.

    Args:
        data: Raw JSON response
        captured_at_ms: Capture instant in epoch ms (defaults to now)

    Returns:
        WeatherSnapshot with temperatures rounded and visibility in km
    """
    conditions: List[Dict[str, Any]] = data.get("weather") or []
    condition: Dict[str, Any] = conditions[0] if conditions else {}
    main: Dict[str, Any] = data.get("main", {})
    if captured_at_ms is None:
        captured_at_ms = int(time.time() * 1000)

    return WeatherSnapshot(
        city=data.get("name", ""),
        country=data.get("sys", {}).get("country", ""),
        temperature=round_half_up(main.get("temp", 0)),
        feels_like=round_half_up(main.get("feels_like", 0)),
        description=condition.get("description") or "Unknown",
        humidity=main.get("humidity", 0),
        wind_speed=data.get("wind", {}).get("speed", 0),
        pressure=main.get("pressure", 0),
        visibility=data.get("visibility", 0) / 1000,
        icon=condition.get("icon") or "01d",
        timezone=data.get("timezone", 0),
        timestamp=captured_at_ms,
    )


def map_suggestions(data: Any) -> List[CitySuggestion]:
    if not isinstance(data, list):
        return []
    return [
        CitySuggestion(
            name=item["name"],
            country=item.get("country", ""),
            state=item.get("state"),
            lat=item["lat"],
            lon=item["lon"],
        )
        for item in data
    ]


def gps_search_location(lat: float, lon: float, weather: WeatherSnapshot) -> str:
    """Label stored with searches that started from device geolocation."""
    return f"GPS {lat:.3f}, {lon:.3f} ({weather.city}, {weather.country})"


class OpenWeatherService:
    """WeatherService backed by OpenWeatherMap, metric units."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        geo_url: str,
        timeout: float = 10.0,
        suggestion_limit: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.geo_url = geo_url
        self.timeout = timeout
        self.suggestion_limit = suggestion_limit
        self._transport = transport

    async def fetch_by_city(self, city: str) -> WeatherSnapshot:
        trimmed = city.strip()
        if not trimmed:
            raise ValueError("City is required")

        data = await self._fetch_weather(
            {"q": trimmed, "appid": self.api_key, "units": "metric"},
            "City not found",
        )
        return map_weather_data(data)

    async def fetch_by_coords(self, lat: float, lon: float) -> WeatherSnapshot:
        data = await self._fetch_weather(
            {"lat": lat, "lon": lon, "appid": self.api_key, "units": "metric"},
            "Location not found",
        )
        return map_weather_data(data)

    async def fetch_city_suggestions(self, query: str) -> List[CitySuggestion]:
        trimmed = query.strip()
        if not trimmed:
            return []

        params = {"q": trimmed, "limit": self.suggestion_limit, "appid": self.api_key}
        try:
            r = await self._get(self.geo_url, params)
        except httpx.HTTPError as e:
            logger.warning("Suggestion lookup for %r failed: %s", trimmed, e)
            raise WeatherServiceError("Failed to fetch city suggestions") from e
        if r.is_error:
            raise WeatherServiceError("Failed to fetch city suggestions")
        return map_suggestions(r.json())

    async def _fetch_weather(self, params: Dict[str, Any], error_message: str) -> Dict[str, Any]:
        try:
            r = await self._get(self.base_url, params)
        except httpx.HTTPError as e:
            logger.error("Weather request failed: %s", e)
            raise WeatherServiceError(str(e) or e.__class__.__name__) from e
        if r.is_error:
            logger.info("Weather provider returned %s (%s)", r.status_code, error_message)
            raise WeatherNotFoundError(error_message)
        return r.json()

    async def _get(self, url: str, params: Dict[str, Any]) -> httpx.Response:
        async with _SEM:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.get(url, params=params)
