from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from .config import settings
from .db import engine, Base, get_session
from .genai import GenerationError, GeneratorMisconfiguredError, NoImageReturnedError
from .history import SearchHistoryService
from .schemas import (
    AchievementOut,
    ActivityFeed,
    CitySuggestion,
    CoordsWeather,
    FavoriteCity,
    GeneratedImage,
    RoastWeather,
    SearchHistoryEntry,
    SearchRecordIn,
    StreakResponse,
    StreakState,
    VisualizeRequest,
    WeatherRoast,
    WeatherSnapshot,
)
from .prompts import build_roast_prompt
from .services import ServiceContainer, get_services, parse_roast
from .streaks import ACHIEVEMENTS, SqlStreakStore, StreakTracker
from .weather import WeatherNotFoundError, WeatherServiceError, gps_search_location

import datetime
import json
import logging
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Nano Weather")


@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def read_json_body(request: Request) -> dict:
    """Request JSON, with empty or unparsable bodies treated as {}."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def valid_tz(tz: str = "UTC") -> str:
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(400, f"Unknown time zone: {tz}")
    return tz


# ---------- Weather lookup ----------
@app.get("/api/weather", response_model=WeatherSnapshot)
async def weather_by_city(city: str = "", services: ServiceContainer = Depends(get_services)):
    if not city.strip():
        raise HTTPException(400, "City is required")
    try:
        return await services.weather_service.fetch_by_city(city)
    except WeatherNotFoundError as e:
        raise HTTPException(404, str(e))
    except WeatherServiceError as e:
        raise HTTPException(status_code=502, detail=f"Upstream weather error: {e}")


@app.get("/api/weather/coords", response_model=CoordsWeather)
async def weather_by_coords(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    services: ServiceContainer = Depends(get_services),
):
    try:
        weather = await services.weather_service.fetch_by_coords(lat, lon)
    except WeatherNotFoundError as e:
        raise HTTPException(404, str(e))
    except WeatherServiceError as e:
        raise HTTPException(status_code=502, detail=f"Upstream weather error: {e}")
    return CoordsWeather(weather=weather, search_location=gps_search_location(lat, lon, weather))


@app.get("/api/suggestions", response_model=List[CitySuggestion])
async def city_suggestions(q: str = "", services: ServiceContainer = Depends(get_services)):
    if len(q.strip()) < 2:
        return []
    try:
        return await services.weather_service.fetch_city_suggestions(q)
    except WeatherServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


# ---------- Generation proxies ----------
IMAGE_FAILED_MESSAGE = "Image generation failed. Check API key and model availability."
ROAST_FAILED_MESSAGE = "Roast generation failed."


@app.post("/api/generate-image")
async def generate_image(request: Request, services: ServiceContainer = Depends(get_services)):
    gateway = services.gateway
    if not gateway.configured:
        return PlainTextResponse(str(GeneratorMisconfiguredError()), status_code=500)

    body = await read_json_body(request)
    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return PlainTextResponse("Missing prompt", status_code=400)

    try:
        data_url = await gateway.generate_image_data_url(prompt.strip())
    except NoImageReturnedError as e:
        return PlainTextResponse(str(e), status_code=502)
    except GenerationError as e:
        return PlainTextResponse(str(e) or IMAGE_FAILED_MESSAGE, status_code=500)
    except Exception as e:
        logger.exception("Unexpected image generation failure")
        return PlainTextResponse(str(e) or IMAGE_FAILED_MESSAGE, status_code=500)
    return {"dataUrl": data_url}


@app.post("/api/generate-roast", response_model=WeatherRoast)
async def generate_roast(request: Request, services: ServiceContainer = Depends(get_services)):
    gateway = services.gateway
    if not gateway.configured:
        return PlainTextResponse(str(GeneratorMisconfiguredError()), status_code=500)

    body = await read_json_body(request)
    if not body.get("weather"):
        return PlainTextResponse("Missing weather data", status_code=400)
    try:
        weather = RoastWeather.model_validate(body["weather"])
    except ValidationError:
        return PlainTextResponse("Missing weather data", status_code=400)

    try:
        return parse_roast(await gateway.generate_text(build_roast_prompt(weather)))
    except GenerationError as e:
        logger.error("Roast generation error: %s", e)
        return PlainTextResponse(str(e) or ROAST_FAILED_MESSAGE, status_code=500)
    except Exception as e:
        logger.exception("Unexpected roast generation failure")
        return PlainTextResponse(str(e) or ROAST_FAILED_MESSAGE, status_code=500)


@app.post("/api/visualize", response_model=GeneratedImage)
async def visualize(
    payload: VisualizeRequest,
    services: ServiceContainer = Depends(get_services),
    session=Depends(get_session),
):
    weather = payload.weather
    key = (weather.city, weather.country, weather.timestamp)

    async def produce() -> GeneratedImage:
        image = await services.image_service.generate_city_image(weather)
        await SearchHistoryService(session).save_weather_search(
            weather, image.image_url, image.prompt, payload.search_location
        )
        return image

    try:
        return await services.flights.do(key, produce)
    except NoImageReturnedError as e:
        raise HTTPException(502, str(e))
    except GenerationError as e:
        raise HTTPException(500, str(e) or "Failed to generate city visualization")


# ---------- History & preferences ----------
@app.post("/api/searches", status_code=202)
async def save_search(record: SearchRecordIn, session=Depends(get_session)):
    saved = await SearchHistoryService(session).save_weather_search(
        record.weather, record.image_data, record.prompt, record.search_location
    )
    return {"ok": saved}


@app.get("/api/searches/recent", response_model=List[SearchHistoryEntry])
async def recent_searches(
    limit: int = Query(settings.RECENT_SEARCHES_LIMIT, ge=1, le=100),
    session=Depends(get_session),
):
    return await SearchHistoryService(session).get_recent_searches(limit)


@app.get("/api/activity", response_model=ActivityFeed)
async def activity_feed(
    limit: int = Query(settings.ACTIVITY_FEED_LIMIT, ge=1, le=100),
    session=Depends(get_session),
):
    history = SearchHistoryService(session)
    items = await history.get_recent_activity(limit)
    return ActivityFeed(items=items, total_count=await history.count_searches())


@app.get("/api/preferences/favorite-city", response_model=FavoriteCity)
async def get_favorite_city(session=Depends(get_session)):
    return FavoriteCity(favorite_city=await SearchHistoryService(session).get_favorite_city())


@app.put("/api/preferences/favorite-city")
async def set_favorite_city(pref: FavoriteCity, session=Depends(get_session)):
    city = (pref.favorite_city or "").strip()
    if not city:
        raise HTTPException(400, "favorite_city is required")
    return {"ok": await SearchHistoryService(session).set_favorite_city(city)}


# ---------- Streaks ----------
@app.get("/api/achievements", response_model=List[AchievementOut])
def list_achievements():
    return [
        AchievementOut(id=a.id, name=a.name, description=a.description, threshold=a.threshold)
        for a in ACHIEVEMENTS
    ]


@app.get("/api/streaks/{client_id}", response_model=StreakState)
async def get_streak(
    client_id: str,
    tz: str = Depends(valid_tz),
    services: ServiceContainer = Depends(get_services),
    session=Depends(get_session),
):
    tracker = StreakTracker(SqlStreakStore(session, settings.STREAK_UPDATE_ATTEMPTS), clock=services.clock)
    return await tracker.current(client_id, tz)


@app.post("/api/streaks/{client_id}/searches", response_model=StreakResponse)
async def record_streak_search(
    client_id: str,
    tz: str = Depends(valid_tz),
    services: ServiceContainer = Depends(get_services),
    session=Depends(get_session),
):
    tracker = StreakTracker(SqlStreakStore(session, settings.STREAK_UPDATE_ATTEMPTS), clock=services.clock)
    result = await tracker.record_search(client_id, tz)

    response = StreakResponse(**result.state.model_dump())
    if result.new_achievement:
        response.new_achievement = result.new_achievement
        response.notice_expires_at = services.clock() + datetime.timedelta(
            seconds=settings.ACHIEVEMENT_NOTICE_SECONDS
        )
    return response
