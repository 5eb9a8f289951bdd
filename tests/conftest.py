"""
Test configuration and fixtures.
"""
import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from nanoweather.db import Base, get_session
from nanoweather.genai import GeminiGateway
from nanoweather.main import app
from nanoweather.prompts import SkylinePromptBuilder
from nanoweather.schemas import CitySuggestion, WeatherRoast, WeatherSnapshot
from nanoweather.services import (
    GeminiImageService,
    RoastService,
    ServiceContainer,
    WeatherService,
    get_services,
)
from nanoweather.weather import WeatherNotFoundError

FIXED_NOW = datetime.datetime(2026, 3, 14, 12, 0, tzinfo=datetime.timezone.utc)


def make_snapshot(**overrides) -> WeatherSnapshot:
    fields = dict(
        city="Paris",
        country="FR",
        temperature=18,
        feels_like=17,
        description="light rain",
        humidity=72,
        wind_speed=4.1,
        pressure=1012,
        visibility=10.0,
        icon="10d",
        timezone=3600,
        timestamp=1773489600000,
    )
    fields.update(overrides)
    return WeatherSnapshot(**fields)


class FakeWeatherService(WeatherService):
    def __init__(self):
        self.known = {"paris": make_snapshot()}

    async def fetch_by_city(self, city):
        snapshot = self.known.get(city.strip().lower())
        if snapshot is None:
            raise WeatherNotFoundError("City not found")
        return snapshot

    async def fetch_by_coords(self, lat, lon):
        return make_snapshot()

    async def fetch_city_suggestions(self, query):
        return [CitySuggestion(name="Paris", country="FR", state="Ile-de-France", lat=48.85, lon=2.35)]


class FakeRoastService(RoastService):
    def __init__(self):
        self.calls = []

    async def generate_roast(self, weather):
        self.calls.append(weather)
        return WeatherRoast(
            roast=f"{weather.city} is damp again.",
            vibe="Soggy Croissant Energy",
            emoji="🌧️",
            share_text=f"{weather.city} weather roasted",
            personality="Rain Romantic",
        )


class FakeModels:
    """Stands in for client.aio.models, replaying a canned response."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.response


def fake_genai_client(response=None, error=None):
    models = FakeModels(response=response, error=error)
    return SimpleNamespace(aio=SimpleNamespace(models=models))


@pytest.fixture
def genai_client():
    return fake_genai_client()


@pytest.fixture
def services(genai_client):
    gateway = GeminiGateway(
        api_key=None,
        image_model="test-image-model",
        text_model="test-text-model",
        client=genai_client,
    )
    return ServiceContainer(
        weather_service=FakeWeatherService(),
        image_service=GeminiImageService(gateway, SkylinePromptBuilder(lambda: FIXED_NOW)),
        roast_service=FakeRoastService(),
        gateway=gateway,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def db_url(tmp_path):
    """Fresh SQLite file with all tables created."""
    path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def session_factory(db_url):
    engine = create_async_engine(db_url, poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client(session_factory, services):
    """API client wired to a per-test database and fake services."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()
