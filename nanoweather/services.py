"""
Capability interfaces and their implementations.

Routes depend on the ServiceContainer only, so any implementation can be
swapped (tests use fakes; GENERATION_ENDPOINT switches generation to a
remote deployment).
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

import httpx
from pydantic import ValidationError

from .config import Settings, settings
from .genai import GeminiGateway, GenerationError
from .prompts import Clock, SkylinePromptBuilder, build_roast_prompt, strip_code_fence, utc_now
from .schemas import (
    CitySuggestion,
    GeneratedImage,
    RoastWeather,
    WeatherRoast,
    WeatherSnapshot,
)
from .singleflight import SingleFlight
from .weather import OpenWeatherService

logger = logging.getLogger(__name__)


class WeatherService(ABC):
    @abstractmethod
    async def fetch_by_city(self, city: str) -> WeatherSnapshot:
        ...

    @abstractmethod
    async def fetch_by_coords(self, lat: float, lon: float) -> WeatherSnapshot:
        ...

    @abstractmethod
    async def fetch_city_suggestions(self, query: str) -> List[CitySuggestion]:
        ...


WeatherService.register(OpenWeatherService)


class ImageService(ABC):
    configured = True

    @abstractmethod
    async def generate_city_image(self, weather: WeatherSnapshot) -> GeneratedImage:
        ...


class RoastService(ABC):
    configured = True

    @abstractmethod
    async def generate_roast(self, weather: RoastWeather) -> WeatherRoast:
        ...


def parse_roast(text: str) -> WeatherRoast:
    """Parse model output into a roast; every field must be present."""
    try:
        return WeatherRoast.model_validate_json(strip_code_fence(text))
    except ValidationError as e:
        raise GenerationError(f"Malformed roast response: {e.errors()[0]['msg']}") from e


class GeminiImageService(ImageService):
    def __init__(self, gateway: GeminiGateway, prompt_builder: SkylinePromptBuilder):
        self.gateway = gateway
        self.prompt_builder = prompt_builder

    @property
    def configured(self) -> bool:
        return self.gateway.configured

    async def generate_city_image(self, weather: WeatherSnapshot) -> GeneratedImage:
        prompt = self.prompt_builder.build(weather)
        image_url = await self.gateway.generate_image_data_url(prompt)
        return GeneratedImage(image_url=image_url, prompt=prompt)


class GeminiRoastService(RoastService):
    def __init__(self, gateway: GeminiGateway):
        self.gateway = gateway

    @property
    def configured(self) -> bool:
        return self.gateway.configured

    async def generate_roast(self, weather: RoastWeather) -> WeatherRoast:
        text = await self.gateway.generate_text(build_roast_prompt(weather))
        return parse_roast(text)


class HttpImageService(ImageService):
    """Posts the built prompt to a remote /api/generate-image."""

    def __init__(
        self,
        endpoint: str,
        prompt_builder: SkylinePromptBuilder,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.prompt_builder = prompt_builder
        self.timeout = timeout
        self._transport = transport

    async def generate_city_image(self, weather: WeatherSnapshot) -> GeneratedImage:
        prompt = self.prompt_builder.build(weather)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.endpoint, json={"prompt": prompt})
        except httpx.HTTPError as e:
            raise GenerationError(f"Image generation failed: {e}") from e

        if r.is_error:
            raise GenerationError(r.text or "Image generation failed")
        try:
            data = r.json()
        except json.JSONDecodeError as e:
            raise GenerationError("Image generation failed") from e
        if not isinstance(data, dict):
            raise GenerationError("Image generation failed")
        if data.get("error"):
            raise GenerationError(data["error"])
        if not data.get("dataUrl"):
            raise GenerationError("No image returned from server")
        return GeneratedImage(image_url=data["dataUrl"], prompt=prompt)


class HttpRoastService(RoastService):
    """Posts weather fields to a remote /api/generate-roast."""

    def __init__(
        self,
        endpoint: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport

    async def generate_roast(self, weather: RoastWeather) -> WeatherRoast:
        body = {"weather": weather.model_dump(by_alias=True)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.endpoint, json=body)
        except httpx.HTTPError as e:
            raise GenerationError("Failed to generate roast") from e
        if r.is_error:
            raise GenerationError("Failed to generate roast")
        return parse_roast(r.text)


@dataclass
class ServiceContainer:
    weather_service: WeatherService
    image_service: ImageService
    roast_service: RoastService
    gateway: GeminiGateway
    clock: Clock = utc_now
    flights: SingleFlight = field(default_factory=SingleFlight)


def build_services(config: Settings) -> ServiceContainer:
    weather_service = OpenWeatherService(
        api_key=config.OPENWEATHER_API_KEY,
        base_url=config.WEATHER_API_URL,
        geo_url=config.GEO_API_URL,
        timeout=config.WEATHER_API_TIMEOUT,
        suggestion_limit=config.SUGGESTION_LIMIT,
    )
    gateway = GeminiGateway(
        api_key=config.GEMINI_API_KEY,
        image_model=config.GEMINI_IMAGE_MODEL,
        text_model=config.GEMINI_TEXT_MODEL,
    )
    prompt_builder = SkylinePromptBuilder()

    if config.GENERATION_ENDPOINT:
        base = config.GENERATION_ENDPOINT.rstrip("/")
        logger.info("Using remote generation endpoint %s", base)
        image_service: ImageService = HttpImageService(f"{base}/api/generate-image", prompt_builder)
        roast_service: RoastService = HttpRoastService(f"{base}/api/generate-roast")
    else:
        if not gateway.configured:
            logger.warning("GEMINI_API_KEY not set; generation endpoints will report misconfiguration")
        image_service = GeminiImageService(gateway, prompt_builder)
        roast_service = GeminiRoastService(gateway)

    return ServiceContainer(
        weather_service=weather_service,
        image_service=image_service,
        roast_service=roast_service,
        gateway=gateway,
    )


@lru_cache()
def get_services() -> ServiceContainer:
    """Dependency returning the process-wide service container."""
    return build_services(settings)
