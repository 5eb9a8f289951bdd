"""
Prompt construction for the generative endpoints.

The skyline prompt depends on the destination's local wall-clock time:
the UTC offset reported with the weather is applied to the current instant
and the local hour is bucketed into a time of day that drives lighting and
street-level detail.
"""
import datetime
import re
from typing import Callable, Union

from .schemas import RoastWeather, WeatherSnapshot

Clock = Callable[[], datetime.datetime]

SUNRISE = "sunrise"
MORNING = "morning"
MIDDAY = "midday"
SUNSET = "sunset"
NIGHT = "night"
DAY = "day"

TIMES_OF_DAY = (SUNRISE, MORNING, MIDDAY, SUNSET, NIGHT, DAY)

_LIGHTING = {
    SUNRISE: "warm golden hour tones with soft orange and pink hues",
    SUNSET: "warm golden hour tones with soft orange and pink hues",
    MORNING: "bright morning sun with clear, crisp lighting",
    MIDDAY: "bright midday sun with sharp shadows",
    NIGHT: "dark night scene with illuminated windows and street lights",
}

# Checked in order; first keyword hit wins.
_WEATHER_ICONS = (
    (("clear",), "☀️"),
    (("cloud",), "☁️"),
    (("rain",), "🌧️"),
    (("storm", "thunder"), "⛈️"),
    (("snow",), "❄️"),
    (("mist", "fog"), "🌫️"),
)

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def city_local_time(offset_seconds: int, now: datetime.datetime) -> datetime.datetime:
    """Naive wall-clock time at a place `offset_seconds` east of UTC."""
    if now.tzinfo is not None:
        now = now.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return now + datetime.timedelta(seconds=offset_seconds)


def classify_time_of_day(hour: int) -> str:
    if 5 <= hour < 8:
        return SUNRISE
    if 8 <= hour < 12:
        return MORNING
    if 12 <= hour < 17:
        return MIDDAY
    if 17 <= hour < 20:
        return SUNSET
    if hour >= 20 or hour < 5:
        return NIGHT
    return DAY


def lighting_description(time_of_day: str) -> str:
    return _LIGHTING.get(time_of_day, "natural daylight with soft shadows")


def weather_icon(description: str) -> str:
    desc = description.lower()
    for keywords, icon in _WEATHER_ICONS:
        if any(k in desc for k in keywords):
            return icon
    return "🌤️"


def format_local_time(moment: datetime.datetime) -> str:
    """12-hour clock with a zero-padded hour, e.g. '07:05 PM'."""
    return moment.strftime("%I:%M %p")


def format_local_date(moment: datetime.datetime) -> str:
    """Short US date, e.g. 'Oct 8, 2026'."""
    return f"{moment:%b} {moment.day}, {moment.year}"


def format_number(value: Union[int, float]) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class SkylinePromptBuilder:
    """Builds the isometric diorama prompt for a city's current conditions."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def build(self, weather: WeatherSnapshot) -> str:
        city_time = city_local_time(weather.timezone, self.clock())
        time_of_day = classify_time_of_day(city_time.hour)
        night = time_of_day == NIGHT

        atmosphere = (
            "glowing windows, neon accents, and reflective wet asphalt if rainy"
            if night
            else "sun glow, aerial haze, crisp shadows; wet surfaces or puddles if rainy "
            "and snow accumulation if snowy"
        )
        activity = (
            "calmer streets with illuminated buildings and selective traffic"
            if night
            else "bustling streets with pedestrians and light traffic"
        )
        window_lights = (
            "bright and varied by floor" if night else "reflecting daylight with interior parallax"
        )
        street_lamps = "glowing warmly with halo" if night else "present but off"

        return f"""Create an ultra-detailed, 45° top-down isometric miniature diorama of {weather.city}. Research and faithfully recreate 4-6 of its most iconic, globally recognized landmarks and skyline anchors (towers, bridges, statues, cathedrals, arenas, waterfronts) with accurate silhouettes, materials, and proportions; avoid generic stand-ins. Layer the scene with foreground plazas and streets, mid-ground landmarks, and a background skyline or hills, plus signage, transit cues, and street furniture that fit the city.

Use premium, physically based materials and high-frequency micro-detailing: brick courses, window mullions, rooftop HVAC units, balcony rails, crosswalk markings, benches, varied foliage, and reflective glass. Light the scene with {lighting_description(time_of_day)}, including subtle volumetric light and realistic shadows.

Integrate the current weather ({weather.description}) and the {time_of_day} atmosphere directly into the environment: {atmosphere}. Show context-appropriate activity levels: {activity} that align to the weather. Populate the streets with authentic local vehicles (taxis, trams, buses, scooters) carrying regional colors, signage, and liveries.

Use a clean, minimal backdrop that complements the time of day so the diorama pops. Avoid flat white; use soft gradients or subtle geometric/halftone patterns with very low contrast.

At the top-center, place the title "{weather.city}" in large bold text, followed by:
- A prominent weather icon {weather_icon(weather.description)}
- The current time "{format_local_time(city_time)}" (medium text)
- The date "{format_local_date(city_time)}" (small text)
- Temperature "{format_number(weather.temperature)}°C" (medium text)

All text is centered with consistent spacing and may subtly overlap the tallest buildings; the text color must contrast with the background.

Include time-specific detailing:
- Window lights ({window_lights})
- Street lamps {street_lamps}
- Shadows angle and length based on {time_of_day} sun position
- Sky gradients and horizon haze matching the exact hour
- Traffic and pedestrian density following typical city rhythms
- City-relevant vehicles visible on streets and avenues, rendered to real scale and styling
- If daytime, include pedestrians wearing clothing and accessories that reflect local culture, climate, and color palettes; at night, keep silhouettes subtle and sparse

Square 1080x1080 composition."""


def build_roast_prompt(weather: RoastWeather) -> str:
    conditions = (
        f"{format_number(weather.temperature)}°C, {weather.description}, "
        f"{format_number(weather.humidity)}% humidity, wind {format_number(weather.wind_speed)} m/s"
    )
    return f"""You are a savage, witty comedian who roasts cities based on their weather. Generate a JSON response with these exact fields:

{{
  "roast": "A 2-3 sentence BRUTAL but funny roast about {weather.city}, {weather.country}'s weather. Current conditions: {conditions}. Make it specific to the city's culture/stereotypes and the weather. Be savage but not offensive. Make it something people would screenshot and share on Twitter.",
  "vibe": "A 3-5 word vibe/mood description like 'Main Character Energy' or 'Cozy Blanket Vibes' or 'Touch Grass Weather'",
  "emoji": "A single emoji that captures the vibe",
  "shareText": "A short, punchy tweet-ready version (under 200 chars) that includes the city name and is highly shareable",
  "personality": "A fun weather personality type like 'Sunshine Optimist' or 'Rain Romantic' or 'Cold Heart' based on what weather they searched"
}}

IMPORTANT: Return ONLY valid JSON, no markdown, no code blocks, just the raw JSON object."""


def strip_code_fence(text: str) -> str:
    """Remove Markdown code fencing a model sometimes wraps JSON in."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _CODE_FENCE.sub("", cleaned).replace("```", "").strip()
    return cleaned
