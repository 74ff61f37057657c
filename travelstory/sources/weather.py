import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ..config import Config, config
from ..models import SourceQuery
from ..request_handler import RequestHandler
from .base import SourceAdapter

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

WMO_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light showers",
    81: "Moderate showers",
    82: "Violent showers",
    85: "Light snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with light hail",
    99: "Thunderstorm with hail",
}


def describe_weather_code(code) -> str:
    return WMO_DESCRIPTIONS.get(code, "Variable")


@dataclass(frozen=True)
class WeatherSnapshot:
    temperature: int
    feels_like: int
    humidity: float
    description: str
    wind_speed: int
    precipitation: float
    is_day: bool


@dataclass(frozen=True)
class DailyForecast:
    date: str
    temp_max: int
    temp_min: int
    description: str
    precipitation_probability: float


@dataclass(frozen=True)
class WeatherReport:
    current: WeatherSnapshot
    daily: List[DailyForecast]


class WeatherSource(SourceAdapter):
    """Current conditions and a 7-day forecast from Open-Meteo (no key needed)"""

    name = "weather"
    fields = ("weather", "forecast")

    def __init__(self, handler: RequestHandler = None, cfg: Config = None, forecast_days: int = 7):
        self.cfg = cfg or config
        self.handler = handler or RequestHandler(self.cfg)
        self.forecast_days = forecast_days

    def fetch(self, query: SourceQuery) -> WeatherReport:
        params = {
            "latitude": query.coordinates.lat,
            "longitude": query.coordinates.lng,
            "current": "temperature_2m,relative_humidity_2m,apparent_temperature,precipitation,weather_code,wind_speed_10m,is_day",
            "daily": "temperature_2m_max,temperature_2m_min,weather_code,precipitation_probability_max",
            "timezone": "auto",
            "forecast_days": self.forecast_days
        }
        data = self.handler.get_json(OPEN_METEO_URL, params=params, ttl=min(self.cfg.CACHE_TTL, 1800))
        return WeatherReport(current=self._parse_current(data), daily=self._parse_daily(data))

    def split(self, payload: WeatherReport) -> Dict[str, Any]:
        return {"weather": payload.current, "forecast": payload.daily}

    @staticmethod
    def _parse_current(data: dict) -> WeatherSnapshot:
        current = data["current"]
        return WeatherSnapshot(
            temperature=round(current["temperature_2m"]),
            feels_like=round(current.get("apparent_temperature", current["temperature_2m"])),
            humidity=current.get("relative_humidity_2m", 0),
            description=describe_weather_code(current.get("weather_code")),
            wind_speed=round(current.get("wind_speed_10m", 0)),
            precipitation=current.get("precipitation", 0),
            is_day=current.get("is_day") == 1
        )

    @staticmethod
    def _parse_daily(data: dict) -> List[DailyForecast]:
        daily = data.get("daily")
        if not daily:
            return []
        rain = daily.get("precipitation_probability_max") or []
        return [
            DailyForecast(
                date=day,
                temp_max=round(daily["temperature_2m_max"][i]),
                temp_min=round(daily["temperature_2m_min"][i]),
                description=describe_weather_code(daily["weather_code"][i]),
                precipitation_probability=(rain[i] if i < len(rain) else None) or 0
            )
            for i, day in enumerate(daily["time"])
        ]
