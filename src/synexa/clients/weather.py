"""天气客户端 (Open-Meteo, 无需 API key)

只取当前气温与 WMO 天气代码，代码映射为英文描述。
"""

from __future__ import annotations

import aiohttp

from synexa.clients.base import WeatherService
from synexa.datamodel import WeatherInfo
from synexa.logger import logger

__all__ = ["OpenMeteoWeatherClient", "describe_weather_code", "is_precipitation_code"]

# WMO weather interpretation codes
_WMO_DESCRIPTIONS = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    56: "light freezing drizzle",
    57: "dense freezing drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    66: "light freezing rain",
    67: "heavy freezing rain",
    71: "slight snow fall",
    73: "moderate snow fall",
    75: "heavy snow fall",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}

_PRECIPITATION_CODES = {51, 53, 55, 56, 57, 61, 63, 65, 66, 67, 80, 81, 82, 95, 96, 99}


def describe_weather_code(code: int | None) -> str:
    if code is None:
        return "unknown"
    return _WMO_DESCRIPTIONS.get(code, "unknown")


def is_precipitation_code(code: int | None) -> bool:
    return code in _PRECIPITATION_CODES


class OpenMeteoWeatherClient(WeatherService):
    def __init__(self, base_url: str = "https://api.open-meteo.com/v1/forecast", timeout_seconds: float = 8.0) -> None:
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def get_current_weather(self, lat: float, lng: float) -> WeatherInfo:
        params = {
            "latitude": f"{lat:.4f}",
            "longitude": f"{lng:.4f}",
            "current": "temperature_2m,weather_code",
            "timezone": "UTC",
        }
        async with self._get_session().get(self.base_url, params=params) as response:
            if response.status != 200:
                body = await response.text()
                raise RuntimeError(f"天气服务返回 {response.status}: {body[:200]}")
            payload = await response.json()

        current = payload.get("current") or {}
        if "temperature_2m" not in current:
            raise ValueError(f"天气响应缺少 current.temperature_2m: {payload}")
        code = current.get("weather_code")
        code = int(code) if code is not None else None
        weather = WeatherInfo(
            temperature_c=float(current["temperature_2m"]),
            description=describe_weather_code(code),
            weather_code=code,
        )
        logger.debug(f"天气: lat={lat}, lng={lng}, {weather.temperature_c}°C, {weather.description}")
        return weather

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
