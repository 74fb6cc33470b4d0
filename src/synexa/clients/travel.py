"""路况/行程时间客户端

请求 TRAVEL_API_URL:
    GET {TRAVEL_API_URL}?originLat=..&originLng=..&destination=..
响应:
    {"durationMinutes": 23, "distanceKm": 12.4, "congestionLevel": "slow"}
"""

from __future__ import annotations

import aiohttp

from synexa.clients.base import TravelTimeService
from synexa.datamodel import TrafficInfo
from synexa.logger import logger

__all__ = ["HttpTravelTimeClient"]

_CONGESTION_LEVELS = ("normal", "slow", "heavy", "unknown")


def parse_travel_payload(data: dict) -> TrafficInfo:
    duration = data.get("durationMinutes")
    if duration is None:
        raise ValueError(f"行程响应缺少 durationMinutes: {data}")
    duration_minutes = int(round(float(duration)))
    if duration_minutes < 0:
        raise ValueError(f"行程时间为负数: {duration_minutes}")

    distance = data.get("distanceKm")
    level = str(data.get("congestionLevel") or "unknown").lower()
    if level not in _CONGESTION_LEVELS:
        level = "unknown"
    return TrafficInfo(
        duration_minutes=duration_minutes,
        distance_km=float(distance) if distance is not None else None,
        congestion_level=level,
    )


class HttpTravelTimeClient(TravelTimeService):
    def __init__(self, base_url: str, timeout_seconds: float = 8.0) -> None:
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def estimate_travel(self, origin_lat: float, origin_lng: float, destination_address: str) -> TrafficInfo:
        params = {
            "originLat": str(origin_lat),
            "originLng": str(origin_lng),
            "destination": destination_address,
        }
        async with self._get_session().get(self.base_url, params=params) as response:
            if response.status != 200:
                body = await response.text()
                raise RuntimeError(f"行程服务返回 {response.status}: {body[:200]}")
            data = await response.json()

        traffic = parse_travel_payload(data)
        logger.debug(f"行程估算: destination={destination_address}, duration={traffic.duration_minutes}min, "
                     f"congestion={traffic.congestion_level}")
        return traffic

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
