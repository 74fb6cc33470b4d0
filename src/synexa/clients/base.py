from abc import ABC, abstractmethod

from synexa.datamodel import TrafficInfo, WeatherInfo

__all__ = ["TravelTimeService", "WeatherService"]


class TravelTimeService(ABC):
    @abstractmethod
    async def estimate_travel(self, origin_lat: float, origin_lng: float, destination_address: str) -> TrafficInfo:
        """估算出发地到目的地的行程，失败时抛出异常"""

    async def close(self) -> None:
        pass


class WeatherService(ABC):
    @abstractmethod
    async def get_current_weather(self, lat: float, lng: float) -> WeatherInfo:
        """获取当前天气，失败时抛出异常"""

    async def close(self) -> None:
        pass
