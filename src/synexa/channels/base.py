from abc import ABC, abstractmethod
from typing import Dict

from synexa.datamodel import ChannelType, DeliveryResult, OutgoingNotification, UserInfo

__all__ = ["NotificationChannel", "ChannelRegistry"]


class NotificationChannel(ABC):
    """通知通道。每个通道独立工作，不依赖其他通道是否存在"""

    channel_type: ChannelType

    @abstractmethod
    async def deliver(self, user: UserInfo, notification: OutgoingNotification) -> DeliveryResult:
        """把通知投递给用户。可预期的失败返回 success=False，非预期错误直接抛出"""

    async def close(self) -> None:
        pass


ChannelRegistry = Dict[ChannelType, NotificationChannel]
