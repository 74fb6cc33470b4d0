"""PUSH 通道: 通过 Telegram Bot 发送消息给用户绑定的 Telegram 账号"""

import telegram

from synexa.channels.base import NotificationChannel
from synexa.datamodel import ChannelType, DeliveryResult, OutgoingNotification, UserInfo
from synexa.logger import logger

__all__ = ["TelegramPushChannel"]

MAX_MESSAGE_LENGTH = 4096


class TelegramPushChannel(NotificationChannel):
    channel_type = ChannelType.PUSH

    def __init__(self, token: str, public_base_url: str = "") -> None:
        self.token = token
        self.public_base_url = public_base_url.rstrip("/")
        self._bot: telegram.Bot | None = None

    async def _get_bot(self) -> telegram.Bot:
        if self._bot is None:
            bot = telegram.Bot(self.token)
            await bot.initialize()
            self._bot = bot
        return self._bot

    def _absolute_url(self, link_url: str) -> str:
        if link_url.startswith("http://") or link_url.startswith("https://"):
            return link_url
        return f"{self.public_base_url}{link_url}"

    async def send_push(self, chat_id: int, title: str, body: str, link_url: str) -> DeliveryResult:
        text = f"{title}\n\n{body}"
        if link_url:
            text += f"\n\n{self._absolute_url(link_url)}"
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[:MAX_MESSAGE_LENGTH - 3] + "..."

        bot = await self._get_bot()
        try:
            await bot.send_message(chat_id=chat_id, text=text)
        except telegram.error.TelegramError as e:
            logger.error(f"向 Telegram 用户 {chat_id} 发送消息失败: {e}", exc_info=e)
            return DeliveryResult(success=False, error=f"Telegram error: {e}")
        return DeliveryResult(success=True)

    async def deliver(self, user: UserInfo, notification: OutgoingNotification) -> DeliveryResult:
        if not user.telegram_user_id:
            return DeliveryResult(success=False, error="User has no Telegram account linked")
        logger.info(f"发送 PUSH 给用户 {user.user_id}: {notification.title} (dedup_key={notification.dedup_key})")
        return await self.send_push(user.telegram_user_id, notification.title, notification.body,
                                    notification.link_url)

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.shutdown()
            self._bot = None
