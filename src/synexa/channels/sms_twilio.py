"""SMS 通道: Twilio REST API

同一提醒的重复投递携带相同的 I-Twilio-Idempotency-Token，由 Twilio 去重。
"""

import aiohttp

from synexa.channels.base import NotificationChannel
from synexa.datamodel import ChannelType, DeliveryResult, OutgoingNotification, UserInfo
from synexa.logger import logger

__all__ = ["TwilioSmsChannel", "format_sms_text"]

SMS_MAX_LENGTH = 160
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def format_sms_text(title: str, body: str) -> str:
    text = body if body.startswith(title) else f"{title}: {body}"
    if len(text) > SMS_MAX_LENGTH:
        text = text[:SMS_MAX_LENGTH - 3] + "..."
    return text


class TwilioSmsChannel(NotificationChannel):
    channel_type = ChannelType.SMS

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout_seconds: float = 15.0) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                auth=aiohttp.BasicAuth(self.account_sid, self.auth_token),
            )
        return self._session

    async def send_sms(self, to_number: str, text: str, dedup_key: str = "") -> DeliveryResult:
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        headers = {"I-Twilio-Idempotency-Token": dedup_key} if dedup_key else {}
        data = {"To": to_number, "From": self.from_number, "Body": text}
        try:
            async with self._get_session().post(url, data=data, headers=headers) as response:
                if response.status in (200, 201):
                    return DeliveryResult(success=True)
                body = await response.text()
                logger.error(f"Twilio 返回 {response.status}: {body[:200]}")
                return DeliveryResult(success=False, error=f"Twilio error {response.status}")
        except aiohttp.ClientError as e:
            logger.error(f"发送短信到 {to_number} 失败: {e}", exc_info=e)
            return DeliveryResult(success=False, error=f"Twilio client error: {e}")

    async def deliver(self, user: UserInfo, notification: OutgoingNotification) -> DeliveryResult:
        if not user.phone_number:
            return DeliveryResult(success=False, error="User has no phone number")
        logger.info(f"发送 SMS 给用户 {user.user_id}: {notification.title} (dedup_key={notification.dedup_key})")
        return await self.send_sms(
            user.phone_number,
            format_sms_text(notification.title, notification.body),
            dedup_key=notification.dedup_key,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
