"""EMAIL 通道: SMTP 发送 HTML 邮件

smtplib 是阻塞调用，放到线程中执行，避免阻塞事件循环。
"""

import asyncio
import html
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from synexa.channels.base import NotificationChannel
from synexa.datamodel import ChannelType, DeliveryResult, OutgoingNotification, UserInfo
from synexa.logger import logger

__all__ = ["SmtpEmailChannel", "format_reminder_html"]


def format_reminder_html(title: str, body: str, link_url: str) -> str:
    paragraphs = "".join(
        f"<p>{html.escape(block).replace(chr(10), '<br>')}</p>"
        for block in body.split("\n\n") if block.strip()
    )
    link = f'<p><a href="{html.escape(link_url, quote=True)}">Open in Synexa</a></p>' if link_url else ""
    return (
        "<html><body style=\"font-family: sans-serif;\">"
        f"<h2>{html.escape(title)}</h2>"
        f"{paragraphs}{link}"
        "</body></html>"
    )


class SmtpEmailChannel(NotificationChannel):
    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        host: str,
        port: int,
        from_address: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout_seconds: float = 15.0,
        public_base_url: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.from_address = from_address
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds
        self.public_base_url = public_base_url.rstrip("/")

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send_email(self, to_address: str, subject: str, html_body: str, dedup_key: str = "") -> DeliveryResult:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to_address
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(idstring=dedup_key or None)
        if dedup_key:
            message["X-Synexa-Dedup-Key"] = dedup_key
        message.set_content("This reminder is best viewed in an HTML-capable mail client.")
        message.add_alternative(html_body, subtype="html")

        try:
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"发送邮件到 {to_address} 失败: {e}", exc_info=e)
            return DeliveryResult(success=False, error=f"SMTP error: {e}")
        return DeliveryResult(success=True)

    async def deliver(self, user: UserInfo, notification: OutgoingNotification) -> DeliveryResult:
        if not user.email:
            return DeliveryResult(success=False, error="User has no email address")
        link = f"{self.public_base_url}{notification.link_url}" if notification.link_url else ""
        logger.info(f"发送 EMAIL 给用户 {user.user_id}: {notification.title} (dedup_key={notification.dedup_key})")
        return await self.send_email(
            user.email,
            f"Reminder: {notification.title}",
            format_reminder_html(notification.title, notification.body, link),
            dedup_key=notification.dedup_key,
        )
