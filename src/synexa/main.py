from synexa.logger import setup_logging, logger
from synexa.config.settings import *
setup_logging(
    log_level="TRACE",
    log_file=LOG_FILE,
    console_level=LOG_LEVEL,
)

import asyncio
import signal

from synexa.admin.http_server import main_loop as admin_http_main
from synexa.channels.base import ChannelRegistry
from synexa.channels.email_smtp import SmtpEmailChannel
from synexa.channels.sms_twilio import TwilioSmsChannel
from synexa.channels.telegram_push import TelegramPushChannel
from synexa.clients.travel import HttpTravelTimeClient
from synexa.clients.weather import OpenMeteoWeatherClient
from synexa.core.engine import ReminderEngine, configure_engine
from synexa.datamodel import ChannelType
import synexa.world.reminder
import synexa.storage.db_config as db_config

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


def _create_channels() -> ChannelRegistry:
    """只注册已配置的通道，未配置的通道投递时记为失败"""
    channels: ChannelRegistry = {}
    if TELEGRAM_BOT_TOKEN:
        channels[ChannelType.PUSH] = TelegramPushChannel(TELEGRAM_BOT_TOKEN, PUBLIC_BASE_URL)
    if SMTP_HOST and SMTP_FROM_ADDRESS:
        channels[ChannelType.EMAIL] = SmtpEmailChannel(
            host=SMTP_HOST,
            port=SMTP_PORT,
            from_address=SMTP_FROM_ADDRESS,
            username=SMTP_USERNAME,
            password=SMTP_PASSWORD,
            use_tls=SMTP_USE_TLS,
            timeout_seconds=CHANNEL_SEND_TIMEOUT_SECONDS,
            public_base_url=PUBLIC_BASE_URL,
        )
    if TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER:
        channels[ChannelType.SMS] = TwilioSmsChannel(
            TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER,
            timeout_seconds=CHANNEL_SEND_TIMEOUT_SECONDS,
        )
    logger.info(f"已启用的通知通道: {[c.value for c in channels] or '无'}")
    return channels


def _create_engine() -> ReminderEngine:
    travel_service = None
    if TRAVEL_API_URL:
        travel_service = HttpTravelTimeClient(TRAVEL_API_URL, timeout_seconds=ENRICHMENT_TIMEOUT_SECONDS)
    else:
        logger.warning("未设置 TRAVEL_API_URL, 提醒不会根据路况调整")

    weather_service = None
    if WEATHER_API_URL:
        weather_service = OpenMeteoWeatherClient(WEATHER_API_URL, timeout_seconds=ENRICHMENT_TIMEOUT_SECONDS)

    return ReminderEngine(
        channels=_create_channels(),
        travel_service=travel_service,
        weather_service=weather_service,
    )


async def main():
    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)
    engine = _create_engine()
    configure_engine(engine)

    try:
        tasks = [admin_http_main(shutdown_event)]
        if ENABLE_REMINDER_LOOP:
            tasks.append(synexa.world.reminder.main_loop(shutdown_event))
        else:
            logger.warning("Reminder 主循环已禁用, 需要外部 cron 调用 /api/v1/reminders/process")

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭外部服务客户端与通知通道...")
        await engine.close()

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("Synexa 已关闭")


def run() -> None:
    logger.info("启动 Synexa...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
