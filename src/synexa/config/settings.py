import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from synexa.logger import logger
load_dotenv()

__all__ = [
    "DB_PATH", "LOG_FILE", "LOG_LEVEL", "DEFAULT_TIMEZONE",
    "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN", "CRON_SECRET", "PUBLIC_BASE_URL",
    "ENABLE_REMINDER_LOOP", "REMINDER_CHECK_INTERVAL_SECONDS", "REMINDER_CLAIM_TIMEOUT_SECONDS",
    "ENRICHMENT_TIMEOUT_SECONDS", "CHANNEL_SEND_TIMEOUT_SECONDS",
    "TRAFFIC_SAFETY_BUFFER_MINUTES", "SUGGESTION_HORIZON_DAYS",
    "TELEGRAM_BOT_TOKEN",
    "SMTP_HOST", "SMTP_PORT", "SMTP_USERNAME", "SMTP_PASSWORD", "SMTP_FROM_ADDRESS", "SMTP_USE_TLS",
    "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER",
    "TRAVEL_API_URL", "WEATHER_API_URL",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default


# 存储与日志
DB_PATH = os.getenv("DB_PATH", "data/synexa.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/synexa.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").strip().upper()

# 用户未设置时区时使用
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Paris")
try:
    ZoneInfo(DEFAULT_TIMEZONE)
except (ZoneInfoNotFoundError, ValueError):
    logger.critical(f"DEFAULT_TIMEZONE 非法: {DEFAULT_TIMEZONE}, 请使用 IANA 时区名称")
    exit(0)


# Admin API / 定时触发入口
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = _parse_int("ADMIN_HTTP_PORT", 18080)
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")
CRON_SECRET = os.getenv("CRON_SECRET", "")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/")


# 提醒投递
ENABLE_REMINDER_LOOP = _parse_bool("ENABLE_REMINDER_LOOP", True)
REMINDER_CHECK_INTERVAL_SECONDS = _parse_float("REMINDER_CHECK_INTERVAL_SECONDS", 30.0)
REMINDER_CLAIM_TIMEOUT_SECONDS = _parse_int("REMINDER_CLAIM_TIMEOUT_SECONDS", 600)
ENRICHMENT_TIMEOUT_SECONDS = _parse_float("ENRICHMENT_TIMEOUT_SECONDS", 8.0)
CHANNEL_SEND_TIMEOUT_SECONDS = _parse_float("CHANNEL_SEND_TIMEOUT_SECONDS", 15.0)
TRAFFIC_SAFETY_BUFFER_MINUTES = _parse_int("TRAFFIC_SAFETY_BUFFER_MINUTES", 10)
SUGGESTION_HORIZON_DAYS = _parse_int("SUGGESTION_HORIZON_DAYS", 7)

if REMINDER_CHECK_INTERVAL_SECONDS <= 0:
    REMINDER_CHECK_INTERVAL_SECONDS = 30.0
    logger.warning("REMINDER_CHECK_INTERVAL_SECONDS 必须大于 0, 已回退到 30 秒")


# 推送 (Telegram Bot)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
if TELEGRAM_BOT_TOKEN == "":
    logger.warning("未设置 TELEGRAM_BOT_TOKEN, PUSH 通道不可用")

# 邮件 (SMTP)
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _parse_int("SMTP_PORT", 587)
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_ADDRESS = os.getenv("SMTP_FROM_ADDRESS", "")
SMTP_USE_TLS = _parse_bool("SMTP_USE_TLS", True)
if SMTP_HOST == "":
    logger.warning("未设置 SMTP_HOST, EMAIL 通道不可用")

# 短信 (Twilio)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER", "")
if TWILIO_ACCOUNT_SID == "" or TWILIO_AUTH_TOKEN == "":
    logger.warning("未设置 TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN, SMS 通道不可用")

# 外部数据源
TRAVEL_API_URL = os.getenv("TRAVEL_API_URL", "")
WEATHER_API_URL = os.getenv("WEATHER_API_URL", "https://api.open-meteo.com/v1/forecast")
