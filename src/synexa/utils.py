from datetime import datetime, timezone
from zoneinfo import ZoneInfo

__all__ = ["DB_TIME_FORMAT", "now_utc", "as_utc", "to_db_str", "from_db_str", "to_user_local",
           "format_user_local", "format_user_local_hm"]

# 数据库中统一使用 UTC，精确到秒，字符串可直接按字典序比较
DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_utc() -> datetime:
    """获取当前 UTC 时间(精确到秒)"""
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(dt: datetime) -> datetime:
    """naive 时间视为 UTC；aware 时间转换到 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return as_utc(dt).strftime(DB_TIME_FORMAT)


def from_db_str(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


def to_user_local(dt: datetime, user_tz: str) -> datetime:
    return as_utc(dt).astimezone(ZoneInfo(user_tz))


def format_user_local(dt: datetime, user_tz: str) -> str:
    """格式: 'YYYY-MM-DD HH:MM' (用户时区)"""
    return to_user_local(dt, user_tz).strftime("%Y-%m-%d %H:%M")


def format_user_local_hm(dt: datetime, user_tz: str) -> str:
    return to_user_local(dt, user_tz).strftime("%H:%M")
