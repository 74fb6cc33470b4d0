"""提醒存储

状态流转: pending -> processing -> sent / failed，pending -> cancelled。
所有状态变更都使用带状态条件的 UPDATE，依靠 rowcount 判断是否成功，
这样即使两个批次同时运行，同一个提醒也只会被其中一个认领。
"""

import json
from datetime import datetime, timedelta

import synexa.storage.db_config as db_config
from synexa.datamodel import *
from synexa.logger import logger
from synexa.utils import from_db_str, now_utc, to_db_str

__all__ = [
    "create_reminder", "get_reminder", "list_reminders_by_user", "has_active_reminder_for_event",
    "find_due_reminders", "claim_reminder", "mark_reminder_sent", "mark_reminder_failed",
    "release_stale_claims", "update_pending_reminder", "cancel_reminder",
]

_COLUMNS = (
    "reminder_id, user_id, calendar_event_id, title, message, channel, scheduled_for_utc, status, "
    "include_traffic, include_weather, traffic_info, weather_info, is_recurring, recurrence_rule, "
    "recurrence_end_utc, parent_reminder_id, sent_at_utc, last_error, claimed_at_utc, "
    "created_at_utc, updated_at_utc"
)


def _dump_snapshot(snapshot: TrafficInfo | WeatherInfo | None) -> str | None:
    if snapshot is None:
        return None
    return json.dumps(snapshot.to_dict(), ensure_ascii=False)


def _load_traffic(raw: str | None) -> TrafficInfo | None:
    if not raw:
        return None
    try:
        return TrafficInfo.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"路况快照无法解析, 已忽略: {e}")
        return None


def _load_weather(raw: str | None) -> WeatherInfo | None:
    if not raw:
        return None
    try:
        return WeatherInfo.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"天气快照无法解析, 已忽略: {e}")
        return None


def _row_to_reminder(row) -> Reminder:
    return Reminder(
        reminder_id=row[0],
        user_id=row[1],
        calendar_event_id=row[2],
        title=row[3],
        message=row[4],
        channel=ChannelType(row[5]),
        scheduled_for=from_db_str(row[6]),
        status=ReminderStatus(row[7]),
        include_traffic=bool(row[8]),
        include_weather=bool(row[9]),
        traffic_info=_load_traffic(row[10]),
        weather_info=_load_weather(row[11]),
        is_recurring=bool(row[12]),
        recurrence_rule=row[13],
        recurrence_end=from_db_str(row[14]),
        parent_reminder_id=row[15],
        sent_at=from_db_str(row[16]),
        last_error=row[17],
        claimed_at=from_db_str(row[18]),
        created_at=from_db_str(row[19]),
        updated_at=from_db_str(row[20]),
    )


async def create_reminder(
    user_id: int,
    title: str,
    channel: ChannelType,
    scheduled_for: datetime,
    *,
    message: str | None = None,
    calendar_event_id: int | None = None,
    include_traffic: bool = False,
    include_weather: bool = False,
    traffic_info: TrafficInfo | None = None,
    weather_info: WeatherInfo | None = None,
    is_recurring: bool = False,
    recurrence_rule: str | None = None,
    recurrence_end: datetime | None = None,
    parent_reminder_id: int | None = None,
) -> Reminder:
    """创建提醒(状态固定为 pending)，参数校验由调用方负责"""
    conn = db_config.ensure_conn()
    now_str = to_db_str(now_utc())
    async with conn.execute(
        "INSERT INTO reminders (user_id, calendar_event_id, title, message, channel, scheduled_for_utc, status, "
        "include_traffic, include_weather, traffic_info, weather_info, is_recurring, recurrence_rule, "
        "recurrence_end_utc, parent_reminder_id, created_at_utc, updated_at_utc) "
        "VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            user_id, calendar_event_id, title, message, channel.value, to_db_str(scheduled_for),
            int(include_traffic), int(include_weather), _dump_snapshot(traffic_info), _dump_snapshot(weather_info),
            int(is_recurring), recurrence_rule, to_db_str(recurrence_end), parent_reminder_id, now_str, now_str,
        )
    ) as cursor:
        reminder_id = cursor.lastrowid
    await conn.commit()
    logger.trace(f"创建提醒: reminder_id={reminder_id}, user_id={user_id}, title={title}, "
                 f"scheduled_for={to_db_str(scheduled_for)}, channel={channel.value}")
    reminder = await get_reminder(reminder_id)
    assert reminder is not None
    return reminder


async def get_reminder(reminder_id: int) -> Reminder | None:
    conn = db_config.ensure_conn()
    async with conn.execute(f"SELECT {_COLUMNS} FROM reminders WHERE reminder_id = ?", (reminder_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_reminder(row) if row else None


async def list_reminders_by_user(
    user_id: int,
    status: ReminderStatus | None = None,
    calendar_event_id: int | None = None,
) -> list[Reminder]:
    """按用户列出提醒，可按状态和关联事件过滤，按触发时间升序"""
    conn = db_config.ensure_conn()
    sql = f"SELECT {_COLUMNS} FROM reminders WHERE user_id = ?"
    params: list = [user_id]
    if status is not None:
        sql += " AND status = ?"
        params.append(status.value)
    if calendar_event_id is not None:
        sql += " AND calendar_event_id = ?"
        params.append(calendar_event_id)
    sql += " ORDER BY scheduled_for_utc ASC, reminder_id ASC"
    async with conn.execute(sql, tuple(params)) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_reminder(row) for row in rows]


async def has_active_reminder_for_event(calendar_event_id: int) -> bool:
    """事件是否已有未投递的提醒(pending 或正在投递)"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        "SELECT COUNT(1) FROM reminders WHERE calendar_event_id = ? AND status IN ('pending', 'processing')",
        (calendar_event_id,)
    ) as cursor:
        row = await cursor.fetchone()
    return bool(row and row[0])


async def find_due_reminders(now: datetime) -> list[Reminder]:
    """获取所有已到期且仍为 pending 的提醒"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_COLUMNS} FROM reminders WHERE status = 'pending' AND scheduled_for_utc <= ? "
        "ORDER BY scheduled_for_utc ASC, reminder_id ASC",
        (to_db_str(now),)
    ) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_reminder(row) for row in rows]


async def claim_reminder(reminder_id: int, now: datetime) -> bool:
    """pending -> processing，返回是否认领成功"""
    conn = db_config.ensure_conn()
    now_str = to_db_str(now)
    cursor = await conn.execute(
        "UPDATE reminders SET status = 'processing', claimed_at_utc = ?, updated_at_utc = ? "
        "WHERE reminder_id = ? AND status = 'pending'",
        (now_str, now_str, reminder_id)
    )
    claimed = cursor.rowcount == 1
    await cursor.close()
    await conn.commit()
    logger.trace(f"认领提醒: reminder_id={reminder_id}, claimed={claimed}")
    return claimed


async def mark_reminder_sent(reminder_id: int, sent_at: datetime) -> bool:
    conn = db_config.ensure_conn()
    sent_str = to_db_str(sent_at)
    cursor = await conn.execute(
        "UPDATE reminders SET status = 'sent', sent_at_utc = ?, last_error = NULL, updated_at_utc = ? "
        "WHERE reminder_id = ? AND status = 'processing'",
        (sent_str, sent_str, reminder_id)
    )
    updated = cursor.rowcount == 1
    await cursor.close()
    await conn.commit()
    logger.trace(f"提醒已发送: reminder_id={reminder_id}, updated={updated}")
    return updated


async def mark_reminder_failed(reminder_id: int, error: str | None, now: datetime) -> bool:
    conn = db_config.ensure_conn()
    cursor = await conn.execute(
        "UPDATE reminders SET status = 'failed', last_error = ?, updated_at_utc = ? "
        "WHERE reminder_id = ? AND status = 'processing'",
        (error, to_db_str(now), reminder_id)
    )
    updated = cursor.rowcount == 1
    await cursor.close()
    await conn.commit()
    logger.trace(f"提醒发送失败: reminder_id={reminder_id}, error={error}, updated={updated}")
    return updated


async def release_stale_claims(now: datetime, claim_timeout_seconds: int) -> int:
    """把认领超时(投递进程可能已崩溃)的提醒放回 pending，返回放回的数量"""
    conn = db_config.ensure_conn()
    deadline = to_db_str(now - timedelta(seconds=claim_timeout_seconds))
    cursor = await conn.execute(
        "UPDATE reminders SET status = 'pending', claimed_at_utc = NULL, updated_at_utc = ? "
        "WHERE status = 'processing' AND claimed_at_utc <= ?",
        (to_db_str(now), deadline)
    )
    released = cursor.rowcount
    await cursor.close()
    await conn.commit()
    if released:
        logger.warning(f"{released} 个提醒认领超时, 已放回 pending")
    return released


async def update_pending_reminder(reminder_id: int, fields: dict) -> bool:
    """修改 pending 提醒的部分字段，fields 的键为列名"""
    allowed = {"title", "message", "channel", "scheduled_for_utc", "include_traffic", "include_weather"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"不允许修改的字段: {sorted(unknown)}")
    if not fields:
        return True

    conn = db_config.ensure_conn()
    assignments = ", ".join(f"{column} = ?" for column in fields)
    params = [*fields.values(), to_db_str(now_utc()), reminder_id]
    cursor = await conn.execute(
        f"UPDATE reminders SET {assignments}, updated_at_utc = ? WHERE reminder_id = ? AND status = 'pending'",
        tuple(params)
    )
    updated = cursor.rowcount == 1
    await cursor.close()
    await conn.commit()
    logger.trace(f"更新提醒: reminder_id={reminder_id}, fields={list(fields)}, updated={updated}")
    return updated


async def cancel_reminder(reminder_id: int) -> bool:
    """pending -> cancelled，返回是否取消成功"""
    conn = db_config.ensure_conn()
    cursor = await conn.execute(
        "UPDATE reminders SET status = 'cancelled', updated_at_utc = ? WHERE reminder_id = ? AND status = 'pending'",
        (to_db_str(now_utc()), reminder_id)
    )
    cancelled = cursor.rowcount == 1
    await cursor.close()
    await conn.commit()
    logger.trace(f"取消提醒: reminder_id={reminder_id}, cancelled={cancelled}")
    return cancelled
