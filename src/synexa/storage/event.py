"""日历事件存储

事件由外部日历同步写入(upsert_event)，提醒引擎只读取。
"""

from datetime import datetime
from typing import AsyncIterator

import synexa.storage.db_config as db_config
from synexa.datamodel import CalendarEvent
from synexa.logger import logger
from synexa.utils import from_db_str, now_utc, to_db_str

__all__ = ["get_event", "iter_upcoming_events", "list_upcoming_events", "upsert_event"]

_COLUMNS = "event_id, user_id, title, location, start_utc, end_utc"


def _row_to_event(row) -> CalendarEvent:
    return CalendarEvent(
        event_id=row[0],
        user_id=row[1],
        title=row[2],
        location=row[3] or None,
        start=from_db_str(row[4]),
        end=from_db_str(row[5]),
    )


async def get_event(event_id: int) -> CalendarEvent | None:
    conn = db_config.ensure_conn()
    async with conn.execute(f"SELECT {_COLUMNS} FROM calendar_events WHERE event_id = ?", (event_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_event(row) if row else None


async def iter_upcoming_events(user_id: int, start: datetime, end: datetime) -> AsyncIterator[CalendarEvent]:
    """按开始时间升序逐条产出 [start, end] 区间内开始的事件"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_COLUMNS} FROM calendar_events WHERE user_id = ? AND start_utc >= ? AND start_utc <= ? "
        "ORDER BY start_utc ASC, event_id ASC",
        (user_id, to_db_str(start), to_db_str(end))
    ) as cursor:
        async for row in cursor:
            yield _row_to_event(row)


async def list_upcoming_events(user_id: int, start: datetime, end: datetime) -> list[CalendarEvent]:
    return [event async for event in iter_upcoming_events(user_id, start, end)]


async def upsert_event(
    user_id: int,
    title: str,
    start: datetime,
    end: datetime,
    location: str | None = None,
    external_id: str | None = None,
) -> CalendarEvent:
    """写入或更新事件(按 user_id + external_id 去重)"""
    conn = db_config.ensure_conn()
    now_str = to_db_str(now_utc())
    if external_id is not None:
        async with conn.execute(
            "SELECT event_id FROM calendar_events WHERE user_id = ? AND external_id = ?",
            (user_id, external_id)
        ) as cursor:
            row = await cursor.fetchone()
        if row:
            await conn.execute(
                "UPDATE calendar_events SET title = ?, location = ?, start_utc = ?, end_utc = ?, updated_at_utc = ? "
                "WHERE event_id = ?",
                (title, location, to_db_str(start), to_db_str(end), now_str, row[0])
            )
            await conn.commit()
            logger.trace(f"更新日历事件: event_id={row[0]}, title={title}")
            event = await get_event(row[0])
            assert event is not None
            return event

    async with conn.execute(
        "INSERT INTO calendar_events (user_id, external_id, title, location, start_utc, end_utc, updated_at_utc) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (user_id, external_id, title, location, to_db_str(start), to_db_str(end), now_str)
    ) as cursor:
        event_id = cursor.lastrowid
    await conn.commit()
    logger.trace(f"写入日历事件: event_id={event_id}, user_id={user_id}, title={title}")
    event = await get_event(event_id)
    assert event is not None
    return event
