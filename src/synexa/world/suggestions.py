"""提醒建议

对未来 horizon_days 天内、还没有待发送提醒的事件，按距离开始的时长和是否有地点给出建议的提前分钟数:

    有地点:  >24h -> [1440, 60]   (2h, 24h] -> [60]   <=2h -> [15]
    无地点:  >24h -> [1440, 30]   (1h, 24h] -> [30]   <=1h -> [15]

事件在用户当地时间 9 点之前开始时，总是补上前一天(1440)的提醒。
建议只是参考，不会自动创建提醒。每次调用都重新查询当前数据。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import AsyncIterator

import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
from synexa.datamodel import CalendarEvent, Suggestion
from synexa.logger import logger
from synexa.utils import now_utc, to_user_local

__all__ = ["iter_suggestions", "suggest_reminders", "suggest_minutes_for_event"]

DAY_BEFORE_MINUTES = 1440
MORNING_CUTOFF_HOUR = 9


def suggest_minutes_for_event(event: CalendarEvent, now: datetime, user_timezone: str) -> tuple[list[int], str]:
    """返回 (建议的提前分钟数, 原因)"""
    hours_until = (event.start - now).total_seconds() / 3600

    if event.location:
        if hours_until > 24:
            minutes = [DAY_BEFORE_MINUTES, 60]
            reason = "Event with a location - reminders to prepare the trip"
        elif hours_until > 2:
            minutes = [60]
            reason = "Event with a location - reminder to leave on time"
        else:
            minutes = [15]
            reason = "Event starting soon"
    else:
        if hours_until > 24:
            minutes = [DAY_BEFORE_MINUTES, 30]
            reason = "Upcoming event - reminders recommended"
        elif hours_until > 1:
            minutes = [30]
            reason = "Upcoming event - reminder recommended"
        else:
            minutes = [15]
            reason = "Event starting soon"

    if to_user_local(event.start, user_timezone).hour < MORNING_CUTOFF_HOUR:
        if DAY_BEFORE_MINUTES not in minutes:
            minutes.insert(0, DAY_BEFORE_MINUTES)
        reason += " (morning event)"

    return minutes, reason


async def iter_suggestions(
    user_id: int,
    horizon_days: int,
    *,
    user_timezone: str = "UTC",
    now: datetime | None = None,
) -> AsyncIterator[Suggestion]:
    """按事件开始时间升序逐条产出建议"""
    now = now or now_utc()
    horizon_end = now + timedelta(days=horizon_days)

    async for event in event_storage.iter_upcoming_events(user_id, now, horizon_end):
        if await reminder_storage.has_active_reminder_for_event(event.event_id):
            logger.trace(f"事件已有待发送提醒, 跳过建议: event_id={event.event_id}")
            continue

        minutes, reason = suggest_minutes_for_event(event, now, user_timezone)
        yield Suggestion(
            event_id=event.event_id,
            event_title=event.title,
            event_start=event.start,
            suggested_minutes=minutes,
            reason=reason,
        )


async def suggest_reminders(
    user_id: int,
    horizon_days: int,
    *,
    user_timezone: str = "UTC",
    now: datetime | None = None,
) -> list[Suggestion]:
    return [s async for s in iter_suggestions(user_id, horizon_days, user_timezone=user_timezone, now=now)]
