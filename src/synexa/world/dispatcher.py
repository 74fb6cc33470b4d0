"""提醒投递批处理

一次批处理:
1. 把认领超时的 processing 提醒放回 pending
2. 取出所有到期的 pending 提醒，逐个认领(条件更新，抢不到就跳过)
3. 组装通知内容，按提醒的通道投递，写回 sent / failed
4. 发送成功的重复提醒生成下一次提醒

单个提醒的任何异常都只会让该提醒记为 failed，不会中断整个批次。
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from time import monotonic

import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
import synexa.storage.user as user_storage
from synexa.channels.base import ChannelRegistry
from synexa.config.settings import CHANNEL_SEND_TIMEOUT_SECONDS, DEFAULT_TIMEZONE, REMINDER_CLAIM_TIMEOUT_SECONDS
from synexa.datamodel import (
    BatchReport, CalendarEvent, DeliveryResult, OutgoingNotification, Reminder, ReminderOutcome, UserInfo,
)
from synexa.events import E, bus
from synexa.logger import logger, reminder_logger
from synexa.utils import format_user_local, now_utc
from synexa.world.recurrence import next_occurrence, parse_recurrence_rule

__all__ = ["run_due_reminders", "build_notification", "dedup_key_for"]


class _BatchClock:
    """批次内的当前时间: 以批次的 now 为起点，按单调时钟经过的秒数前进

    认领、发送、失败的时间戳都取写入那一刻的时间，长批次中后认领的提醒不会被误判为认领超时。
    """

    def __init__(self, started_at: datetime):
        self.started_at = started_at
        self._t0 = monotonic()

    def elapsed_seconds(self) -> float:
        return monotonic() - self._t0

    def now(self) -> datetime:
        return (self.started_at + timedelta(seconds=self.elapsed_seconds())).replace(microsecond=0)


def dedup_key_for(reminder: Reminder) -> str:
    return f"reminder-{reminder.reminder_id}"


def _default_body(reminder: Reminder, event: CalendarEvent | None, user_timezone: str) -> str:
    parts = [reminder.title]
    if event is not None:
        context = f"{event.title} starts at {format_user_local(event.start, user_timezone)}"
        if event.location:
            context += f" at {event.location}"
        parts.append(context)
    if reminder.traffic_info is not None:
        parts.append(reminder.traffic_info.summary())
    if reminder.weather_info is not None:
        parts.append(reminder.weather_info.summary())
    return "\n\n".join(parts)


def build_notification(reminder: Reminder, event: CalendarEvent | None, user_timezone: str) -> OutgoingNotification:
    """message 存在时原样使用，否则由标题、事件当前信息与路况/天气快照组成"""
    body = reminder.message if reminder.message else _default_body(reminder, event, user_timezone)
    if reminder.calendar_event_id is not None:
        link_url = f"/calendar?eventId={reminder.calendar_event_id}"
    else:
        link_url = "/reminders"
    return OutgoingNotification(
        title=reminder.title,
        body=body,
        link_url=link_url,
        dedup_key=dedup_key_for(reminder),
    )


async def _deliver(
    reminder: Reminder,
    user: UserInfo | None,
    channels: ChannelRegistry,
    send_timeout_seconds: float,
) -> DeliveryResult:
    if user is None:
        return DeliveryResult(success=False, error=f"User {reminder.user_id} not found")

    channel = channels.get(reminder.channel)
    if channel is None:
        return DeliveryResult(success=False, error=f"Channel {reminder.channel.value} is not configured")

    event = None
    if reminder.calendar_event_id is not None:
        event = await event_storage.get_event(reminder.calendar_event_id)
    notification = build_notification(reminder, event, user.timezone or DEFAULT_TIMEZONE)

    try:
        return await asyncio.wait_for(channel.deliver(user, notification), timeout=send_timeout_seconds)
    except asyncio.TimeoutError:
        return DeliveryResult(success=False, error=f"Delivery timed out after {send_timeout_seconds}s")


async def _spawn_successor(reminder: Reminder) -> int | None:
    """为发送成功的重复提醒创建下一次提醒，返回新提醒 ID"""
    if not reminder.is_recurring:
        return None

    rule = parse_recurrence_rule(reminder.recurrence_rule)
    if rule is None:
        logger.warning(f"重复规则不合法, 不再生成后续提醒: reminder_id={reminder.reminder_id}, "
                       f"rule={reminder.recurrence_rule}")
        return None

    next_time = next_occurrence(reminder.scheduled_for, rule)
    if next_time is None:
        return None
    if reminder.recurrence_end is not None and next_time > reminder.recurrence_end:
        logger.info(f"重复提醒已到结束时间: reminder_id={reminder.reminder_id}, "
                    f"recurrence_end={reminder.recurrence_end.isoformat()}")
        return None

    successor = await reminder_storage.create_reminder(
        reminder.user_id,
        reminder.title,
        reminder.channel,
        next_time,
        message=reminder.message,
        calendar_event_id=reminder.calendar_event_id,
        include_traffic=reminder.include_traffic,
        include_weather=reminder.include_weather,
        traffic_info=reminder.traffic_info,
        weather_info=reminder.weather_info,
        is_recurring=True,
        recurrence_rule=reminder.recurrence_rule,
        recurrence_end=reminder.recurrence_end,
        parent_reminder_id=reminder.chain_root_id,
    )
    bus.emit(E.REMINDER_RECURRED, reminder=successor, previous=reminder)
    logger.info(f"生成下一次重复提醒: reminder_id={successor.reminder_id}, "
                f"parent_reminder_id={successor.parent_reminder_id}, scheduled_for={next_time.isoformat()}")
    return successor.reminder_id


async def _process_one(
    reminder: Reminder,
    channels: ChannelRegistry,
    clock: _BatchClock,
    send_timeout_seconds: float,
) -> ReminderOutcome:
    log = reminder_logger(reminder.reminder_id)
    outcome = ReminderOutcome(
        reminder_id=reminder.reminder_id,
        title=reminder.title,
        channel=reminder.channel,
        success=False,
    )
    try:
        user = await user_storage.get_user_by_id(reminder.user_id)
        result = await _deliver(reminder, user, channels, send_timeout_seconds)
    except Exception as e:
        log.error("投递提醒时发生异常", exc_info=e)
        result = DeliveryResult(success=False, error=f"Unexpected error: {e}")

    if not result.success:
        outcome.error = result.error or "Unknown delivery error"
        await reminder_storage.mark_reminder_failed(reminder.reminder_id, outcome.error, clock.now())
        bus.emit(E.REMINDER_FAILED, reminder=reminder, error=outcome.error)
        log.error(f"提醒投递失败: channel={reminder.channel.value}, error={outcome.error}")
        return outcome

    outcome.success = True
    await reminder_storage.mark_reminder_sent(reminder.reminder_id, clock.now())
    bus.emit(E.REMINDER_SENT, reminder=reminder)
    log.info(f"提醒已投递: channel={reminder.channel.value}")

    try:
        outcome.successor_id = await _spawn_successor(reminder)
    except Exception as e:
        log.error("生成后续重复提醒失败", exc_info=e)
    return outcome


async def run_due_reminders(
    channels: ChannelRegistry,
    *,
    now: datetime | None = None,
    claim_timeout_seconds: int = REMINDER_CLAIM_TIMEOUT_SECONDS,
    send_timeout_seconds: float = CHANNEL_SEND_TIMEOUT_SECONDS,
) -> BatchReport:
    """执行一次投递批处理，返回本批次的统计报告"""
    now = now or now_utc()
    clock = _BatchClock(now)
    report = BatchReport(started_at=now)

    report.released = await reminder_storage.release_stale_claims(now, claim_timeout_seconds)
    due = await reminder_storage.find_due_reminders(now)
    if due:
        logger.debug(f"本批次到期提醒 {len(due)} 个")

    for reminder in due:
        try:
            claimed = await reminder_storage.claim_reminder(reminder.reminder_id, clock.now())
        except Exception as e:
            logger.error(f"认领提醒失败: reminder_id={reminder.reminder_id}", exc_info=e)
            report.skipped += 1
            continue
        if not claimed:
            logger.debug(f"提醒已被其他批次认领, 跳过: reminder_id={reminder.reminder_id}")
            report.skipped += 1
            continue

        try:
            outcome = await _process_one(reminder, channels, clock, send_timeout_seconds)
        except Exception as e:
            # 写回状态本身失败，提醒保持 processing，超时后会被放回 pending
            logger.error(f"处理提醒时发生异常: reminder_id={reminder.reminder_id}", exc_info=e)
            outcome = ReminderOutcome(
                reminder_id=reminder.reminder_id,
                title=reminder.title,
                channel=reminder.channel,
                success=False,
                error=f"Unexpected error: {e}",
            )
        report.results.append(outcome)

    report.finished_at = clock.now()
    duration_ms = clock.elapsed_seconds() * 1000
    bus.emit(E.BATCH_FINISHED, report=report, duration_ms=duration_ms, skipped=report.skipped)
    if report.attempted or report.skipped or report.released:
        logger.info(f"提醒批处理完成: attempted={report.attempted}, succeeded={report.succeeded}, "
                    f"failed={report.failed}, skipped={report.skipped}, released={report.released}, "
                    f"successors={report.successors_created}, 耗时 {duration_ms:.1f}ms")
    return report
