"""提醒引擎门面

对外提供创建/修改/取消/查询提醒、提醒建议以及触发投递批处理的操作。
HTTP 接口与周期循环都只通过这里访问提醒功能。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import synexa.metrics  # noqa: F401  注册指标的事件处理器
import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
import synexa.storage.user as user_storage
from synexa.channels.base import ChannelRegistry
from synexa.clients.base import TravelTimeService, WeatherService
from synexa.config.settings import DEFAULT_TIMEZONE, SUGGESTION_HORIZON_DAYS
from synexa.core.errors import ReminderNotFoundError, ReminderStateError, ReminderValidationError
from synexa.datamodel import (
    BatchReport, CalendarEvent, ChannelType, Reminder, ReminderInput, ReminderStatus, ReminderUpdate,
    Suggestion, TrafficInfo, UserInfo, WeatherInfo,
)
from synexa.events import E, bus
from synexa.logger import logger
from synexa.utils import as_utc, now_utc, to_db_str
from synexa.world import dispatcher
from synexa.world.recurrence import format_recurrence_rule, parse_recurrence_rule
from synexa.world.scheduler import compute_schedule
from synexa.world.suggestions import suggest_reminders

__all__ = ["ReminderEngine", "configure_engine", "require_engine"]


@dataclass
class _ResolvedTime:
    scheduled_for: datetime
    message: str | None
    traffic_info: TrafficInfo | None = None
    weather_info: WeatherInfo | None = None


def _normalize_time(dt: datetime) -> datetime:
    # 数据库只保存到秒
    return as_utc(dt).replace(microsecond=0)


class ReminderEngine:
    def __init__(
        self,
        channels: ChannelRegistry | None = None,
        travel_service: TravelTimeService | None = None,
        weather_service: WeatherService | None = None,
    ) -> None:
        self.channels: ChannelRegistry = dict(channels or {})
        self.travel_service = travel_service
        self.weather_service = weather_service

    # ----------------- 内部辅助 ----------------
    async def _require_user(self, user_id: int) -> UserInfo:
        user = await user_storage.get_user_by_id(user_id)
        if user is None:
            raise ReminderNotFoundError(f"用户不存在: user_id={user_id}")
        return user

    async def _require_owned_event(self, event_id: int, user_id: int) -> CalendarEvent:
        event = await event_storage.get_event(event_id)
        # 不属于该用户的事件按不存在处理
        if event is None or event.user_id != user_id:
            raise ReminderNotFoundError(f"事件不存在: event_id={event_id}")
        return event

    async def _require_owned_reminder(self, reminder_id: int, user_id: int) -> Reminder:
        reminder = await reminder_storage.get_reminder(reminder_id)
        if reminder is None or reminder.user_id != user_id:
            raise ReminderNotFoundError(f"提醒不存在: reminder_id={reminder_id}")
        return reminder

    async def _resolve_time(self, req: ReminderInput, user: UserInfo) -> _ResolvedTime:
        if req.offset_minutes is not None:
            if req.calendar_event_id is None:
                raise ReminderValidationError("offset_minutes 需要同时指定 calendar_event_id")
            event = await self._require_owned_event(req.calendar_event_id, user.user_id)
            schedule = await compute_schedule(
                event,
                req.offset_minutes,
                req.include_traffic,
                req.include_weather,
                origin=user,
                travel_service=self.travel_service,
                weather_service=self.weather_service,
                user_timezone=user.timezone or DEFAULT_TIMEZONE,
            )
            return _ResolvedTime(
                scheduled_for=schedule.recommended_send_time,
                message=req.message or schedule.composed_message,
                traffic_info=schedule.traffic_info,
                weather_info=schedule.weather_info,
            )

        if req.scheduled_for is None:
            raise ReminderValidationError("需要指定 scheduled_for，或者 calendar_event_id 与 offset_minutes")
        if req.calendar_event_id is not None:
            await self._require_owned_event(req.calendar_event_id, user.user_id)
        return _ResolvedTime(scheduled_for=req.scheduled_for, message=req.message)

    # ----------------- 对外操作 ----------------
    async def create_reminder(self, req: ReminderInput, now: datetime | None = None) -> Reminder:
        now = now or now_utc()
        title = (req.title or "").strip()
        if not title:
            raise ReminderValidationError("提醒标题不能为空")
        if not isinstance(req.channel, ChannelType):
            raise ReminderValidationError(f"不支持的通道: {req.channel}")

        recurrence_rule: str | None = None
        if req.is_recurring:
            rule = parse_recurrence_rule(req.recurrence_rule)
            if rule is None:
                raise ReminderValidationError(f"重复规则不合法: {req.recurrence_rule}")
            recurrence_rule = format_recurrence_rule(rule)
        elif req.recurrence_rule:
            raise ReminderValidationError("设置了 recurrence_rule 但 is_recurring 为 false")

        user = await self._require_user(req.user_id)
        resolved = await self._resolve_time(req, user)
        scheduled_for = _normalize_time(resolved.scheduled_for)
        if scheduled_for < now:
            raise ReminderValidationError(f"提醒时间已过: {scheduled_for.isoformat()}")

        recurrence_end = None
        if req.is_recurring and req.recurrence_end is not None:
            recurrence_end = _normalize_time(req.recurrence_end)
            if recurrence_end < scheduled_for:
                raise ReminderValidationError("recurrence_end 不能早于 scheduled_for")

        reminder = await reminder_storage.create_reminder(
            user.user_id,
            title,
            req.channel,
            scheduled_for,
            message=resolved.message,
            calendar_event_id=req.calendar_event_id,
            include_traffic=req.include_traffic,
            include_weather=req.include_weather,
            traffic_info=resolved.traffic_info,
            weather_info=resolved.weather_info,
            is_recurring=req.is_recurring,
            recurrence_rule=recurrence_rule,
            recurrence_end=recurrence_end,
        )
        bus.emit(E.REMINDER_CREATED, reminder=reminder)
        logger.info(f"创建提醒: reminder_id={reminder.reminder_id}, user_id={user.user_id}, "
                    f"scheduled_for={scheduled_for.isoformat()}, channel={reminder.channel.value}")
        return reminder

    async def update_reminder(
        self,
        reminder_id: int,
        user_id: int,
        update: ReminderUpdate,
        now: datetime | None = None,
    ) -> Reminder:
        now = now or now_utc()
        reminder = await self._require_owned_reminder(reminder_id, user_id)
        if reminder.status != ReminderStatus.PENDING:
            raise ReminderStateError(f"提醒状态为 {reminder.status.value}, 不能修改")

        fields: dict = {}
        if update.title is not None:
            title = update.title.strip()
            if not title:
                raise ReminderValidationError("提醒标题不能为空")
            fields["title"] = title
        if update.message is not None:
            fields["message"] = update.message or None
        if update.channel is not None:
            fields["channel"] = update.channel.value
        if update.scheduled_for is not None:
            scheduled_for = _normalize_time(update.scheduled_for)
            if scheduled_for < now:
                raise ReminderValidationError(f"提醒时间已过: {scheduled_for.isoformat()}")
            if reminder.recurrence_end is not None and scheduled_for > reminder.recurrence_end:
                raise ReminderValidationError("scheduled_for 不能晚于 recurrence_end")
            fields["scheduled_for_utc"] = to_db_str(scheduled_for)
        if update.include_traffic is not None:
            fields["include_traffic"] = int(update.include_traffic)
        if update.include_weather is not None:
            fields["include_weather"] = int(update.include_weather)

        if not await reminder_storage.update_pending_reminder(reminder_id, fields):
            # 读取之后被批处理认领或被取消
            raise ReminderStateError(f"提醒已不在 pending 状态, 不能修改: reminder_id={reminder_id}")
        logger.info(f"修改提醒: reminder_id={reminder_id}, fields={list(fields)}")
        updated = await reminder_storage.get_reminder(reminder_id)
        assert updated is not None
        return updated

    async def cancel_reminder(self, reminder_id: int, user_id: int) -> Reminder:
        reminder = await self._require_owned_reminder(reminder_id, user_id)
        if reminder.status != ReminderStatus.PENDING:
            raise ReminderStateError(f"提醒状态为 {reminder.status.value}, 不能取消")
        if not await reminder_storage.cancel_reminder(reminder_id):
            raise ReminderStateError(f"提醒已不在 pending 状态, 不能取消: reminder_id={reminder_id}")

        cancelled = await reminder_storage.get_reminder(reminder_id)
        assert cancelled is not None
        bus.emit(E.REMINDER_CANCELLED, reminder=cancelled)
        logger.info(f"取消提醒: reminder_id={reminder_id}")
        return cancelled

    async def list_reminders(
        self,
        user_id: int,
        status: ReminderStatus | None = None,
        calendar_event_id: int | None = None,
    ) -> list[Reminder]:
        return await reminder_storage.list_reminders_by_user(user_id, status, calendar_event_id)

    async def list_suggestions(
        self,
        user_id: int,
        horizon_days: int | None = None,
        now: datetime | None = None,
    ) -> list[Suggestion]:
        horizon_days = SUGGESTION_HORIZON_DAYS if horizon_days is None else horizon_days
        if horizon_days < 1:
            raise ReminderValidationError(f"horizon_days 至少为 1: {horizon_days}")
        user = await self._require_user(user_id)
        return await suggest_reminders(
            user_id,
            horizon_days,
            user_timezone=user.timezone or DEFAULT_TIMEZONE,
            now=now,
        )

    async def create_suggested_reminders(
        self,
        user_id: int,
        event_id: int,
        minutes_before: list[int],
        now: datetime | None = None,
    ) -> list[Reminder]:
        """为事件按每个提前分钟数各创建一个 PUSH 提醒，已经过去的时间点跳过"""
        now = now or now_utc()
        if any(minutes < 0 for minutes in minutes_before):
            raise ReminderValidationError("提前分钟数不能为负数")
        event = await self._require_owned_event(event_id, user_id)

        message = f"Don't forget: {event.title}"
        if event.location:
            message += f" at {event.location}"

        created: list[Reminder] = []
        for minutes in minutes_before:
            scheduled_for = _normalize_time(event.start - timedelta(minutes=minutes))
            if scheduled_for < now:
                logger.debug(f"建议的提醒时间已过, 跳过: event_id={event_id}, minutes_before={minutes}")
                continue
            created.append(await self.create_reminder(
                ReminderInput(
                    user_id=user_id,
                    title=f"Reminder: {event.title}",
                    channel=ChannelType.PUSH,
                    message=message,
                    scheduled_for=scheduled_for,
                    calendar_event_id=event_id,
                    include_traffic=bool(event.location),
                    include_weather=True,
                ),
                now=now,
            ))
        return created

    async def run_due_reminders(self, now: datetime | None = None) -> BatchReport:
        return await dispatcher.run_due_reminders(self.channels, now=now)

    async def close(self) -> None:
        for channel in self.channels.values():
            try:
                await channel.close()
            except Exception as e:
                logger.warning(f"关闭通道 {channel.channel_type.value} 失败: {e}")
        for service in (self.travel_service, self.weather_service):
            if service is not None:
                try:
                    await service.close()
                except Exception as e:
                    logger.warning(f"关闭外部服务客户端失败: {e}")


_engine: ReminderEngine | None = None


def configure_engine(engine: ReminderEngine) -> None:
    global _engine
    _engine = engine


def require_engine() -> ReminderEngine:
    if _engine is None:
        raise RuntimeError("ReminderEngine 尚未配置，请先调用 configure_engine()")
    return _engine
