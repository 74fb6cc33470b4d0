"""智能调度: 根据事件时间、路况与天气计算提醒的推荐发送时间和提醒文案

基准时间为 event.start - base_offset_minutes。
- 路况: 事件有地点且用户有出发地坐标时查询行程时间，成功则改为
  event.start - 行程时间 - 安全缓冲，失败则保持基准时间且不附带路况。
- 天气: 用户有出发地坐标时查询当前天气，成功则附带天气快照并追加穿衣/带伞建议，失败则忽略。

任何外部查询的失败(包括超时)都只会让对应的补充信息缺席，不会让提醒创建失败。
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, TypeVar

from synexa.clients.base import TravelTimeService, WeatherService
from synexa.clients.weather import is_precipitation_code
from synexa.config.settings import ENRICHMENT_TIMEOUT_SECONDS, TRAFFIC_SAFETY_BUFFER_MINUTES
from synexa.core.errors import ReminderValidationError
from synexa.datamodel import CalendarEvent, ScheduleResult, TrafficInfo, UserInfo, WeatherInfo
from synexa.events import E, bus
from synexa.logger import logger
from synexa.utils import format_user_local

__all__ = ["compute_schedule", "weather_guidance"]

T = TypeVar("T")

COLD_THRESHOLD_C = 10
HOT_THRESHOLD_C = 25
_PRECIPITATION_WORDS = ("rain", "drizzle", "shower", "snow", "thunderstorm", "sleet")


async def _best_effort(kind: str, call: Awaitable[T], timeout_seconds: float) -> T | None:
    """带超时执行一次补充查询，失败时记录日志并返回 None"""
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{kind} 查询超时({timeout_seconds}s), 使用基准调度")
    except Exception as e:
        logger.warning(f"{kind} 查询失败, 使用基准调度: {e}")
    bus.emit(E.ENRICHMENT_FAILED, kind=kind)
    return None


def weather_guidance(weather: WeatherInfo) -> list[str]:
    tips: list[str] = []
    if weather.temperature_c < COLD_THRESHOLD_C:
        tips.append("Tip: it's cold, take a coat.")
    elif weather.temperature_c > HOT_THRESHOLD_C:
        tips.append("Tip: it's hot, dress light.")

    description = weather.description.lower()
    if is_precipitation_code(weather.weather_code) or any(w in description for w in _PRECIPITATION_WORDS):
        tips.append("Don't forget your umbrella!")
    return tips


def _compose_message(
    event: CalendarEvent,
    send_time: datetime,
    user_timezone: str,
    traffic: TrafficInfo | None,
    weather: WeatherInfo | None,
) -> str:
    lead_minutes = max(0, int((event.start - send_time).total_seconds() // 60))
    message = f"Reminder: {event.title} at {format_user_local(event.start, user_timezone)} (in {lead_minutes} minutes)"
    if event.location:
        message += f"\nLocation: {event.location}"

    if traffic is not None:
        message += f"\n\n{traffic.summary()}"

    if weather is not None:
        message += f"\n\n{weather.summary()}"
        for tip in weather_guidance(weather):
            message += f"\n{tip}"

    return message


async def compute_schedule(
    event: CalendarEvent | None,
    base_offset_minutes: int,
    want_traffic: bool,
    want_weather: bool,
    *,
    origin: UserInfo | None = None,
    travel_service: TravelTimeService | None = None,
    weather_service: WeatherService | None = None,
    user_timezone: str = "UTC",
    safety_buffer_minutes: int = TRAFFIC_SAFETY_BUFFER_MINUTES,
    timeout_seconds: float = ENRICHMENT_TIMEOUT_SECONDS,
) -> ScheduleResult:
    """计算单个提醒的推荐发送时间与文案"""
    if event is None:
        # 没有关联事件的提醒必须显式给出 scheduled_for
        raise ReminderValidationError("没有关联事件时无法推算发送时间, 需要显式指定 scheduled_for")
    if base_offset_minutes < 0:
        raise ReminderValidationError(f"提前分钟数不能为负数: {base_offset_minutes}")

    send_time = event.start - timedelta(minutes=base_offset_minutes)
    traffic: TrafficInfo | None = None
    weather: WeatherInfo | None = None
    has_origin = origin is not None and origin.has_origin

    if want_traffic and event.location and has_origin and travel_service is not None:
        traffic = await _best_effort(
            "路况",
            travel_service.estimate_travel(origin.origin_lat, origin.origin_lng, event.location),
            timeout_seconds,
        )
        if traffic is not None:
            send_time = event.start - timedelta(minutes=traffic.duration_minutes + safety_buffer_minutes)
            logger.debug(f"按路况调整发送时间: event_id={event.event_id}, travel={traffic.duration_minutes}min, "
                         f"buffer={safety_buffer_minutes}min")
    elif want_traffic:
        logger.debug(f"跳过路况查询: event_id={event.event_id}, location={bool(event.location)}, "
                     f"origin={has_origin}, service={travel_service is not None}")

    if want_weather and has_origin and weather_service is not None:
        weather = await _best_effort(
            "天气",
            weather_service.get_current_weather(origin.origin_lat, origin.origin_lng),
            timeout_seconds,
        )
    elif want_weather:
        logger.debug(f"跳过天气查询: event_id={event.event_id}, origin={has_origin}, "
                     f"service={weather_service is not None}")

    return ScheduleResult(
        recommended_send_time=send_time,
        composed_message=_compose_message(event, send_time, user_timezone, traffic, weather),
        traffic_info=traffic,
        weather_info=weather,
    )
