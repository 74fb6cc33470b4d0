from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

__all__ = [
    "Reminder", "ReminderStatus", "ReminderInput", "ReminderUpdate",
    "RecurrenceType", "RecurrenceRule",
    "TrafficInfo", "WeatherInfo", "CongestionLevel",
    "ChannelType", "OutgoingNotification", "DeliveryResult",
    "CalendarEvent", "UserInfo",
    "ScheduleResult", "Suggestion", "ReminderOutcome", "BatchReport",
]


# ----------------- Reminder 数据模型 ----------------
class ReminderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"  # 已被某个批次认领，正在投递
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ReminderStatus.SENT, ReminderStatus.FAILED, ReminderStatus.CANCELLED)


class ChannelType(str, Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class RecurrenceRule:
    type: RecurrenceType
    interval: int = 1
    # 0 = 周日 ... 6 = 周六，仅 WEEKLY 使用
    days_of_week: Optional[tuple[int, ...]] = None
    # 1-31，仅 MONTHLY 使用，目标月份没有这一天时取月末
    day_of_month: Optional[int] = None
    end_date: Optional[datetime] = None


CongestionLevel = Literal["normal", "slow", "heavy", "unknown"]


@dataclass(frozen=True)
class TrafficInfo:
    """创建提醒时抓取的路况快照，之后不再刷新"""
    duration_minutes: int
    distance_km: Optional[float] = None
    congestion_level: CongestionLevel = "unknown"
    kind: Literal["traffic"] = "traffic"

    def summary(self) -> str:
        text = f"Travel: {self.duration_minutes} min"
        if self.distance_km:
            text += f" ({self.distance_km:.1f} km)"
        if self.congestion_level == "heavy":
            text += ", heavy traffic - allow extra time"
        elif self.congestion_level == "slow":
            text += ", slow traffic"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrafficInfo":
        if data.get("kind", "traffic") != "traffic":
            raise ValueError(f"不是路况快照: kind={data.get('kind')}")
        level = data.get("congestion_level") or "unknown"
        if level not in ("normal", "slow", "heavy", "unknown"):
            level = "unknown"
        distance = data.get("distance_km")
        return cls(
            duration_minutes=int(data["duration_minutes"]),
            distance_km=float(distance) if distance is not None else None,
            congestion_level=level,
        )


@dataclass(frozen=True)
class WeatherInfo:
    """创建提醒时抓取的天气快照，之后不再刷新"""
    temperature_c: float
    description: str
    weather_code: Optional[int] = None  # WMO 天气代码
    kind: Literal["weather"] = "weather"

    def summary(self) -> str:
        return f"Weather: {self.temperature_c:.0f}°C, {self.description}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherInfo":
        if data.get("kind", "weather") != "weather":
            raise ValueError(f"不是天气快照: kind={data.get('kind')}")
        code = data.get("weather_code")
        return cls(
            temperature_c=float(data["temperature_c"]),
            description=str(data.get("description") or ""),
            weather_code=int(code) if code is not None else None,
        )


@dataclass
class Reminder:
    reminder_id: int
    user_id: int
    title: str
    channel: ChannelType
    scheduled_for: datetime  # UTC, aware
    status: ReminderStatus = ReminderStatus.PENDING
    message: Optional[str] = None
    calendar_event_id: Optional[int] = None
    include_traffic: bool = False
    include_weather: bool = False
    traffic_info: Optional[TrafficInfo] = None
    weather_info: Optional[WeatherInfo] = None
    is_recurring: bool = False
    recurrence_rule: Optional[str] = None
    recurrence_end: Optional[datetime] = None
    parent_reminder_id: Optional[int] = None
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def chain_root_id(self) -> int:
        return self.parent_reminder_id or self.reminder_id

    def to_dict(self) -> Dict[str, Any]:
        def _iso(dt: Optional[datetime]) -> Optional[str]:
            return dt.isoformat() if dt is not None else None

        return {
            "reminder_id": self.reminder_id,
            "user_id": self.user_id,
            "calendar_event_id": self.calendar_event_id,
            "title": self.title,
            "message": self.message,
            "channel": self.channel.value,
            "scheduled_for": _iso(self.scheduled_for),
            "status": self.status.value,
            "include_traffic": self.include_traffic,
            "include_weather": self.include_weather,
            "traffic_info": self.traffic_info.to_dict() if self.traffic_info else None,
            "weather_info": self.weather_info.to_dict() if self.weather_info else None,
            "is_recurring": self.is_recurring,
            "recurrence_rule": self.recurrence_rule,
            "recurrence_end": _iso(self.recurrence_end),
            "parent_reminder_id": self.parent_reminder_id,
            "sent_at": _iso(self.sent_at),
            "last_error": self.last_error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class ReminderInput:
    """创建提醒的请求: 需要 scheduled_for，或者 (calendar_event_id, offset_minutes)"""
    user_id: int
    title: str
    channel: ChannelType = ChannelType.PUSH
    message: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    calendar_event_id: Optional[int] = None
    offset_minutes: Optional[int] = None
    include_traffic: bool = False
    include_weather: bool = False
    is_recurring: bool = False
    recurrence_rule: Optional[str] = None
    recurrence_end: Optional[datetime] = None


@dataclass
class ReminderUpdate:
    """仅允许修改 PENDING 状态的提醒；None 表示不修改"""
    title: Optional[str] = None
    message: Optional[str] = None
    channel: Optional[ChannelType] = None
    scheduled_for: Optional[datetime] = None
    include_traffic: Optional[bool] = None
    include_weather: Optional[bool] = None


# ----------------- Channel 数据模型 ----------------
@dataclass
class OutgoingNotification:
    title: str
    body: str
    link_url: str
    dedup_key: str  # 同一提醒重复投递时保持不变


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None


# ----------------- 外部实体 ----------------
@dataclass
class CalendarEvent:
    event_id: int
    user_id: int
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None


@dataclass
class UserInfo:
    user_id: int
    user_name: Optional[str] = None
    timezone: Optional[str] = None  # IANA时区字符串，例如 "Europe/Paris"
    email: Optional[str] = None
    phone_number: Optional[str] = None
    telegram_user_id: Optional[int] = None
    origin_address: Optional[str] = None  # 出发地，用于路况/天气
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None

    @property
    def has_origin(self) -> bool:
        return self.origin_lat is not None and self.origin_lng is not None


# ----------------- 调度 / 建议 / 批处理结果 ----------------
@dataclass
class ScheduleResult:
    recommended_send_time: datetime
    composed_message: str
    traffic_info: Optional[TrafficInfo] = None
    weather_info: Optional[WeatherInfo] = None


@dataclass
class Suggestion:
    event_id: int
    event_title: str
    event_start: datetime
    suggested_minutes: List[int]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_title": self.event_title,
            "event_start": self.event_start.isoformat(),
            "suggested_minutes": list(self.suggested_minutes),
            "reason": self.reason,
        }


@dataclass
class ReminderOutcome:
    reminder_id: int
    title: str
    channel: ChannelType
    success: bool
    error: Optional[str] = None
    successor_id: Optional[int] = None


@dataclass
class BatchReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    released: int = 0  # 超时认领被放回 PENDING 的数量
    skipped: int = 0  # 认领失败(被其他批次抢先)的数量
    results: List[ReminderOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def successors_created(self) -> int:
        return sum(1 for r in self.results if r.successor_id is not None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "released": self.released,
            "successors_created": self.successors_created,
            "results": [
                {
                    "reminder_id": r.reminder_id,
                    "title": r.title,
                    "channel": r.channel.value,
                    "success": r.success,
                    "error": r.error,
                    "successor_id": r.successor_id,
                }
                for r in self.results
            ],
        }
