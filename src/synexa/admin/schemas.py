from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from synexa.datamodel import ChannelType, ReminderInput, ReminderUpdate


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ReminderCreateRequest(BaseModel):
    user_id: int
    title: str = Field(min_length=1, max_length=200)
    channel: ChannelType = ChannelType.PUSH
    message: str | None = None
    scheduled_for: datetime | None = None
    calendar_event_id: int | None = None
    offset_minutes: int | None = Field(default=None, ge=0)
    include_traffic: bool = False
    include_weather: bool = False
    is_recurring: bool = False
    recurrence_rule: str | None = None
    recurrence_end: datetime | None = None

    def to_input(self) -> ReminderInput:
        return ReminderInput(
            user_id=self.user_id,
            title=self.title,
            channel=self.channel,
            message=self.message,
            scheduled_for=self.scheduled_for,
            calendar_event_id=self.calendar_event_id,
            offset_minutes=self.offset_minutes,
            include_traffic=self.include_traffic,
            include_weather=self.include_weather,
            is_recurring=self.is_recurring,
            recurrence_rule=self.recurrence_rule,
            recurrence_end=self.recurrence_end,
        )


class ReminderUpdateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    message: str | None = None
    channel: ChannelType | None = None
    scheduled_for: datetime | None = None
    include_traffic: bool | None = None
    include_weather: bool | None = None

    def to_update(self) -> ReminderUpdate:
        return ReminderUpdate(
            title=self.title,
            message=self.message,
            channel=self.channel,
            scheduled_for=self.scheduled_for,
            include_traffic=self.include_traffic,
            include_weather=self.include_weather,
        )


class SuggestedRemindersRequest(BaseModel):
    user_id: int
    event_id: int
    minutes_before: list[int] = Field(min_length=1)


class UserOriginRequest(BaseModel):
    origin_address: str | None = None
    origin_lat: float | None = Field(default=None, ge=-90, le=90)
    origin_lng: float | None = Field(default=None, ge=-180, le=180)
