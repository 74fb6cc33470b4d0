"""
Pytest configuration and shared fixtures for Synexa tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

import synexa.storage.db_config as db_config
import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
import synexa.storage.user as user_storage
from synexa.channels.base import NotificationChannel
from synexa.clients.base import TravelTimeService, WeatherService
from synexa.datamodel import ChannelType, DeliveryResult, TrafficInfo, WeatherInfo

# Fixed reference instant, far enough in the future that nothing in the suite is "in the past"
NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeChannel(NotificationChannel):
    """Records every delivery; can be told to fail, raise or stall."""

    def __init__(self, channel_type=ChannelType.PUSH, result=None, error=None, delay=0.0):
        self.channel_type = channel_type
        self.result = result or DeliveryResult(success=True)
        self.error = error
        self.delay = delay
        self.calls = []
        self.closed = False

    async def deliver(self, user, notification):
        self.calls.append((user, notification))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def close(self):
        self.closed = True


class FakeTravelService(TravelTimeService):
    def __init__(self, duration_minutes=20, error=None, delay=0.0):
        self.duration_minutes = duration_minutes
        self.error = error
        self.delay = delay
        self.calls = []

    async def estimate_travel(self, origin_lat, origin_lng, destination_address):
        self.calls.append((origin_lat, origin_lng, destination_address))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TrafficInfo(duration_minutes=self.duration_minutes, distance_km=12.5, congestion_level="slow")


class FakeWeatherService(WeatherService):
    def __init__(self, weather=None, error=None):
        self.weather = weather or WeatherInfo(temperature_c=5.0, description="slight rain", weather_code=61)
        self.error = error
        self.calls = []

    async def get_current_weather(self, lat, lng):
        self.calls.append((lat, lng))
        if self.error is not None:
            raise self.error
        return self.weather


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    await db_config.init_db(str(tmp_path / "synexa_test.db"))
    yield db_config.conn
    await db_config.close_db()


@pytest_asyncio.fixture
async def user(db):
    return await user_storage.create_user(
        user_name="Alex",
        timezone="UTC",
        email="alex@example.com",
        phone_number="+33600000000",
        telegram_user_id=424242,
        origin_address="10 Rue de Rivoli, Paris",
        origin_lat=48.8566,
        origin_lng=2.3522,
    )


@pytest_asyncio.fixture
async def other_user(db):
    return await user_storage.create_user(user_name="Sam", timezone="UTC", telegram_user_id=515151)


@pytest_asyncio.fixture
async def event(user):
    """Event starting 3 hours after NOW, with a location."""
    return await event_storage.upsert_event(
        user.user_id,
        "Dentist",
        NOW + timedelta(hours=3),
        NOW + timedelta(hours=4),
        location="5 Avenue Foch, Paris",
        external_id="evt-dentist",
    )


@pytest.fixture
def make_reminder(user):
    """Insert a reminder directly through the store, bypassing engine validation."""

    async def _make(**overrides):
        params = {
            "user_id": user.user_id,
            "title": "Take medicine",
            "channel": ChannelType.PUSH,
            "scheduled_for": NOW - timedelta(minutes=1),
        }
        params.update(overrides)
        user_id = params.pop("user_id")
        title = params.pop("title")
        channel = params.pop("channel")
        scheduled_for = params.pop("scheduled_for")
        return await reminder_storage.create_reminder(user_id, title, channel, scheduled_for, **params)

    return _make


@pytest.fixture
def push_channel():
    return FakeChannel(ChannelType.PUSH)


@pytest.fixture
def email_channel():
    return FakeChannel(ChannelType.EMAIL)
