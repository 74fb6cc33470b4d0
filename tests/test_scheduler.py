"""
Tests for send-time computation with travel and weather enrichment.
"""

import asyncio
from datetime import timedelta

import pytest

from synexa.core.errors import ReminderValidationError
from synexa.datamodel import CalendarEvent, UserInfo, WeatherInfo
from synexa.world.scheduler import compute_schedule, weather_guidance

from conftest import NOW, FakeTravelService, FakeWeatherService

START = NOW + timedelta(hours=2)


@pytest.fixture
def located_event():
    return CalendarEvent(
        event_id=1,
        user_id=1,
        title="Team lunch",
        start=START,
        end=START + timedelta(hours=1),
        location="Gare de Lyon, Paris",
    )


@pytest.fixture
def origin():
    return UserInfo(user_id=1, timezone="UTC", origin_lat=48.85, origin_lng=2.35)


class TestTrafficAdjustment:

    async def test_travel_time_and_buffer_move_send_time_earlier(self, located_event, origin):
        travel = FakeTravelService(duration_minutes=20)
        result = await compute_schedule(
            located_event, 15, True, False,
            origin=origin, travel_service=travel, safety_buffer_minutes=10,
        )
        assert result.recommended_send_time == START - timedelta(minutes=30)
        assert result.traffic_info is not None
        assert result.traffic_info.duration_minutes == 20
        assert "Travel: 20 min" in result.composed_message
        assert travel.calls == [(48.85, 2.35, "Gare de Lyon, Paris")]

    async def test_failed_lookup_keeps_baseline(self, located_event, origin):
        travel = FakeTravelService(error=RuntimeError("provider down"))
        result = await compute_schedule(
            located_event, 15, True, False, origin=origin, travel_service=travel,
        )
        assert result.recommended_send_time == START - timedelta(minutes=15)
        assert result.traffic_info is None
        assert "Travel" not in result.composed_message

    async def test_slow_lookup_times_out_to_baseline(self, located_event, origin):
        travel = FakeTravelService(delay=1.0)
        result = await compute_schedule(
            located_event, 15, True, False,
            origin=origin, travel_service=travel, timeout_seconds=0.01,
        )
        assert result.recommended_send_time == START - timedelta(minutes=15)
        assert result.traffic_info is None

    async def test_event_without_location_skips_lookup(self, located_event, origin):
        located_event.location = None
        travel = FakeTravelService()
        result = await compute_schedule(
            located_event, 15, True, False, origin=origin, travel_service=travel,
        )
        assert travel.calls == []
        assert result.recommended_send_time == START - timedelta(minutes=15)

    async def test_origin_without_coordinates_skips_lookup(self, located_event):
        travel = FakeTravelService()
        result = await compute_schedule(
            located_event, 15, True, False,
            origin=UserInfo(user_id=1, origin_address="somewhere"), travel_service=travel,
        )
        assert travel.calls == []
        assert result.traffic_info is None


class TestWeatherEnrichment:

    async def test_cold_rain_adds_coat_and_umbrella_tips(self, located_event, origin):
        weather = FakeWeatherService(WeatherInfo(temperature_c=4.0, description="moderate rain", weather_code=63))
        result = await compute_schedule(
            located_event, 30, False, True, origin=origin, weather_service=weather,
        )
        assert result.weather_info is not None
        assert "Weather: 4°C, moderate rain" in result.composed_message
        assert "coat" in result.composed_message
        assert "umbrella" in result.composed_message
        assert result.recommended_send_time == START - timedelta(minutes=30)

    async def test_failed_weather_is_omitted_silently(self, located_event, origin):
        weather = FakeWeatherService(error=asyncio.TimeoutError())
        result = await compute_schedule(
            located_event, 30, False, True, origin=origin, weather_service=weather,
        )
        assert result.weather_info is None
        assert "Weather" not in result.composed_message
        assert result.composed_message.startswith("Reminder: Team lunch")

    async def test_both_enrichments_fail_without_blocking(self, located_event, origin):
        result = await compute_schedule(
            located_event, 10, True, True,
            origin=origin,
            travel_service=FakeTravelService(error=ConnectionError("no route")),
            weather_service=FakeWeatherService(error=ValueError("bad payload")),
        )
        assert result.recommended_send_time == START - timedelta(minutes=10)
        assert result.traffic_info is None
        assert result.weather_info is None

    def test_guidance_for_hot_and_dry(self):
        tips = weather_guidance(WeatherInfo(temperature_c=31.0, description="clear sky", weather_code=0))
        assert tips == ["Tip: it's hot, dress light."]

    def test_guidance_uses_description_when_code_missing(self):
        tips = weather_guidance(WeatherInfo(temperature_c=15.0, description="Light Showers"))
        assert tips == ["Don't forget your umbrella!"]


class TestComposedMessage:

    async def test_message_uses_user_local_time_and_lead_time(self, located_event):
        result = await compute_schedule(located_event, 45, False, False, user_timezone="Europe/Paris")
        # NOW + 2h = 14:00 UTC = 15:00 in Paris (winter)
        assert result.composed_message.startswith("Reminder: Team lunch at 2030-01-15 15:00 (in 45 minutes)")
        assert "Location: Gare de Lyon, Paris" in result.composed_message


class TestValidation:

    async def test_missing_event_is_rejected(self):
        with pytest.raises(ReminderValidationError):
            await compute_schedule(None, 15, False, False)

    async def test_negative_offset_is_rejected(self, located_event):
        with pytest.raises(ReminderValidationError):
            await compute_schedule(located_event, -5, False, False)
