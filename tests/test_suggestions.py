"""
Tests for reminder suggestions on upcoming events.
"""

from datetime import timedelta

import pytest

import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
from synexa.datamodel import CalendarEvent
from synexa.world.suggestions import iter_suggestions, suggest_minutes_for_event, suggest_reminders

from conftest import NOW


def _event(hours_ahead, location=None, now=NOW):
    start = now + timedelta(hours=hours_ahead)
    return CalendarEvent(event_id=1, user_id=1, title="Event", start=start, end=start + timedelta(hours=1),
                         location=location)


class TestSuggestionPolicy:
    # NOW is 12:00 UTC, so events a few hours ahead are in the afternoon

    @pytest.mark.parametrize("hours_ahead, location, expected", [
        (48, "Office", [1440, 60]),
        (5, "Office", [60]),
        (2, "Office", [15]),
        (1, "Office", [15]),
        (48, None, [1440, 30]),
        (3, None, [30]),
        (1, None, [15]),
        (0.5, None, [15]),
    ])
    def test_minutes_by_lead_time_and_location(self, hours_ahead, location, expected):
        minutes, reason = suggest_minutes_for_event(_event(hours_ahead, location), NOW, "UTC")
        assert minutes == expected
        assert reason

    def test_morning_event_gets_day_before_reminder_first(self):
        now = NOW.replace(hour=2, minute=30)
        minutes, reason = suggest_minutes_for_event(_event(5, "Office", now=now), now, "UTC")
        assert minutes == [1440, 60]
        assert reason.endswith("(morning event)")

    def test_morning_rule_does_not_duplicate_day_before(self):
        now = NOW.replace(hour=7)
        minutes, reason = suggest_minutes_for_event(_event(24 + 1, None, now=now), now, "UTC")
        assert minutes == [1440, 30]
        assert "(morning event)" in reason

    def test_morning_is_judged_in_user_timezone(self):
        # 08:30 UTC is 09:30 in Paris in winter
        now = NOW.replace(hour=3)
        event = _event(5.5, None, now=now)
        minutes_utc, _ = suggest_minutes_for_event(event, now, "UTC")
        minutes_paris, reason = suggest_minutes_for_event(event, now, "Europe/Paris")
        assert minutes_utc == [1440, 30]
        assert minutes_paris == [30]
        assert "(morning event)" not in reason


class TestIterSuggestions:

    async def test_lists_events_in_horizon_by_start(self, user):
        later = await event_storage.upsert_event(user.user_id, "Later", NOW + timedelta(days=2),
                                                 NOW + timedelta(days=2, hours=1))
        sooner = await event_storage.upsert_event(user.user_id, "Sooner", NOW + timedelta(hours=4),
                                                  NOW + timedelta(hours=5), location="Office")
        await event_storage.upsert_event(user.user_id, "Too far", NOW + timedelta(days=30),
                                         NOW + timedelta(days=30, hours=1))
        await event_storage.upsert_event(user.user_id, "Already started", NOW - timedelta(hours=1), NOW)

        suggestions = await suggest_reminders(user.user_id, 7, now=NOW)

        assert [s.event_id for s in suggestions] == [sooner.event_id, later.event_id]
        assert suggestions[0].suggested_minutes == [60]
        assert suggestions[1].suggested_minutes == [1440, 30]

    async def test_skips_events_with_pending_reminder(self, user, event, make_reminder):
        other = await event_storage.upsert_event(user.user_id, "Gym", NOW + timedelta(hours=6),
                                                 NOW + timedelta(hours=7))
        await make_reminder(calendar_event_id=event.event_id, scheduled_for=NOW + timedelta(hours=2))

        suggestions = await suggest_reminders(user.user_id, 7, now=NOW)

        assert [s.event_id for s in suggestions] == [other.event_id]

    async def test_events_with_only_delivered_reminders_are_suggested_again(self, user, event, make_reminder):
        reminder = await make_reminder(calendar_event_id=event.event_id)
        assert await reminder_storage.claim_reminder(reminder.reminder_id, NOW)
        assert await reminder_storage.mark_reminder_sent(reminder.reminder_id, NOW)

        suggestions = await suggest_reminders(user.user_id, 7, now=NOW)

        assert [s.event_id for s in suggestions] == [event.event_id]

    async def test_other_users_events_are_ignored(self, user, other_user):
        await event_storage.upsert_event(other_user.user_id, "Not mine", NOW + timedelta(hours=5),
                                         NOW + timedelta(hours=6))
        assert await suggest_reminders(user.user_id, 7, now=NOW) == []

    async def test_each_call_reads_fresh_data(self, user):
        assert [s async for s in iter_suggestions(user.user_id, 7, now=NOW)] == []
        await event_storage.upsert_event(user.user_id, "New", NOW + timedelta(hours=5), NOW + timedelta(hours=6))
        assert len([s async for s in iter_suggestions(user.user_id, 7, now=NOW)]) == 1
