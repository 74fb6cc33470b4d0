"""
Tests for the SQLite store: conditional state transitions and record mapping.
"""

import sqlite3
from datetime import timedelta

import pytest

import synexa.storage.db_config as db_config
import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
from synexa.datamodel import ChannelType, ReminderStatus, TrafficInfo, WeatherInfo

from conftest import NOW


class TestConnection:

    def test_uninitialized_db_raises(self):
        assert db_config.conn is None
        with pytest.raises(RuntimeError):
            db_config.ensure_conn()

    async def test_schema_version_is_set(self, db):
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        assert row[0] == 1


class TestReminderTransitions:

    async def test_claim_succeeds_only_once(self, make_reminder):
        reminder = await make_reminder()
        assert await reminder_storage.claim_reminder(reminder.reminder_id, NOW)
        assert not await reminder_storage.claim_reminder(reminder.reminder_id, NOW)

        stored = await reminder_storage.get_reminder(reminder.reminder_id)
        assert stored.status == ReminderStatus.PROCESSING
        assert stored.claimed_at == NOW

    async def test_results_require_a_claim(self, make_reminder):
        reminder = await make_reminder()
        assert not await reminder_storage.mark_reminder_sent(reminder.reminder_id, NOW)
        assert not await reminder_storage.mark_reminder_failed(reminder.reminder_id, "nope", NOW)
        assert (await reminder_storage.get_reminder(reminder.reminder_id)).status == ReminderStatus.PENDING

    async def test_terminal_reminders_cannot_be_cancelled_or_edited(self, make_reminder):
        reminder = await make_reminder()
        await reminder_storage.claim_reminder(reminder.reminder_id, NOW)
        await reminder_storage.mark_reminder_failed(reminder.reminder_id, "bounced", NOW)

        assert not await reminder_storage.cancel_reminder(reminder.reminder_id)
        assert not await reminder_storage.update_pending_reminder(reminder.reminder_id, {"title": "x"})
        stored = await reminder_storage.get_reminder(reminder.reminder_id)
        assert stored.status == ReminderStatus.FAILED
        assert stored.last_error == "bounced"

    async def test_update_rejects_unknown_columns(self, make_reminder):
        reminder = await make_reminder()
        with pytest.raises(ValueError):
            await reminder_storage.update_pending_reminder(reminder.reminder_id, {"status": "sent"})

    async def test_find_due_orders_by_schedule(self, make_reminder):
        late = await make_reminder(scheduled_for=NOW - timedelta(minutes=1))
        early = await make_reminder(scheduled_for=NOW - timedelta(hours=1))
        await make_reminder(scheduled_for=NOW + timedelta(minutes=1))

        due = await reminder_storage.find_due_reminders(NOW)

        assert [r.reminder_id for r in due] == [early.reminder_id, late.reminder_id]

    async def test_snapshots_survive_storage(self, make_reminder):
        reminder = await make_reminder(
            traffic_info=TrafficInfo(duration_minutes=18, distance_km=7.2, congestion_level="normal"),
            weather_info=WeatherInfo(temperature_c=12.5, description="overcast", weather_code=3),
        )
        stored = await reminder_storage.get_reminder(reminder.reminder_id)
        assert stored.traffic_info == TrafficInfo(duration_minutes=18, distance_km=7.2, congestion_level="normal")
        assert stored.weather_info.weather_code == 3

    async def test_recurring_flag_requires_rule(self, make_reminder):
        with pytest.raises(sqlite3.IntegrityError):
            await make_reminder(is_recurring=True, recurrence_rule=None)

    async def test_list_by_event(self, make_reminder, event):
        linked = await make_reminder(calendar_event_id=event.event_id)
        await make_reminder()
        found = await reminder_storage.list_reminders_by_user(linked.user_id, calendar_event_id=event.event_id)
        assert [r.reminder_id for r in found] == [linked.reminder_id]
        assert found[0].channel == ChannelType.PUSH


class TestEvents:

    async def test_upsert_by_external_id_updates_in_place(self, user, event):
        moved = await event_storage.upsert_event(
            user.user_id, "Dentist (moved)", event.start + timedelta(days=1), event.end + timedelta(days=1),
            location=event.location, external_id="evt-dentist",
        )
        assert moved.event_id == event.event_id
        assert moved.title == "Dentist (moved)"
        assert (await event_storage.get_event(event.event_id)).start == event.start + timedelta(days=1)

    async def test_list_upcoming_is_bounded(self, user, event):
        assert await event_storage.list_upcoming_events(user.user_id, NOW, NOW + timedelta(hours=1)) == []
        found = await event_storage.list_upcoming_events(user.user_id, NOW, NOW + timedelta(days=1))
        assert [e.event_id for e in found] == [event.event_id]
