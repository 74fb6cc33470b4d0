"""
Tests for the ReminderEngine facade: validation, event-derived scheduling, edits and suggestions.
"""

from datetime import timedelta

import pytest

import synexa.storage.event as event_storage
import synexa.storage.reminder as reminder_storage
from synexa.core.engine import ReminderEngine, configure_engine, require_engine
from synexa.core.errors import ReminderNotFoundError, ReminderStateError, ReminderValidationError
from synexa.datamodel import ChannelType, ReminderInput, ReminderStatus, ReminderUpdate
from synexa.metrics import runtime_metrics

from conftest import NOW, FakeChannel, FakeTravelService, FakeWeatherService


@pytest.fixture
def engine(push_channel):
    return ReminderEngine(
        channels={ChannelType.PUSH: push_channel},
        travel_service=FakeTravelService(duration_minutes=20),
        weather_service=FakeWeatherService(),
    )


class TestCreateReminder:

    async def test_explicit_time_creates_pending_reminder(self, engine, user):
        created_before = runtime_metrics.reminder_created_count
        reminder = await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="  Call mum  ", scheduled_for=NOW + timedelta(hours=1)),
            now=NOW,
        )
        assert reminder.status == ReminderStatus.PENDING
        assert reminder.title == "Call mum"
        assert reminder.scheduled_for == NOW + timedelta(hours=1)
        assert runtime_metrics.reminder_created_count == created_before + 1

    async def test_past_time_is_rejected(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Too late", scheduled_for=NOW - timedelta(minutes=1)),
                now=NOW,
            )
        assert await reminder_storage.list_reminders_by_user(user.user_id) == []

    async def test_blank_title_is_rejected(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="   ", scheduled_for=NOW + timedelta(hours=1)), now=NOW,
            )

    async def test_time_basis_is_required(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(ReminderInput(user_id=user.user_id, title="When?"), now=NOW)

    async def test_offset_without_event_is_rejected(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Offset only", offset_minutes=10), now=NOW,
            )

    @pytest.mark.parametrize("rule", [None, "CUSTOM", "DAILY:0", "0 9 * * *"])
    async def test_recurring_requires_parseable_rule(self, engine, user, rule):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Repeat", scheduled_for=NOW + timedelta(hours=1),
                              is_recurring=True, recurrence_rule=rule),
                now=NOW,
            )

    async def test_rule_is_stored_normalized(self, engine, user):
        reminder = await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="Repeat", scheduled_for=NOW + timedelta(hours=1),
                          is_recurring=True, recurrence_rule='{"type": "weekly", "interval": 2}'),
            now=NOW,
        )
        assert reminder.is_recurring
        assert reminder.recurrence_rule == "WEEKLY:2"

    async def test_recurrence_end_before_first_occurrence_is_rejected(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Repeat", scheduled_for=NOW + timedelta(hours=2),
                              is_recurring=True, recurrence_rule="DAILY",
                              recurrence_end=NOW + timedelta(hours=1)),
                now=NOW,
            )

    async def test_unknown_user_is_not_found(self, engine, db):
        with pytest.raises(ReminderNotFoundError):
            await engine.create_reminder(
                ReminderInput(user_id=999, title="Ghost", scheduled_for=NOW + timedelta(hours=1)), now=NOW,
            )


class TestEventDerivedReminder:

    async def test_offset_uses_travel_time_and_composed_message(self, engine, user, event):
        reminder = await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="Dentist", calendar_event_id=event.event_id,
                          offset_minutes=15, include_traffic=True, include_weather=True),
            now=NOW,
        )
        # 20 min travel + 10 min buffer
        assert reminder.scheduled_for == event.start - timedelta(minutes=30)
        assert reminder.traffic_info.duration_minutes == 20
        assert reminder.weather_info is not None
        assert reminder.message.startswith("Reminder: Dentist")
        assert "umbrella" in reminder.message

    async def test_user_message_wins_over_composed_text(self, engine, user, event):
        reminder = await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="Dentist", message="Bring the x-rays",
                          calendar_event_id=event.event_id, offset_minutes=15, include_traffic=True),
            now=NOW,
        )
        assert reminder.message == "Bring the x-rays"
        assert reminder.traffic_info is not None

    async def test_travel_failure_falls_back_to_offset(self, user, event):
        engine = ReminderEngine(travel_service=FakeTravelService(error=RuntimeError("down")))
        reminder = await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="Dentist", calendar_event_id=event.event_id,
                          offset_minutes=15, include_traffic=True),
            now=NOW,
        )
        assert reminder.scheduled_for == event.start - timedelta(minutes=15)
        assert reminder.traffic_info is None

    async def test_event_of_another_user_is_not_found(self, engine, user, other_user):
        foreign = await event_storage.upsert_event(other_user.user_id, "Private", NOW + timedelta(hours=5),
                                                   NOW + timedelta(hours=6))
        with pytest.raises(ReminderNotFoundError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Snoop", calendar_event_id=foreign.event_id,
                              offset_minutes=10),
                now=NOW,
            )

    async def test_offset_landing_in_the_past_is_rejected(self, engine, user, event):
        with pytest.raises(ReminderValidationError):
            await engine.create_reminder(
                ReminderInput(user_id=user.user_id, title="Dentist", calendar_event_id=event.event_id,
                              offset_minutes=4 * 60),
                now=NOW,
            )


class TestUpdateAndCancel:

    async def _create(self, engine, user, hours=1):
        return await engine.create_reminder(
            ReminderInput(user_id=user.user_id, title="Water plants", scheduled_for=NOW + timedelta(hours=hours)),
            now=NOW,
        )

    async def test_update_pending_reminder(self, engine, user):
        reminder = await self._create(engine, user)
        updated = await engine.update_reminder(
            reminder.reminder_id, user.user_id,
            ReminderUpdate(title="Water the ficus", channel=ChannelType.EMAIL,
                           scheduled_for=NOW + timedelta(hours=3)),
            now=NOW,
        )
        assert updated.title == "Water the ficus"
        assert updated.channel == ChannelType.EMAIL
        assert updated.scheduled_for == NOW + timedelta(hours=3)

    async def test_update_to_past_time_is_rejected(self, engine, user):
        reminder = await self._create(engine, user)
        with pytest.raises(ReminderValidationError):
            await engine.update_reminder(reminder.reminder_id, user.user_id,
                                         ReminderUpdate(scheduled_for=NOW - timedelta(hours=1)), now=NOW)

    async def test_update_after_delivery_is_a_state_error(self, engine, user):
        reminder = await self._create(engine, user)
        await engine.run_due_reminders(now=NOW + timedelta(hours=2))
        with pytest.raises(ReminderStateError):
            await engine.update_reminder(reminder.reminder_id, user.user_id, ReminderUpdate(title="Late edit"))

    async def test_cancel_pending_reminder(self, engine, user):
        reminder = await self._create(engine, user)
        cancelled = await engine.cancel_reminder(reminder.reminder_id, user.user_id)
        assert cancelled.status == ReminderStatus.CANCELLED

        with pytest.raises(ReminderStateError):
            await engine.cancel_reminder(reminder.reminder_id, user.user_id)

    async def test_cancel_someone_elses_reminder_is_not_found(self, engine, user, other_user):
        reminder = await self._create(engine, user)
        with pytest.raises(ReminderNotFoundError):
            await engine.cancel_reminder(reminder.reminder_id, other_user.user_id)
        assert (await reminder_storage.get_reminder(reminder.reminder_id)).status == ReminderStatus.PENDING

    async def test_list_filters_by_status(self, engine, user):
        keep = await self._create(engine, user, hours=1)
        drop = await self._create(engine, user, hours=2)
        await engine.cancel_reminder(drop.reminder_id, user.user_id)

        pending = await engine.list_reminders(user.user_id, ReminderStatus.PENDING)

        assert [r.reminder_id for r in pending] == [keep.reminder_id]
        assert len(await engine.list_reminders(user.user_id)) == 2


class TestSuggestedReminders:

    async def test_creates_one_push_reminder_per_future_offset(self, engine, user, event):
        # the event starts in 3 hours, so the day-before offset is already past
        created = await engine.create_suggested_reminders(user.user_id, event.event_id, [1440, 60, 15], now=NOW)

        assert [r.scheduled_for for r in created] == [
            event.start - timedelta(minutes=60),
            event.start - timedelta(minutes=15),
        ]
        assert all(r.channel == ChannelType.PUSH for r in created)
        assert created[0].title == "Reminder: Dentist"
        assert created[0].message == "Don't forget: Dentist at 5 Avenue Foch, Paris"
        assert created[0].include_traffic and created[0].include_weather

    async def test_suggestions_disappear_once_reminders_exist(self, engine, user, event):
        assert [s.event_id for s in await engine.list_suggestions(user.user_id, 7, now=NOW)] == [event.event_id]
        await engine.create_suggested_reminders(user.user_id, event.event_id, [60], now=NOW)
        assert await engine.list_suggestions(user.user_id, 7, now=NOW) == []

    async def test_invalid_horizon_is_rejected(self, engine, user):
        with pytest.raises(ReminderValidationError):
            await engine.list_suggestions(user.user_id, 0, now=NOW)


class TestEngineLifecycle:

    def test_require_engine_returns_configured_instance(self, engine):
        configure_engine(engine)
        assert require_engine() is engine

    async def test_close_closes_channels(self, push_channel):
        email = FakeChannel(ChannelType.EMAIL)
        engine = ReminderEngine(channels={ChannelType.PUSH: push_channel, ChannelType.EMAIL: email})
        await engine.close()
        assert push_channel.closed and email.closed
