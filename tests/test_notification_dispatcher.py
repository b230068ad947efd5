"""Tests for notification preferences, quiet hours and the moderation push budget."""

from datetime import datetime

import pytest

from trust_safety.models.enums import DeliveryStatus, DispatchOutcome, NotificationType
from trust_safety.models.notification import NotificationIntent, NotificationPreferences


def intent(type=NotificationType.MODERATION_WARNING, user="u1"):
    return NotificationIntent(user_id=user, type=type, title="Heads up", body="Something happened")


@pytest.fixture
def dispatcher(engine):
    return engine.dispatcher


@pytest.mark.asyncio
async def test_sends_and_writes_inbox(dispatcher, sender, inbox):
    result = await dispatcher.dispatch(intent())
    assert result.outcome == DispatchOutcome.SENT
    assert len(sender.sent) == 1
    assert inbox.messages[0]["title"] == "Heads up"


@pytest.mark.asyncio
async def test_disabled_alerts_still_reach_inbox(engine, dispatcher, sender, inbox):
    await engine.set_notification_preferences(NotificationPreferences(id="u1", safety_moderation_alerts=False))

    result = await dispatcher.dispatch(intent())
    assert result.outcome == DispatchOutcome.DISABLED
    assert sender.sent == []
    assert len(inbox.messages) == 1

    appeal = await dispatcher.dispatch(intent(NotificationType.APPEAL_RECEIVED))
    assert appeal.outcome == DispatchOutcome.SENT


@pytest.mark.asyncio
async def test_quiet_hours_hold_non_critical(engine, dispatcher, sender, clock):
    clock.now = datetime(2026, 1, 15, 23, 30)
    await engine.set_notification_preferences(
        NotificationPreferences(id="u1", quiet_hours_start="22:00", quiet_hours_end="07:00")
    )

    held = await dispatcher.dispatch(intent(NotificationType.MODERATION_WARNING))
    critical = await dispatcher.dispatch(intent(NotificationType.BAN_APPLIED))

    assert held.outcome == DispatchOutcome.QUIET_HOURS
    assert critical.outcome == DispatchOutcome.SENT
    assert [n["type"] for n in sender.sent] == [NotificationType.BAN_APPLIED]


@pytest.mark.parametrize("hour,quiet", [(21, False), (22, True), (3, True), (7, True), (8, False)])
def test_overnight_quiet_window(hour, quiet):
    prefs = NotificationPreferences(id="u1", quiet_hours_start="22:00", quiet_hours_end="07:00")
    assert prefs.in_quiet_hours(datetime(2026, 1, 15, hour, 0)) is quiet


@pytest.mark.asyncio
async def test_budget_batches_after_cap(dispatcher, sender, inbox):
    results = [await dispatcher.dispatch(intent()) for _ in range(8)]

    assert [r.outcome for r in results[:5]] == [DispatchOutcome.SENT] * 5
    assert results[5].outcome == DispatchOutcome.BATCHED
    assert results[5].summary_sent
    assert all(r.outcome == DispatchOutcome.BATCHED and not r.summary_sent for r in results[6:])

    assert len(sender.sent) == 6
    assert sender.sent[-1]["title"] == dispatcher.SUMMARY_TITLE
    assert len(inbox.messages) == 8


@pytest.mark.asyncio
async def test_budget_window_resets(dispatcher, clock):
    for _ in range(6):
        await dispatcher.dispatch(intent())
    clock.advance(minutes=30)
    assert (await dispatcher.dispatch(intent())).outcome == DispatchOutcome.SENT


@pytest.mark.asyncio
async def test_budget_is_per_user(dispatcher):
    for _ in range(6):
        await dispatcher.dispatch(intent(user="u1"))
    assert (await dispatcher.dispatch(intent(user="u2"))).outcome == DispatchOutcome.SENT


@pytest.mark.asyncio
async def test_non_moderation_types_are_not_budgeted(dispatcher):
    results = [await dispatcher.dispatch(intent(NotificationType.APPEAL_RECEIVED)) for _ in range(8)]
    assert all(r.outcome == DispatchOutcome.SENT for r in results)


@pytest.mark.asyncio
async def test_sender_failure_is_reported_not_raised(dispatcher, sender):
    sender.error = RuntimeError("provider exploded")
    assert (await dispatcher.dispatch(intent())).outcome == DispatchOutcome.FAILED

    sender.error = None
    sender.status = DeliveryStatus.FAILED
    assert (await dispatcher.dispatch(intent())).outcome == DispatchOutcome.FAILED


@pytest.mark.asyncio
async def test_preferences_round_trip(engine, dispatcher):
    saved = await engine.set_notification_preferences(
        NotificationPreferences(id="u1", quiet_hours_start="01:00", quiet_hours_end="02:00")
    )
    updated = await engine.set_notification_preferences(saved.model_copy(update={"safety_moderation_alerts": False}))

    prefs = await dispatcher.get_preferences("u1")
    assert prefs == updated
    assert prefs.quiet_hours_start == "01:00"
    assert not prefs.safety_moderation_alerts
