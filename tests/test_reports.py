"""Tests for report intake and the harassment auto-timeout."""

from datetime import timedelta

import pytest

from trust_safety.models.enums import (
    EscalationEntry, NotificationType, ReportCategory, RestrictionSource
)


async def report(engine, reporter, category=ReportCategory.HARASSMENT_BULLYING, stream="stream_1"):
    return await engine.submit_report(reporter, "troll", category, stream_id=stream, creator_id="creator_a")


@pytest.mark.asyncio
async def test_self_report_is_rejected(engine):
    result = await engine.submit_report("u1", "u1", ReportCategory.SPAM_BOT_BEHAVIOR, stream_id="stream_1")
    assert not result.ok
    assert result.error_kind.value == "validation"


@pytest.mark.asyncio
async def test_report_is_persisted_with_severity(engine):
    result = await report(engine, "viewer_1", ReportCategory.IMPERSONATION)
    assert result.ok
    assert result.value.report.severity == 2
    stored = await engine.reports.reports_against("troll")
    assert [r.id for r in stored] == [result.value.report.id]


@pytest.mark.asyncio
async def test_third_harassment_reporter_times_out_once(engine, sender):
    outcomes = [(await report(engine, f"viewer_{i}")).value for i in range(5)]

    assert [o.auto_timeout_applied for o in outcomes] == [False, False, True, False, False]
    timeout = await engine.restrictions.active_timeout("troll", "creator_a")
    assert timeout.source == RestrictionSource.HARASSMENT_REPORTS
    assert sender.types_for("troll") == [NotificationType.TIMEOUT_APPLIED]


@pytest.mark.asyncio
async def test_same_reporter_counts_once_for_harassment(engine):
    for _ in range(5):
        outcome = (await report(engine, "viewer_1")).value
    assert not outcome.auto_timeout_applied
    assert not await engine.restrictions.is_timed_out("troll", "creator_a")


@pytest.mark.asyncio
async def test_harassment_counter_is_per_stream(engine):
    await report(engine, "viewer_1", stream="stream_1")
    await report(engine, "viewer_2", stream="stream_1")
    outcome = (await report(engine, "viewer_3", stream="stream_2")).value
    assert not outcome.auto_timeout_applied


@pytest.mark.asyncio
async def test_non_harassment_categories_do_not_time_out(engine):
    for i in range(4):
        outcome = (await report(engine, f"viewer_{i}", ReportCategory.SPAM_BOT_BEHAVIOR)).value
    assert not outcome.auto_timeout_applied


@pytest.mark.asyncio
async def test_severe_report_goes_to_review(engine):
    outcome = (await report(engine, "viewer_1", ReportCategory.VIOLENT_THREATS)).value
    again = (await report(engine, "viewer_2", ReportCategory.VIOLENT_THREATS)).value

    assert outcome.review_item_id is not None
    assert again.review_item_id == outcome.review_item_id
    item = await engine.queue.get(outcome.review_item_id)
    assert item.entry == EscalationEntry.BEHAVIORAL
    assert item.category == "violent_threats"
    assert item.violation_id is None


@pytest.mark.asyncio
async def test_profile_report_skips_stream_detectors(engine):
    result = await engine.submit_report("viewer_1", "troll", ReportCategory.HARASSMENT_BULLYING)
    assert result.ok
    assert not result.value.lockdown.triggered
    assert not result.value.auto_timeout_applied


@pytest.mark.asyncio
async def test_auto_timeout_keeps_longer_moderator_timeout(engine, clock):
    await engine.restrictions.apply_timeout("troll", "creator_a", 60, "mod call", RestrictionSource.MODERATOR,
                                            issued_by="mod_1")
    outcomes = [(await report(engine, f"viewer_{i}")).value for i in range(3)]
    assert outcomes[-1].auto_timeout_applied

    timeout = await engine.restrictions.active_timeout("troll", "creator_a")
    assert timeout.source == RestrictionSource.MODERATOR
    assert timeout.ends_at - clock.now >= timedelta(minutes=59)
