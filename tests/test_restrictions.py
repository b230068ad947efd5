"""Tests for scope timeouts and blocks."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from trust_safety.models.enums import RestrictionSource


@pytest.mark.asyncio
async def test_shorter_timeout_does_not_cut_longer_one(engine, clock):
    await engine.restrictions.apply_timeout("u1", "creator_a", 60, "mod call", RestrictionSource.MODERATOR,
                                            issued_by="mod_1")
    await engine.restrictions.apply_timeout("u1", "creator_a", 1, "flooding", RestrictionSource.SPAM)

    timeout = await engine.restrictions.active_timeout("u1", "creator_a")
    assert timeout.source == RestrictionSource.MODERATOR
    assert timeout.ends_at == clock.now + timedelta(minutes=60)

    clock.advance(minutes=2)
    assert await engine.restrictions.is_timed_out("u1", "creator_a")


@pytest.mark.asyncio
async def test_repeat_from_same_source_only_extends(engine, clock):
    first = await engine.restrictions.apply_timeout("u1", "creator_a", 30, "first", RestrictionSource.MODERATOR)
    shorter = await engine.restrictions.apply_timeout("u1", "creator_a", 5, "second", RestrictionSource.MODERATOR)
    assert shorter.id == first.id
    assert shorter.ends_at == first.ends_at
    assert shorter.reason == "first"

    clock.advance(minutes=10)
    longer = await engine.restrictions.apply_timeout("u1", "creator_a", 60, "third", RestrictionSource.MODERATOR)
    assert longer.id == first.id
    assert longer.ends_at == clock.now + timedelta(minutes=60)
    assert len(await engine.restrictions.timeouts_for_user("u1")) == 1


@pytest.mark.asyncio
async def test_concurrent_timeouts_from_one_source_leave_one_record(engine):
    await asyncio.gather(*[
        engine.restrictions.apply_timeout("u1", "creator_a", m, "burst", RestrictionSource.SPAM)
        for m in (1, 3, 2)
    ])
    timeouts = await engine.restrictions.timeouts_for_user("u1")
    assert len(timeouts) == 1


@pytest.mark.asyncio
async def test_expired_record_is_renewed(engine, clock):
    first = await engine.restrictions.apply_timeout("u1", "creator_a", 1, "flooding", RestrictionSource.SPAM)
    clock.advance(minutes=5)
    assert not await engine.restrictions.is_timed_out("u1", "creator_a")

    again = await engine.restrictions.apply_timeout("u1", "creator_a", 1, "flooding", RestrictionSource.SPAM)
    assert again.id == first.id
    assert await engine.restrictions.is_timed_out("u1", "creator_a")


@pytest.mark.asyncio
async def test_lift_by_link_leaves_other_timeouts(engine):
    strike_id = uuid4()
    await engine.restrictions.apply_timeout("u1", "creator_a", 10, "strike 2", RestrictionSource.STRIKE,
                                            strike_id=strike_id)
    await engine.restrictions.apply_timeout("u1", "creator_a", 30, "mod call", RestrictionSource.MODERATOR)

    assert await engine.restrictions.lift_timeout("u1", "creator_a", strike_id=strike_id) == 1
    remaining = await engine.restrictions.active_timeout("u1", "creator_a")
    assert remaining.source == RestrictionSource.MODERATOR

    assert await engine.restrictions.lift_timeout("u1", "creator_a") == 1
    assert not await engine.restrictions.is_timed_out("u1", "creator_a")


@pytest.mark.asyncio
async def test_block_is_idempotent_and_lifted_by_violation(engine):
    violation_id = uuid4()
    first = await engine.restrictions.apply_block("u1", "creator_a", "abuse", violation_id=violation_id)
    second = await engine.restrictions.apply_block("u1", "creator_a", "abuse again")
    assert second.id == first.id

    assert await engine.restrictions.lift_block("u1", "creator_a", uuid4()) == 0
    assert await engine.restrictions.lift_block("u1", "creator_a", violation_id) == 1
    assert not await engine.restrictions.is_blocked("u1", "creator_a")
