"""Tests for appeal submission and resolution."""

import pytest

from trust_safety.models.content import ScopeContext
from trust_safety.models.enums import (
    AppealDecision, AppealStatus, AppealTarget, NotificationType, PenaltySeverity, RestrictionSource
)
from trust_safety.models.realtime import ChatMessage

REASON = "I was quoting the other user to report them"


async def third_strike(engine, user="u1"):
    for _ in range(3):
        strike = await engine.apply_strike(user, "creator_a", "harassment", "insults")
    return strike


async def penalty(engine, severity=PenaltySeverity.PERMANENT, category=None, user="u1"):
    return await engine.enforcement.apply_admin_penalty(
        user, "admin_1", severity, "Serious violation", category=category,
        duration_hours=24 if severity == PenaltySeverity.TEMPORARY else None,
    )


@pytest.mark.asyncio
async def test_accepting_strike_appeal_lifts_ban(engine, sender):
    strike = await third_strike(engine)
    assert await engine.is_banned("u1", "creator_a")

    submitted = await engine.submit_appeal("u1", strike.id, REASON)
    assert submitted.ok
    assert submitted.value.target_type == AppealTarget.STRIKE
    assert submitted.value.status == AppealStatus.PENDING

    resolved = await engine.resolve_appeal(submitted.value.id, AppealDecision.ACCEPT, "admin_1", "Context checked")
    assert resolved.ok
    assert resolved.value.status == AppealStatus.APPROVED
    assert resolved.value.reviewer_id == "admin_1"
    assert not await engine.is_banned("u1", "creator_a")
    assert not (await engine.ledger.get(strike.id)).is_active

    types = sender.types_for("u1")
    assert NotificationType.APPEAL_RECEIVED in types
    assert types[-1] == NotificationType.APPEAL_APPROVED


@pytest.mark.asyncio
async def test_short_reason_is_rejected(engine):
    strike = await third_strike(engine)
    result = await engine.submit_appeal("u1", strike.id, "  unfair  ")
    assert result.error_kind.value == "validation"


@pytest.mark.asyncio
async def test_duplicate_pending_appeal_is_rejected(engine):
    strike = await third_strike(engine)
    assert (await engine.submit_appeal("u1", strike.id, REASON)).ok

    duplicate = await engine.submit_appeal("u1", strike.id, REASON + " again")
    assert duplicate.error_kind.value == "validation"
    assert len(await engine.appeals.list_appeals()) == 1


@pytest.mark.asyncio
async def test_permanent_penalty_in_protected_category_cannot_be_appealed(engine):
    blocked = await penalty(engine, category="sexual_content_minors")
    result = await engine.submit_appeal("u1", blocked.id, REASON)
    assert result.error_kind.value == "policy_blocked"


@pytest.mark.asyncio
async def test_temporary_penalty_in_protected_category_is_appealable(engine):
    temporary = await penalty(engine, PenaltySeverity.TEMPORARY, category="sexual_content_minors")
    result = await engine.submit_appeal("u1", temporary.id, REASON)
    assert result.ok
    assert result.value.penalty_id == temporary.id


@pytest.mark.asyncio
async def test_deny_keeps_penalty(engine, sender):
    applied = await penalty(engine, category="harassment")
    appeal = (await engine.submit_appeal("u1", applied.id, REASON)).value

    resolved = await engine.resolve_appeal(appeal.id, AppealDecision.DENY, "admin_1", "Evidence is clear")
    assert resolved.value.status == AppealStatus.DENIED
    assert resolved.value.resolution_message == "Evidence is clear"
    assert (await engine.enforcement.get_penalty(applied.id)).is_active
    assert sender.types_for("u1")[-1] == NotificationType.APPEAL_DENIED


@pytest.mark.asyncio
async def test_accepted_penalty_appeal_restores_chat(engine, backend):
    applied = await penalty(engine, category="harassment")
    message = ChatMessage(user_id="u1", stream_id="stream_1", scope_id="creator_a", text="hi")
    backend.set_overall(0.0)
    assert not (await engine.handle_chat_message(message)).allowed

    appeal = (await engine.submit_appeal("u1", applied.id, REASON)).value
    await engine.resolve_appeal(appeal.id, AppealDecision.ACCEPT, "admin_1", "Overturned")

    assert not (await engine.enforcement.get_penalty(applied.id)).is_active
    assert (await engine.handle_chat_message(message)).allowed


@pytest.mark.asyncio
async def test_accepted_violation_appeal_lifts_block(engine, backend):
    backend.set_overall(0.92)
    result = await engine.classify_and_enforce("u1", "flagged", ScopeContext(scope_id="creator_a"))
    assert await engine.restrictions.is_blocked("u1", "creator_a")

    appeal = (await engine.submit_appeal("u1", result.violation_id, REASON)).value
    assert appeal.target_type == AppealTarget.VIOLATION
    await engine.resolve_appeal(appeal.id, AppealDecision.ACCEPT, "admin_1", "Misclassified")

    assert not await engine.restrictions.is_blocked("u1", "creator_a")
    assert (await engine.violations.get(result.violation_id)).resolved


@pytest.mark.asyncio
async def test_accepted_violation_appeal_revokes_linked_strike(engine, backend):
    backend.set_overall(0.92, top="hate_speech")
    result = await engine.classify_and_enforce("u1", "flagged", ScopeContext(scope_id="creator_a"))
    assert result.strike_level == 1

    appeal = (await engine.submit_appeal("u1", result.violation_id, REASON)).value
    await engine.resolve_appeal(appeal.id, AppealDecision.ACCEPT, "admin_1", "Misclassified")
    assert await engine.ledger.active_strikes("u1", "creator_a") == []


@pytest.mark.asyncio
async def test_resolving_twice_is_invalid(engine):
    strike = await third_strike(engine)
    appeal = (await engine.submit_appeal("u1", strike.id, REASON)).value
    await engine.resolve_appeal(appeal.id, AppealDecision.DENY, "admin_1", "No")

    again = await engine.resolve_appeal(appeal.id, AppealDecision.ACCEPT, "admin_2", "Yes")
    assert again.error_kind.value == "invalid_state"


@pytest.mark.asyncio
async def test_resolution_needs_message(engine):
    strike = await third_strike(engine)
    appeal = (await engine.submit_appeal("u1", strike.id, REASON)).value
    result = await engine.resolve_appeal(appeal.id, AppealDecision.ACCEPT, "admin_1", "   ")
    assert result.error_kind.value == "validation"


@pytest.mark.asyncio
async def test_cannot_appeal_someone_elses_strike(engine):
    strike = await third_strike(engine, user="u2")
    result = await engine.submit_appeal("u1", strike.id, REASON)
    assert result.error_kind.value == "validation"


@pytest.mark.asyncio
async def test_unknown_target(engine):
    strike = await third_strike(engine)
    await engine.store.delete("strikes", strike.id)
    result = await engine.submit_appeal("u1", strike.id, REASON)
    assert result.error_kind.value == "not_found"


@pytest.mark.asyncio
async def test_removed_strike_cannot_be_appealed(engine):
    strike = await third_strike(engine)
    await engine.remove_strike(strike.id, "admin_1")
    result = await engine.submit_appeal("u1", strike.id, REASON)
    assert result.error_kind.value == "validation"


@pytest.mark.asyncio
async def test_strike_appeal_lifts_only_its_own_timeout(engine):
    await engine.apply_strike("u1", "creator_a", "harassment", "insults")
    second = await engine.apply_strike("u1", "creator_a", "harassment", "insults")
    await engine.restrictions.apply_timeout("u1", "creator_a", 45, "mod call", RestrictionSource.MODERATOR)
    assert len(await engine.restrictions.timeouts_for_user("u1")) == 2

    appeal = await engine.submit_appeal("u1", second.id, REASON)
    await engine.resolve_appeal(appeal.value.id, AppealDecision.ACCEPT, "admin_1", "Context checked")

    remaining = await engine.restrictions.timeouts_for_user("u1")
    assert [t.source for t in remaining] == [RestrictionSource.MODERATOR]
