"""Chat gating and admin views on the engine facade."""

import pytest

from trust_safety.lib.store import InMemoryStore
from trust_safety.models.content import ScopeContext
from trust_safety.models.enums import Action, RestrictionSource
from trust_safety.models.realtime import ChatMessage
from trust_safety.services.engine import SafetyEngine


def chat(text="hello everyone", user="u1", scope="creator_a", stream="stream_1"):
    return ChatMessage(user_id=user, stream_id=stream, scope_id=scope, text=text)


@pytest.mark.asyncio
async def test_clean_chat_is_allowed(engine, backend):
    backend.set_overall(0.05)
    result = await engine.handle_chat_message(chat())
    assert result.allowed
    assert result.action == Action.ALLOW
    assert backend.calls == 1


@pytest.mark.asyncio
async def test_banned_user_is_refused_before_classification(engine, backend):
    for _ in range(4):
        await engine.apply_strike("u1", "creator_a", "harassment", "abuse")

    result = await engine.handle_chat_message(chat())
    assert result.action == Action.BLOCK
    assert not result.allowed
    assert backend.calls == 0

    backend.set_overall(0.0)
    elsewhere = await engine.handle_chat_message(chat(scope="creator_b"))
    assert elsewhere.allowed


@pytest.mark.asyncio
async def test_timed_out_user_is_refused(engine, backend, clock):
    await engine.restrictions.apply_timeout("u1", "creator_a", 5, "cool off", RestrictionSource.MODERATOR)
    assert (await engine.handle_chat_message(chat())).action == Action.TIMEOUT

    clock.advance(minutes=6)
    backend.set_overall(0.0)
    assert (await engine.handle_chat_message(chat())).allowed


@pytest.mark.asyncio
async def test_blocked_user_is_refused(engine, backend):
    backend.set_overall(0.9)
    await engine.handle_chat_message(chat("first"))
    assert (await engine.handle_chat_message(chat("second"))).action == Action.BLOCK
    assert backend.calls == 1


@pytest.mark.asyncio
async def test_flooding_chat_trips_spam(engine, backend):
    backend.set_overall(0.0)
    results = [await engine.handle_chat_message(chat(f"msg {i}")) for i in range(11)]

    assert all(r.allowed for r in results[:10])
    assert results[10].action == Action.TIMEOUT
    assert backend.calls == 10
    assert (await engine.handle_chat_message(chat("again"))).action == Action.TIMEOUT


@pytest.mark.asyncio
async def test_user_history_collects_records(engine, backend):
    backend.set_overall(0.92, top="harassment")
    await engine.classify_and_enforce("u1", "abuse", ScopeContext(scope_id="creator_a"))

    history = await engine.get_user_history("u1")
    assert len(history.violations) == 1
    assert len(history.strikes) == 1
    assert len(history.blocks) == 1
    assert history.penalties == []
    assert history.appeals == []


def test_from_env_without_database_uses_memory(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DB_HOST", raising=False)
    engine = SafetyEngine.from_env()
    assert isinstance(engine.store, InMemoryStore)
