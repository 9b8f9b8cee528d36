"""
Tests for session stores.
"""

import asyncio

import pytest

from finance_agent.errors import UnknownSession
from finance_agent.sessions import (
    InMemorySessionStore,
    ResolutionStatus,
    SessionKey,
    SqlSessionStore,
    ToolCallRecord,
    Turn,
)


def test_session_key_is_hashable():
    """Test that equal triples address the same session."""
    a = SessionKey("app", "user", "s1")
    b = SessionKey("app", "user", "s1")

    assert a == b
    assert len({a, b}) == 1
    assert SessionKey("app", "user", "s2") != a


@pytest.mark.asyncio
async def test_first_resolve_creates_empty_session(store, key):
    """Test first resolve creates a session with empty history and state."""
    resolution = await store.resolve(key)

    assert resolution.status is ResolutionStatus.CREATED
    assert resolution.created
    assert resolution.session.turns == []
    assert resolution.session.state == {}


@pytest.mark.asyncio
async def test_resolve_returns_existing_session(store, key):
    """Test later resolves never replace an existing session."""
    first = await store.resolve(key)
    await store.set_state(key, "budget_goals", {"dining": {"amount": 100.0, "period": "monthly"}})
    await store.append(key, Turn(user_message="hi", response="hello"))

    second = await store.resolve(key)

    assert second.status is ResolutionStatus.EXISTING
    assert second.session is first.session
    assert second.session.state["budget_goals"]["dining"]["amount"] == 100.0
    assert [t.response for t in second.session.turns] == ["hello"]


@pytest.mark.asyncio
async def test_concurrent_resolve_creates_once(store, key):
    """Test N concurrent resolves yield one created session."""
    results = await asyncio.gather(*(store.resolve(key) for _ in range(25)))

    statuses = [r.status for r in results]
    assert statuses.count(ResolutionStatus.CREATED) == 1
    assert statuses.count(ResolutionStatus.EXISTING) == 24
    assert len({id(r.session) for r in results}) == 1
    assert len(store) == 1


@pytest.mark.asyncio
async def test_sessions_are_isolated(store):
    """Test state written to one triple is invisible to another."""
    a = SessionKey("app", "alice", "s1")
    b = SessionKey("app", "bob", "s1")
    await store.resolve(a)
    await store.resolve(b)

    await store.set_state(a, "last_analysis", {"net": 10})

    assert await store.get_state(b) == {}
    assert (await store.get_state(a))["last_analysis"] == {"net": 10}


@pytest.mark.asyncio
async def test_unknown_session_operations_fail(store, key):
    """Test store misuse on unresolved triples."""
    with pytest.raises(UnknownSession):
        await store.append(key, Turn(user_message="hi", response="hello"))
    with pytest.raises(UnknownSession):
        await store.get_state(key)
    with pytest.raises(UnknownSession):
        await store.set_state(key, "x", 1)

    assert await store.get(key) is None


@pytest.mark.asyncio
async def test_session_handle_copies_values(store, key):
    """Test handle reads cannot mutate stored state in place."""
    await store.resolve(key)
    handle = store.handle(key)
    await handle.set("summary_lines", ["one"])

    lines = await handle.get("summary_lines")
    lines.append("two")

    assert await handle.get("summary_lines") == ["one"]
    assert await handle.get("missing", "default") == "default"


@pytest.mark.asyncio
async def test_in_memory_store_lifecycle_is_noop():
    """Test initialize/close are safe on the memory store."""
    store = InMemorySessionStore()
    await store.initialize()
    await store.close()
    assert len(store) == 0


# --------------------------------------------------------------------------- #
# SQL store
# --------------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_sql_store_resolve_and_persist(tmp_path, key):
    """Test the SQL store keeps turns and state across store instances."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}"

    store = SqlSessionStore(url)
    await store.initialize()
    try:
        first = await store.resolve(key)
        assert first.created

        await store.set_state(key, "budget_goals", {"rent": {"amount": 1500.0, "period": "monthly"}})
        await store.append(key, Turn(
            user_message="set rent budget",
            response="Done.",
            tool_calls=[ToolCallRecord(name="set_budget_goal", arguments={"category": "rent", "amount": 1500}, output="ok")],
        ))
        await store.append(key, Turn(user_message="thanks", response="Any time."))
    finally:
        await store.close()

    reopened = SqlSessionStore(url)
    await reopened.initialize()
    try:
        second = await reopened.resolve(key)

        assert second.status is ResolutionStatus.EXISTING
        assert [t.user_message for t in second.session.turns] == ["set rent budget", "thanks"]
        assert second.session.turns[0].tool_calls[0].name == "set_budget_goal"
        assert second.session.state["budget_goals"]["rent"]["amount"] == 1500.0
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_sql_store_concurrent_resolve(tmp_path, key):
    """Test concurrent resolves against the SQL store create one row."""
    store = SqlSessionStore(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    await store.initialize()
    try:
        results = await asyncio.gather(*(store.resolve(key) for _ in range(10)))

        statuses = [r.status for r in results]
        assert statuses.count(ResolutionStatus.CREATED) == 1
        assert statuses.count(ResolutionStatus.EXISTING) == 9
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_sql_store_unknown_session(tmp_path, key):
    """Test SQL store misuse on unresolved triples."""
    store = SqlSessionStore(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    await store.initialize()
    try:
        with pytest.raises(UnknownSession):
            await store.append(key, Turn(user_message="hi", response="hello"))
        with pytest.raises(UnknownSession):
            await store.set_state(key, "x", 1)
        assert await store.get(key) is None
    finally:
        await store.close()
