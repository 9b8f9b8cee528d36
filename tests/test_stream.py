"""
Tests for the stream adapter.
"""

import asyncio

import pytest

from conftest import CloseFailsLLM, ScriptedLLM, call, final, text

from finance_agent.agent import StreamAdapter, TurnState
from finance_agent.llm.base import ErrorEvent


async def _drain(adapter: StreamAdapter) -> list[str]:
    return [chunk async for chunk in adapter.chunks()]


@pytest.mark.asyncio
async def test_chunks_in_model_order(make_driver, key):
    """Test text chunks are forwarded in the order the model produced them."""
    llm = ScriptedLLM([text("Your "), call("check_budget"), text("budget "), text("is fine."), final()])
    adapter = StreamAdapter(make_driver(llm).start(key, "How am I doing?"))

    chunks = await _drain(adapter)

    assert chunks == ["Your ", "budget ", "is fine."]
    assert adapter.chunks_sent == 3
    assert adapter.execution.state is TurnState.FINAL


@pytest.mark.asyncio
async def test_abort_stops_further_chunks(make_driver, store, key):
    """Test no chunk is written after abort and the turn is not recorded."""
    llm = ScriptedLLM([text("one"), text("two"), text("three"), final()])
    adapter = StreamAdapter(make_driver(llm).start(key, "Hi"))

    received = []
    async for chunk in adapter.chunks():
        received.append(chunk)
        adapter.abort()

    assert received == ["one"]
    assert adapter.aborted
    assert adapter.execution.state is TurnState.CANCELLED
    assert llm.closed == 1
    assert (await store.get(key)).turns == []


@pytest.mark.asyncio
async def test_disconnect_probe_cancels(make_driver, store, key):
    """Test a disconnected transport cancels the turn."""
    probes = []

    async def disconnected() -> bool:
        probes.append(True)
        return len(probes) >= 2

    llm = ScriptedLLM([text("a"), text("b"), text("c"), final()])
    adapter = StreamAdapter(make_driver(llm).start(key, "Hi"), disconnected=disconnected)

    chunks = await _drain(adapter)

    assert chunks == ["a", "b"]
    assert adapter.execution.state is TurnState.CANCELLED
    assert (await store.get(key)).turns == []


@pytest.mark.asyncio
async def test_model_error_becomes_terminal_chunk(make_driver, key):
    """Test model errors end the stream with one error marker."""
    llm = ScriptedLLM([text("Partial"), ErrorEvent(code="SAFETY_BLOCKED", message="Response blocked")])
    adapter = StreamAdapter(make_driver(llm).start(key, "Hi"))

    chunks = await _drain(adapter)

    assert chunks == ["Partial", "[ERROR SAFETY_BLOCKED] Response blocked"]
    assert adapter.execution.state is TurnState.ERRORED


@pytest.mark.asyncio
async def test_tool_loop_error_chunk(make_driver, key):
    """Test the dispatch ceiling surfaces as an error marker."""
    llm = ScriptedLLM([call("check_budget")])
    adapter = StreamAdapter(make_driver(llm, max_tool_dispatches=2).start(key, "loop"))

    chunks = await _drain(adapter)

    assert chunks == ["[ERROR TOOL_LOOP_EXCEEDED] Turn exceeded 2 tool dispatches"]


@pytest.mark.asyncio
async def test_transport_error_chunk(make_driver, key):
    """Test transport failures surface as MODEL_UNAVAILABLE."""
    llm = ScriptedLLM([ConnectionError("connection refused")])
    adapter = StreamAdapter(make_driver(llm).start(key, "Hi"))

    chunks = await _drain(adapter)

    assert chunks == ["[ERROR MODEL_UNAVAILABLE] connection refused"]


@pytest.mark.asyncio
async def test_unexpected_error_chunk(make_driver, store, key, monkeypatch):
    """Test errors outside the taxonomy become INTERNAL_ERROR."""
    async def broken_resolve(k):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "resolve", broken_resolve)
    adapter = StreamAdapter(make_driver(ScriptedLLM([final()])).start(key, "Hi"))

    chunks = await _drain(adapter)

    assert chunks == ["[ERROR INTERNAL_ERROR] disk full"]
    assert adapter.execution.state is TurnState.ERRORED


@pytest.mark.asyncio
async def test_abort_with_failing_close_stays_inside_adapter(make_driver, store, key):
    """Test a model that fails while closing cannot escape the adapter on abort."""
    adapter = StreamAdapter(make_driver(CloseFailsLLM()).start(key, "Hi"))

    received = []
    async for chunk in adapter.chunks():
        received.append(chunk)
        adapter.abort()

    assert received == ["one"]
    assert adapter.execution.state is TurnState.CANCELLED
    assert (await store.get(key)).turns == []


@pytest.mark.asyncio
async def test_caller_owned_stop_event(make_driver, key):
    """Test a stop event passed in by the caller cancels the stream."""
    stop = asyncio.Event()
    llm = ScriptedLLM([text("one"), text("two"), final()])
    adapter = StreamAdapter(make_driver(llm).start(key, "Hi"), stop=stop)

    received = []
    async for chunk in adapter.chunks():
        received.append(chunk)
        stop.set()

    assert received == ["one"]
    assert adapter.aborted
    assert adapter.execution.stop is stop
    assert adapter.execution.state is TurnState.CANCELLED
