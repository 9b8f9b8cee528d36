"""
Tests for tools module.
"""

import pytest

from finance_agent.errors import DuplicateTool, SchemaValidationError
from finance_agent.tools import Tool, ToolParameter, ToolRegistry, ToolResult, create_finance_tools


def _echo_tool(name: str = "echo", calls: list | None = None) -> Tool:
    async def handler(session, text: str) -> ToolResult:
        if calls is not None:
            calls.append(text)
        await session.set("last_echo", text)
        return ToolResult(success=True, output=text)

    return Tool(
        name=name,
        description="Echo text back",
        parameters=[ToolParameter(name="text", param_type="string", description="Text to echo")],
        handler=handler,
    )


def test_tool_result_success():
    """Test successful tool result."""
    result = ToolResult(success=True, output="Test output", data={"key": "value"})

    assert result.success is True
    assert result.content == "Test output"
    assert result.error is None


def test_tool_result_failure_content():
    """Test failed tool results carry their error code to the model."""
    result = ToolResult(success=False, error="Something went wrong", error_code="TOOL_EXECUTION_ERROR")

    assert result.success is False
    assert result.content == "Error [TOOL_EXECUTION_ERROR]: Something went wrong"


def test_parameters_schema():
    """Test converting parameters to JSON Schema."""
    tool = _echo_tool()
    schema = tool.get_parameters_schema()

    assert schema["type"] == "object"
    assert schema["properties"]["text"]["type"] == "string"
    assert schema["required"] == ["text"]


def test_register_duplicate_tool():
    """Test duplicate names are rejected at registration."""
    registry = ToolRegistry()
    registry.register(_echo_tool())

    with pytest.raises(DuplicateTool):
        registry.register(_echo_tool())

    assert registry.list_tools() == ["echo"]


def test_get_definitions():
    """Test tool definitions for the model."""
    registry = ToolRegistry(create_finance_tools())
    names = [d.name for d in registry.get_definitions()]

    assert names == ["analyze_transactions", "set_budget_goal", "check_budget", "generate_report"]
    budget = next(d for d in registry.get_definitions() if d.name == "set_budget_goal")
    assert budget.parameters["required"] == ["category", "amount"]
    assert "additionalProperties" not in budget.parameters


def test_validate_is_pure():
    """Test schema validation raises without running anything."""
    calls: list = []
    registry = ToolRegistry([_echo_tool(calls=calls)])

    registry.validate("echo", {"text": "hi"})
    with pytest.raises(SchemaValidationError):
        registry.validate("echo", {"text": 42})
    with pytest.raises(SchemaValidationError):
        registry.validate("echo", {})
    with pytest.raises(SchemaValidationError):
        registry.validate("echo", {"text": "hi", "extra": True})

    assert calls == []


@pytest.mark.asyncio
async def test_invoke_schema_violation_skips_body(store, key):
    """Test invalid arguments never reach the tool body."""
    await store.resolve(key)
    calls: list = []
    registry = ToolRegistry([_echo_tool(calls=calls)])

    result = await registry.invoke("echo", {"text": 42}, store.handle(key))

    assert not result.success
    assert result.error_code == "SCHEMA_VALIDATION_ERROR"
    assert calls == []
    assert await store.get_state(key) == {}


@pytest.mark.asyncio
async def test_invoke_writes_session_state(store, key):
    """Test a tool mutates only its own session's state."""
    await store.resolve(key)
    registry = ToolRegistry([_echo_tool()])

    result = await registry.invoke("echo", {"text": "hello"}, store.handle(key))

    assert result.success
    assert (await store.get_state(key))["last_echo"] == "hello"


@pytest.mark.asyncio
async def test_invoke_unknown_tool(store, key):
    """Test unknown tools come back as a failed result."""
    await store.resolve(key)
    result = await ToolRegistry().invoke("nope", {}, store.handle(key))

    assert not result.success
    assert result.error_code == "UNKNOWN_TOOL"


@pytest.mark.asyncio
async def test_invoke_captures_tool_exception(store, key):
    """Test exceptions inside a tool do not propagate."""
    async def broken(session) -> ToolResult:
        raise RuntimeError("boom")

    await store.resolve(key)
    registry = ToolRegistry([Tool(name="broken", description="Fails", parameters=[], handler=broken)])

    result = await registry.invoke("broken", {}, store.handle(key))

    assert not result.success
    assert result.error_code == "TOOL_EXECUTION_ERROR"
    assert "boom" in result.error


# --------------------------------------------------------------------------- #
# Finance tools
# --------------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_analyze_transactions(store, key, registry):
    """Test transaction analysis totals and stored analysis."""
    await store.resolve(key)
    transactions = [
        {"description": "Salary", "amount": 3000},
        {"description": "Pizza", "amount": -25.5, "category": "Dining"},
        {"description": "Sushi", "amount": -40, "category": "dining"},
        {"description": "Rent", "amount": -1200, "category": "rent"},
    ]

    result = await registry.invoke("analyze_transactions", {"transactions": transactions}, store.handle(key))

    assert result.success
    state = await store.get_state(key)
    analysis = state["last_analysis"]
    assert analysis["income"] == 3000
    assert analysis["expenses"] == 1265.5
    assert analysis["net"] == 1734.5
    assert analysis["by_category"] == {"rent": 1200, "dining": 65.5}
    assert list(analysis["by_category"]) == ["rent", "dining"]
    assert len(state["summary_lines"]) == 1


@pytest.mark.asyncio
async def test_analyze_transactions_rejects_bad_items(store, key, registry):
    """Test transactions without an amount fail validation."""
    await store.resolve(key)

    result = await registry.invoke(
        "analyze_transactions", {"transactions": [{"description": "?"}]}, store.handle(key)
    )

    assert result.error_code == "SCHEMA_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_budget_goals_accumulate(store, key, registry):
    """Test budget goals build up across calls."""
    await store.resolve(key)
    handle = store.handle(key)

    await registry.invoke("set_budget_goal", {"category": "Dining", "amount": 100}, handle)
    result = await registry.invoke(
        "set_budget_goal", {"category": "travel", "amount": 500, "period": "yearly"}, handle
    )

    assert result.success
    goals = (await store.get_state(key))["budget_goals"]
    assert goals == {
        "dining": {"amount": 100.0, "period": "monthly"},
        "travel": {"amount": 500.0, "period": "yearly"},
    }


@pytest.mark.asyncio
async def test_budget_goal_rejects_unknown_period(store, key, registry):
    """Test the period enum is enforced."""
    await store.resolve(key)

    result = await registry.invoke(
        "set_budget_goal", {"category": "dining", "amount": 100, "period": "daily"}, store.handle(key)
    )

    assert result.error_code == "SCHEMA_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_check_budget(store, key, registry):
    """Test comparing spending against budgets."""
    await store.resolve(key)
    handle = store.handle(key)

    missing = await registry.invoke("check_budget", {}, handle)
    assert not missing.success

    await registry.invoke("set_budget_goal", {"category": "dining", "amount": 50}, handle)
    await registry.invoke(
        "analyze_transactions",
        {"transactions": [{"amount": -80, "category": "dining"}]},
        handle,
    )
    result = await registry.invoke("check_budget", {}, handle)

    assert result.success
    assert result.data["dining"]["remaining"] == -30
    assert "over by" in result.output


@pytest.mark.asyncio
async def test_generate_report(store, key, registry):
    """Test the report pulls analysis, goals and notes together."""
    await store.resolve(key)
    handle = store.handle(key)

    empty = await registry.invoke("generate_report", {}, handle)
    assert "Nothing to report" in empty.output

    await registry.invoke("set_budget_goal", {"category": "dining", "amount": 100}, handle)
    await registry.invoke("analyze_transactions", {"transactions": [{"amount": 200}]}, handle)
    report = await registry.invoke("generate_report", {}, handle)

    assert "Cash flow" in report.output
    assert "dining" in report.output
    assert "Session notes" in report.output


@pytest.mark.asyncio
async def test_summary_lines_are_capped(store, key, registry):
    """Test the rolling summary keeps only the most recent lines."""
    await store.resolve(key)
    handle = store.handle(key)

    for i in range(25):
        await registry.invoke("set_budget_goal", {"category": f"c{i}", "amount": 10}, handle)

    lines = (await store.get_state(key))["summary_lines"]
    assert len(lines) == 20
    assert "c24" in lines[-1]
