"""
Personal finance tools - transaction analysis, budget goals and reports.

All tools keep their results in the calling session's state so later turns
can build on them:
- ``last_analysis``: the most recent transaction analysis
- ``budget_goals``: category -> {amount, period}
- ``summary_lines``: rolling log of what happened in the conversation
"""

from typing import Any

from ..sessions import SessionHandle
from .base import Tool, ToolParameter, ToolResult

MAX_SUMMARY_LINES = 20

TRANSACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "description": {"type": "string", "description": "What the transaction was"},
        "amount": {
            "type": "number",
            "description": "Positive for income, negative for spending",
        },
        "category": {"type": "string", "description": "Spending category, e.g. dining"},
    },
    "required": ["amount"],
}


def _money(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


async def _add_summary_line(session: SessionHandle, line: str) -> None:
    lines = await session.get("summary_lines", [])
    lines.append(line)
    await session.set("summary_lines", lines[-MAX_SUMMARY_LINES:])


async def analyze_transactions_handler(
    session: SessionHandle,
    transactions: list[dict[str, Any]],
) -> ToolResult:
    """Total income and spending, broken down by category."""
    if not transactions:
        return ToolResult(success=False, error="No transactions to analyze")

    income = 0.0
    expenses = 0.0
    by_category: dict[str, float] = {}

    for txn in transactions:
        amount = float(txn["amount"])
        if amount >= 0:
            income += amount
            continue
        expenses += -amount
        category = (txn.get("category") or "uncategorized").strip().lower()
        by_category[category] = round(by_category.get(category, 0.0) + -amount, 2)

    analysis = {
        "count": len(transactions),
        "income": round(income, 2),
        "expenses": round(expenses, 2),
        "net": round(income - expenses, 2),
        "by_category": dict(sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)),
    }
    await session.set("last_analysis", analysis)

    top = next(iter(analysis["by_category"]), None)
    await _add_summary_line(
        session,
        f"Analyzed {analysis['count']} transactions: net {_money(analysis['net'])}"
        + (f", top category {top}" if top else ""),
    )

    lines = [
        f"**Analysis of {analysis['count']} transactions**",
        f"- Income: {_money(analysis['income'])}",
        f"- Spending: {_money(analysis['expenses'])}",
        f"- Net: {_money(analysis['net'])}",
    ]
    for category, amount in analysis["by_category"].items():
        lines.append(f"  - {category}: {_money(amount)}")

    return ToolResult(success=True, output="\n".join(lines), data=analysis)


async def set_budget_goal_handler(
    session: SessionHandle,
    category: str,
    amount: float,
    period: str = "monthly",
) -> ToolResult:
    """Add or replace the budget goal for a category."""
    if amount <= 0:
        return ToolResult(success=False, error="Budget amount must be positive")

    category = category.strip().lower()
    goals = await session.get("budget_goals", {})
    goals[category] = {"amount": round(float(amount), 2), "period": period}
    await session.set("budget_goals", goals)

    await _add_summary_line(session, f"Set {period} budget for {category}: {_money(amount)}")

    return ToolResult(
        success=True,
        output=f"Budget set: {_money(amount)} {period} for {category} ({len(goals)} goal(s) total)",
        data=goals,
    )


async def check_budget_handler(session: SessionHandle) -> ToolResult:
    """Compare the last analysis against the budget goals."""
    goals = await session.get("budget_goals", {})
    if not goals:
        return ToolResult(success=False, error="No budget goals set yet")

    analysis = await session.get("last_analysis")
    if not analysis:
        return ToolResult(success=False, error="No transactions analyzed yet")

    spent_by_category = analysis.get("by_category", {})
    status = {}
    lines = ["**Budget check**"]

    for category, goal in goals.items():
        spent = spent_by_category.get(category, 0.0)
        remaining = round(goal["amount"] - spent, 2)
        status[category] = {"budget": goal["amount"], "spent": spent, "remaining": remaining}
        marker = "over by" if remaining < 0 else "remaining"
        lines.append(
            f"- {category}: spent {_money(spent)} of {_money(goal['amount'])} "
            f"({marker} {_money(abs(remaining))})"
        )

    return ToolResult(success=True, output="\n".join(lines), data=status)


async def generate_report_handler(session: SessionHandle) -> ToolResult:
    """Summarize everything known in this conversation."""
    state = await session.snapshot()
    analysis = state.get("last_analysis")
    goals = state.get("budget_goals", {})
    summary_lines = state.get("summary_lines", [])

    if not analysis and not goals:
        return ToolResult(
            success=True,
            output="Nothing to report yet. Share some transactions or set a budget first.",
        )

    lines = ["# Personal Finance Report"]
    if analysis:
        lines += [
            "",
            "## Cash flow",
            f"- Transactions: {analysis['count']}",
            f"- Income: {_money(analysis['income'])}",
            f"- Spending: {_money(analysis['expenses'])}",
            f"- Net: {_money(analysis['net'])}",
        ]
    if goals:
        lines += ["", "## Budget goals"]
        lines += [f"- {c}: {_money(g['amount'])} {g['period']}" for c, g in goals.items()]
    if summary_lines:
        lines += ["", "## Session notes"]
        lines += [f"- {line}" for line in summary_lines]

    return ToolResult(success=True, output="\n".join(lines))


def create_finance_tools() -> list[Tool]:
    """Create the personal finance tools."""
    return [
        Tool(
            name="analyze_transactions",
            description=(
                "Analyze a list of transactions: totals for income and spending, "
                "net cash flow and spending per category. Saves the result for later turns."
            ),
            parameters=[
                ToolParameter(
                    name="transactions",
                    param_type="array",
                    description="Transactions to analyze",
                    items=TRANSACTION_SCHEMA,
                ),
            ],
            handler=analyze_transactions_handler,
        ),
        Tool(
            name="set_budget_goal",
            description="Set a spending budget for a category, e.g. $100 a month for dining.",
            parameters=[
                ToolParameter(
                    name="category",
                    param_type="string",
                    description="Spending category",
                ),
                ToolParameter(
                    name="amount",
                    param_type="number",
                    description="Budget amount in dollars",
                ),
                ToolParameter(
                    name="period",
                    param_type="string",
                    description="Budget period",
                    required=False,
                    enum=["weekly", "monthly", "yearly"],
                ),
            ],
            handler=set_budget_goal_handler,
        ),
        Tool(
            name="check_budget",
            description="Compare the most recent transaction analysis against the budget goals.",
            parameters=[],
            handler=check_budget_handler,
        ),
        Tool(
            name="generate_report",
            description="Generate a report of the analysis, budget goals and notes from this conversation.",
            parameters=[],
            handler=generate_report_handler,
        ),
    ]
