"""
Tool registry: the closed set of tools an agent can dispatch to.
"""

from typing import Any

import jsonschema
import structlog

from ..errors import DuplicateTool, SchemaValidationError
from ..llm.base import ToolDefinition
from ..sessions import SessionHandle
from .base import Tool, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools.

    Tools are registered once, at agent construction. Schema checking is a
    pure validation step that runs before any tool body.
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        self._validators: dict[str, Any] = {}
        for tool in tools or []:
            self.register(tool)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        """Register a tool. Raises DuplicateTool if the name is taken."""
        if tool.name in self._tools:
            raise DuplicateTool(f"Tool '{tool.name}' is already registered")

        # Arguments the schema does not declare are rejected too
        schema = {**tool.get_parameters_schema(), "additionalProperties": False}
        validator_cls = jsonschema.validators.validator_for(schema)
        validator_cls.check_schema(schema)

        self._tools[tool.name] = tool
        self._validators[tool.name] = validator_cls(schema)
        logger.info("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=tool.get_parameters_schema(),
            )
            for tool in self._tools.values()
        ]

    def validate(self, name: str, arguments: dict[str, Any]) -> None:
        """Check arguments against a registered tool's schema."""
        validator = self._validators[name]
        errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.path))
        if errors:
            details = "; ".join(
                f"{'.'.join(str(p) for p in e.path) or '<arguments>'}: {e.message}" for e in errors
            )
            raise SchemaValidationError(f"Invalid arguments for '{name}': {details}")

    async def invoke(self, name: str, arguments: dict[str, Any], session: SessionHandle) -> ToolResult:
        """Validate and execute a tool against one session's state.

        Never raises for tool-level problems: unknown names, schema mismatches
        and failures inside the tool body come back as a failed ToolResult.
        """
        tool = self.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", tool_name=name)
            return ToolResult(
                success=False,
                error=f"Tool '{name}' not found",
                error_code="UNKNOWN_TOOL",
            )

        try:
            self.validate(name, arguments)
        except SchemaValidationError as e:
            logger.warning("Tool arguments rejected", tool_name=name, error=e.message)
            return ToolResult(success=False, error=e.message, error_code=e.code)

        try:
            logger.info("Executing tool", tool_name=name, arguments=arguments)
            result = await tool.execute(session, **arguments)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
                error_code="TOOL_EXECUTION_ERROR",
            )
