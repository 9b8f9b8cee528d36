"""
Base classes for tools.
"""

from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..sessions import SessionHandle


@dataclass
class ToolResult:
    """Result from a tool execution."""

    success: bool
    output: str = ""
    data: Any = None
    error: str | None = None
    error_code: str | None = None

    @property
    def content(self) -> str:
        """Text reported back to the model."""
        if self.success:
            return self.output
        return f"Error [{self.error_code or 'TOOL_ERROR'}]: {self.error}"


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, number, integer, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None
    items: dict[str, Any] | None = None  # element schema for arrays


ToolHandler = Callable[..., Coroutine[Any, Any, ToolResult]]


@dataclass
class Tool:
    """
    A named tool backed by an async handler.

    The handler receives the calling session's SessionHandle first, then the
    validated arguments as keyword arguments.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: ToolHandler

    def get_parameters_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.items:
                prop["items"] = param.items
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    async def execute(self, session: SessionHandle, **kwargs: Any) -> ToolResult:
        """Execute the tool handler."""
        return await self.handler(session, **kwargs)
