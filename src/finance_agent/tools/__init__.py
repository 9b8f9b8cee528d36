"""
Tools module for agent capabilities.
"""

from .base import Tool, ToolParameter, ToolResult
from .registry import ToolRegistry
from .finance import create_finance_tools

__all__ = [
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "create_finance_tools",
]
