"""Chat assistant tools for Claude (package barrel exports)."""

from .definitions import TOOLSET_VERSION, get_tool_definitions
from .dispatcher import ToolName, execute_tool

__all__ = [
    "get_tool_definitions",
    "execute_tool",
    "ToolName",
    "TOOLSET_VERSION",
]
