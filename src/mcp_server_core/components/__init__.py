"""
MCP components: tools, resources, prompts and their registry.
"""

from .prompts import BasePrompt, FunctionPrompt, PromptArgumentError, TemplatePrompt
from .registry import ComponentRegistry
from .resources import BaseResource, FunctionResource, UriTemplate
from .tools import (
    BaseTool,
    FunctionTool,
    ToolError,
    ToolExecutionError,
    ToolResult,
    ToolValidationError,
)

__all__ = [
    "BasePrompt",
    "BaseResource",
    "BaseTool",
    "ComponentRegistry",
    "FunctionPrompt",
    "FunctionResource",
    "FunctionTool",
    "PromptArgumentError",
    "TemplatePrompt",
    "ToolError",
    "ToolExecutionError",
    "ToolResult",
    "ToolValidationError",
    "UriTemplate",
]
