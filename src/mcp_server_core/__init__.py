"""
MCP Server Core

The protocol core of a Model Context Protocol server: a JSON-RPC 2.0
engine, capability negotiation and routing of MCP methods to
registered tools, resources and prompts.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .components import (
    BasePrompt,
    BaseResource,
    BaseTool,
    ComponentRegistry,
    FunctionPrompt,
    FunctionResource,
    FunctionTool,
    ToolResult,
)
from .config.settings import Config, load_config
from .protocol.capabilities import CapabilityNegotiator
from .protocol.jsonrpc import JsonRpcEngine
from .protocol.router import RequestRouter
from .server import MCPServer

__all__ = [
    "MCPServer",
    "JsonRpcEngine",
    "CapabilityNegotiator",
    "RequestRouter",
    "ComponentRegistry",
    "BaseTool",
    "FunctionTool",
    "ToolResult",
    "BaseResource",
    "FunctionResource",
    "BasePrompt",
    "FunctionPrompt",
    "Config",
    "load_config",
    "__version__",
    "__license__",
]
