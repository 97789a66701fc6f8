"""
Pytest configuration and fixtures for MCP server core tests.
"""

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from mcp_server_core.components import (
    ComponentRegistry,
    FunctionPrompt,
    FunctionResource,
    FunctionTool,
    ToolExecutionError,
)
from mcp_server_core.config.settings import Config, ProtocolConfig, ServerConfig
from mcp_server_core.protocol.capabilities import CapabilityNegotiator
from mcp_server_core.protocol.jsonrpc import JsonRpcEngine
from mcp_server_core.protocol.processor import MessageProcessor
from mcp_server_core.protocol.router import RequestRouter
from mcp_server_core.protocol.schemas import PromptArgument
from mcp_server_core.server import MCPServer


def calculate(operation: str, a: float, b: float) -> Any:
    if operation == "add":
        return a + b
    if operation == "subtract":
        return a - b
    if operation == "multiply":
        return a * b
    if b == 0:
        raise ToolExecutionError("Division by zero")
    return a / b


def initialize_request(request_id: Any = "init-1", capabilities: Any = None) -> Dict[str, Any]:
    """Build a standard initialize request."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": "2025-06-18",
            "capabilities": capabilities if capabilities is not None else {},
            "clientInfo": {"name": "test-client", "version": "1.0.0"},
        },
    }


@pytest.fixture
def mock_logger():
    """Logger double for asserting on log calls."""
    return MagicMock()


@pytest.fixture
def engine(mock_logger):
    """Create a JSON-RPC engine with an injected logger."""
    return JsonRpcEngine(logger=mock_logger)


@pytest.fixture
def negotiator():
    """Create a capability negotiator."""
    return CapabilityNegotiator(logger=MagicMock())


@pytest.fixture
def calculator_tool():
    """Calculator tool accepting {operation, a, b}."""
    return FunctionTool(
        name="calculator",
        func=calculate,
        description="Perform basic arithmetic operations",
        parameters={
            "operation": {
                "type": "string",
                "description": "Operation to perform",
                "enum": ["add", "subtract", "multiply", "divide"],
            },
            "a": {"type": "number", "description": "First operand"},
            "b": {"type": "number", "description": "Second operand"},
        },
        required=["operation", "a", "b"],
    )


@pytest.fixture
def readme_resource():
    """Static text resource."""
    return FunctionResource(
        name="readme",
        uri="docs://readme",
        func=lambda: "# Readme",
        description="Project readme",
        mime_type="text/markdown",
    )


@pytest.fixture
def note_resource():
    """Templated resource echoing its URI parameters."""
    return FunctionResource(
        name="note",
        uri_template="notes://{folder}/{note_id}",
        func=lambda folder, note_id: f"{folder}:{note_id}",
        description="A note",
    )


@pytest.fixture
def greeting_prompt():
    """Prompt with one required argument."""
    return FunctionPrompt(
        name="greeting",
        func=lambda name: f"Say hello to {name}",
        description="Greet someone",
        arguments=[PromptArgument(name="name", description="Who to greet", required=True)],
    )


@pytest.fixture
def registry():
    """Create an empty component registry."""
    return ComponentRegistry()


@pytest.fixture
def populated_registry(registry, calculator_tool, readme_resource, note_resource, greeting_prompt):
    """Registry with one component of each kind plus a resource template."""
    registry.register_tool(calculator_tool)
    registry.register_resource(readme_resource)
    registry.register_resource(note_resource)
    registry.register_prompt(greeting_prompt)
    return registry


@pytest.fixture
def router(engine, populated_registry, negotiator):
    """Create a strict request router registered into the engine."""
    return RequestRouter(engine, populated_registry, negotiator=negotiator)


@pytest.fixture
def processor(engine, router):
    """Message processor over the routed engine."""
    return MessageProcessor(engine)


@pytest.fixture
def initialized_processor(processor):
    """Processor whose session has completed initialize."""
    response = processor.handle(initialize_request())
    assert "result" in response
    return processor


@pytest.fixture
def test_config():
    """Create a test configuration."""
    return Config(
        server=ServerConfig(log_level="DEBUG"),
        protocol=ProtocolConfig(page_size=None),
    )


@pytest.fixture
def server(test_config, populated_registry):
    """Create an MCP server over the populated registry."""
    return MCPServer(test_config, populated_registry)


@pytest.fixture
def make_initialize_request():
    """Factory for initialize requests."""
    return initialize_request
