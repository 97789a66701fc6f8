#!/usr/bin/env python3
"""
Calculator example for the MCP server core.

Serve it over stdio with:

    mcp-server-core serve --module calculator_server

(run from this directory, or put it on PYTHONPATH), or run this file
directly to push a few requests through the server in-process.
"""

import json
from typing import Any, Dict

from mcp_server_core import ComponentRegistry, MCPServer
from mcp_server_core.components import (
    BaseResource,
    BaseTool,
    TemplatePrompt,
    ToolExecutionError,
)
from mcp_server_core.protocol.schemas import PromptArgument, Tool

OPERATIONS = ["add", "subtract", "multiply", "divide"]


class CalculatorTool(BaseTool):
    """Basic arithmetic on two numbers."""

    name = "calculator"
    description = "Perform basic arithmetic operations"

    def get_schema(self) -> Tool:
        return self._create_schema(
            parameters={
                "operation": self._create_parameter(
                    "string", "Operation to perform", enum=OPERATIONS
                ),
                "a": self._create_parameter("number", "First operand"),
                "b": self._create_parameter("number", "Second operand"),
            },
            required=["operation", "a", "b"],
        )

    def execute(self, arguments: Dict[str, Any]) -> Any:
        operation = arguments["operation"]
        a, b = arguments["a"], arguments["b"]

        if operation == "add":
            return a + b
        if operation == "subtract":
            return a - b
        if operation == "multiply":
            return a * b
        if b == 0:
            raise ToolExecutionError("Division by zero", details={"a": a, "b": b})
        return a / b


class ConstantsResource(BaseResource):
    """Well-known constants as JSON."""

    uri = "calc://constants"
    name = "constants"
    description = "Mathematical constants"
    mime_type = "application/json"

    def read(self, params: Dict[str, str]) -> Any:
        return {"pi": 3.141592653589793, "e": 2.718281828459045}


class OperationHelpResource(BaseResource):
    """Usage notes for a single operation."""

    uri_template = "calc://operations/{operation}"
    name = "operation-help"
    description = "How to use a calculator operation"

    def read(self, params: Dict[str, str]) -> Any:
        operation = params["operation"]
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        return f"Call the calculator tool with operation='{operation}' and numbers a and b."


def register(registry: ComponentRegistry) -> None:
    """Component hook used by ``mcp-server-core serve --module``."""
    registry.register_tool(CalculatorTool())
    registry.register_resource(ConstantsResource())
    registry.register_resource(OperationHelpResource())
    registry.register_prompt(
        TemplatePrompt(
            name="explain-calculation",
            template="Explain step by step how to compute {expression}.",
            description="Ask for a worked explanation of a calculation",
            arguments=[PromptArgument(name="expression", required=True)],
        )
    )


def main() -> None:
    """Send a short session through the server and print the replies."""
    registry = ComponentRegistry()
    register(registry)
    server = MCPServer(registry=registry)

    requests = [
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-06-18",
                "capabilities": {},
                "clientInfo": {"name": "example-client", "version": "1.0.0"},
            },
        },
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "calculator", "arguments": {"operation": "add", "a": 5, "b": 3}},
        },
        {
            "jsonrpc": "2.0",
            "id": 4,
            "method": "resources/read",
            "params": {"uri": "calc://operations/divide"},
        },
        {
            "jsonrpc": "2.0",
            "id": 5,
            "method": "prompts/get",
            "params": {"name": "explain-calculation", "arguments": {"expression": "5 + 3"}},
        },
    ]

    for request in requests:
        reply = server.handle_message(request)
        if reply is not None:
            print(json.dumps(reply, indent=2))


if __name__ == "__main__":
    main()
