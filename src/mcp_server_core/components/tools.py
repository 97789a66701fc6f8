"""
Base classes for MCP tools.

Provides the tool interface used by the request router, including
argument validation against the input schema, in-band error reporting
and result formatting.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..protocol.schemas import Tool, ToolParameter, ToolSchema
from ..utils.logging import sanitize_for_logging

logger = structlog.get_logger(__name__)

_JSON_TYPES = {
    "string": "a string",
    "number": "a number",
    "integer": "an integer",
    "boolean": "a boolean",
    "object": "an object",
    "array": "an array",
    "null": "null",
}


class ToolError(Exception):
    """Base exception for tool execution errors."""

    def __init__(
        self, message: str, code: str = "tool_error", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ToolValidationError(ToolError):
    """Error for invalid tool arguments."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="validation_error", details=details)


class ToolExecutionError(ToolError):
    """Error during tool execution."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="execution_error", details=details)


class ToolResult:
    """Standardized tool result format."""

    def __init__(
        self,
        content: List[Dict[str, Any]],
        is_error: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.content = content
        self.is_error = is_error
        self.metadata = metadata or {}

    @classmethod
    def success(cls, text: str, metadata: Optional[Dict[str, Any]] = None) -> "ToolResult":
        """Create a successful result with text content."""
        return cls(content=[{"type": "text", "text": text}], metadata=metadata)

    @classmethod
    def error(
        cls,
        message: str,
        error_code: str = "tool_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> "ToolResult":
        """Create an in-band error result."""
        error_text = message

        if details:
            details_json = json.dumps({"error_code": error_code, "details": details}, indent=2)
            error_text += f"\n\nError Details:\n```json\n{details_json}\n```"

        return cls(content=[{"type": "text", "text": error_text}], is_error=True)

    @classmethod
    def data(
        cls,
        data: Any,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ToolResult":
        """Create a result carrying structured data as JSON text."""
        text = json.dumps(data, indent=2, default=str)
        if description:
            text = f"{description}\n\n```json\n{text}\n```"
        return cls(content=[{"type": "text", "text": text}], metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for MCP response."""
        result = {
            "content": self.content,
            "isError": self.is_error,
        }

        if self.metadata:
            result["metadata"] = self.metadata

        return result


def format_tool_result(value: Any) -> Dict[str, Any]:
    """
    Wrap a tool's return value into a ``tools/call`` result.

    ``ToolResult`` instances and dicts that already carry a ``content``
    list pass through; strings become text content; numbers are
    rendered with ``str``; any other JSON value is pretty-printed.
    """
    if isinstance(value, ToolResult):
        return value.to_dict()

    if isinstance(value, dict) and isinstance(value.get("content"), list):
        result = dict(value)
        result["isError"] = bool(value.get("isError", False))
        return result

    if isinstance(value, str):
        text = value
    elif value is None:
        text = ""
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        text = str(value)
    else:
        text = json.dumps(value, indent=2, default=str)

    return ToolResult.success(text).to_dict()


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "array":
        return isinstance(value, list)
    if expected == "null":
        return value is None
    # Unknown schema types are not checked
    return True


class BaseTool(ABC):
    """
    Base class for all MCP tools.

    Subclasses define ``name``, ``description`` and ``get_schema`` and
    implement ``execute``. ``run`` is what the router calls: it validates
    the arguments, executes the tool and turns execution failures into
    in-band error results.
    """

    # Tool metadata (must be defined by subclasses)
    name: str = ""
    description: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize tool with configuration.

        Args:
            config: Tool-specific configuration
        """
        self.config = config or {}
        self.logger = logger.bind(tool=self.name)

    @abstractmethod
    def get_schema(self) -> Tool:
        """
        Get the tool schema definition.

        Returns:
            Tool schema for ``tools/list``
        """

    @abstractmethod
    def execute(self, arguments: Dict[str, Any]) -> Any:
        """
        Execute the tool with given arguments.

        Args:
            arguments: Validated tool arguments

        Returns:
            A ``ToolResult``, a string, or any JSON-serializable value

        Raises:
            ToolError: If execution fails
        """

    def run(self, arguments: Dict[str, Any], debug: bool = False) -> Dict[str, Any]:
        """
        Validate, execute and format a tool call.

        Args:
            arguments: Tool arguments from the ``tools/call`` request
            debug: Include exception detail in unexpected-error results

        Returns:
            ``{"content": [...], "isError": bool}``

        Raises:
            ToolValidationError: If the arguments do not match the schema
        """
        self.validate_arguments(arguments)

        try:
            self.logger.info("Executing tool", arguments=sanitize_for_logging(arguments))
            result = format_tool_result(self.execute(arguments))
            self.logger.info("Tool execution completed", success=not result["isError"])
            return result

        except ToolError as e:
            self.logger.warning(
                "Tool execution failed",
                error_code=e.code,
                error_message=e.message,
                details=e.details,
            )
            return ToolResult.error(e.message, e.code, e.details).to_dict()

        except Exception as e:
            self.logger.error("Unexpected tool error", error=str(e), exc_info=True)
            details = None
            if debug:
                details = {"exception_type": type(e).__name__, "exception": str(e)}
            return ToolResult.error("Tool execution failed", "internal_error", details).to_dict()

    def validate_arguments(self, arguments: Dict[str, Any]) -> None:
        """
        Validate tool arguments against schema.

        Args:
            arguments: Arguments to validate

        Raises:
            ToolValidationError: If validation fails
        """
        schema = self.get_schema().inputSchema

        for required_param in schema.required:
            if required_param not in arguments:
                raise ToolValidationError(
                    f"Missing required parameter: {required_param}",
                    details={"missing_parameter": required_param},
                )

        extra = schema.model_extra or {}
        if extra.get("additionalProperties") is False:
            unknown = sorted(set(arguments) - set(schema.properties))
            if unknown:
                raise ToolValidationError(
                    f"Unknown parameters: {', '.join(unknown)}",
                    details={"unknown_parameters": unknown},
                )

        for param_name, param_value in arguments.items():
            if param_name in schema.properties:
                self._validate_parameter(param_name, param_value, schema.properties[param_name])

    def _validate_parameter(self, name: str, value: Any, definition: ToolParameter) -> None:
        if not _matches_type(value, definition.type):
            raise ToolValidationError(
                f"Parameter '{name}' must be {_JSON_TYPES[definition.type]}",
                details={
                    "parameter": name,
                    "expected_type": definition.type,
                    "actual_type": type(value).__name__,
                },
            )

        if definition.enum and value not in definition.enum:
            raise ToolValidationError(
                f"Parameter '{name}' must be one of: {definition.enum}",
                details={
                    "parameter": name,
                    "allowed_values": definition.enum,
                    "actual_value": value,
                },
            )

    def _create_parameter(
        self,
        param_type: str,
        description: str,
        enum: Optional[List[Any]] = None,
        default: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Helper to create JSON Schema parameter definitions."""
        param: Dict[str, Any] = {
            "type": param_type,
            "description": description,
        }
        if enum is not None:
            param["enum"] = enum
        if default is not None:
            param["default"] = default
        return param

    def _create_schema(
        self,
        parameters: Dict[str, Any],
        required: List[str],
        additional_properties: bool = False,
    ) -> Tool:
        """Helper to create tool schema with proper JSON Schema format."""
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=ToolSchema(
                type="object",
                properties=parameters,
                required=required,
                additionalProperties=additional_properties,
            ),
        )


class FunctionTool(BaseTool):
    """
    Tool backed by a plain callable.

    The callable receives the arguments as keyword arguments.
    """

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        required: Optional[List[str]] = None,
        additional_properties: bool = False,
    ):
        self.name = name
        self.description = description or (func.__doc__ or "").strip()
        self.func = func
        self._schema = ToolSchema(
            type="object",
            properties=parameters or {},
            required=required or [],
            additionalProperties=additional_properties,
        )
        super().__init__()

    def get_schema(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self._schema)

    def execute(self, arguments: Dict[str, Any]) -> Any:
        return self.func(**arguments)
