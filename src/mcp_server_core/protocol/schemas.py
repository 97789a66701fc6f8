"""
MCP Protocol error codes, exceptions and metadata structures.

Defines the JSON-RPC 2.0 error-code table used by the engine, the
exception hierarchy raised by handlers, and the pydantic models that
describe tools, resources and prompts on the wire.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

# JSON-RPC 2.0 reserved error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000

ERROR_MESSAGES: Dict[int, str] = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid Request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    SERVER_ERROR: "Server error",
}


class MCPError(Exception):
    """Base exception for MCP protocol errors."""

    def __init__(
        self,
        message: str,
        code: int = SERVER_ERROR,
        data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to JSON-RPC error format."""
        error_dict = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            error_dict["data"] = self.data
        return error_dict


class MCPParseError(MCPError):
    """Error for payloads that are not valid JSON."""

    def __init__(self, message: str = "Parse error", data: Optional[Any] = None):
        super().__init__(message, code=PARSE_ERROR, data=data)


class MCPInvalidRequestError(MCPError):
    """Error for malformed envelopes or requests not allowed in the session state."""

    def __init__(self, message: str = "Invalid Request", data: Optional[Any] = None):
        super().__init__(message, code=INVALID_REQUEST, data=data)


class MCPValidationError(MCPError):
    """Error for invalid request parameters."""

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message, code=INVALID_PARAMS, data=data)


class MCPMethodNotFoundError(MCPError):
    """Error for unknown method calls."""

    def __init__(self, method: str):
        super().__init__(f"Method not found: {method}", code=METHOD_NOT_FOUND)
        self.method = method


class MCPInternalError(MCPError):
    """Error for internal server issues."""

    def __init__(self, message: str = "Internal error", data: Optional[Any] = None):
        super().__init__(message, code=INTERNAL_ERROR, data=data)


# Client/server identification
class ClientInfo(BaseModel):
    """Information about the MCP client."""

    name: str = Field(description="Client name")
    version: str = Field(description="Client version")


class ServerInfo(BaseModel):
    """Information about the MCP server."""

    name: str = Field(default="mcp-server-core", description="Server name")
    version: str = Field(default="0.1.0", description="Server version")


class InitializeParams(BaseModel):
    """Parameters of the ``initialize`` request."""

    model_config = ConfigDict(extra="allow")

    protocolVersion: Optional[str] = Field(default=None, description="Requested version")
    capabilities: Any = Field(default_factory=dict, description="Client capabilities")
    clientInfo: Optional[ClientInfo] = Field(default=None, description="Client identity")

    @property
    def client_capabilities(self) -> Dict[str, Any]:
        """Client capabilities, tolerating non-object values."""
        return self.capabilities if isinstance(self.capabilities, dict) else {}


# Tool structures
class ToolParameter(BaseModel):
    """Tool parameter definition."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(description="Parameter type")
    description: Optional[str] = Field(default=None, description="Parameter description")
    enum: Optional[List[Any]] = Field(default=None, description="Allowed values")
    default: Optional[Any] = Field(default=None, description="Default value")


class ToolSchema(BaseModel):
    """Tool input schema definition."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="object", description="Schema type")
    properties: Dict[str, ToolParameter] = Field(
        default_factory=dict, description="Tool parameters"
    )
    required: List[str] = Field(default_factory=list, description="Required parameters")


class Tool(BaseModel):
    """Tool definition."""

    name: str = Field(description="Tool name")
    description: str = Field(default="", description="Tool description")
    inputSchema: ToolSchema = Field(default_factory=ToolSchema, description="Input schema")

    def to_dict(self) -> Dict[str, Any]:
        """Wire form used by ``tools/list``."""
        return self.model_dump(exclude_none=True)


# Resource structures
class Resource(BaseModel):
    """Concrete resource definition."""

    uri: str = Field(description="Resource URI")
    name: str = Field(description="Resource name")
    description: str = Field(default="", description="Resource description")
    mimeType: str = Field(default="text/plain", description="Content MIME type")


class ResourceTemplate(BaseModel):
    """Parameterised resource definition."""

    uriTemplate: str = Field(description="URI template with {param} segments")
    name: str = Field(description="Resource name")
    description: str = Field(default="", description="Resource description")
    mimeType: str = Field(default="text/plain", description="Content MIME type")


# Prompt structures
class PromptArgument(BaseModel):
    """Prompt argument definition."""

    name: str = Field(description="Argument name")
    description: Optional[str] = Field(default=None, description="Argument description")
    required: bool = Field(default=False, description="Whether the argument is required")


class Prompt(BaseModel):
    """Prompt definition."""

    name: str = Field(description="Prompt name")
    description: str = Field(default="", description="Prompt description")
    arguments: List[PromptArgument] = Field(default_factory=list, description="Arguments")

    def to_dict(self) -> Dict[str, Any]:
        """Wire form used by ``prompts/list``."""
        return self.model_dump(exclude_none=True)


class PromptMessage(BaseModel):
    """A single message produced by ``prompts/get``."""

    role: str = Field(default="user", description="Message role")
    content: Dict[str, Any] = Field(description="Message content block")
