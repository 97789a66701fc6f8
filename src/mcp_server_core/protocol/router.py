"""
MCP request routing.

Binds the MCP protocol methods to the component registry and the
capability negotiator, and tracks the session lifecycle
(Uninitialized, Initialized, Closed).
"""

import base64
import json
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..components.registry import ComponentRegistry
from ..components.tools import ToolResult, ToolValidationError
from .capabilities import CapabilityNegotiator
from .jsonrpc import JsonRpcEngine
from .schemas import (
    InitializeParams,
    MCPInvalidRequestError,
    MCPValidationError,
    ServerInfo,
)

logger = structlog.get_logger(__name__)

DEFAULT_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ["2024-11-05", "2025-03-26", "2025-06-18"]

NotificationSender = Callable[[Dict[str, Any]], None]


class SessionState(str, Enum):
    """Lifecycle of an MCP session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


def encode_cursor(offset: int) -> str:
    """Encode a list offset as an opaque pagination cursor."""
    return base64.urlsafe_b64encode(json.dumps({"offset": offset}).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: Any) -> int:
    """
    Decode a pagination cursor.

    Raises:
        MCPValidationError: If the cursor was not produced by ``encode_cursor``
    """
    try:
        if not isinstance(cursor, str):
            raise ValueError("cursor must be a string")
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
        offset = payload["offset"] if isinstance(payload, dict) else None
        if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
            raise ValueError("cursor offset must be a non-negative integer")
        return offset
    except (ValueError, KeyError) as e:
        raise MCPValidationError("Invalid cursor", data={"cursor": cursor}) from e


class RequestRouter:
    """
    Routes MCP protocol methods to registry lookups and execution.

    The router registers its handlers into the engine on construction.
    One router serves one session.
    """

    def __init__(
        self,
        engine: JsonRpcEngine,
        registry: ComponentRegistry,
        negotiator: Optional[CapabilityNegotiator] = None,
        server_info: Optional[ServerInfo] = None,
        server_capabilities: Optional[Dict[str, Any]] = None,
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        supported_versions: Optional[List[str]] = None,
        strict_initialization: bool = True,
        page_size: Optional[int] = None,
        notification_sender: Optional[NotificationSender] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.negotiator = negotiator or CapabilityNegotiator()
        self.server_info = server_info or ServerInfo()
        self.server_capabilities = server_capabilities or {}
        self.protocol_version = protocol_version
        self.supported_versions = list(supported_versions or SUPPORTED_PROTOCOL_VERSIONS)
        self.strict_initialization = strict_initialization
        self.page_size = page_size
        self._notification_sender = notification_sender

        self._lock = threading.RLock()
        self._state = SessionState.UNINITIALIZED
        self._negotiated: Optional[Dict[str, Any]] = None
        self._session_version: Optional[str] = None
        self._client_info: Optional[Dict[str, Any]] = None

        self._register_handlers()
        self.registry.add_listener(self._on_registry_change)

    def _register_handlers(self) -> None:
        handlers = {
            "initialize": self.handle_initialize,
            "ping": self.handle_ping,
            "tools/list": self.handle_list_tools,
            "tools/call": self.handle_call_tool,
            "resources/list": self.handle_list_resources,
            "resources/templates/list": self.handle_list_resource_templates,
            "resources/read": self.handle_read_resource,
            "prompts/list": self.handle_list_prompts,
            "prompts/get": self.handle_get_prompt,
        }
        for method, handler in handlers.items():
            self.engine.on_request(method, handler)

        self.engine.on_notification("notifications/initialized", self.handle_initialized)
        # Pre-2025 clients send the bare name
        self.engine.on_notification("initialized", self.handle_initialized)

    # Session state

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def negotiated_capabilities(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._negotiated

    @property
    def session_protocol_version(self) -> Optional[str]:
        with self._lock:
            return self._session_version

    @property
    def client_info(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._client_info

    def set_notification_sender(self, sender: Optional[NotificationSender]) -> None:
        self._notification_sender = sender

    def close(self) -> None:
        """Close the session; every later request is rejected."""
        with self._lock:
            self._state = SessionState.CLOSED
        logger.info("Session closed")

    def reset(self) -> None:
        """Return to Uninitialized, e.g. after the client disconnects."""
        with self._lock:
            self._state = SessionState.UNINITIALIZED
            self._negotiated = None
            self._session_version = None
            self._client_info = None
        logger.info("Session reset")

    def _require_initialized(self, method: str) -> None:
        with self._lock:
            state = self._state

        if state is SessionState.CLOSED:
            raise MCPInvalidRequestError("Session is closed")

        if state is SessionState.UNINITIALIZED:
            if self.strict_initialization:
                raise MCPInvalidRequestError(
                    f"Session not initialized: '{method}' requires a prior initialize request"
                )
            logger.warning("Request before initialize; auto-initializing session", method=method)
            self._establish_session({}, self.protocol_version, None)

    def _establish_session(
        self,
        client_capabilities: Dict[str, Any],
        version: str,
        client_info: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        negotiated = self.negotiator.negotiate(client_capabilities, self.server_capabilities)

        if not self.negotiator.validate_capabilities(negotiated):
            raise MCPValidationError(
                "Negotiated capabilities do not satisfy server requirements",
                data={"capabilities": negotiated},
            )

        with self._lock:
            self._state = SessionState.INITIALIZED
            self._negotiated = negotiated
            self._session_version = version
            self._client_info = client_info

        return negotiated

    def _select_protocol_version(self, requested: Optional[str]) -> str:
        if requested in self.supported_versions:
            return requested

        logger.warning(
            "Unsupported protocol version requested",
            requested_version=requested,
            server_version=self.protocol_version,
        )
        return self.protocol_version

    # Lifecycle methods

    def handle_initialize(self, params: Any) -> Dict[str, Any]:
        """
        Handle ``initialize``: negotiate capabilities and open the session.

        Returns:
            ``{protocolVersion, capabilities, serverInfo}``
        """
        params = self._params_dict(params)

        with self._lock:
            state = self._state

        if state is SessionState.CLOSED:
            raise MCPInvalidRequestError("Session is closed")
        if state is SessionState.INITIALIZED and self.strict_initialization:
            raise MCPInvalidRequestError("Session already initialized")

        request = InitializeParams.model_validate(params)
        version = self._select_protocol_version(request.protocolVersion)
        client_info = request.clientInfo.model_dump() if request.clientInfo else None

        negotiated = self._establish_session(request.client_capabilities, version, client_info)

        logger.info(
            "Session initialized",
            protocol_version=version,
            client_name=client_info["name"] if client_info else None,
            capabilities=list(negotiated),
            reinitialized=state is SessionState.INITIALIZED,
        )

        return {
            "protocolVersion": version,
            "capabilities": negotiated,
            "serverInfo": self.server_info.model_dump(),
        }

    def handle_initialized(self, params: Any) -> None:
        if self.state is not SessionState.INITIALIZED:
            logger.warning("Received initialized notification before initialize")
            return
        logger.info("Client initialization complete")

    def handle_ping(self, params: Any) -> Dict[str, Any]:
        if self.state is SessionState.CLOSED:
            raise MCPInvalidRequestError("Session is closed")
        return {}

    # Tools

    def handle_list_tools(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("tools/list")
        return self._paged("tools", self.registry.list_tools(), self._params_dict(params))

    def handle_call_tool(self, params: Any) -> Dict[str, Any]:
        """
        Handle ``tools/call``.

        Unknown tools and tool execution failures are reported in-band
        with ``isError: true``; argument schema violations are protocol
        errors.
        """
        self._require_initialized("tools/call")
        params = self._params_dict(params)

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise MCPValidationError("Missing required parameter: name")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise MCPValidationError("Tool arguments must be an object")

        tool = self.registry.get_tool(name)
        if tool is None:
            logger.warning("Tool not found", tool_name=name)
            return ToolResult.error(f"Tool not found: {name}", "tool_not_found").to_dict()

        try:
            return tool.run(arguments, debug=self.engine.debug)
        except ToolValidationError as e:
            raise MCPValidationError(e.message, data=e.details or None) from e

    # Resources

    def handle_list_resources(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("resources/list")
        return self._paged("resources", self.registry.list_resources(), self._params_dict(params))

    def handle_list_resource_templates(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("resources/templates/list")
        return self._paged(
            "resourceTemplates",
            self.registry.list_resource_templates(),
            self._params_dict(params),
        )

    def handle_read_resource(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("resources/read")
        params = self._params_dict(params)

        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise MCPValidationError("Missing required parameter: uri")

        found = self.registry.find_resource(uri)
        if found is None:
            raise MCPValidationError(f"Resource not found: {uri}", data={"uri": uri})

        resource, uri_params = found
        return resource.read_contents(uri, uri_params)

    # Prompts

    def handle_list_prompts(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("prompts/list")
        return self._paged("prompts", self.registry.list_prompts(), self._params_dict(params))

    def handle_get_prompt(self, params: Any) -> Dict[str, Any]:
        self._require_initialized("prompts/get")
        params = self._params_dict(params)

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise MCPValidationError("Missing required parameter: name")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise MCPValidationError("Prompt arguments must be an object")

        prompt = self.registry.get_prompt(name)
        if prompt is None:
            raise MCPValidationError(f"Prompt not found: {name}", data={"name": name})

        return prompt.render(arguments)

    # Helpers

    @staticmethod
    def _params_dict(params: Any) -> Dict[str, Any]:
        if params is None:
            return {}
        if not isinstance(params, dict):
            raise MCPValidationError("params must be an object")
        return params

    def _paged(self, key: str, items: List[Dict[str, Any]], params: Dict[str, Any]) -> Dict[str, Any]:
        page, next_cursor = self._paginate(items, params)
        result: Dict[str, Any] = {key: page}
        if next_cursor is not None:
            result["nextCursor"] = next_cursor
        return result

    def _paginate(
        self, items: List[Dict[str, Any]], params: Dict[str, Any]
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        limit = params.get("limit")
        if limit is not None and (
            not isinstance(limit, int) or isinstance(limit, bool) or limit < 1
        ):
            raise MCPValidationError("limit must be a positive integer", data={"limit": limit})

        cursor = params.get("cursor")
        offset = decode_cursor(cursor) if cursor is not None else 0

        page_size = limit or self.page_size
        if page_size is None:
            return items[offset:], None

        end = offset + page_size
        next_cursor = encode_cursor(end) if end < len(items) else None
        return items[offset:end], next_cursor

    def _on_registry_change(self, kind: str) -> None:
        with self._lock:
            state = self._state
            negotiated = self._negotiated

        if state is not SessionState.INITIALIZED or self._notification_sender is None:
            return
        if not self.negotiator.has_feature(negotiated, kind, "listChanged"):
            return

        notification = self.engine.create_request(f"notifications/{kind}/list_changed")
        logger.debug("Sending list changed notification", method=notification["method"])
        self._notification_sender(notification)
