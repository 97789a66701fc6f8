"""
JSON-RPC 2.0 engine for the MCP server core.

Classifies and validates decoded JSON-RPC messages, dispatches them to
registered handlers and builds JSON-RPC 2.0 response envelopes. The
engine is synchronous: one call per inbound message, on whatever thread
the transport delivers it on.
"""

import itertools
import threading
import traceback
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from ..utils.logging import sanitize_for_logging
from .schemas import (
    ERROR_MESSAGES,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    SERVER_ERROR,
    MCPError,
    MCPInternalError,
    MCPMethodNotFoundError,
)

MessageId = Union[str, int, float]
RequestHandler = Callable[[Any], Any]
NotificationHandler = Callable[[Any], None]
ResponseCallback = Callable[[Dict[str, Any]], None]


class MessageKind(str, Enum):
    """The three JSON-RPC 2.0 message variants."""

    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"


def is_valid_id(value: Any, allow_null: bool = False) -> bool:
    """Check that a value may be used as a JSON-RPC id."""
    if value is None:
        return allow_null
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int, float))


def _has_version(message: Any) -> bool:
    return isinstance(message, dict) and message.get("jsonrpc") == JSONRPC_VERSION


def _has_valid_method(message: Dict[str, Any]) -> bool:
    method = message.get("method")
    return isinstance(method, str) and method != ""


class JsonRpcEngine:
    """
    JSON-RPC 2.0 message handler.

    Owns the request and notification handler tables (keyed by method
    name) and the pending-response table (keyed by correlation id). The
    three ``handle_*`` entry points never raise.
    """

    def __init__(self, debug: bool = False, logger: Optional[Any] = None):
        self._debug = debug
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.RLock()
        self._request_handlers: Dict[str, RequestHandler] = {}
        self._notification_handlers: Dict[str, NotificationHandler] = {}
        self._response_callbacks: Dict[Any, ResponseCallback] = {}
        self._id_counter = itertools.count(1)

    # Entry points

    def handle_request(self, message: Any) -> Dict[str, Any]:
        """
        Process a JSON-RPC request and produce its response envelope.

        Args:
            message: Decoded request message

        Returns:
            Success or error response carrying the request's id
            (``None`` when no valid id could be extracted)
        """
        request_id = None
        try:
            if isinstance(message, dict) and is_valid_id(message.get("id")):
                request_id = message["id"]

            if not self.is_request(message):
                self._logger.warning(
                    "Invalid JSON-RPC request",
                    request_id=request_id,
                    reason=self._describe_invalid_request(message),
                )
                return self.create_error_response(INVALID_REQUEST, id=request_id)

            method = message["method"]
            with self._lock:
                handler = self._request_handlers.get(method)

            if handler is None:
                self._logger.warning(
                    "Method not found",
                    method=method,
                    request_id=request_id,
                )
                return self.error_response(MCPMethodNotFoundError(method), request_id)

            params = message.get("params")
            if params is not None and not isinstance(params, (dict, list)):
                return self.create_error_response(
                    INVALID_PARAMS,
                    "Invalid params: parameters must be an object or an array",
                    None,
                    request_id,
                )
            if params is None:
                params = {}

            if self._debug:
                self._logger.debug(
                    "Processing JSON-RPC request",
                    method=method,
                    request_id=request_id,
                    params=sanitize_for_logging(params),
                )

            return self._invoke_request_handler(handler, method, params, request_id)

        except Exception as e:
            self._logger.error(
                "JSON-RPC request processing error",
                request_id=request_id,
                error=str(e),
                exc_info=True,
            )
            return self.error_response(MCPInternalError(data=self._error_detail(e)), request_id)

    def handle_notification(self, message: Any) -> None:
        """
        Process a JSON-RPC notification. Never produces a response.

        Args:
            message: Decoded notification message
        """
        method = message.get("method") if isinstance(message, dict) else None
        try:
            if not self.is_notification(message):
                if isinstance(message, dict) and "id" in message:
                    self._logger.warning(
                        "Message with an id is not a notification",
                        method=method,
                        request_id=message.get("id"),
                    )
                else:
                    self._logger.warning("Invalid notification format", method=method)
                return None

            params = message.get("params")
            if params is None:
                params = {}

            if self._debug:
                self._logger.debug(
                    "Processing JSON-RPC notification",
                    method=method,
                    params=sanitize_for_logging(params),
                )

            with self._lock:
                handler = self._notification_handlers.get(method)

            if handler is None:
                self._logger.info("No handler for notification", method=method)
                return None

            handler(params)

        except Exception as e:
            self._logger.error(
                "Notification handler error",
                method=method,
                error=str(e),
                exc_info=True,
            )
        return None

    def handle_response(self, message: Any) -> None:
        """
        Deliver a JSON-RPC response to the callback waiting on its id.

        The callback is removed before it runs, so each id is delivered
        at most once. Responses nobody is waiting on are discarded.

        Args:
            message: Decoded response message
        """
        response_id = message.get("id") if isinstance(message, dict) else None
        try:
            if not self.is_response(message):
                self._logger.warning("Invalid response format", request_id=response_id)
                return None

            if self._debug:
                self._logger.debug(
                    "Processing JSON-RPC response",
                    request_id=response_id,
                    has_result="result" in message,
                    has_error="error" in message,
                )

            with self._lock:
                callback = self._response_callbacks.pop(response_id, None)

            if callback is None:
                self._logger.debug("No pending callback for response", request_id=response_id)
                return None

            callback(message)

        except Exception as e:
            self._logger.error(
                "Response handler error",
                request_id=response_id,
                error=str(e),
                exc_info=True,
            )
        return None

    # Envelope builders

    def create_request(
        self,
        method: str,
        params: Optional[Union[Dict[str, Any], List[Any]]] = None,
        id: Optional[MessageId] = None,
    ) -> Dict[str, Any]:
        """
        Create a request envelope, or a notification when ``id`` is None.

        Empty params are omitted entirely rather than sent as null/{}.
        """
        request: Dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
        }
        if params:
            request["params"] = params
        if id is not None:
            request["id"] = id
        return request

    def create_success_response(self, result: Any, id: Optional[MessageId]) -> Dict[str, Any]:
        """Create a success response envelope."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "result": result,
        }

    def create_error_response(
        self,
        code: int,
        message: Optional[str] = None,
        data: Optional[Any] = None,
        id: Optional[MessageId] = None,
    ) -> Dict[str, Any]:
        """
        Create an error response envelope.

        Without a message, the standard text for ``code`` is used.
        """
        if message is None:
            message = ERROR_MESSAGES.get(code, ERROR_MESSAGES[SERVER_ERROR])
        error: Dict[str, Any] = {
            "code": code,
            "message": message,
        }
        if data is not None:
            error["data"] = data
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "error": error,
        }

    def error_response(self, error: MCPError, id: Optional[MessageId] = None) -> Dict[str, Any]:
        """Create an error response envelope from an ``MCPError``."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "error": error.to_dict(),
        }

    def send_request(
        self,
        method: str,
        params: Optional[Union[Dict[str, Any], List[Any]]] = None,
        callback: Optional[ResponseCallback] = None,
    ) -> Dict[str, Any]:
        """
        Build an outbound request with a fresh correlation id.

        When a callback is given it is registered for the response. The
        caller is responsible for delivering the envelope and for any
        timeout (see ``cancel_response``).
        """
        request_id = next(self._id_counter)
        if callback is not None:
            self.on_response(request_id, callback)
        return self.create_request(method, params, request_id)

    # Classification

    def classify(self, message: Any) -> Optional[MessageKind]:
        """Return the message variant, or None for an invalid message."""
        if self.is_request(message):
            return MessageKind.REQUEST
        if self.is_notification(message):
            return MessageKind.NOTIFICATION
        if self.is_response(message):
            return MessageKind.RESPONSE
        return None

    def validate_message(self, message: Any) -> bool:
        """Check whether a message is a valid JSON-RPC 2.0 message of any kind."""
        return self.classify(message) is not None

    def is_request(self, message: Any) -> bool:
        """Check if a message is a valid JSON-RPC 2.0 request."""
        return (
            _has_version(message)
            and _has_valid_method(message)
            and is_valid_id(message.get("id"))
        )

    def is_notification(self, message: Any) -> bool:
        """Check if a message is a valid JSON-RPC 2.0 notification."""
        return _has_version(message) and _has_valid_method(message) and "id" not in message

    def is_response(self, message: Any) -> bool:
        """Check if a message is a valid JSON-RPC 2.0 response."""
        if not _has_version(message) or "method" in message:
            return False
        if "id" not in message or not is_valid_id(message["id"], allow_null=True):
            return False
        return ("result" in message) != ("error" in message)

    # Handler registries

    def on_request(self, method: str, handler: RequestHandler) -> None:
        """Register a request handler, replacing any existing one."""
        with self._lock:
            self._request_handlers[method] = handler

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a notification handler, replacing any existing one."""
        with self._lock:
            self._notification_handlers[method] = handler

    def on_response(self, id: MessageId, callback: ResponseCallback) -> None:
        """Register a one-shot callback for the response with the given id."""
        if not is_valid_id(id):
            raise ValueError(f"Invalid correlation id: {id!r}")
        with self._lock:
            self._response_callbacks[id] = callback

    def cancel_response(self, id: MessageId) -> bool:
        """Drop a pending response callback, e.g. when the caller times out."""
        with self._lock:
            return self._response_callbacks.pop(id, None) is not None

    def remove_request_handler(self, method: str) -> bool:
        with self._lock:
            return self._request_handlers.pop(method, None) is not None

    def remove_notification_handler(self, method: str) -> bool:
        with self._lock:
            return self._notification_handlers.pop(method, None) is not None

    def has_request_handler(self, method: str) -> bool:
        with self._lock:
            return method in self._request_handlers

    def has_notification_handler(self, method: str) -> bool:
        with self._lock:
            return method in self._notification_handlers

    def get_request_methods(self) -> List[str]:
        with self._lock:
            return list(self._request_handlers)

    def get_notification_methods(self) -> List[str]:
        with self._lock:
            return list(self._notification_handlers)

    def pending_response_ids(self) -> List[Any]:
        with self._lock:
            return list(self._response_callbacks)

    @property
    def debug(self) -> bool:
        """Whether internal error detail and verbose logs are emitted."""
        return self._debug

    @debug.setter
    def debug(self, value: bool) -> None:
        self._debug = bool(value)

    # Internals

    def _invoke_request_handler(
        self,
        handler: RequestHandler,
        method: str,
        params: Any,
        request_id: MessageId,
    ) -> Dict[str, Any]:
        try:
            result = handler(params)

        except MCPError as e:
            self._logger.warning(
                "Protocol error in request handler",
                method=method,
                request_id=request_id,
                error_code=e.code,
                error_message=e.message,
            )
            return self.error_response(e, request_id)

        except (ValueError, TypeError) as e:
            self._logger.warning(
                "Invalid params in request handler",
                method=method,
                request_id=request_id,
                error=str(e),
            )
            return self.create_error_response(
                INVALID_PARAMS, str(e) or "Invalid params", None, request_id
            )

        except Exception as e:
            self._logger.error(
                "Request handler error",
                method=method,
                request_id=request_id,
                error=str(e),
                exc_info=True,
            )
            return self.error_response(MCPInternalError(data=self._error_detail(e)), request_id)

        if self._debug:
            self._logger.debug("Request handled", method=method, request_id=request_id)

        return self.create_success_response(result, request_id)

    def _error_detail(self, error: Exception) -> Optional[Dict[str, Any]]:
        if not self._debug:
            return None
        return {
            "exception_type": type(error).__name__,
            "message": str(error),
            "traceback": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }

    @staticmethod
    def _describe_invalid_request(message: Any) -> str:
        if not isinstance(message, dict):
            return "message is not an object"
        if message.get("jsonrpc") != JSONRPC_VERSION:
            return "jsonrpc must be '2.0'"
        if not _has_valid_method(message):
            return "method must be a non-empty string"
        return "id must be a string or number"
