"""
Message processing on top of the JSON-RPC engine.

Routes decoded messages (single or batched) to the engine's three entry
points and turns raw payloads into serialized replies for transports.
"""

import json
from typing import Any, Dict, List, Optional, Union

import structlog

from .jsonrpc import JsonRpcEngine, MessageKind, is_valid_id
from .schemas import INTERNAL_ERROR, INVALID_REQUEST, MCPParseError

logger = structlog.get_logger(__name__)

Reply = Optional[Union[Dict[str, Any], List[Dict[str, Any]]]]


class MessageProcessor:
    """
    Dispatches decoded JSON-RPC messages to a ``JsonRpcEngine``.

    ``handle`` and ``handle_raw`` never raise.
    """

    def __init__(self, engine: JsonRpcEngine):
        self.engine = engine

    def handle(self, message: Any) -> Reply:
        """
        Process one decoded message or a batch.

        Args:
            message: A decoded JSON value

        Returns:
            The response, a list of responses for a batch, or None when
            nothing must be sent back
        """
        try:
            if isinstance(message, list):
                return self._handle_batch(message)
            return self._handle_single(message)
        except Exception as e:
            logger.error("Message processing error", error=str(e), exc_info=True)
            return self.engine.create_error_response(INTERNAL_ERROR)

    def handle_raw(self, payload: Union[str, bytes]) -> Optional[str]:
        """
        Decode a JSON payload, process it and encode the reply.

        Undecodable payloads are answered with a parse error and a null id.
        """
        try:
            message = json.loads(payload)
        except ValueError as e:
            logger.warning("Invalid JSON received", error=str(e))
            reply: Reply = self.engine.error_response(MCPParseError())
        else:
            reply = self.handle(message)

        if reply is None:
            return None
        return json.dumps(reply, separators=(",", ":"))

    def _handle_batch(self, messages: List[Any]) -> Reply:
        if not messages:
            logger.warning("Empty batch received")
            return self.engine.create_error_response(INVALID_REQUEST)

        responses = []
        for message in messages:
            response = self._handle_single(message)
            if response is not None:
                responses.append(response)

        return responses or None

    def _handle_single(self, message: Any) -> Optional[Dict[str, Any]]:
        kind = self.engine.classify(message)

        if kind is MessageKind.REQUEST:
            return self.engine.handle_request(message)

        if kind is MessageKind.NOTIFICATION:
            self.engine.handle_notification(message)
            return None

        if kind is MessageKind.RESPONSE:
            self.engine.handle_response(message)
            return None

        if isinstance(message, dict) and "method" not in message and (
            "result" in message or "error" in message
        ):
            logger.warning("Discarding malformed response", request_id=message.get("id"))
            return None

        # handle_request produces the Invalid Request envelope with the right id
        if isinstance(message, dict) and is_valid_id(message.get("id")):
            return self.engine.handle_request(message)

        logger.warning("Invalid JSON-RPC message", message_type=type(message).__name__)
        return self.engine.create_error_response(INVALID_REQUEST)
