"""
Unit tests for the JSON-RPC engine.
"""

import threading
from unittest.mock import MagicMock

import pytest

from mcp_server_core.protocol.jsonrpc import JsonRpcEngine, MessageKind
from mcp_server_core.protocol.schemas import MCPError, MCPInternalError, MCPValidationError

VALID_REQUEST = {"jsonrpc": "2.0", "method": "echo", "params": {"x": 1}, "id": 1}
VALID_NOTIFICATION = {"jsonrpc": "2.0", "method": "note", "params": {"x": 1}}
VALID_RESULT = {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}
VALID_ERROR = {"jsonrpc": "2.0", "id": None, "error": {"code": -32600, "message": "Invalid Request"}}

CORPUS = [
    VALID_REQUEST,
    VALID_NOTIFICATION,
    VALID_RESULT,
    VALID_ERROR,
    {"jsonrpc": "2.0", "method": "echo", "id": "abc"},
    {"jsonrpc": "2.0", "method": "echo", "id": 0},
    {"jsonrpc": "2.0", "method": "echo", "id": None},
    {"jsonrpc": "2.0", "method": "", "id": 1},
    {"jsonrpc": "1.0", "method": "echo", "id": 1},
    {"method": "echo", "id": 1},
    {"jsonrpc": "2.0", "id": 1},
    {"jsonrpc": "2.0", "id": 1, "result": 1, "error": {"code": 1, "message": "x"}},
    {"jsonrpc": "2.0", "result": 1},
    {"jsonrpc": "2.0", "method": "echo", "id": True},
    "not a message",
    None,
    [],
]


class TestClassification:
    """Test message classification predicates."""

    def test_valid_request(self, engine):
        assert engine.is_request(VALID_REQUEST)
        assert not engine.is_notification(VALID_REQUEST)
        assert not engine.is_response(VALID_REQUEST)
        assert engine.classify(VALID_REQUEST) is MessageKind.REQUEST

    def test_valid_notification(self, engine):
        assert engine.is_notification(VALID_NOTIFICATION)
        assert not engine.is_request(VALID_NOTIFICATION)
        assert engine.classify(VALID_NOTIFICATION) is MessageKind.NOTIFICATION

    def test_valid_responses(self, engine):
        assert engine.is_response(VALID_RESULT)
        assert engine.is_response(VALID_ERROR)
        assert engine.classify(VALID_RESULT) is MessageKind.RESPONSE

    def test_null_id_is_neither_request_nor_notification(self, engine):
        message = {"jsonrpc": "2.0", "method": "echo", "id": None}
        assert not engine.is_request(message)
        assert not engine.is_notification(message)
        assert not engine.validate_message(message)

    def test_response_with_both_result_and_error_is_invalid(self, engine):
        message = {"jsonrpc": "2.0", "id": 1, "result": 1, "error": {"code": 1, "message": "x"}}
        assert not engine.is_response(message)

    def test_response_with_neither_result_nor_error_is_invalid(self, engine):
        assert not engine.is_response({"jsonrpc": "2.0", "id": 1})

    def test_boolean_id_is_rejected(self, engine):
        assert not engine.is_request({"jsonrpc": "2.0", "method": "echo", "id": True})

    def test_non_dict_messages(self, engine):
        for message in ("text", None, 42, []):
            assert not engine.validate_message(message)

    @pytest.mark.parametrize("message", CORPUS)
    def test_predicates_are_mutually_exclusive(self, engine, message):
        flags = [engine.is_request(message), engine.is_notification(message), engine.is_response(message)]
        assert sum(flags) <= 1
        assert engine.validate_message(message) == any(flags)

    @pytest.mark.parametrize("message", CORPUS)
    def test_predicates_are_pure(self, engine, message):
        first = (engine.validate_message(message), engine.is_request(message),
                 engine.is_notification(message), engine.is_response(message))
        second = (engine.validate_message(message), engine.is_request(message),
                  engine.is_notification(message), engine.is_response(message))
        assert first == second


class TestHandleRequest:
    """Test request dispatch and error mapping."""

    def test_success(self, engine):
        engine.on_request("echo", lambda params: params)

        response = engine.handle_request(VALID_REQUEST)

        assert response == {"jsonrpc": "2.0", "id": 1, "result": {"x": 1}}

    @pytest.mark.parametrize("request_id", ["abc", 42, 0, 1.5])
    def test_id_is_echoed(self, engine, request_id):
        engine.on_request("echo", lambda params: "ok")

        response = engine.handle_request({"jsonrpc": "2.0", "method": "echo", "id": request_id})

        assert response["id"] == request_id
        assert response["result"] == "ok"

    def test_missing_method(self, engine):
        response = engine.handle_request({"jsonrpc": "2.0", "id": 7})

        assert response["error"]["code"] == -32600
        assert response["id"] == 7
        assert "result" not in response

    def test_missing_version_keeps_id(self, engine):
        response = engine.handle_request({"method": "test", "id": 4})

        assert response["error"]["code"] == -32600
        assert response["id"] == 4

    def test_missing_id(self, engine):
        response = engine.handle_request({"jsonrpc": "2.0", "method": "echo"})

        assert response["error"]["code"] == -32600
        assert response["id"] is None

    def test_non_dict_message(self, engine):
        response = engine.handle_request("garbage")

        assert response["error"]["code"] == -32600
        assert response["id"] is None

    def test_method_not_found(self, engine):
        response = engine.handle_request({"jsonrpc": "2.0", "method": "nope", "id": 1})

        assert response["error"]["code"] == -32601
        assert response["error"]["message"] == "Method not found: nope"

    def test_params_default_to_empty_object(self, engine):
        handler = MagicMock(return_value=None)
        engine.on_request("echo", handler)

        engine.handle_request({"jsonrpc": "2.0", "method": "echo", "id": 1})

        handler.assert_called_once_with({})

    def test_positional_params_are_passed_through(self, engine):
        engine.on_request("sum", lambda params: sum(params))

        response = engine.handle_request({"jsonrpc": "2.0", "method": "sum", "params": [1, 2], "id": 1})

        assert response["result"] == 3

    def test_scalar_params_are_invalid(self, engine):
        engine.on_request("echo", lambda params: params)

        response = engine.handle_request({"jsonrpc": "2.0", "method": "echo", "params": 5, "id": 1})

        assert response["error"]["code"] == -32602

    def test_unknown_method_wins_over_bad_params(self, engine):
        response = engine.handle_request({"jsonrpc": "2.0", "method": "nope", "params": 5, "id": 1})

        assert response["error"]["code"] == -32601

    def test_value_error_maps_to_invalid_params(self, engine):
        def handler(params):
            raise ValueError("bad argument x")

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        assert response["error"] == {"code": -32602, "message": "bad argument x"}

    def test_type_error_maps_to_invalid_params(self, engine):
        def handler(params):
            raise TypeError("wrong type")

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        assert response["error"]["code"] == -32602

    def test_mcp_error_keeps_its_code(self, engine):
        def handler(params):
            raise MCPError("custom", code=-32042, data={"hint": "x"})

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        assert response["error"] == {"code": -32042, "message": "custom", "data": {"hint": "x"}}

    def test_validation_error_subclass(self, engine):
        def handler(params):
            raise MCPValidationError("Missing required parameter: name")

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        assert response["error"]["code"] == -32602

    def test_internal_error_hides_detail(self, engine):
        def handler(params):
            raise RuntimeError("database password is hunter2")

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        assert response["error"] == {"code": -32603, "message": "Internal error"}
        assert "hunter2" not in str(response)

    def test_internal_error_detail_in_debug_mode(self, mock_logger):
        engine = JsonRpcEngine(debug=True, logger=mock_logger)

        def handler(params):
            raise RuntimeError("boom")

        engine.on_request("echo", handler)
        response = engine.handle_request(VALID_REQUEST)

        data = response["error"]["data"]
        assert response["error"]["message"] == "Internal error"
        assert data["exception_type"] == "RuntimeError"
        assert data["message"] == "boom"
        assert "Traceback" in data["traceback"]

    def test_debug_can_be_toggled(self, engine):
        assert engine.debug is False
        engine.debug = True
        assert engine.debug is True

    def test_error_is_logged(self, engine, mock_logger):
        def handler(params):
            raise RuntimeError("boom")

        engine.on_request("echo", handler)
        engine.handle_request(VALID_REQUEST)

        assert mock_logger.error.called

    def test_debug_mode_logs_sanitized_params(self, mock_logger):
        engine = JsonRpcEngine(debug=True, logger=mock_logger)
        engine.on_request("login", lambda params: True)

        engine.handle_request(
            {"jsonrpc": "2.0", "method": "login", "params": {"user": "a", "password": "p"}, "id": 1}
        )

        debug_kwargs = [c.kwargs for c in mock_logger.debug.call_args_list if "params" in c.kwargs]
        assert debug_kwargs[0]["params"] == {"user": "a", "password": "[REDACTED]"}

    def test_no_debug_logs_by_default(self, engine, mock_logger):
        engine.on_request("echo", lambda params: params)
        engine.handle_request(VALID_REQUEST)

        assert not mock_logger.debug.called


class TestHandleNotification:
    """Test notification dispatch."""

    def test_handler_is_called(self, engine):
        handler = MagicMock()
        engine.on_notification("note", handler)

        result = engine.handle_notification(VALID_NOTIFICATION)

        assert result is None
        handler.assert_called_once_with({"x": 1})

    def test_throwing_handler_is_silent(self, engine, mock_logger):
        engine.on_notification("note", MagicMock(side_effect=RuntimeError("boom")))

        result = engine.handle_notification(VALID_NOTIFICATION)

        assert result is None
        assert mock_logger.error.called
        assert mock_logger.error.call_args.kwargs["method"] == "note"

    def test_missing_handler_logs_info(self, engine, mock_logger):
        assert engine.handle_notification(VALID_NOTIFICATION) is None
        mock_logger.info.assert_called_once()

    def test_message_with_id_is_rejected(self, engine, mock_logger):
        handler = MagicMock()
        engine.on_notification("note", handler)

        result = engine.handle_notification({"jsonrpc": "2.0", "method": "note", "id": 1})

        assert result is None
        handler.assert_not_called()
        assert mock_logger.warning.called

    def test_message_with_null_id_is_rejected(self, engine):
        handler = MagicMock()
        engine.on_notification("note", handler)

        engine.handle_notification({"jsonrpc": "2.0", "method": "note", "id": None})

        handler.assert_not_called()

    def test_invalid_message(self, engine):
        assert engine.handle_notification({"method": "note"}) is None
        assert engine.handle_notification("garbage") is None


class TestHandleResponse:
    """Test response correlation."""

    def test_callback_is_invoked_once(self, engine):
        callback = MagicMock()
        engine.on_response("abc", callback)
        response = {"jsonrpc": "2.0", "id": "abc", "result": 42}

        engine.handle_response(response)
        engine.handle_response(response)

        callback.assert_called_once_with(response)

    def test_unmatched_response_is_ignored(self, engine, mock_logger):
        assert engine.handle_response({"jsonrpc": "2.0", "id": "zzz", "result": 1}) is None
        assert not mock_logger.error.called

    def test_invalid_response_is_discarded(self, engine):
        callback = MagicMock()
        engine.on_response(1, callback)

        engine.handle_response({"jsonrpc": "2.0", "id": 1})
        engine.handle_response({"jsonrpc": "2.0", "id": 1, "result": 1, "error": {}})

        callback.assert_not_called()
        assert engine.pending_response_ids() == [1]

    def test_callback_exception_is_contained(self, engine, mock_logger):
        engine.on_response(1, MagicMock(side_effect=RuntimeError("boom")))

        assert engine.handle_response({"jsonrpc": "2.0", "id": 1, "result": None}) is None
        assert mock_logger.error.called
        assert engine.pending_response_ids() == []

    def test_out_of_order_responses(self, engine):
        received = []
        engine.on_response(1, lambda r: received.append(("first", r["result"])))
        engine.on_response(2, lambda r: received.append(("second", r["result"])))

        engine.handle_response({"jsonrpc": "2.0", "id": 2, "result": "b"})
        engine.handle_response({"jsonrpc": "2.0", "id": 1, "result": "a"})

        assert received == [("second", "b"), ("first", "a")]

    def test_cancel_response(self, engine):
        callback = MagicMock()
        engine.on_response("x", callback)

        assert engine.cancel_response("x") is True
        assert engine.cancel_response("x") is False
        engine.handle_response({"jsonrpc": "2.0", "id": "x", "result": 1})

        callback.assert_not_called()

    def test_invalid_correlation_id(self, engine):
        with pytest.raises(ValueError):
            engine.on_response(None, MagicMock())

    def test_concurrent_duplicate_responses_deliver_once(self, engine):
        callback = MagicMock()
        engine.on_response("dup", callback)
        response = {"jsonrpc": "2.0", "id": "dup", "result": 1}

        threads = [threading.Thread(target=engine.handle_response, args=(response,)) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert callback.call_count == 1


class TestEnvelopes:
    """Test envelope construction."""

    def test_create_request(self, engine):
        assert engine.create_request("m", {"a": 1}, 5) == {
            "jsonrpc": "2.0",
            "method": "m",
            "params": {"a": 1},
            "id": 5,
        }

    def test_create_request_omits_empty_params(self, engine):
        assert "params" not in engine.create_request("m", {}, 1)
        assert "params" not in engine.create_request("m", None, 1)

    def test_create_request_without_id_is_notification(self, engine):
        message = engine.create_request("m")

        assert "id" not in message
        assert engine.is_notification(message)

    def test_create_request_with_zero_id(self, engine):
        assert engine.create_request("m", None, 0)["id"] == 0

    def test_success_response_has_no_error(self, engine):
        response = engine.create_success_response(None, 1)

        assert response == {"jsonrpc": "2.0", "id": 1, "result": None}
        assert engine.is_response(response)

    def test_error_response_has_no_result(self, engine):
        response = engine.create_error_response(-32600, "Invalid Request", None, 1)

        assert "result" not in response
        assert "data" not in response["error"]
        assert engine.is_response(response)

    def test_error_response_with_data(self, engine):
        response = engine.create_error_response(-32602, "bad", {"field": "x"}, "a")

        assert response["error"]["data"] == {"field": "x"}

    def test_error_response_default_message(self, engine):
        assert engine.create_error_response(-32601, id=3)["error"] == {
            "code": -32601,
            "message": "Method not found",
        }
        assert engine.create_error_response(-32099)["error"]["message"] == "Server error"

    def test_error_response_from_mcp_error(self, engine):
        response = engine.error_response(MCPInternalError(data={"exception_type": "KeyError"}), 7)

        assert response == {
            "jsonrpc": "2.0",
            "id": 7,
            "error": {"code": -32603, "message": "Internal error", "data": {"exception_type": "KeyError"}},
        }

    def test_send_request_registers_callback(self, engine):
        callback = MagicMock()

        first = engine.send_request("sampling/createMessage", {"x": 1}, callback)
        second = engine.send_request("roots/list")

        assert first["id"] != second["id"]
        assert engine.pending_response_ids() == [first["id"]]

        engine.handle_response({"jsonrpc": "2.0", "id": first["id"], "result": {}})
        callback.assert_called_once()


class TestRegistry:
    """Test handler registry operations."""

    def test_last_registration_wins(self, engine):
        engine.on_request("echo", lambda params: "first")
        engine.on_request("echo", lambda params: "second")

        assert engine.handle_request(VALID_REQUEST)["result"] == "second"
        assert engine.get_request_methods() == ["echo"]

    def test_remove_handlers(self, engine):
        engine.on_request("a", lambda params: None)
        engine.on_notification("b", lambda params: None)

        assert engine.has_request_handler("a")
        assert engine.has_notification_handler("b")
        assert engine.remove_request_handler("a") is True
        assert engine.remove_notification_handler("b") is True
        assert engine.remove_request_handler("a") is False
        assert not engine.has_request_handler("a")
        assert engine.get_notification_methods() == []
