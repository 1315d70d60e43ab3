"""
Remote RPC Client Tests

1. Session errors are recognised at word boundaries or by status 403
2. A session error triggers one re-authentication and exactly one retry
3. Concurrent session failures share a single re-authentication
4. Every other failure surfaces as RemoteCallError with operation/model
"""

import asyncio

import aiohttp
import pytest

from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.odoo_jsonrpc import parse_rpc_response
from connectors.rpc_base import (
    ConfigurationError,
    RemoteCallError,
    SessionError,
    is_session_error,
)
from core.sync.results import ErrorType, classify_error


class _CodedError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class TestSessionErrorDetection:
    """is_session_error keyword and status matching."""

    @pytest.mark.parametrize("message", [
        "HTTP 403 Forbidden",
        "Received HTTP403 from server",
        "Error: session_expired",
        "Odoo Session Expired",
        "Access Denied",
    ])
    def test_session_messages(self, message):
        assert is_session_error(RemoteCallError(message)) is True

    @pytest.mark.parametrize("message", [
        "Product #1403 not found",
        "Error 14031: validation failed",
        "HTTP 4031 unknown",
        "",
    ])
    def test_non_session_messages(self, message):
        assert is_session_error(RemoteCallError(message)) is False

    def test_status_codes(self):
        assert is_session_error(_CodedError("forbidden", 403)) is True
        assert is_session_error(_CodedError("missing", 404)) is False
        assert is_session_error(RemoteCallError("nope", status_code=403)) is True

    def test_session_error_subclass(self):
        assert is_session_error(SessionError("")) is True


class TestErrorClassification:
    """Transient vs permanent failures."""

    @pytest.mark.parametrize("error,expected", [
        (RemoteCallError("boom", status_code=502), ErrorType.TRANSIENT),
        (RemoteCallError("slow down", status_code=429), ErrorType.TRANSIENT),
        (RemoteCallError("Session expired"), ErrorType.TRANSIENT),
        (RemoteCallError("Invalid field 'x_foo'", status_code=200), ErrorType.PERMANENT),
        (RemoteCallError("Record does not exist"), ErrorType.PERMANENT),
        (ConfigurationError("unknown entity"), ErrorType.PERMANENT),
        (asyncio.TimeoutError(), ErrorType.TRANSIENT),
        (aiohttp.ClientConnectionError("reset"), ErrorType.TRANSIENT),
    ])
    def test_classify(self, error, expected):
        assert classify_error(error) == expected

    def test_detail_includes_operation_and_model(self):
        error = RemoteCallError("bad value", operation="create", model="res.partner")
        assert error.detail == "create res.partner: bad value"


class TestJsonRpcParsing:
    """parse_rpc_response error mapping."""

    def test_result(self):
        assert parse_rpc_response(200, '{"jsonrpc": "2.0", "id": 1, "result": [1, 2]}') == [1, 2]

    def test_session_expired_error(self):
        body = '{"jsonrpc": "2.0", "id": 1, "error": {"code": 100, "message": "Odoo Session Expired"}}'
        with pytest.raises(RemoteCallError) as exc_info:
            parse_rpc_response(200, body)
        assert is_session_error(exc_info.value)

    def test_http_error_status(self):
        with pytest.raises(RemoteCallError) as exc_info:
            parse_rpc_response(503, "Service Unavailable")
        assert exc_info.value.status_code == 503


class TestOdooClient:
    """Session handling and retry contract."""

    def test_first_call_authenticates(self, client, transport):
        partner_id = asyncio.run(client.create("res.partner", {"name": "Ada"}))
        assert transport.records["res.partner"][partner_id] == {"name": "Ada"}
        assert transport.auth_count == 1
        assert client.session_generation == 1

    def test_session_error_retries_once(self, client, transport):
        async def scenario():
            await client.search("res.partner", [])
            transport.expire_sessions()
            return await client.search("res.partner", [])

        assert asyncio.run(scenario()) == []
        assert transport.auth_count == 2
        assert transport.methods_called() == ["search", "search"]

    def test_failing_retry_propagates(self, client, transport):
        async def scenario():
            await client.search("res.partner", [])
            transport.expire_sessions()
            transport.fail_next("search", RemoteCallError("Session expired again"))
            await client.search("res.partner", [])

        with pytest.raises(RemoteCallError) as exc_info:
            asyncio.run(scenario())
        assert "again" in str(exc_info.value)
        assert exc_info.value.operation == "search"
        assert exc_info.value.model == "res.partner"
        # No second refresh
        assert transport.auth_count == 2

    def test_concurrent_session_failures_refresh_once(self, client, transport):
        transport.add_record("res.partner", {"name": "Ada"})

        async def scenario():
            await client.search("res.partner", [])
            transport.expire_sessions()
            return await asyncio.gather(*[
                client.search_read("res.partner", [], ["name"]) for _ in range(5)
            ])

        results = asyncio.run(scenario())
        assert all(r[0]["name"] == "Ada" for r in results)
        assert transport.auth_count == 2
        assert client.session_generation == 2

    def test_non_session_error_not_retried(self, client, transport):
        transport.fail_next("create", RemoteCallError("Invalid field 'x_foo'", status_code=200))

        with pytest.raises(RemoteCallError) as exc_info:
            asyncio.run(client.create("res.partner", {"x_foo": 1}))
        assert exc_info.value.detail == "create res.partner: Invalid field 'x_foo'"
        assert transport.auth_count == 1
        assert "res.partner" not in transport.records or not transport.records["res.partner"]

    def test_generic_exception_is_wrapped(self, client, transport):
        transport.fail_next("*", ValueError("unexpected payload"))

        with pytest.raises(RemoteCallError) as exc_info:
            asyncio.run(client.read("res.partner", [1]))
        assert "ValueError" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_empty_model_rejected(self, client, transport):
        with pytest.raises(ConfigurationError):
            asyncio.run(client.call("search", ""))
        assert transport.auth_count == 0

    def test_create_rejects_invalid_result(self, transport):
        class ZeroTransport(type(transport)):
            async def execute_kw(self, session, model, method, args, kwargs=None):
                return False

        client = OdooClient(ZeroTransport())
        with pytest.raises(RemoteCallError):
            asyncio.run(client.create("res.partner", {"name": "x"}))

    def test_create_accepts_list_result(self, transport):
        class ListTransport(type(transport)):
            async def execute_kw(self, session, model, method, args, kwargs=None):
                return [77]

        client = OdooClient(ListTransport())
        assert asyncio.run(client.create("res.partner", {"name": "x"})) == 77

    def test_domain_tuples_become_lists(self, client, transport):
        asyncio.run(client.search("res.partner", [("email", "=", "a@b.c")], limit=1))
        model, method, args, kwargs = transport.calls[-1]
        assert args == [[["email", "=", "a@b.c"]]]
        assert kwargs == {"limit": 1}

    def test_close_closes_transport(self, client, transport):
        asyncio.run(client.close())
        assert transport.closed
        assert not client.is_connected
