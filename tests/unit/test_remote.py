"""Tests for remote rule checkers."""

import json

import httpx
import pytest

from form_engine.exceptions import RemoteValidationError
from form_engine.runtime.remote import HttpRemoteRuleChecker, InProcessRemoteChecker
from form_engine.schemas.results import RuleOutcome, RuleStatus


class TestInProcessRemoteChecker:
    @pytest.mark.asyncio
    async def test_handler_result_shapes(self):
        checker = InProcessRemoteChecker(
            {
                "ok": lambda field_id, value, data: True,
                "none": lambda field_id, value, data: None,
                "bad": lambda field_id, value, data: False,
                "message": lambda field_id, value, data: "Taken",
                "outcome": lambda field_id, value, data: RuleOutcome.pending("later"),
            }
        )
        assert (await checker.check("ok", "f", 1, {})).status == RuleStatus.VALID
        assert (await checker.check("none", "f", 1, {})).status == RuleStatus.VALID
        assert (await checker.check("bad", "f", 1, {})).status == RuleStatus.INVALID
        message = await checker.check("message", "f", 1, {})
        assert message.status == RuleStatus.INVALID and message.message == "Taken"
        assert (await checker.check("outcome", "f", 1, {})).message == "later"

    @pytest.mark.asyncio
    async def test_async_handler(self):
        async def handler(field_id, value, data):
            return value != "taken"

        checker = InProcessRemoteChecker()
        checker.register("unique", handler)
        assert (await checker.check("unique", "f", "taken", {})).status == RuleStatus.INVALID

    @pytest.mark.asyncio
    async def test_unknown_rule_is_pending(self):
        outcome = await InProcessRemoteChecker().check("missing", "f", 1, {})
        assert outcome.status == RuleStatus.PENDING

    @pytest.mark.asyncio
    async def test_handler_exception_wrapped(self):
        def handler(field_id, value, data):
            raise ConnectionError("db offline")

        checker = InProcessRemoteChecker({"unique": handler})
        with pytest.raises(RemoteValidationError) as exc_info:
            await checker.check("unique", "username", "x", {})
        assert exc_info.value.reason == "db offline"
        assert isinstance(exc_info.value.original_error, ConnectionError)
        assert str(exc_info.value) == "Remote rule 'unique' failed for field 'username': db offline"


def _checker(handler) -> HttpRemoteRuleChecker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRemoteRuleChecker("https://rules.example.com/", client=client)


class TestHttpRemoteRuleChecker:
    @pytest.mark.asyncio
    async def test_posts_check_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "invalid", "message": "Taken"})

        checker = _checker(handler)
        outcome = await checker.check("unique", "username", "admin", {"username": "admin"})

        assert seen["url"] == "https://rules.example.com/rules/unique/check"
        assert seen["body"] == {
            "rule_id": "unique",
            "field_id": "username",
            "value": "admin",
            "data": {"username": "admin"},
        }
        assert outcome == RuleOutcome.invalid("Taken")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        checker = _checker(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(RemoteValidationError, match="HTTPStatusError"):
            await checker.check("unique", "username", "x", {})

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        checker = _checker(handler)
        with pytest.raises(RemoteValidationError, match="ConnectError"):
            await checker.check("unique", "username", "x", {})

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        checker = _checker(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RemoteValidationError, match="Invalid JSON"):
            await checker.check("unique", "username", "x", {})

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        checker = _checker(lambda request: httpx.Response(200, json={"status": "maybe"}))
        with pytest.raises(RemoteValidationError, match="Unexpected response shape"):
            await checker.check("unique", "username", "x", {})

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        checker = HttpRemoteRuleChecker("https://rules.example.com", client=client)
        await checker.aclose()
        assert client.is_closed is False
        await client.aclose()
