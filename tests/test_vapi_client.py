"""Tests for the Vapi REST client against a mocked transport."""

import json

import httpx
import pytest

from triage_api.services.vapi_client import VapiClient, VapiClientError


def make_client(handler):
    return VapiClient(
        base_url="https://vapi.test/",
        api_key="secret-key",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_call_sends_bearer_token():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": "call-1", "status": "ended"})

    call = await make_client(handler).get_call("call-1")

    assert call["status"] == "ended"
    assert seen == {"method": "GET", "url": "https://vapi.test/call/call-1", "auth": "Bearer secret-key"}


@pytest.mark.asyncio
async def test_update_call_patches_metadata():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "call-1", **seen["body"]})

    await make_client(handler).update_call("call-1", {"metadata": {"prescreeningStatus": "failed"}})

    assert seen["method"] == "PATCH"
    assert seen["body"] == {"metadata": {"prescreeningStatus": "failed"}}


@pytest.mark.asyncio
async def test_http_error_status_raises_client_error():
    client = make_client(lambda request: httpx.Response(404, json={"message": "not found"}))

    with pytest.raises(VapiClientError) as exc_info:
        await client.get_call("missing")
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_network_and_decode_errors_raise_client_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(VapiClientError) as exc_info:
        await make_client(unreachable).get_call("call-1")
    assert exc_info.value.status_code is None

    with pytest.raises(VapiClientError):
        await make_client(lambda request: httpx.Response(200, content=b"<html>")).get_call("call-1")
