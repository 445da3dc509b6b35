"""
Tests for the async REST client: pagination, retry, errors, safety.
"""
import asyncio

import httpx
import pytest

from m365_export.errors import ApiError, RemoteFetchError
from m365_export.remote.client import ApiClient
from m365_export.safety.guardian import SafetyViolation

from conftest import json_response


async def no_sleep(_seconds):
    return None


def collect(client_factory, endpoint, **kwargs):
    async def _run():
        async with client_factory() as client:
            return [item async for item in client.stream(endpoint, **kwargs)]
    return asyncio.run(_run())


def make_client(handler, guardian, **kwargs):
    return lambda: ApiClient(
        "https://api.example.com/v1",
        "tok",
        guardian,
        transport=httpx.MockTransport(handler),
        retry_sleep=no_sleep,
        **kwargs,
    )


def test_follows_next_links(guardian, recording):
    def responder(request):
        if "page=2" in str(request.url):
            return json_response({"value": [{"id": 3}]})
        return json_response({
            "value": [{"id": 1}, {"id": 2}],
            "@odata.nextLink": "https://api.example.com/v1/users?page=2",
        })

    handler = recording(responder)
    items = collect(make_client(handler, guardian), "users", params={"$top": "2"})
    assert [i["id"] for i in items] == [1, 2, 3]
    assert handler.requests[0].headers["Authorization"] == "Bearer tok"
    assert handler.requests[0].url.params["$top"] == "2"
    # next link carries its own query
    assert "$top" not in handler.requests[1].url.params


def test_sharepoint_style_next_link(guardian):
    def handler(request):
        if "skiptoken" in str(request.url):
            return json_response({"value": [{"n": 2}]})
        return json_response({"value": [{"n": 1}], "odata.nextLink": "https://api.example.com/v1/items?skiptoken=x"})

    assert [i["n"] for i in collect(make_client(handler, guardian), "items")] == [1, 2]


def test_list_response_is_one_page(guardian):
    handler = lambda request: json_response([{"Identity": "Global"}, {"Identity": "Tag:Restricted"}])
    assert len(collect(make_client(handler, guardian), "policies")) == 2


def test_retries_on_throttling(guardian, recording):
    responses = [
        json_response({}, status_code=429, headers={"Retry-After": "1"}),
        json_response({"value": [{"id": 1}]}),
    ]
    handler = recording(lambda request: responses.pop(0))
    items = collect(make_client(handler, guardian), "users")
    assert items == [{"id": 1}]
    assert len(handler.requests) == 2


def test_http_error_raises_api_error(guardian):
    handler = lambda request: json_response({"error": {"message": "Access denied"}}, status_code=403)
    with pytest.raises(ApiError) as exc:
        collect(make_client(handler, guardian), "users")
    assert exc.value.status_code == 403
    assert "Access denied" in str(exc.value)
    assert isinstance(exc.value, RemoteFetchError)


def test_sharepoint_error_message_shape(guardian):
    handler = lambda request: json_response(
        {"odata.error": {}, "error": {"message": {"lang": "en-US", "value": "List does not exist"}}},
        status_code=404,
    )
    with pytest.raises(ApiError, match="List does not exist"):
        collect(make_client(handler, guardian), "items")


def test_connection_failure_raises_remote_fetch_error(guardian):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(RemoteFetchError, match="Connection"):
        collect(make_client(handler, guardian), "users")


def test_partial_results_are_yielded_before_failure(guardian):
    def handler(request):
        if "page=2" in str(request.url):
            return json_response({}, status_code=500)
        return json_response({"value": [{"id": 1}], "@odata.nextLink": "https://api.example.com/v1/u?page=2"})

    seen = []

    async def _run():
        async with make_client(handler, guardian)() as client:
            async for item in client.stream("u"):
                seen.append(item)

    with pytest.raises(ApiError):
        asyncio.run(_run())
    assert seen == [{"id": 1}]


def test_write_requests_are_blocked(guardian, recording):
    handler = recording(lambda request: json_response({}))

    async def _run():
        async with make_client(handler, guardian)() as client:
            async for _ in client.stream("users", method="POST", json_body={}):
                pass

    with pytest.raises(SafetyViolation):
        asyncio.run(_run())
    assert handler.requests == []


def test_requires_context_manager(guardian):
    client = make_client(lambda r: json_response({}), guardian)()

    async def _run():
        async for _ in client.stream("users"):
            pass

    with pytest.raises(RuntimeError):
        asyncio.run(_run())
