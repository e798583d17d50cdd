import json

import httpx
import pytest

from blockdive.adapters.archive_httpx import HttpxArchive
from blockdive.domain.errors import MalformedResponse, NetworkError, UpstreamUnavailable
from blockdive.domain.value_types import WorkerUrl

BASE = "https://archive.test/network/ethereum-mainnet"
WORKER = WorkerUrl("https://worker-1.test/query/abc")


def _archive(handler) -> HttpxArchive:
    return HttpxArchive(BASE, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_height_and_worker_lookup():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path.endswith("/height"):
            return httpx.Response(200, text="20000000")
        if request.url.path.endswith("/14000000/worker"):
            return httpx.Response(200, text=WORKER + "\n")
        return httpx.Response(404)

    async with _archive(handler) as a:
        assert await a.height() == 20_000_000
        assert await a.resolve(14_000_000) == WORKER
    assert seen == ["/network/ethereum-mainnet/height", "/network/ethereum-mainnet/14000000/worker"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(503, text="busy"),
    httpx.Response(200, text="no worker for you"),
    httpx.Response(200, text=""),
])
async def test_resolve_failures_are_upstream_unavailable(response):
    async with _archive(lambda request: response) as a:
        with pytest.raises(UpstreamUnavailable):
            await a.resolve(1)


@pytest.mark.asyncio
async def test_height_rejects_non_integer_body():
    async with _archive(lambda request: httpx.Response(200, text="{}")) as a:
        with pytest.raises(UpstreamUnavailable):
            await a.height()


@pytest.mark.asyncio
async def test_fetch_injects_from_block_and_reads_last_header():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert str(request.url) == WORKER
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=[
            {"header": {"number": 100}, "logs": []},
            {"header": {"number": 105}, "logs": [{"address": "0x1"}]},
        ])

    query = {"logs": [{"address": ["0x1"]}], "fields": {"log": {"address": True}}}
    async with _archive(handler) as a:
        chunk = await a.fetch(query, 100, WORKER)
    assert bodies[0]["fromBlock"] == 100
    assert bodies[0]["logs"] == query["logs"]
    assert "fromBlock" not in query
    assert chunk.last_block == 105
    assert chunk.next_block == 106
    assert len(chunk.records) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"error": "overloaded"}),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json=[]),
    httpx.Response(200, json=[{"header": {"number": "0x10"}}]),
    httpx.Response(200, json=[{"header": {}}]),
    httpx.Response(200, json=[{"header": {"number": 1}}, "junk"]),
])
async def test_fetch_malformed_bodies(response):
    async with _archive(lambda request: response) as a:
        with pytest.raises(MalformedResponse):
            await a.fetch({}, 1, WORKER)


@pytest.mark.asyncio
async def test_fetch_transport_errors_are_network_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _archive(handler) as a:
        with pytest.raises(NetworkError):
            await a.fetch({}, 1, WORKER)

    async with _archive(lambda request: httpx.Response(502)) as a:
        with pytest.raises(NetworkError):
            await a.fetch({}, 1, WORKER)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    [None, {"header": {"number": 5}}],
    [{"header": {"number": 4}}, 7, {"header": {"number": 5}}],
    [[], {"header": {"number": 5}}],
])
async def test_fetch_rejects_non_object_elements(body):
    async with _archive(lambda request: httpx.Response(200, json=body)) as a:
        with pytest.raises(MalformedResponse) as exc:
            await a.fetch({}, 3, WORKER)
    assert exc.value.block == 3
    assert "expected an object" in str(exc.value)


@pytest.mark.asyncio
async def test_malformed_messages_name_worker_and_block():
    async with _archive(lambda request: httpx.Response(200, json=[{"header": {}}])) as a:
        with pytest.raises(MalformedResponse) as exc:
            await a.fetch({}, 42, WORKER)
    assert exc.value.block == 42
    assert "fromBlock=42" in str(exc.value)
    assert WORKER in str(exc.value)
