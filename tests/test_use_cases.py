import asyncio
import json

import httpx
import pytest

from blockdive.adapters.archive_httpx import HttpxArchive
from blockdive.application.use_cases import Datasource
from blockdive.config import DatasourceConfig
from blockdive.domain.errors import RetriesExhausted, UpstreamUnavailable
from blockdive.domain.value_types import Dataset

BASE = "https://archive.test/network/ethereum-mainnet"

LOG_QUERY = {
    "logs": [{"address": ["0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"]}],
    "fields": {"log": {"address": True, "topics": True, "logIndex": True, "bogus": True}},
}


class FakeNetwork:
    """Directory + workers behind one MockTransport. Each POST returns `per_chunk` blocks."""

    def __init__(self, per_chunk=5, fail_posts=0):
        self.per_chunk = per_chunk
        self.fail_posts = fail_posts
        self.posts: list[int] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith("/height"):
            return httpx.Response(200, text="999")
        if request.method == "GET" and path.endswith("/worker"):
            block = int(path.split("/")[-2])
            return httpx.Response(200, text=f"https://w{block // 100}.test/query")
        if request.method == "POST":
            body = json.loads(request.content)
            self.posts.append(body["fromBlock"])
            if self.fail_posts:
                self.fail_posts -= 1
                return httpx.Response(503, text="busy")
            start = body["fromBlock"]
            return httpx.Response(200, json=[
                {"header": {"number": n},
                 "logs": [{"address": "0xa0b8", "topics": [f"0x{n:x}"], "logIndex": 0}]}
                for n in range(start, start + self.per_chunk)
            ])
        return httpx.Response(404)


class Sleeps(list):
    async def __call__(self, seconds):
        self.append(seconds)


def _datasource(net, sleeps=None, **cfg):
    config = DatasourceConfig(base_url=BASE, **cfg)
    archive = HttpxArchive(BASE, transport=httpx.MockTransport(net))
    return Datasource(config, archive=archive, sleep=sleeps if sleeps is not None else Sleeps())


@pytest.mark.asyncio
async def test_get_table_end_to_end():
    net = FakeNetwork(per_chunk=5)
    async with _datasource(net) as ds:
        assert await ds.get_dataset_height() == 999
        res = await ds.get_table(LOG_QUERY, 100, 112)
    assert res.dataset is Dataset.LOGS
    assert res.column_names == ["address", "topics", "logIndex"]
    assert net.posts == [100, 105, 110]
    # the last chunk overshoots to block 114; plain acquisition keeps it
    assert res.num_rows == 15
    assert res.table.column("topics").to_pylist()[0] == ["0x64"]


@pytest.mark.asyncio
async def test_get_data_in_ranges_trims_overshoot_and_keeps_order():
    net = FakeNetwork(per_chunk=4)
    async with _datasource(net, max_concurrent_requests=2) as ds:
        records = await ds.get_data_in_ranges(LOG_QUERY, 0, 25, step=10)
        assert ds.governor.peak_in_flight <= 2
    numbers = [r["header"]["number"] for r in records]
    assert numbers == list(range(25))


@pytest.mark.asyncio
async def test_get_table_with_step_matches_sequential():
    async with _datasource(FakeNetwork(per_chunk=3)) as ds:
        whole = await ds.get_table(LOG_QUERY, 0, 12)
        split = await ds.get_table(LOG_QUERY, 0, 12, step=4)
    assert whole.table.equals(split.table)


@pytest.mark.asyncio
async def test_transient_worker_errors_are_retried_with_backoff():
    net, sleeps = FakeNetwork(fail_posts=2), Sleeps()
    async with _datasource(net, sleeps) as ds:
        records = await ds.get_data_in_range(LOG_QUERY, 0, 5)
    assert len(records) == 5
    assert sleeps == pytest.approx([0.1, 0.2])
    assert net.posts == [0, 0, 0]


@pytest.mark.asyncio
async def test_persistent_failure_surfaces_block_position():
    net, sleeps = FakeNetwork(per_chunk=5, fail_posts=0), Sleeps()
    async with _datasource(net, sleeps, max_retries=2) as ds:
        await ds.get_data_in_range(LOG_QUERY, 0, 5)
        net.fail_posts = 10
        with pytest.raises(RetriesExhausted) as exc:
            await ds.get_data_in_range(LOG_QUERY, 5, 20)
    assert exc.value.block == 5
    assert "503" in str(exc.value)


class SlowNetwork(FakeNetwork):
    """Answers after a short delay so sub-ranges interleave; the directory has no worker for `dead_block`."""

    def __init__(self, dead_block, **kw):
        super().__init__(**kw)
        self.dead_block = dead_block

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.001)
        if request.url.path.endswith(f"/{self.dead_block}/worker"):
            return httpx.Response(503, text="no worker")
        return super().__call__(request)


@pytest.mark.asyncio
async def test_failed_sub_range_stops_its_siblings():
    net = SlowNetwork(dead_block=20, per_chunk=1)
    async with _datasource(net, max_concurrent_requests=4) as ds:
        with pytest.raises(UpstreamUnavailable):
            await ds.get_data_in_ranges(LOG_QUERY, 0, 30, step=10)
        posted = len(net.posts)
        await asyncio.sleep(0.05)
        assert len(net.posts) == posted
        assert posted < 20
        assert ds.governor.in_flight == 0


def test_trim_drops_non_objects_and_overshoot():
    from blockdive.application.use_cases import _within
    from blockdive.domain.models import BlockRange

    records = [None, {"header": {"number": 3}}, {"header": {}}, {"header": {"number": 12}}]
    assert _within(records, BlockRange(0, 10)) == [{"header": {"number": 3}}, {"header": {}}]
