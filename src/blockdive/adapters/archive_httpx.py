from __future__ import annotations

import json
import logging

import httpx

from ..config import DatasourceConfig
from ..domain.errors import MalformedResponse, NetworkError, UpstreamUnavailable
from ..domain.filters import FilterDocument, with_from_block
from ..domain.models import Chunk
from ..domain.value_types import WorkerUrl
from ..ports.archive import ChunkFetcher, HeightSource, WorkerResolver

log = logging.getLogger(__name__)


def _last_block_number(blocks: list) -> int:
    if not blocks:
        raise MalformedResponse("worker returned an empty block list")
    last = blocks[-1]
    header = last.get("header") if isinstance(last, dict) else None
    number = header.get("number") if isinstance(header, dict) else None
    if isinstance(number, bool) or not isinstance(number, int) or number < 0:
        raise MalformedResponse("invalid block data: 'header.number' missing or not an unsigned integer")
    return number


def _parse_worker_url(body: str) -> WorkerUrl:
    text = body.strip()
    try:
        url = httpx.URL(text)
    except (httpx.InvalidURL, TypeError) as e:
        raise UpstreamUnavailable(f"directory returned an unparsable worker URL: {text[:120]!r}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise UpstreamUnavailable(f"directory returned a non-URL body: {text[:120]!r}")
    return WorkerUrl(text)


class HttpxArchive(WorkerResolver, ChunkFetcher, HeightSource):
    """
    Archive directory + worker client over a shared httpx.AsyncClient.

    GET  {base_url}/height          -> plain integer
    GET  {base_url}/{block}/worker  -> plain-text worker URL
    POST {worker}                   -> JSON array of per-block records
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 30.0,
        max_conn: int = 64,
        http2: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            http2=http2 and transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn // 2)),
            transport=transport,
        )

    @classmethod
    def from_config(cls, cfg: DatasourceConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> "HttpxArchive":
        max_conn = max(32, 2 * (cfg.max_concurrent_requests or 32))
        return cls(cfg.base_url, timeout_s=cfg.timeout_s, max_conn=max_conn, http2=cfg.http2, transport=transport)

    async def height(self) -> int:
        url = f"{self.base_url}/height"
        try:
            r = await self.client.get(url)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"GET {url} failed: {e}") from e
        text = r.text.strip()
        if not text.isdigit():
            raise UpstreamUnavailable(f"GET {url} returned a non-integer body: {text[:120]!r}")
        return int(text)

    async def resolve(self, start_block: int) -> WorkerUrl:
        url = f"{self.base_url}/{int(start_block)}/worker"
        try:
            r = await self.client.get(url)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"GET {url} failed: {e}") from e
        worker = _parse_worker_url(r.text)
        log.debug("resolved worker", extra={"block": start_block, "worker": worker})
        return worker

    async def fetch(self, query: FilterDocument, from_block: int, worker: WorkerUrl) -> Chunk:
        payload = with_from_block(query, from_block)
        try:
            r = await self.client.post(worker, json=payload)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(f"POST {worker} (fromBlock={from_block}) failed: {e}") from e
        try:
            data = json.loads(r.content)
        except ValueError as e:
            raise MalformedResponse(f"error parsing JSON from {worker}: {e}", block=from_block) from e
        if not isinstance(data, list):
            raise MalformedResponse(
                f"invalid JSON format from {worker}: expected an array, got {type(data).__name__}",
                block=from_block,
            )
        bad = next((i for i, item in enumerate(data) if not isinstance(item, dict)), None)
        if bad is not None:
            raise MalformedResponse(
                f"invalid block data from {worker}: element {bad} is {type(data[bad]).__name__}, expected an object",
                block=from_block,
            )
        try:
            last = _last_block_number(data)
        except MalformedResponse as e:
            raise MalformedResponse(f"{e} (worker {worker})", block=from_block) from None
        return Chunk(records=data, last_block=last)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpxArchive":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
