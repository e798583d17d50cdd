from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

DEFAULT_ARCHIVE_URL = "https://v2.archive.subsquid.io/network/ethereum-mainnet"


@dataclass(frozen=True)
class DatasourceConfig:
    """Connection, retry and throttling settings for one archive."""

    base_url: str = DEFAULT_ARCHIVE_URL
    # None disables the strategy entirely (no permits / no throttling)
    max_concurrent_requests: Optional[int] = 10
    requests_per_second: Optional[float] = None
    timeout_s: float = 30.0
    max_retries: int = 5
    initial_backoff_s: float = 0.1
    retry_malformed: bool = False
    http2: bool = True

    def __post_init__(self) -> None:
        if self.max_concurrent_requests is not None and self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1 or None")
        if self.requests_per_second is not None and self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0 or None")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "DatasourceConfig":
        """Read BLOCKDIVE_* variables; explicit keyword overrides win."""
        env = os.environ if environ is None else environ

        def _opt_num(key: str, conv):
            raw = env.get(key)
            if raw is None or raw == "": return None
            if raw.lower() in ("none", "off", "unlimited"): return "off"
            return conv(raw)

        kw: dict = {}
        if env.get("BLOCKDIVE_ARCHIVE_URL"):
            kw["base_url"] = env["BLOCKDIVE_ARCHIVE_URL"].rstrip("/")
        for key, name, conv in (
            ("BLOCKDIVE_MAX_CONCURRENCY", "max_concurrent_requests", int),
            ("BLOCKDIVE_RPS", "requests_per_second", float),
        ):
            v = _opt_num(key, conv)
            if v == "off": kw[name] = None
            elif v is not None: kw[name] = v
        for key, name, conv in (
            ("BLOCKDIVE_TIMEOUT_S", "timeout_s", float),
            ("BLOCKDIVE_MAX_RETRIES", "max_retries", int),
            ("BLOCKDIVE_INITIAL_BACKOFF_S", "initial_backoff_s", float),
        ):
            if env.get(key): kw[name] = conv(env[key])
        if env.get("BLOCKDIVE_RETRY_MALFORMED"):
            kw["retry_malformed"] = env["BLOCKDIVE_RETRY_MALFORMED"].lower() in ("1", "true", "yes")
        cfg = cls(**kw)
        return replace(cfg, **overrides) if overrides else cfg
