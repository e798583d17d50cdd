from __future__ import annotations


class BlockdiveError(Exception):
    """Base class for every error raised by blockdive."""


class NetworkError(BlockdiveError):
    """Transport-level failure talking to a worker. Retryable."""


class MalformedResponse(BlockdiveError):
    """A worker answered, but the body is not a JSON array of block objects ending in a numbered header."""

    def __init__(self, message: str, block: int | None = None) -> None:
        self.block = block
        super().__init__(message if block is None else f"{message} (fromBlock={block})")


class UpstreamUnavailable(BlockdiveError):
    """The archive directory could not resolve a worker (or report its height)."""


class RetriesExhausted(BlockdiveError):
    def __init__(self, block: int, attempts: int, last_error: BaseException) -> None:
        self.block = block
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"giving up at block {block} after {attempts} failed attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )


class SchemaAssemblyFailure(BlockdiveError):
    """Columns could not be assembled into one table (usually unequal lengths)."""


class UnknownDataset(BlockdiveError):
    """The filter document selects no dataset this package can materialize."""


class ValueCoercionError(BlockdiveError):
    """A single JSON value does not fit its column's ValueKind."""
