from __future__ import annotations
from ..domain.models import BlockRange

def plan_ranges(rng: BlockRange, step: int) -> list[BlockRange]:
    """Split [start, end) into consecutive half-open pieces of at most `step` blocks."""
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")
    out: list[BlockRange] = []
    b = rng.start
    while b < rng.end:
        e = min(rng.end, b + step)
        out.append(BlockRange(b, e))
        b = e
    return out
