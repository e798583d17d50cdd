import pytest

from blockdive.application.planning import plan_ranges
from blockdive.domain.models import BlockRange


def test_plan_ranges_half_open_pieces():
    pieces = plan_ranges(BlockRange(10, 35), 10)
    assert [(p.start, p.end) for p in pieces] == [(10, 20), (20, 30), (30, 35)]
    assert plan_ranges(BlockRange(5, 5), 10) == []
    with pytest.raises(ValueError):
        plan_ranges(BlockRange(0, 10), 0)


def test_block_range_validation():
    assert BlockRange(3, 3).is_empty()
    assert BlockRange(3, 9).span() == 6
    with pytest.raises(ValueError):
        BlockRange(9, 3)
    with pytest.raises(ValueError):
        BlockRange(-1, 3)
