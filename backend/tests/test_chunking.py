"""Chunk planner tests"""
import pytest

from videohop.core.config import MIB
from videohop.services.upload.chunking import (
    TIKTOK_MAX_CHUNKS, TIKTOK_MAX_CHUNK_SIZE, TIKTOK_MIN_CHUNK_SIZE, ChunkPlan, plan_chunks
)

SIZES = [1, 5 * MIB - 1, 10 * MIB, 64 * MIB, 64 * MIB + 1, 100 * MIB, 150 * MIB,
         150 * MIB + 12345, 999 * MIB, 5 * 1024 * MIB, 60 * 1024 * MIB]


@pytest.mark.critical
class TestYouTubePlan:
    """Test fixed 64MiB YouTube chunking"""

    def test_small_file_is_single_chunk(self):
        plan = plan_chunks("youtube", 10 * MIB)
        assert plan.chunk_size == 10 * MIB
        assert plan.total_chunks == 1

    def test_large_file_uses_ceil(self):
        plan = plan_chunks("youtube", 130 * MIB)
        assert plan.chunk_size == 64 * MIB
        assert plan.total_chunks == 3
        assert plan.last_chunk_length == 2 * MIB

    @pytest.mark.parametrize("size", SIZES)
    def test_chunks_cover_file_exactly(self, size):
        plan = plan_chunks("youtube", size)
        assert plan.chunk_size * (plan.total_chunks - 1) < size <= plan.chunk_size * plan.total_chunks
        assert sum(end - start for start, end in plan.ranges()) == size


@pytest.mark.critical
class TestTikTokPlan:
    """Test bounded TikTok chunking"""

    def test_150mib_file(self):
        plan = plan_chunks("tiktok", 150 * MIB)
        assert plan.chunk_size == 50 * MIB
        assert plan.total_chunks == 3
        assert plan.chunk_length(2) == 50 * MIB

    def test_remainder_goes_to_last_chunk(self):
        size = 150 * MIB + 12345
        plan = plan_chunks("tiktok", size)
        assert plan.total_chunks == 3
        assert plan.byte_range(2) == (100 * MIB, size)
        assert plan.last_chunk_length == size - plan.chunk_size * (plan.total_chunks - 1)

    @pytest.mark.parametrize("size", [1, 5 * MIB - 1, 64 * MIB])
    def test_up_to_64mib_is_one_chunk(self, size):
        plan = plan_chunks("tiktok", size)
        assert plan == ChunkPlan(size, 1, size)

    def test_chunk_count_clamped_to_1000(self):
        size = 60 * 1024 * MIB
        plan = plan_chunks("tiktok", size)
        assert plan.total_chunks == TIKTOK_MAX_CHUNKS
        assert plan.chunk_size == size // 1000

    def test_chunk_size_above_platform_maximum_is_rejected(self):
        with pytest.raises(ValueError):
            plan_chunks("tiktok", 70 * 1024 * MIB)

    @pytest.mark.parametrize("size", [s for s in SIZES if s > 64 * MIB])
    def test_multi_chunk_plans_respect_bounds(self, size):
        plan = plan_chunks("tiktok", size)
        assert TIKTOK_MIN_CHUNK_SIZE <= plan.chunk_size <= TIKTOK_MAX_CHUNK_SIZE
        assert plan.total_chunks <= TIKTOK_MAX_CHUNKS
        assert plan.chunk_size * (plan.total_chunks - 1) < size
        ranges = list(plan.ranges())
        assert ranges[0][0] == 0
        assert ranges[-1][1] == size
        assert all(a[1] == b[0] for a, b in zip(ranges, ranges[1:]))


@pytest.mark.medium
class TestPlanErrors:
    def test_empty_file_rejected(self):
        with pytest.raises(ValueError):
            plan_chunks("youtube", 0)

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValueError):
            plan_chunks("vimeo", 100)

    def test_out_of_range_chunk_index(self):
        with pytest.raises(IndexError):
            plan_chunks("youtube", 100).byte_range(1)
