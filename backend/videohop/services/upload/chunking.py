"""Chunk planning for resumable uploads

YouTube takes fixed 64MiB chunks with a short final chunk. TikTok wants
``floor(size / chunk_size)`` chunks where the last one absorbs the
remainder, at most 1000 chunks, and every chunk between 5MiB and 64MiB
(files up to 64MiB go up whole).
"""
from dataclasses import dataclass
from typing import Tuple

from videohop.core.config import MIB

YOUTUBE_CHUNK_SIZE = 64 * MIB

TIKTOK_SINGLE_CHUNK_LIMIT = 64 * MIB
TIKTOK_DEFAULT_CHUNK_SIZE = 50 * MIB
TIKTOK_MIN_CHUNK_SIZE = 5 * MIB
TIKTOK_MAX_CHUNK_SIZE = 64 * MIB
TIKTOK_MAX_CHUNKS = 1000


@dataclass(frozen=True)
class ChunkPlan:
    chunk_size: int
    total_chunks: int
    total_bytes: int

    def byte_range(self, index: int) -> Tuple[int, int]:
        """Half-open ``[start, end)`` range of chunk ``index``; the last chunk runs to EOF"""
        if not 0 <= index < self.total_chunks:
            raise IndexError(f"Chunk {index} out of range (0..{self.total_chunks - 1})")
        start = index * self.chunk_size
        if index == self.total_chunks - 1:
            end = self.total_bytes
        else:
            end = start + self.chunk_size
        return start, end

    def chunk_length(self, index: int) -> int:
        start, end = self.byte_range(index)
        return end - start

    @property
    def last_chunk_length(self) -> int:
        return self.total_bytes - self.chunk_size * (self.total_chunks - 1)

    def ranges(self):
        for index in range(self.total_chunks):
            yield self.byte_range(index)


def plan_youtube(total_bytes: int) -> ChunkPlan:
    chunk_size = min(YOUTUBE_CHUNK_SIZE, total_bytes)
    total_chunks = -(-total_bytes // chunk_size)  # ceil
    return ChunkPlan(chunk_size, total_chunks, total_bytes)


def plan_tiktok(total_bytes: int) -> ChunkPlan:
    if total_bytes <= TIKTOK_SINGLE_CHUNK_LIMIT:
        return ChunkPlan(total_bytes, 1, total_bytes)

    chunk_size = min(TIKTOK_DEFAULT_CHUNK_SIZE, total_bytes)
    total_chunks = total_bytes // chunk_size
    if total_chunks > TIKTOK_MAX_CHUNKS:
        total_chunks = TIKTOK_MAX_CHUNKS
        chunk_size = total_bytes // TIKTOK_MAX_CHUNKS

    if not TIKTOK_MIN_CHUNK_SIZE <= chunk_size <= TIKTOK_MAX_CHUNK_SIZE:
        raise ValueError(
            f"File of {total_bytes} bytes needs {chunk_size}-byte chunks, outside TikTok's "
            f"{TIKTOK_MIN_CHUNK_SIZE}-{TIKTOK_MAX_CHUNK_SIZE} byte range"
        )
    return ChunkPlan(chunk_size, total_chunks, total_bytes)


def plan_chunks(platform: str, total_bytes: int) -> ChunkPlan:
    """Compute chunk size and count for uploading ``total_bytes`` to ``platform``"""
    if total_bytes <= 0:
        raise ValueError("Cannot plan chunks for an empty file")
    if platform == "youtube":
        return plan_youtube(total_bytes)
    if platform == "tiktok":
        return plan_tiktok(total_bytes)
    raise ValueError(f"Unsupported platform: {platform}")
