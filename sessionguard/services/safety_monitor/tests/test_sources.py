"""Tests for QueueTranscriptSource."""
import pytest

from sessionguard.shared.models import TranscriptChunk
from sessionguard.services.safety_monitor.sources import QueueTranscriptSource


def chunk(n):
    return TranscriptChunk(text=f"fragmento {n}", chunk_id=f"c{n}")


@pytest.mark.asyncio
class TestQueueTranscriptSource:

    async def test_empty_returns_none(self):
        assert await QueueTranscriptSource().next_chunk() is None

    async def test_fifo_order(self):
        source = QueueTranscriptSource()
        source.push(chunk(1))
        source.push(chunk(2))

        assert source.pending() == 2
        assert (await source.next_chunk()).chunk_id == "c1"
        assert (await source.next_chunk()).chunk_id == "c2"
        assert await source.next_chunk() is None

    async def test_bounded_discards_oldest(self):
        source = QueueTranscriptSource(maxsize=2)
        for n in range(1, 4):
            source.push(chunk(n))

        assert source.discarded == 1
        assert (await source.next_chunk()).chunk_id == "c2"
        assert (await source.next_chunk()).chunk_id == "c3"
