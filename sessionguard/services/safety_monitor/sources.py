"""Transcript chunk sources for scheduled analysis.

The periodic scheduler pulls from a TranscriptSource on each tick. The
transcription provider feeds chunks at its own cadence; a source that
has nothing new returns None and the tick is skipped.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from sessionguard.shared.models import TranscriptChunk

logger = logging.getLogger(__name__)


class TranscriptSource(ABC):
    """Abstract base class for chunk providers."""

    @abstractmethod
    async def next_chunk(self) -> Optional[TranscriptChunk]:
        """Return the next pending chunk, or None if nothing is pending."""
        pass


class QueueTranscriptSource(TranscriptSource):
    """Buffers chunks pushed by a transcription provider.

    The provider calls ``push()`` whenever a chunk is ready; the
    scheduler takes the oldest one per tick. When the buffer is bounded
    and full, the oldest chunk is discarded so monitoring stays current.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.discarded = 0

    def push(self, chunk: TranscriptChunk) -> None:
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(chunk)
            self.discarded += 1
            logger.warning(
                "TRANSCRIPT_CHUNK_DISCARDED",
                extra={"chunk_id": chunk.chunk_id, "discarded_total": self.discarded}
            )

    def pending(self) -> int:
        return self._queue.qsize()

    async def next_chunk(self) -> Optional[TranscriptChunk]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
