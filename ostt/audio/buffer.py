"""Bounded multi-consumer ring buffer between capture and processing."""

import logging
import threading
from collections import deque
from itertools import islice
from typing import Callable, Deque, Dict, List, Optional

from ..exceptions import GapDetected
from ..models.audio import SampleChunk

logger = logging.getLogger(__name__)


class RingCursor:
    """Independent read position of one consumer over a RingBuffer.

    Positions are buffer indices: the n-th chunk ever appended has index n.
    A priority cursor never loses chunks; anything evicted before it was read
    is moved into the cursor's spill list and returned by the next read().
    """

    def __init__(self, buffer: "RingBuffer", name: str, position: int, priority: bool = False):
        self.buffer = buffer
        self.name = name
        self.priority = priority
        self.position = position
        self.gap_count = 0
        self.missed_chunks = 0
        self.chunks_read = 0
        self._spill: List[SampleChunk] = []

    def pending(self) -> int:
        """Number of chunks this cursor has not read yet."""
        with self.buffer._condition:
            return self._pending_locked()

    def _pending_locked(self) -> int:
        return len(self._spill) + max(0, self.buffer._head - max(self.position, self.buffer._tail))

    def _check_position_locked(self) -> None:
        if self.position < self.buffer._tail:
            raise GapDetected(self.name, self.position, self.buffer._tail)

    def read(self, max_items: Optional[int] = None) -> List[SampleChunk]:
        """Return unread chunks in FIFO order and advance the cursor.

        Args:
            max_items: Upper bound on chunks returned (None for all pending)
        """
        gap: Optional[GapDetected] = None
        with self.buffer._condition:
            chunks: List[SampleChunk] = []
            if self._spill:
                take = len(self._spill) if max_items is None else min(max_items, len(self._spill))
                chunks.extend(self._spill[:take])
                del self._spill[:take]

            try:
                self._check_position_locked()
            except GapDetected as e:
                gap = e
                self.gap_count += 1
                self.missed_chunks += e.missed_chunks
                self.position = self.buffer._tail

            remaining = None if max_items is None else max_items - len(chunks)
            if remaining is None or remaining > 0:
                start = self.position - self.buffer._tail
                stop = None if remaining is None else start + remaining
                window = list(islice(self.buffer._chunks, start, stop))
                chunks.extend(window)
                self.position += len(window)

            self.chunks_read += len(chunks)

        if gap is not None:
            logger.warning(f"{gap}; resynchronized to chunk index {self.position}")
            self.buffer._report_gap(gap)
        return chunks

    def wait(self, timeout: float) -> bool:
        """Block up to timeout seconds for unread data. Returns True if data is available."""
        with self.buffer._condition:
            return self.buffer._condition.wait_for(
                lambda: self._pending_locked() > 0 or self.buffer._closed,
                timeout=timeout,
            ) and self._pending_locked() > 0

    def __repr__(self) -> str:
        return f"RingCursor(name={self.name!r}, position={self.position}, priority={self.priority})"


class RingBuffer:
    """Fixed-capacity FIFO of SampleChunks with independent read cursors.

    Appending never blocks on consumers: when full, the oldest chunk is dropped.
    """

    def __init__(self, capacity: int, on_gap: Optional[Callable[[GapDetected], None]] = None):
        """Initialize ring buffer.

        Args:
            capacity: Maximum number of chunks retained
            on_gap: Called (outside the lock) whenever a cursor is resynchronized
        """
        if capacity < 1:
            raise ValueError("RingBuffer capacity must be at least 1")

        self.capacity = capacity
        self.on_gap = on_gap

        self._chunks: Deque[SampleChunk] = deque()
        self._condition = threading.Condition(threading.Lock())
        self._head = 0  # index of the next chunk to be appended
        self._tail = 0  # index of the oldest retained chunk
        self._closed = False
        self._cursors: Dict[str, RingCursor] = {}
        self.dropped_chunks = 0

        logger.info(f"RingBuffer initialized: {capacity} chunks capacity")

    def cursor(self, name: str, priority: bool = False, from_oldest: bool = False) -> RingCursor:
        """Create a named read cursor.

        Args:
            name: Unique consumer name (used in logs and gap events)
            priority: Never lose chunks to eviction (spill instead)
            from_oldest: Start at the oldest retained chunk instead of the next new one
        """
        with self._condition:
            if name in self._cursors:
                raise ValueError(f"Cursor '{name}' already exists")
            position = self._tail if from_oldest else self._head
            cursor = RingCursor(self, name, position, priority=priority)
            self._cursors[name] = cursor
        logger.debug(f"Created cursor {cursor}")
        return cursor

    def append(self, chunk: SampleChunk) -> Optional[SampleChunk]:
        """Add a chunk, evicting the oldest one if full.

        Returns:
            The evicted chunk, or None if nothing was dropped
        """
        evicted = None
        with self._condition:
            self._chunks.append(chunk)
            self._head += 1

            if len(self._chunks) > self.capacity:
                evicted = self._chunks.popleft()
                evicted_index = self._tail
                self._tail += 1
                self.dropped_chunks += 1
                for cursor in self._cursors.values():
                    if cursor.priority and cursor.position <= evicted_index:
                        cursor._spill.append(evicted)
                        cursor.position = evicted_index + 1

            self._condition.notify_all()

        if evicted is not None:
            logger.debug(f"RingBuffer full, dropped chunk {evicted.sequence_number}")
        return evicted

    def close(self) -> None:
        """Wake all waiting consumers; no further data is expected."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def _report_gap(self, gap: GapDetected) -> None:
        if self.on_gap:
            self.on_gap(gap)

    def __len__(self) -> int:
        with self._condition:
            return len(self._chunks)

    def get_buffer_stats(self) -> dict:
        """Get buffer statistics."""
        with self._condition:
            return {
                "chunk_count": len(self._chunks),
                "capacity": self.capacity,
                "total_appended": self._head,
                "oldest_index": self._tail,
                "dropped_chunks": self.dropped_chunks,
                "cursors": {
                    name: {
                        "position": cursor.position,
                        "pending": cursor._pending_locked(),
                        "gaps": cursor.gap_count,
                        "spilled": len(cursor._spill),
                    }
                    for name, cursor in self._cursors.items()
                },
            }
