"""Growable receive buffer for reassembling fragmented notifications.

Bytes are appended at the tail and consumed from the head by moving a
cursor. The storage is compacted only once the consumed prefix gets large,
so trimming a frame never copies the rest of the buffer.
"""

from __future__ import annotations

COMPACT_THRESHOLD = 1024


class ByteAccumulator:
    def __init__(self, max_size: int = 4096) -> None:
        self._buf = bytearray()
        self._head = 0
        self.max_size = max_size

    def __len__(self) -> int:
        return len(self._buf) - self._head

    @property
    def size(self) -> int:
        return len(self)

    def append(self, chunk: bytes) -> None:
        """Add bytes at the tail, dropping the oldest once ``max_size`` is exceeded."""
        if not chunk:
            return
        self._buf.extend(chunk)
        overflow = len(self) - self.max_size
        if overflow > 0:
            self.trim(overflow)

    def peek(self, count: int | None = None) -> bytes:
        """Copy of up to ``count`` unconsumed bytes (all of them by default)."""
        end = len(self._buf) if count is None else self._head + count
        return bytes(self._buf[self._head : end])

    def find(self, pattern: bytes, start: int = 0) -> int:
        """Index of ``pattern`` relative to the head, or -1."""
        idx = self._buf.find(pattern, self._head + start)
        return idx - self._head if idx >= 0 else -1

    def __getitem__(self, index: int) -> int:
        if not 0 <= index < len(self):
            raise IndexError(index)
        return self._buf[self._head + index]

    def trim(self, count: int) -> None:
        """Consume ``count`` bytes from the head."""
        if count >= len(self):
            self.reset()
            return
        self._head += count
        self._maybe_compact()

    def reset(self) -> None:
        self._buf = bytearray()
        self._head = 0

    def _maybe_compact(self) -> None:
        if self._head > COMPACT_THRESHOLD or self._head > (len(self._buf) >> 1):
            del self._buf[: self._head]
            self._head = 0
