"""
ppg/buffer.py — Fixed-capacity ring buffer
===========================================
The substrate every stateful component reads its history from.  Storage is
allocated once; `push` overwrites the oldest slot once the buffer is full
and `clear` only rewinds the indices.
"""

from typing import Generic, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Bounded FIFO history with chronological snapshots.

    Parameters
    ----------
    capacity : int   Maximum number of retained items (must be ≥ 1).
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"RingBuffer capacity must be >= 1, got {capacity}.")
        self._capacity = capacity
        self._items: list[T | None] = [None] * capacity
        self._head = 0      # Next slot to write
        self._count = 0

    # ── Public API ───────────────────────────────────────────────────────────

    def push(self, item: T) -> None:
        self._items[self._head] = item
        self._head = (self._head + 1) % self._capacity
        if self._count < self._capacity:
            self._count += 1

    def snapshot(self) -> list[T]:
        """Return the retained items, oldest first."""
        if self._count < self._capacity:
            return self._items[: self._count]  # type: ignore[return-value]
        return self._items[self._head:] + self._items[: self._head]  # type: ignore[return-value]

    def latest(self) -> T | None:
        """Most recently pushed item, or None when empty."""
        if self._count == 0:
            return None
        return self._items[(self._head - 1) % self._capacity]

    def clear(self) -> None:
        for i in range(self._capacity):
            self._items[i] = None
        self._head = 0
        self._count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return self._count == self._capacity

    def __len__(self) -> int:
        return self._count

    def __iter__(self):
        return iter(self.snapshot())
