"""Bounded play history for a channel."""

from collections import deque
from datetime import datetime
from typing import Deque, List

from .models import HistoryEntry, Track


class HistoryLedger:
    """Most-recent-first record of the last N superseded tracks.

    Entries are only ever prepended; once the ledger is full the oldest
    entry falls off the end and is gone for good.
    """

    def __init__(self, capacity: int = 3):
        """Initialize an empty ledger.

        Args:
            capacity: Maximum number of entries kept.

        Raises:
            ValueError: If capacity is less than 1.
        """
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._entries: Deque[HistoryEntry] = deque(maxlen=capacity)

    def record(self, previous_track: Track, observed_at: datetime) -> HistoryEntry:
        """Archive a track that has just been superseded.

        Args:
            previous_track: The track that was current until now.
            observed_at: Client-side detection time of the transition.

        Returns:
            HistoryEntry: The entry that was prepended.
        """
        entry = HistoryEntry(track=previous_track, started_at=observed_at)
        self._entries.appendleft(entry)
        return entry

    def entries(self) -> List[HistoryEntry]:
        """Return a snapshot of the ledger, most recent first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
