from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .schemas import HistoryEntry


class History:
    """Append-only record of the turns in the current story."""

    def __init__(self) -> None:
        self.turns: List[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self.turns)

    def append(self, entry: HistoryEntry) -> None:
        self.turns.append(entry)

    def last(self) -> Optional[HistoryEntry]:
        return self.turns[-1] if self.turns else None

    def snapshot(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self.turns)

    def reset(self) -> None:
        self.turns = []


def recent(entries: Sequence[HistoryEntry], limit: int) -> Sequence[HistoryEntry]:
    """Return at most ``limit`` trailing entries (all of them when fewer exist)."""
    if limit <= 0:
        return ()
    return entries[-limit:]


__all__ = ["History", "recent"]
