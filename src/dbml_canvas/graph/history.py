from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from .types import HistoryEntry, Position

logger = logging.getLogger(__name__)


class LayoutHistory:
    """Bounded, linear undo/redo timeline of node layouts.

    The cursor points at the entry matching the current layout. Pushing after
    an undo drops everything past the cursor before appending.
    """

    def __init__(self, max_entries: int = 50) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.entries: list[HistoryEntry] = []
        self.index = -1

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def can_undo(self) -> bool:
        return self.index > 0

    @property
    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1

    def push(self, positions: Mapping[str, Position]) -> HistoryEntry:
        entry = HistoryEntry(positions=dict(positions), timestamp=time.time())

        del self.entries[self.index + 1 :]
        self.entries.append(entry)
        if len(self.entries) > self.max_entries:
            self.entries.pop(0)
        self.index = len(self.entries) - 1

        logger.debug("history push: %d entries, cursor at %d", len(self.entries), self.index)
        return entry

    def undo(self) -> dict[str, Position] | None:
        if not self.can_undo:
            return None
        self.index -= 1
        return dict(self.entries[self.index].positions)

    def redo(self) -> dict[str, Position] | None:
        if not self.can_redo:
            return None
        self.index += 1
        return dict(self.entries[self.index].positions)

    def clear(self) -> None:
        self.entries.clear()
        self.index = -1
