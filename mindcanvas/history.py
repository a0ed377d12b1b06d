"""Undo/Redo history for MindCanvas.

History is a list of whole-document snapshots with a cursor pointing at the
snapshot that matches the live document. Snapshots are only taken for
committed actions (create, delete, move, connect, edit), never for drag
previews.
"""

import logging
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from mindcanvas import config
from mindcanvas.model import MindMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """A stored copy of the document after an action."""
    mind_map: MindMap
    action: str
    timestamp: datetime


class HistoryManager:
    """Manages undo/redo history as snapshots plus a cursor."""

    def __init__(self, limit: int = config.HISTORY_LIMIT):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._snapshots: List[Snapshot] = []
        self._index = -1

        # Callbacks
        self.on_state_changed: Optional[Callable[[], None]] = None

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def index(self) -> int:
        return self._index

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return 0 <= self._index < len(self._snapshots) - 1

    @property
    def undo_description(self) -> str:
        """Label of the action that undo would revert."""
        if self.can_undo:
            return self._snapshots[self._index].action
        return ""

    @property
    def redo_description(self) -> str:
        """Label of the action that redo would reapply."""
        if self.can_redo:
            return self._snapshots[self._index + 1].action
        return ""

    def save_snapshot(self, mind_map: MindMap, action: str):
        """Record ``mind_map`` as the state after ``action``.

        Any redo states beyond the cursor are discarded, and the oldest
        snapshot is dropped once the limit is exceeded.
        """
        del self._snapshots[self._index + 1:]
        self._snapshots.append(Snapshot(deepcopy(mind_map), action, datetime.now()))

        overflow = len(self._snapshots) - self.limit
        if overflow > 0:
            del self._snapshots[:overflow]

        self._index = len(self._snapshots) - 1
        logger.debug("Snapshot '%s' saved (%d/%d)", action, len(self._snapshots), self.limit)
        self._notify_changed()

    def undo(self) -> Optional[MindMap]:
        """Step back one snapshot and return a copy of it, or None."""
        if not self.can_undo:
            return None
        self._index -= 1
        self._notify_changed()
        return deepcopy(self._snapshots[self._index].mind_map)

    def redo(self) -> Optional[MindMap]:
        """Step forward one snapshot and return a copy of it, or None."""
        if not self.can_redo:
            return None
        self._index += 1
        self._notify_changed()
        return deepcopy(self._snapshots[self._index].mind_map)

    def reset(self, mind_map: Optional[MindMap] = None, action: str = "load"):
        """Start a fresh history, seeded with ``mind_map`` when given."""
        self._snapshots.clear()
        self._index = -1
        if mind_map is not None:
            self.save_snapshot(mind_map, action)
        else:
            self._notify_changed()

    def clear(self):
        """Clear all history."""
        self.reset(None)

    def _notify_changed(self):
        """Notify that undo/redo state changed."""
        if self.on_state_changed:
            self.on_state_changed()
