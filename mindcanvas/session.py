"""Editor session: the single owner of the open document and its history."""

import logging
from typing import Callable, List, Optional

from mindcanvas.history import HistoryManager
from mindcanvas.model import MindMap
from mindcanvas.mutations import clear_transient_state

logger = logging.getLogger(__name__)


class EditorSession:
    """Holds the current map, the list of known maps and the undo history.

    One session is created per window and handed to the interaction state
    machine, the sync adapter and the UI. All access happens on the UI
    thread.
    """

    def __init__(self, history: Optional[HistoryManager] = None):
        self.current: Optional[MindMap] = None
        self.mind_maps: List[MindMap] = []
        self.history = history or HistoryManager()
        self.loading = False
        self.error: Optional[str] = None
        self.local_mode = False

        # Callbacks
        self.on_changed: Optional[Callable[[], None]] = None

    # ==================== Document Slot ====================

    def open(self, mind_map: MindMap, action: str = "load"):
        """Make ``mind_map`` the current document and start a new history."""
        self.current = mind_map
        self.history.reset(mind_map, action)
        logger.info("Opened map %s (%s)", mind_map.id, mind_map.title)
        self.upsert_map(mind_map)

    def close(self):
        self.current = None
        self.history.clear()
        self._notify_changed()

    def apply(self, mind_map: MindMap):
        """Replace the current document without recording history.

        Used for live changes such as panning, zooming and selection.
        """
        if mind_map is self.current:
            return
        self.current = mind_map
        self._notify_changed()

    def commit(self, mind_map: MindMap, action: str):
        """Replace the current document and record an undoable snapshot."""
        self.current = mind_map
        self.history.save_snapshot(mind_map, action)
        self._notify_changed()

    def undo(self) -> bool:
        restored = self.history.undo()
        if restored is None:
            return False
        self.current = clear_transient_state(restored)
        self._notify_changed()
        return True

    def redo(self) -> bool:
        restored = self.history.redo()
        if restored is None:
            return False
        self.current = clear_transient_state(restored)
        self._notify_changed()
        return True

    # ==================== Map Collection ====================

    def get_map(self, map_id: str) -> Optional[MindMap]:
        for mind_map in self.mind_maps:
            if mind_map.id == map_id:
                return mind_map
        return None

    def upsert_map(self, mind_map: MindMap):
        """Insert or replace an entry of the map list, matched by id."""
        for i, existing in enumerate(self.mind_maps):
            if existing.id == mind_map.id:
                self.mind_maps[i] = mind_map
                break
        else:
            self.mind_maps.append(mind_map)
        self._notify_changed()

    def remove_map(self, map_id: str):
        self.mind_maps = [m for m in self.mind_maps if m.id != map_id]
        if self.current is not None and self.current.id == map_id:
            self.close()
        else:
            self._notify_changed()

    def set_maps(self, mind_maps: List[MindMap]):
        self.mind_maps = list(mind_maps)
        self._notify_changed()

    # ==================== Status ====================

    def set_loading(self, loading: bool):
        self.loading = loading
        self._notify_changed()

    def set_error(self, error: Optional[str]):
        if error:
            logger.error("%s", error)
        self.error = error
        self._notify_changed()

    def _notify_changed(self):
        if self.on_changed:
            self.on_changed()
