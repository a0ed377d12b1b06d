"""Sync adapter between the editor session, the remote service and the local store.

Each operation comes in two halves:

* ``fetch_*`` / ``push_*`` talk to the network and the local store and never
  touch the session, so the UI can run them on a worker thread;
* ``apply_*`` update the session and must run on the UI thread.

The plain methods (``load_all``, ``load``, ``save``, ``create``, ``delete``)
run both halves in sequence and record failures on the session.

When the user is not authenticated, or the server rejects the credentials,
the adapter switches to local-only mode and keeps maps in the SQLite store.
Maps created in that mode are appended to the server list once the user
logs in; a server map with the same id wins.
"""

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, List, Optional, Sequence, Tuple

from mindcanvas.api import MindMapService, SearchResult
from mindcanvas.errors import AuthenticationError, MindCanvasError, NotFoundError
from mindcanvas.model import MindMap, validate_mind_map_fields
from mindcanvas.mutations import new_id, new_mind_map, seed_root_node
from mindcanvas.session import EditorSession
from mindcanvas.storage import LocalStore

logger = logging.getLogger(__name__)


class SyncAdapter:
    """Loads, saves, creates and deletes maps on behalf of an EditorSession."""

    def __init__(self, session: EditorSession, service: MindMapService, store: LocalStore):
        self.session = session
        self.service = service
        self.store = store

    @contextmanager
    def _busy(self, what: str) -> Iterator[None]:
        self.session.loading = True
        self.session.error = None
        try:
            yield
        except MindCanvasError as exc:
            self.handle_failure(exc)
            self.session.set_error(f"Failed to {what}: {exc}")
            raise
        finally:
            self.session.set_loading(False)

    def handle_failure(self, exc: Exception):
        """Drop into local-only mode when the server rejects the credentials.

        Must run on the UI thread.
        """
        if isinstance(exc, AuthenticationError) and not self.session.local_mode:
            logger.warning("Server rejected credentials; switching to local mode")
            self.session.local_mode = True

    def _is_local(self, map_id: str) -> bool:
        if self.session.local_mode or not self.service.is_authenticated:
            return True
        return any(m.id == map_id for m in self.store.get_local_only_maps())

    # ==================== Load All ====================

    def fetch_all(self) -> Tuple[List[MindMap], bool]:
        """Return ``(maps, local_mode)``: server maps plus local-only ones."""
        local_only = self.store.get_local_only_maps()

        if not self.service.is_authenticated:
            logger.info("Not authenticated; using local maps only")
            return self.store.get_all_maps(), True

        try:
            remote = self.service.list_maps()
        except AuthenticationError:
            logger.warning("Server rejected credentials; switching to local mode")
            return self.store.get_all_maps(), True

        for mind_map in remote:
            self.store.save_map(mind_map, remote=True)

        known = {m.id for m in remote}
        merged = list(remote) + [m for m in local_only if m.id not in known]
        logger.info("Loaded %d remote and %d local-only map(s)",
                    len(remote), len(merged) - len(remote))
        return merged, False

    def apply_all(self, result: Tuple[List[MindMap], bool]) -> List[MindMap]:
        maps, local_mode = result
        self.session.local_mode = local_mode
        self.session.set_maps(maps)
        return maps

    def load_all(self) -> List[MindMap]:
        with self._busy("load mind maps"):
            return self.apply_all(self.fetch_all())

    # ==================== Load One ====================

    def fetch(self, map_id: str) -> MindMap:
        if self._is_local(map_id):
            mind_map = self.store.get_map(map_id)
            if mind_map is None:
                raise NotFoundError(f"Mind map {map_id} not found")
            return mind_map
        return self.service.get_map(map_id)

    def apply_loaded(self, mind_map: MindMap) -> MindMap:
        self.session.open(mind_map, "load")
        return mind_map

    def load(self, map_id: str) -> MindMap:
        """Open a map. A response that arrives late still replaces the current map."""
        with self._busy("load mind map"):
            return self.apply_loaded(self.fetch(map_id))

    # ==================== Save ====================

    def push(self, mind_map: MindMap) -> MindMap:
        """Persist exactly ``mind_map`` and return the stored representation."""
        if self._is_local(mind_map.id):
            stored = replace(mind_map, version=mind_map.version + 1)
            self.store.save_map(stored, remote=False)
            return stored
        saved = self.service.update_map(mind_map)
        self.store.save_map(saved, remote=True)
        return saved

    def apply_saved(self, saved: MindMap) -> MindMap:
        current = self.session.current
        if current is not None and current.id == saved.id:
            self.session.apply(saved)
        self.session.upsert_map(saved)
        return saved

    def save(self, mind_map: Optional[MindMap] = None) -> Optional[MindMap]:
        """Save ``mind_map`` (default: the current map as it is right now).

        On failure the error propagates and the local state is kept as is.
        """
        target = mind_map or self.session.current
        if target is None:
            return None
        with self._busy("save mind map"):
            return self.apply_saved(self.push(target))

    # ==================== Create ====================

    def push_new(self, title: str, description: str = "", is_public: bool = False,
                 tags: Sequence[str] = ()) -> MindMap:
        """Create a map remotely (or locally when offline) and seed its root node."""
        validate_mind_map_fields(title=title, description=description, tags=tags)

        if self.session.local_mode or not self.service.is_authenticated:
            mind_map = new_mind_map(title, description=description, is_public=is_public,
                                    tags=tags)
            self.store.save_map(mind_map, remote=False)
            logger.info("Created local-only map %s", mind_map.id)
            return mind_map

        shell = self.service.create_map(title, description, is_public, tags)
        # The root node lives only on this side until the first save
        mind_map = seed_root_node(shell)
        self.store.save_map(mind_map, remote=True)
        logger.info("Created map %s", mind_map.id)
        return mind_map

    def apply_created(self, mind_map: MindMap) -> MindMap:
        self.session.open(mind_map, "create")
        return mind_map

    def create(self, title: str, description: str = "", is_public: bool = False,
               tags: Sequence[str] = ()) -> MindMap:
        with self._busy("create mind map"):
            return self.apply_created(self.push_new(title, description, is_public, tags))

    # ==================== Delete ====================

    def push_delete(self, map_id: str) -> str:
        if not self._is_local(map_id):
            self.service.delete_map(map_id)
        self.store.delete_map(map_id)
        return map_id

    def apply_deleted(self, map_id: str):
        self.session.remove_map(map_id)

    def delete(self, map_id: str):
        with self._busy("delete mind map"):
            self.apply_deleted(self.push_delete(map_id))

    # ==================== Duplicate ====================

    def push_duplicate(self, map_id: str) -> MindMap:
        if self._is_local(map_id):
            original = self.fetch(map_id)
            copy = replace(original, id=new_id(), title=f"{original.title} (Copy)", version=1)
            self.store.save_map(copy, remote=False)
            return copy
        copy = self.service.duplicate_map(map_id)
        self.store.save_map(copy, remote=True)
        return copy

    def apply_duplicated(self, copy: MindMap) -> MindMap:
        self.session.upsert_map(copy)
        return copy

    def duplicate(self, map_id: str) -> MindMap:
        """Copy a map; the copy is added to the map list but not opened."""
        with self._busy("duplicate mind map"):
            return self.apply_duplicated(self.push_duplicate(map_id))

    # ==================== Other Remote Operations ====================

    def search(self, query: str = "", **options) -> SearchResult:
        """Search the server, or titles of local maps when offline."""
        if self.session.local_mode or not self.service.is_authenticated:
            needle = query.strip().lower()
            maps = [m for m in self.store.get_all_maps()
                    if needle in m.title.lower() or needle in m.description.lower()
                    or any(needle in n.text.lower() for n in m.nodes)]
            return SearchResult(mind_maps=maps, total_pages=1 if maps else 0,
                                total_results=len(maps), limit=len(maps) or 20)
        return self.service.search(query, **options)

    def list_collaborators(self, map_id: str) -> dict:
        return self.service.list_collaborators(map_id)

    def add_collaborator(self, map_id: str, email: str):
        return self.service.add_collaborator(map_id, email)

    def remove_collaborator(self, map_id: str, user_id: str):
        self.service.remove_collaborator(map_id, user_id)

    def export_remote(self, map_id: str, fmt: str) -> bytes:
        return self.service.export_map(map_id, fmt)
