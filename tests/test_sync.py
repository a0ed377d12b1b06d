"""Tests for the sync adapter, using an in-memory stand-in for the remote service."""

from dataclasses import replace

import pytest

from mindcanvas.api import SearchResult
from mindcanvas.errors import AuthenticationError, NetworkError, NotFoundError, ValidationError
from mindcanvas.model import MindMap
from mindcanvas.mutations import Retext, new_mind_map, update_node
from mindcanvas.session import EditorSession
from mindcanvas.sync import SyncAdapter


class FakeService:
    """Keeps "server" maps in a dict and records the calls it receives."""

    def __init__(self, authenticated=True):
        self.is_authenticated = authenticated
        self.maps = {}
        self.calls = []
        self.fail_with = None

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_with is not None:
            raise self.fail_with

    def list_maps(self):
        self._call("list_maps")
        return list(self.maps.values())

    def get_map(self, map_id):
        self._call("get_map", map_id)
        if map_id not in self.maps:
            raise NotFoundError(map_id)
        return self.maps[map_id]

    def create_map(self, title, description="", is_public=False, tags=()):
        self._call("create_map", title)
        created = MindMap(id=f"srv-{len(self.maps) + 1}", title=title, description=description,
                          is_public=is_public, tags=tuple(tags))
        self.maps[created.id] = created
        return created

    def update_map(self, mind_map):
        self._call("update_map", mind_map.id)
        saved = replace(mind_map, version=mind_map.version + 1)
        self.maps[saved.id] = saved
        return saved

    def delete_map(self, map_id):
        self._call("delete_map", map_id)
        self.maps.pop(map_id, None)

    def duplicate_map(self, map_id):
        self._call("duplicate_map", map_id)
        copy = replace(self.maps[map_id], id=f"{map_id}-copy")
        self.maps[copy.id] = copy
        return copy

    def search(self, query="", **options):
        self._call("search", query)
        return SearchResult(mind_maps=list(self.maps.values()))


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def editor():
    return EditorSession()


@pytest.fixture
def sync(editor, service, store):
    return SyncAdapter(editor, service, store)


class TestLoadAll:
    def test_offline_uses_local_store(self, sync, service, store, editor):
        service.is_authenticated = False
        store.save_map(new_mind_map("Local", map_id="local-1"))

        maps = sync.load_all()
        assert [m.id for m in maps] == ["local-1"]
        assert editor.local_mode is True
        assert service.calls == []

    def test_rejected_credentials_fall_back(self, sync, service, store, editor):
        service.fail_with = AuthenticationError("expired")
        store.save_map(new_mind_map("Local", map_id="local-1"))

        maps = sync.load_all()
        assert [m.id for m in maps] == ["local-1"]
        assert editor.local_mode is True
        assert editor.error is None

    def test_offline_then_online_merge(self, sync, service, store, editor):
        service.is_authenticated = False
        offline = sync.create("Written offline")
        assert store.get_map(offline.id) is not None

        service.is_authenticated = True
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        maps = sync.load_all()

        assert [m.id for m in maps] == ["srv-1", offline.id]
        assert editor.local_mode is False
        assert [m.id for m in editor.mind_maps] == ["srv-1", offline.id]
        # Server maps are cached locally but not listed as local-only
        assert [m.id for m in store.get_local_only_maps()] == [offline.id]

    def test_two_offline_maps_merge_after_sign_in(self, sync, service, editor):
        service.is_authenticated = False
        first = sync.create("First offline")
        second = sync.create("Second offline")
        assert service.calls == []

        service.is_authenticated = True
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        ids = [m.id for m in sync.load_all()]

        assert ids[0] == "srv-1"
        assert sorted(ids) == sorted(["srv-1", first.id, second.id])
        assert len(set(ids)) == len(ids)
        assert [m.id for m in editor.mind_maps] == ids

    def test_server_copy_wins_on_id_clash(self, sync, service, store):
        store.save_map(new_mind_map("Local copy", map_id="same"))
        service.maps["same"] = new_mind_map("Server copy", map_id="same")

        maps = sync.load_all()
        assert [(m.id, m.title) for m in maps] == [("same", "Server copy")]

    def test_network_failure_recorded(self, sync, service, editor):
        service.fail_with = NetworkError("down")
        with pytest.raises(NetworkError):
            sync.load_all()
        assert "down" in editor.error
        assert editor.loading is False


class TestLoadAndSave:
    def test_load_opens_map(self, sync, service, editor):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        sync.load("srv-1")
        assert editor.current.id == "srv-1"
        assert len(editor.history) == 1

    def test_load_missing_local_map(self, sync, service):
        service.is_authenticated = False
        with pytest.raises(NotFoundError):
            sync.load("ghost")

    def test_save_remote(self, sync, service, store, editor):
        mind_map = new_mind_map("Server map", map_id="srv-1")
        service.maps["srv-1"] = mind_map
        sync.load("srv-1")

        saved = sync.save()
        assert ("update_map", "srv-1") in service.calls
        assert saved.version == 2
        assert editor.current is saved
        assert store.get_map("srv-1").version == 2

    def test_save_local_bumps_version(self, sync, service, store, editor):
        service.is_authenticated = False
        created = sync.create("Offline")
        edited = update_node(created, created.nodes[0].id, Retext("Changed"))
        editor.commit(edited, "edit")

        saved = sync.save()
        assert saved.version == 2
        assert store.get_map(created.id).nodes[0].text == "Changed"
        assert service.calls == []

    def test_save_failure_keeps_local_state(self, sync, service, editor):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        sync.load("srv-1")
        edited = update_node(editor.current, editor.current.nodes[0].id, Retext("Unsaved"))
        editor.commit(edited, "edit")

        service.fail_with = NetworkError("timeout")
        with pytest.raises(NetworkError):
            sync.save()
        assert editor.current is edited
        assert editor.error.startswith("Failed to save mind map")
        assert editor.loading is False

    def test_late_save_response_for_other_map(self, sync, service, editor):
        service.maps["a"] = new_mind_map("A", map_id="a")
        service.maps["b"] = new_mind_map("B", map_id="b")
        sync.load("a")
        snapshot = editor.current
        pushed = sync.push(snapshot)

        sync.load("b")
        sync.apply_saved(pushed)
        assert editor.current.id == "b"
        assert editor.get_map("a").version == 2

    def test_save_without_document(self, sync):
        assert sync.save() is None

    def test_rejected_save_switches_to_local_mode(self, sync, service, store, editor):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        sync.load("srv-1")
        edited = update_node(editor.current, editor.current.nodes[0].id, Retext("Kept"))
        editor.commit(edited, "edit")

        service.fail_with = AuthenticationError("expired")
        with pytest.raises(AuthenticationError):
            sync.save()
        assert editor.local_mode is True
        assert editor.current is edited

        # The next save stays on this computer
        service.fail_with = None
        calls = len(service.calls)
        saved = sync.save()
        assert service.calls[calls:] == []
        assert store.get_map("srv-1").nodes[0].text == "Kept"
        assert saved.version == edited.version + 1

    @pytest.mark.parametrize("operation", [
        lambda sync: sync.load("srv-1"),
        lambda sync: sync.create("Another"),
        lambda sync: sync.delete("srv-1"),
        lambda sync: sync.duplicate("srv-1"),
    ])
    def test_rejected_credentials_on_any_operation(self, sync, service, editor, operation):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        service.fail_with = AuthenticationError("expired")
        with pytest.raises(AuthenticationError):
            operation(sync)
        assert editor.local_mode is True

    def test_handle_failure_ignores_other_errors(self, sync, editor):
        sync.handle_failure(NetworkError("down"))
        assert editor.local_mode is False
        sync.handle_failure(AuthenticationError("expired"))
        assert editor.local_mode is True


class TestCreateDelete:
    def test_create_remote_seeds_root(self, sync, service, store, editor):
        created = sync.create("Fresh", description="about")
        assert created.id == "srv-1"
        assert len(created.nodes) == 1
        assert created.nodes[0].text == "Fresh"
        assert editor.current is created
        assert store.get_map("srv-1") is not None

    def test_create_validates_first(self, sync, service):
        with pytest.raises(ValidationError):
            sync.create("")
        assert service.calls == []

    def test_delete_remote(self, sync, service, store, editor):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        sync.load("srv-1")
        sync.delete("srv-1")
        assert ("delete_map", "srv-1") in service.calls
        assert store.get_map("srv-1") is None
        assert editor.current is None
        assert editor.mind_maps == []

    def test_delete_local_only(self, sync, service, store):
        service.is_authenticated = False
        created = sync.create("Offline")
        sync.delete(created.id)
        assert store.get_map(created.id) is None
        assert service.calls == []


class TestOtherOperations:
    def test_duplicate_local(self, sync, service, store, editor):
        service.is_authenticated = False
        created = sync.create("Offline")
        copy = sync.duplicate(created.id)
        assert copy.id != created.id
        assert copy.title == "Offline (Copy)"
        assert copy.nodes == created.nodes
        assert editor.current is created
        assert editor.get_map(copy.id) is copy

    def test_duplicate_remote(self, sync, service, editor):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        copy = sync.duplicate("srv-1")
        assert copy.id == "srv-1-copy"
        assert editor.get_map("srv-1-copy") is copy

    def test_offline_search_matches_node_text(self, sync, service, store):
        service.is_authenticated = False
        mind_map = new_mind_map("Groceries", map_id="g")
        mind_map = update_node(mind_map, mind_map.nodes[0].id, Retext("Buy apples"))
        store.save_map(mind_map)
        store.save_map(new_mind_map("Taxes", map_id="t"))

        result = sync.search("APPLES")
        assert [m.id for m in result.mind_maps] == ["g"]
        assert result.total_results == 1

    def test_online_search_delegates(self, sync, service):
        service.maps["srv-1"] = new_mind_map("Server map", map_id="srv-1")
        result = sync.search("server", sort_by="title")
        assert ("search", "server") in service.calls
        assert len(result.mind_maps) == 1
