"""Shared fixtures for the MindCanvas test suite."""

import pytest

from mindcanvas.config import Config
from mindcanvas.history import HistoryManager
from mindcanvas.mutations import create_node, new_mind_map, stop_editing
from mindcanvas.session import EditorSession
from mindcanvas.storage import LocalStore


@pytest.fixture
def empty_map():
    """A map with its root node only."""
    return new_mind_map("Project Plan", map_id="map-1")


@pytest.fixture
def sample_map(empty_map):
    """Root with two children, and a grandchild under the first child."""
    root = empty_map.nodes[0]
    mind_map, child_a = create_node(empty_map, root.id, (100, 100), "Child A")
    mind_map, child_b = create_node(mind_map, root.id, (700, 100), "Child B")
    mind_map, _ = create_node(mind_map, child_a.id, (100, 400), "Grandchild")
    return stop_editing(mind_map)


@pytest.fixture
def session(sample_map):
    editor = EditorSession(HistoryManager())
    editor.open(sample_map)
    return editor


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=tmp_path)


@pytest.fixture
def store(tmp_path):
    local = LocalStore(tmp_path / "test.db")
    yield local
    local.close()
