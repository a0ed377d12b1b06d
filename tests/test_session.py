"""Tests for the editor session."""

from unittest.mock import MagicMock

from mindcanvas.mutations import (
    NodeMovement, Retext, clear_transient_state, create_connection, create_node, move_nodes,
    new_mind_map, select_nodes, start_editing, update_node, zoom_in,
)
from mindcanvas.session import EditorSession


def test_open_resets_history_and_lists_map(sample_map):
    session = EditorSession()
    session.open(sample_map)
    assert session.current is sample_map
    assert session.mind_maps == [sample_map]
    assert len(session.history) == 1
    assert not session.history.can_undo


def test_apply_does_not_record_history(session):
    session.apply(zoom_in(session.current))
    assert session.current.canvas.zoom > 1.0
    assert not session.history.can_undo


def test_commit_then_undo_redo(session, sample_map):
    root_id = sample_map.nodes[0].id
    edited = update_node(sample_map, root_id, Retext("Renamed"))
    session.commit(edited, "edit")

    assert session.undo() is True
    assert session.current.nodes[0].text == "Project Plan"
    assert session.redo() is True
    assert session.current.nodes[0].text == "Renamed"
    assert session.redo() is False


def test_undo_clears_selection_and_editing(session, sample_map):
    node_id = sample_map.nodes[1].id
    editing = start_editing(select_nodes(sample_map, [node_id]), node_id)
    session.commit(update_node(editing, node_id, Retext("x")), "edit")
    session.commit(update_node(session.current, node_id, Retext("y")), "edit")

    session.undo()
    assert session.current.canvas.selected_nodes == frozenset()
    assert session.current.canvas.editing_node is None


def test_upsert_replaces_by_id(session, sample_map):
    other = new_mind_map("Other")
    session.upsert_map(other)
    renamed = update_node(sample_map, sample_map.nodes[0].id, Retext("New"))
    session.upsert_map(renamed)
    assert [m.id for m in session.mind_maps] == [sample_map.id, other.id]
    assert session.get_map(sample_map.id) is renamed


def test_remove_current_map_closes_it(session, sample_map):
    session.remove_map(sample_map.id)
    assert session.current is None
    assert session.mind_maps == []
    assert len(session.history) == 0


def test_callbacks_fire(sample_map):
    session = EditorSession()
    session.on_changed = MagicMock()
    session.open(sample_map)
    session.set_loading(True)
    session.set_error("boom")
    assert session.on_changed.call_count == 3
    assert session.error == "boom"


def test_undo_redo_walk_a_sequence_of_commits(session, sample_map):
    child_a, child_b = sample_map.nodes[1].id, sample_map.nodes[2].id

    moved = move_nodes(sample_map, [NodeMovement(child_a, 250, 180)])
    connected, _ = create_connection(moved, child_a, child_b)
    created, new_node = create_node(connected, child_b, (900, 300), "Child C")
    edited = update_node(created, new_node.id, Retext("Child C, renamed"))

    steps = [(moved, "move"), (connected, "connect"), (created, "create"), (edited, "edit")]
    for mind_map, action in steps:
        session.commit(mind_map, action)

    for _ in steps:
        assert session.undo() is True
    assert session.current == clear_transient_state(sample_map)
    assert session.undo() is False

    for _ in steps:
        assert session.redo() is True
    assert session.current == clear_transient_state(edited)
    assert session.redo() is False
