"""Tests for the canvas interaction state machine.

The sample map is viewed at zoom 1 with no pan, so screen and world
coordinates coincide. Layout: root at (400, 300) 200x60, Child A at
(100, 100), Child B at (700, 100), Grandchild at (100, 400), all 150x60.
"""

import pytest

from mindcanvas.errors import ValidationError
from mindcanvas.interaction import InteractionStateMachine, Mode
from mindcanvas.model import CanvasBounds, ConnectionType
from mindcanvas.mutations import (
    SetBounds, SetSnapToGrid, delete_nodes, select_nodes, update_canvas,
)
from mindcanvas.session import EditorSession

EMPTY_SPOT = (1000, 700)


@pytest.fixture
def machine(session):
    return InteractionStateMachine(session)


def node_id(session, text):
    return next(node.id for node in session.current.nodes if node.text == text)


def position(session, text):
    node = session.current.get_node(node_id(session, text))
    return (node.x, node.y)


class TestDragging:
    def test_document_untouched_until_release(self, machine, session):
        machine.pointer_down(110, 110)
        assert machine.mode is Mode.DRAGGING_NODE
        before = session.current

        machine.pointer_move(160, 130)
        assert session.current is before
        assert machine.preview_position(node_id(session, "Child A")) == (150, 120)
        rendered = {n.text: (n.x, n.y) for n in machine.render_nodes()}
        assert rendered["Child A"] == (150, 120)

        machine.pointer_up(160, 130)
        assert machine.mode is Mode.IDLE
        assert position(session, "Child A") == (150, 120)
        assert session.history.undo_description == "move"

    def test_move_is_one_undo_step(self, machine, session):
        machine.pointer_down(110, 110)
        for step in range(1, 20):
            machine.pointer_move(110 + step * 10, 110)
        machine.pointer_up(300, 110)
        assert len(session.history) == 2
        session.undo()
        assert position(session, "Child A") == (100, 100)

    def test_click_without_motion_records_nothing(self, machine, session):
        machine.pointer_down(110, 110)
        machine.pointer_up(110, 110)
        assert len(session.history) == 1
        assert session.current.canvas.selected_nodes == {node_id(session, "Child A")}

    def test_drag_moves_whole_selection(self, machine, session):
        a, b = node_id(session, "Child A"), node_id(session, "Child B")
        session.apply(select_nodes(session.current, [a, b]))
        machine.pointer_down(110, 110)
        machine.pointer_up(130, 140)
        assert position(session, "Child A") == (120, 130)
        assert position(session, "Child B") == (720, 130)

    def test_snap_to_grid(self, machine, session):
        session.apply(update_canvas(session.current, SetSnapToGrid(True)))
        machine.pointer_down(110, 110)
        machine.pointer_up(123, 143)
        assert position(session, "Child A") == (120, 140)

    def test_node_deleted_mid_drag(self, machine, session):
        machine.pointer_down(110, 110)
        machine.pointer_move(200, 200)
        session.commit(delete_nodes(session.current, [node_id(session, "Child A")]), "delete")
        history_size = len(session.history)

        machine.pointer_up(200, 200)
        assert machine.mode is Mode.IDLE
        assert len(session.history) == history_size
        assert machine.render_nodes() == list(session.current.nodes)


class TestPanning:
    def test_empty_press_clears_selection_and_pans(self, machine, session):
        machine.pointer_down(*EMPTY_SPOT)
        assert machine.mode is Mode.PANNING_CANVAS
        assert session.current.canvas.selected_nodes == frozenset()

        machine.pointer_move(1050, 720)
        assert (session.current.canvas.pan_x, session.current.canvas.pan_y) == (50, 20)
        machine.pointer_up(1050, 720)
        assert machine.mode is Mode.IDLE
        assert len(session.history) == 1

    def test_pan_clamped_to_bounds(self, machine, session):
        machine.set_viewport_size(800, 600)
        bounds = CanvasBounds(min_x=0, max_x=1000, min_y=0, max_y=1000)
        session.apply(update_canvas(session.current, SetBounds(bounds)))

        machine.pointer_down(790, 590)
        machine.pointer_move(5790, 5590)
        assert (session.current.canvas.pan_x, session.current.canvas.pan_y) == (400, 300)
        machine.pointer_move(-9000, -9000)
        assert (session.current.canvas.pan_x, session.current.canvas.pan_y) == (-600, -700)

    def test_space_pan_keeps_selection(self, machine, session):
        a = node_id(session, "Child A")
        session.apply(select_nodes(session.current, [a]))
        assert machine.key_down("space") is True
        machine.pointer_down(*EMPTY_SPOT)
        assert machine.mode is Mode.PANNING_CANVAS
        assert session.current.canvas.selected_nodes == {a}
        machine.key_up("space")
        assert not machine.space_held

    def test_space_does_not_override_node_press(self, machine, session):
        machine.key_down("space")
        machine.pointer_down(110, 110)
        assert machine.mode is Mode.DRAGGING_NODE
        machine.pointer_move(160, 110)
        machine.pointer_up(160, 110)
        assert position(session, "Child A") == (150, 100)

    def test_space_does_not_cancel_pending_connection(self, machine, session):
        a, b = node_id(session, "Child A"), node_id(session, "Child B")
        machine.start_connection(a)
        machine.key_down("space")
        machine.pointer_down(710, 110)
        assert machine.mode is Mode.IDLE
        assert [(c.from_node_id, c.to_node_id) for c in session.current.connections] == [(a, b)]

    def test_wheel_zooms(self, machine, session):
        machine.wheel(-1)
        assert session.current.canvas.zoom == pytest.approx(1.2)
        machine.wheel(1)
        machine.wheel(1)
        assert session.current.canvas.zoom == pytest.approx(1 / 1.2)


class TestEditing:
    def test_double_click_empty_creates_and_edits(self, machine, session):
        machine.double_click(*EMPTY_SPOT)
        assert machine.mode is Mode.EDITING_TEXT
        created = session.current.get_node(machine.editing_node_id)
        assert (created.x, created.y) == EMPTY_SPOT
        assert session.history.undo_description == "create"

        machine.text_input("Hello")
        assert machine.key_down("Return") is True
        assert machine.mode is Mode.IDLE
        assert session.current.get_node(created.id).text == "Hello"
        assert session.current.canvas.editing_node is None
        assert len(session.history) == 3

    def test_unchanged_text_records_nothing(self, machine, session):
        machine.double_click(110, 110)
        assert machine.editing_node_id == node_id(session, "Child A")
        machine.key_down("Escape")
        assert machine.mode is Mode.IDLE
        assert len(session.history) == 1

    def test_keys_go_to_text_entry_while_editing(self, machine, session):
        machine.double_click(110, 110)
        assert machine.key_down("Delete") is False
        assert machine.key_down("z", ctrl=True) is False
        assert machine.key_down("space") is False
        assert len(session.current.nodes) == 4

    def test_begin_editing_unknown_node(self, machine):
        machine.begin_editing("ghost")
        assert machine.mode is Mode.IDLE

    def test_press_elsewhere_finishes_editing(self, machine, session):
        machine.double_click(110, 110)
        machine.text_input("Changed")
        machine.pointer_down(*EMPTY_SPOT)
        assert session.history.undo_description == "edit"
        assert machine.mode is Mode.PANNING_CANVAS


class TestConnecting:
    def test_create_and_connect(self, machine, session):
        a, b = node_id(session, "Child A"), node_id(session, "Child B")
        machine.start_connection(a)
        assert machine.mode is Mode.CONNECTING_FROM
        machine.pointer_move(400, 200)
        assert machine.connection_preview() == ((175, 130), (400, 200))

        machine.pointer_down(710, 110)
        assert machine.mode is Mode.IDLE
        assert len(session.current.connections) == 1
        assert session.current.connections[0].joins(a, b)
        assert session.history.undo_description == "connect"

        machine.start_connection(b)
        machine.pointer_down(110, 110)
        assert len(session.current.connections) == 1

    def test_click_on_empty_canvas_cancels(self, machine, session):
        machine.start_connection(node_id(session, "Child A"))
        machine.pointer_down(*EMPTY_SPOT)
        assert machine.mode is Mode.IDLE
        assert session.current.connections == ()

    def test_escape_cancels(self, machine, session):
        machine.start_connection(node_id(session, "Child A"))
        machine.key_down("Escape")
        assert machine.mode is Mode.IDLE
        assert machine.connection_preview() is None

    def test_start_from_missing_node(self, machine):
        machine.start_connection("ghost")
        assert machine.mode is Mode.IDLE


class TestKeyboard:
    def test_delete_selection_and_undo(self, machine, session):
        session.apply(select_nodes(session.current, [node_id(session, "Child A")]))
        assert machine.key_down("Delete") is True
        assert [n.text for n in session.current.nodes] == ["Project Plan", "Child B"]

        assert machine.key_down("z", ctrl=True) is True
        assert len(session.current.nodes) == 4
        assert machine.key_down("Z", ctrl=True, shift=True) is True
        assert len(session.current.nodes) == 2

    def test_delete_without_selection(self, machine, session):
        machine.key_down("Escape")
        assert session.current.canvas.selected_nodes == frozenset()
        assert machine.key_down("Delete") is False

    def test_undo_with_empty_history(self, machine):
        assert machine.key_down("z", ctrl=True) is False

    def test_unknown_key_not_consumed(self, machine):
        assert machine.key_down("q") is False


class TestProperties:
    def test_selected_node_needs_single_selection(self, machine, session):
        a, b = node_id(session, "Child A"), node_id(session, "Child B")
        assert machine.selected_node() is None
        session.apply(select_nodes(session.current, [a]))
        assert machine.selected_node().id == a
        session.apply(select_nodes(session.current, [a, b]))
        assert machine.selected_node() is None

    def test_text_change_is_one_edit_step(self, machine, session):
        a = node_id(session, "Child A")
        assert machine.set_node_text(a, "Renamed") is True
        assert session.current.get_node(a).text == "Renamed"
        assert session.history.undo_description == "edit"
        assert machine.set_node_text(a, "Renamed") is False
        session.undo()
        assert session.current.get_node(a).text == "Child A"

    def test_text_change_ends_canvas_editing_of_that_node(self, machine, session):
        a = node_id(session, "Child A")
        machine.double_click(110, 110)
        machine.text_input("Typed")
        machine.set_node_text(a, "From panel")
        assert machine.mode is Mode.IDLE
        assert session.current.get_node(a).text == "From panel"
        assert len(session.history) == 3

    def test_color_change_is_one_style_step(self, machine, session):
        a = node_id(session, "Child A")
        before = session.current.get_node(a)
        assert machine.set_node_color(a, "#3B82F6") is True
        after = session.current.get_node(a)
        assert after.style.background_color == "#3B82F6"
        assert after.style.text_color == before.style.text_color
        assert session.history.undo_description == "style"
        assert machine.set_node_color(a, "#3b82f6") is False

    def test_invalid_color_rejected(self, machine, session):
        with pytest.raises(ValidationError):
            machine.set_node_color(node_id(session, "Child A"), "blue")
        assert len(session.history) == 1

    def test_connection_type_and_removal(self, machine, session):
        a, b = node_id(session, "Child A"), node_id(session, "Child B")
        machine.start_connection(a)
        machine.pointer_down(710, 110)
        connection = session.current.connections[0]

        assert machine.set_connection_type(connection.id, ConnectionType.CURVED) is True
        assert session.current.connections[0].type is ConnectionType.CURVED
        assert session.history.undo_description == "style"
        assert machine.set_connection_type(connection.id, ConnectionType.CURVED) is False

        assert machine.remove_connection(connection.id) is True
        assert session.current.connections == ()
        assert machine.remove_connection(connection.id) is False
        session.undo()
        assert session.current.connections[0].joins(a, b)

    def test_unknown_ids_are_ignored(self, machine):
        assert machine.set_node_text("ghost", "x") is False
        assert machine.set_node_color("ghost", "#000000") is False
        assert machine.set_connection_type("ghost", ConnectionType.STEPPED) is False


def test_no_document_is_ignored():
    machine = InteractionStateMachine(EditorSession())
    machine.pointer_down(10, 10)
    machine.pointer_move(20, 20)
    machine.pointer_up(20, 20)
    machine.double_click(10, 10)
    machine.wheel(-1)
    assert machine.mode is Mode.IDLE
    assert machine.render_nodes() == []
