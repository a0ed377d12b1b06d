"""Tests for the mutation engine."""

from dataclasses import replace

import pytest

from mindcanvas.errors import ValidationError
from mindcanvas.model import (
    CanvasBounds, ConnectionType, DashStyle, MindMap, NodeShape, NodeType, style_for_type,
)
from mindcanvas.mutations import (
    NodeMovement, Reposition, Resize, Restyle, RestyleConnection, Retext, Retype,
    SetBounds, SetCollapsed, SetConnectionType, SetGrid, SetMetadata, SetPan,
    SetSnapToGrid, SetZoom, clear_selection, clear_transient_state, create_connection,
    create_node, delete_connection, delete_nodes, descendant_closure, duplicate_node,
    move_nodes, new_mind_map, reset_zoom, seed_root_node, select_nodes, selected_nodes,
    start_editing, toggle_node_selection, update_canvas, update_connection,
    update_mind_map, update_node, zoom_in, zoom_out, zoom_to_fit,
)


def node_by_text(mind_map, text):
    return next(node for node in mind_map.nodes if node.text == text)


class TestMapConstruction:
    def test_new_map_has_selected_root(self):
        mind_map = new_mind_map("Ideas")
        assert len(mind_map.nodes) == 1
        root = mind_map.nodes[0]
        assert root.type is NodeType.ROOT
        assert root.text == "Ideas"
        assert (root.x, root.y, root.width) == (400.0, 300.0, 200)
        assert mind_map.canvas.selected_nodes == {root.id}

    def test_new_map_validates_title(self):
        with pytest.raises(ValidationError):
            new_mind_map("")

    def test_seed_root_node_only_fills_empty_maps(self, empty_map):
        assert seed_root_node(empty_map) is empty_map
        shell = MindMap(id="remote", title="Shell")
        seeded = seed_root_node(shell)
        assert seeded.id == "remote"
        assert seeded.nodes[0].type is NodeType.ROOT
        assert seeded.nodes[0].text == "Shell"

    def test_update_mind_map(self, empty_map):
        assert update_mind_map(empty_map) is empty_map
        updated = update_mind_map(empty_map, title="Renamed", tags=["a", "b"], is_public=1)
        assert updated.title == "Renamed"
        assert updated.tags == ("a", "b")
        assert updated.is_public is True
        assert empty_map.title == "Project Plan"

    def test_update_mind_map_rejects_long_description(self, empty_map):
        with pytest.raises(ValidationError):
            update_mind_map(empty_map, description="x" * 501)


class TestCreateNode:
    def test_child_links_to_parent(self, empty_map):
        root = empty_map.nodes[0]
        mind_map, child = create_node(empty_map, root.id, (10, 20), "Child")
        assert child.parent_id == root.id
        assert child.level == 1
        assert child.type is NodeType.BRANCH
        assert (child.x, child.y) == (10.0, 20.0)
        assert mind_map.get_node(root.id).children == (child.id,)
        assert mind_map.canvas.selected_nodes == {child.id}
        assert mind_map.canvas.editing_node == child.id

    def test_original_map_untouched(self, empty_map):
        create_node(empty_map, empty_map.nodes[0].id, (0, 0))
        assert len(empty_map.nodes) == 1
        assert empty_map.nodes[0].children == ()

    def test_missing_parent_is_a_no_op(self, empty_map):
        mind_map, node = create_node(empty_map, "ghost", (0, 0))
        assert node is None
        assert mind_map is empty_map

    def test_parentless_node_becomes_root_only_when_none_exists(self, empty_map):
        _, floating = create_node(empty_map, None, (0, 0))
        assert floating.type is NodeType.BRANCH
        assert floating.level == 0

        without_root = delete_nodes(empty_map, [empty_map.nodes[0].id])
        _, root = create_node(without_root, None, (0, 0))
        assert root.type is NodeType.ROOT
        assert root.style == style_for_type(NodeType.ROOT)


class TestUpdateNode:
    def test_patches_apply_in_order(self, sample_map):
        node = node_by_text(sample_map, "Child A")
        updated = update_node(sample_map, node.id, Retext("Renamed"), Reposition(5, 6),
                              Resize(10, 10), SetCollapsed(True))
        result = updated.get_node(node.id)
        assert result.text == "Renamed"
        assert (result.x, result.y) == (5.0, 6.0)
        assert (result.width, result.height) == (50, 30)
        assert result.collapsed is True

    def test_missing_node_returns_same_map(self, sample_map):
        assert update_node(sample_map, "ghost", Retext("x")) is sample_map

    def test_rejects_non_patch(self, sample_map):
        with pytest.raises(TypeError):
            update_node(sample_map, sample_map.nodes[0].id, {"text": "x"})

    def test_restyle(self, sample_map):
        node_id = sample_map.nodes[1].id
        updated = update_node(sample_map, node_id, Restyle(font_size=20, shape=NodeShape.CIRCLE))
        style = updated.get_node(node_id).style
        assert style.font_size == 20
        assert style.shape is NodeShape.CIRCLE

    def test_restyle_unknown_field(self):
        with pytest.raises(TypeError):
            Restyle(colour="#fff")

    def test_restyle_out_of_range(self, sample_map):
        with pytest.raises(ValidationError):
            update_node(sample_map, sample_map.nodes[1].id, Restyle(font_size=64))

    def test_retype_with_style_reset(self, sample_map):
        node_id = sample_map.nodes[1].id
        kept = update_node(sample_map, node_id, Retype(NodeType.TASK)).get_node(node_id)
        assert kept.type is NodeType.TASK
        assert kept.style == sample_map.get_node(node_id).style

        reset = update_node(sample_map, node_id, Retype(NodeType.TASK, reset_style=True))
        assert reset.get_node(node_id).style == style_for_type(NodeType.TASK)

    def test_metadata_merge_and_remove(self, sample_map):
        node_id = sample_map.nodes[1].id
        with_notes = update_node(sample_map, node_id, SetMetadata(notes="hello", url="x"))
        assert with_notes.get_node(node_id).metadata == {"notes": "hello", "url": "x"}
        removed = update_node(with_notes, node_id, SetMetadata(url=None))
        assert removed.get_node(node_id).metadata == {"notes": "hello"}


class TestDeleteNodes:
    def test_cascades_to_descendants(self, sample_map):
        child_a = node_by_text(sample_map, "Child A")
        result = delete_nodes(sample_map, [child_a.id])
        assert [n.text for n in result.nodes] == ["Project Plan", "Child B"]
        root = result.nodes[0]
        assert child_a.id not in root.children
        assert len(root.children) == 1

    def test_removes_touching_connections(self, sample_map):
        child_a = node_by_text(sample_map, "Child A")
        child_b = node_by_text(sample_map, "Child B")
        grandchild = node_by_text(sample_map, "Grandchild")
        mind_map, _ = create_connection(sample_map, grandchild.id, child_b.id)
        mind_map, keep = create_connection(mind_map, mind_map.nodes[0].id, child_b.id)

        result = delete_nodes(mind_map, [child_a.id])
        assert [c.id for c in result.connections] == [keep.id]

    def test_clears_selection_and_editing_of_removed_nodes(self, sample_map):
        child_b = node_by_text(sample_map, "Child B")
        root = sample_map.nodes[0]
        mind_map = start_editing(select_nodes(sample_map, [child_b.id, root.id]), child_b.id)
        result = delete_nodes(mind_map, [child_b.id])
        assert result.canvas.selected_nodes == {root.id}
        assert result.canvas.editing_node is None

    def test_unknown_ids_change_nothing(self, sample_map):
        assert delete_nodes(sample_map, ["ghost"]) is sample_map

    def test_string_argument_rejected(self, sample_map):
        with pytest.raises(TypeError):
            delete_nodes(sample_map, sample_map.nodes[0].id)

    def test_descendant_closure_survives_cycles(self, sample_map):
        root = sample_map.nodes[0]
        grandchild = node_by_text(sample_map, "Grandchild")
        looped = replace(sample_map, nodes=tuple(
            replace(n, children=(root.id,)) if n.id == grandchild.id else n
            for n in sample_map.nodes
        ))
        assert descendant_closure(looped, [grandchild.id]) == looped.node_ids


class TestMoveAndDuplicate:
    def test_move_does_not_carry_descendants(self, sample_map):
        child_a = node_by_text(sample_map, "Child A")
        grandchild = node_by_text(sample_map, "Grandchild")
        moved = move_nodes(sample_map, [NodeMovement(child_a.id, 500, 500)])
        assert (moved.get_node(child_a.id).x, moved.get_node(child_a.id).y) == (500, 500)
        assert moved.get_node(grandchild.id) == grandchild

    def test_move_rejects_tuples(self, sample_map):
        with pytest.raises(TypeError):
            move_nodes(sample_map, [(sample_map.nodes[0].id, 1, 2)])

    def test_move_unknown_node(self, sample_map):
        assert move_nodes(sample_map, [NodeMovement("ghost", 1, 2)]) is sample_map

    def test_duplicate(self, sample_map):
        child_a = node_by_text(sample_map, "Child A")
        mind_map, copy = duplicate_node(sample_map, child_a.id)
        assert copy.text == "Child A (Copy)"
        assert (copy.x, copy.y) == (child_a.x + 20, child_a.y + 20)
        assert copy.children == ()
        assert copy.id in mind_map.nodes[0].children

    def test_duplicate_root_becomes_branch(self, empty_map):
        _, copy = duplicate_node(empty_map, empty_map.nodes[0].id)
        assert copy.type is NodeType.BRANCH


class TestConnections:
    def test_create(self, sample_map):
        a, b = sample_map.nodes[1].id, sample_map.nodes[2].id
        mind_map, connection = create_connection(sample_map, a, b)
        assert connection.from_node_id == a
        assert connection.type is ConnectionType.STRAIGHT
        assert mind_map.connections == (connection,)

    def test_no_self_loops(self, sample_map):
        node_id = sample_map.nodes[0].id
        mind_map, connection = create_connection(sample_map, node_id, node_id)
        assert connection is None
        assert mind_map is sample_map

    def test_no_duplicates_in_either_direction(self, sample_map):
        a, b = sample_map.nodes[1].id, sample_map.nodes[2].id
        mind_map, _ = create_connection(sample_map, a, b)
        again, connection = create_connection(mind_map, b, a)
        assert connection is None
        assert len(again.connections) == 1

    def test_missing_endpoint(self, sample_map):
        _, connection = create_connection(sample_map, sample_map.nodes[0].id, "ghost")
        assert connection is None

    def test_update_and_delete(self, sample_map):
        mind_map, connection = create_connection(
            sample_map, sample_map.nodes[1].id, sample_map.nodes[2].id)
        mind_map = update_connection(mind_map, connection.id,
                                     SetConnectionType(ConnectionType.CURVED),
                                     RestyleConnection(width=4, dash=DashStyle.DASHED))
        updated = mind_map.get_connection(connection.id)
        assert updated.type is ConnectionType.CURVED
        assert updated.style.width == 4
        assert updated.style.dash is DashStyle.DASHED

        assert delete_connection(mind_map, connection.id).connections == ()
        assert delete_connection(mind_map, "ghost") is mind_map

    def test_restyle_connection_validates(self, sample_map):
        mind_map, connection = create_connection(
            sample_map, sample_map.nodes[1].id, sample_map.nodes[2].id)
        with pytest.raises(ValidationError):
            update_connection(mind_map, connection.id, RestyleConnection(opacity=1.5))


class TestCanvas:
    def test_zoom_is_clamped(self, empty_map):
        assert update_canvas(empty_map, SetZoom(0.0001)).canvas.zoom == 0.1
        assert update_canvas(empty_map, SetZoom(99)).canvas.zoom == 3.0

    def test_zoom_steps(self, empty_map):
        zoomed = zoom_in(empty_map)
        assert zoomed.canvas.zoom == pytest.approx(1.2)
        assert zoom_out(zoomed).canvas.zoom == pytest.approx(1.0)
        assert reset_zoom(zoomed).canvas.zoom == 1.0

    def test_unchanged_canvas_returns_same_map(self, empty_map):
        assert update_canvas(empty_map, SetPan(0, 0)) is empty_map

    def test_grid_settings(self, empty_map):
        mind_map = update_canvas(empty_map, SetGrid(size=40, show=True), SetSnapToGrid(True))
        assert mind_map.canvas.grid_size == 40
        assert mind_map.canvas.show_grid is True
        assert mind_map.canvas.snap_to_grid is True
        with pytest.raises(ValidationError):
            update_canvas(empty_map, SetGrid(size=0))

    def test_bounds(self, empty_map):
        bounds = CanvasBounds(min_x=0, max_x=1000, min_y=0, max_y=1000)
        assert update_canvas(empty_map, SetBounds(bounds)).canvas.bounds == bounds
        with pytest.raises(ValidationError):
            update_canvas(empty_map, SetBounds(CanvasBounds(min_x=10, max_x=0)))

    def test_rejects_non_patch(self, empty_map):
        with pytest.raises(TypeError):
            update_canvas(empty_map, ("zoom", 2))

    def test_zoom_to_fit_centres_content(self, sample_map):
        fitted = zoom_to_fit(sample_map, 800, 600)
        assert 0.1 <= fitted.canvas.zoom <= 1.0
        assert fitted.nodes == sample_map.nodes


class TestSelection:
    def test_select_replaces_or_adds(self, sample_map):
        a, b = sample_map.nodes[1].id, sample_map.nodes[2].id
        assert select_nodes(sample_map, [a]).canvas.selected_nodes == {a}
        both = select_nodes(select_nodes(sample_map, [a]), [b], additive=True)
        assert both.canvas.selected_nodes == {a, b}
        assert [n.id for n in selected_nodes(both)] == [a, b]

    def test_unknown_ids_are_dropped(self, sample_map):
        assert select_nodes(sample_map, ["ghost"]).canvas.selected_nodes == frozenset()

    def test_string_argument_rejected(self, sample_map):
        with pytest.raises(TypeError):
            select_nodes(sample_map, sample_map.nodes[0].id)

    def test_toggle(self, sample_map):
        node_id = sample_map.nodes[0].id
        cleared = clear_selection(sample_map)
        assert toggle_node_selection(cleared, node_id).canvas.selected_nodes == {node_id}
        on = toggle_node_selection(cleared, node_id)
        assert toggle_node_selection(on, node_id).canvas.selected_nodes == frozenset()

    def test_clear_transient_state(self, sample_map):
        node_id = sample_map.nodes[0].id
        editing = start_editing(select_nodes(sample_map, [node_id]), node_id)
        cleared = clear_transient_state(editing)
        assert cleared.canvas.selected_nodes == frozenset()
        assert cleared.canvas.editing_node is None
