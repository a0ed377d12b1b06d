"""Tests for coordinate transforms, hit testing and view fitting."""

import pytest

from mindcanvas.geometry import (
    clamp_pan, clamp_zoom, connection_polyline, content_bounds, distance_to_segment,
    find_connection_at, find_top_node_at, fit_to_view, hit_test,
    minimap_layout, screen_to_world, snap_to_grid, stepped_path, visible_world_rect,
    world_to_screen, zoom_in_value, zoom_out_value,
)
from mindcanvas.model import CanvasBounds, CanvasState, Connection, ConnectionType, Node


def make_node(node_id, x, y, width=150, height=60):
    return Node(id=node_id, x=x, y=y, width=width, height=height)


class TestTransforms:
    @pytest.mark.parametrize("zoom,pan_x,pan_y", [
        (1.0, 0.0, 0.0),
        (2.5, -130.0, 40.0),
        (0.1, 300.0, -700.0),
    ])
    def test_screen_world_round_trip(self, zoom, pan_x, pan_y):
        canvas = CanvasState(zoom=zoom, pan_x=pan_x, pan_y=pan_y)
        point = (123.0, -45.5)
        back = world_to_screen(screen_to_world(point, canvas), canvas)
        assert back == pytest.approx(point)

    def test_screen_to_world_applies_pan_then_zoom(self):
        canvas = CanvasState(zoom=2.0, pan_x=100.0, pan_y=50.0)
        assert screen_to_world((300, 250), canvas) == (100.0, 100.0)

    def test_visible_world_rect(self):
        canvas = CanvasState(zoom=2.0, pan_x=-200.0, pan_y=0.0)
        assert visible_world_rect(canvas, 800, 600) == (100.0, 0.0, 400.0, 300.0)


class TestHitTesting:
    def test_edges_are_inside(self):
        node = make_node("a", 10, 10, 100, 50)
        assert hit_test((10, 10), node)
        assert hit_test((110, 60), node)
        assert not hit_test((110.1, 60), node)

    def test_first_node_in_list_order_wins(self):
        bottom = make_node("bottom", 0, 0)
        top = make_node("top", 50, 20)
        assert find_top_node_at((60, 30), [bottom, top]).id == "bottom"

    def test_miss_returns_none(self):
        assert find_top_node_at((-500, -500), [make_node("a", 0, 0)]) is None


class TestConnectionHitTesting:
    # Centres at (50, 20) and (350, 220)
    NODES = [make_node("a", 0, 0, 100, 40), make_node("b", 300, 200, 100, 40)]

    def connection(self, connection_type=ConnectionType.STRAIGHT, target="b"):
        return Connection(id="c1", from_node_id="a", to_node_id=target, type=connection_type)

    def test_straight_line(self):
        connection = self.connection()
        assert find_connection_at((200, 120), [connection], self.NODES) is connection
        assert find_connection_at((204, 120), [connection], self.NODES) is connection
        assert find_connection_at((200, 20), [connection], self.NODES) is None

    def test_stepped_follows_the_corners(self):
        connection = self.connection(ConnectionType.STEPPED)
        assert find_connection_at((200, 20), [connection], self.NODES) is connection
        assert find_connection_at((200, 120), [connection], self.NODES) is connection
        assert find_connection_at((120, 120), [connection], self.NODES) is None

    def test_curved_is_sampled_between_the_centres(self):
        path = connection_polyline(ConnectionType.CURVED, (50, 20), (350, 220))
        assert len(path) == 17
        assert path[0] == pytest.approx((50, 20))
        assert path[-1] == pytest.approx((350, 220))
        connection = self.connection(ConnectionType.CURVED)
        assert find_connection_at(path[8], [connection], self.NODES) is connection

    def test_tolerance(self):
        connection = self.connection()
        assert find_connection_at((200, 130), [connection], self.NODES) is None
        assert find_connection_at((200, 130), [connection], self.NODES,
                                  tolerance=10) is connection

    def test_dangling_connection_is_never_hit(self):
        connection = self.connection(target="ghost")
        assert find_connection_at((50, 20), [connection], self.NODES) is None

    def test_distance_to_segment(self):
        assert distance_to_segment((5, 5), (0, 0), (10, 0)) == 5
        assert distance_to_segment((-3, 4), (0, 0), (10, 0)) == 5
        assert distance_to_segment((3, 4), (0, 0), (0, 0)) == 5


class TestZoom:
    def test_clamps_to_range(self):
        assert clamp_zoom(0.01) == 0.1
        assert clamp_zoom(10) == 3.0
        assert clamp_zoom(1.5) == 1.5

    def test_steps(self):
        assert zoom_in_value(1.0) == pytest.approx(1.2)
        assert zoom_out_value(1.2) == pytest.approx(1.0)
        assert zoom_in_value(3.0) == 3.0
        assert zoom_out_value(0.1) == 0.1


class TestPanClamp:
    def test_small_bounds_at_zoom_one(self):
        bounds = CanvasBounds(min_x=0, max_x=1000, min_y=0, max_y=1000)
        # Half a viewport of slack on each side
        assert clamp_pan(5000, 5000, 1.0, bounds, 800, 600) == (400.0, 300.0)
        assert clamp_pan(-5000, -5000, 1.0, bounds, 800, 600) == (-600.0, -700.0)
        assert clamp_pan(0, 0, 1.0, bounds, 800, 600) == (0, 0)

    def test_zero_size_bounds_pin_the_view(self):
        bounds = CanvasBounds(min_x=0, max_x=0, min_y=0, max_y=0)
        assert clamp_pan(999, -999, 1.0, bounds, 800, 600) == (400.0, 300.0)


class TestFitting:
    def test_content_bounds_empty(self):
        assert content_bounds([]) is None

    def test_content_bounds_with_padding(self):
        nodes = [make_node("a", 0, 0, 100, 50), make_node("b", 200, 100, 100, 50)]
        assert content_bounds(nodes, 10) == (-10, -10, 310, 160)

    def test_fit_empty_is_identity(self):
        assert fit_to_view([], 800, 600) == (1.0, 0.0, 0.0)

    def test_fit_never_zooms_past_one(self):
        zoom, pan_x, pan_y = fit_to_view([make_node("a", 0, 0, 100, 50)], 800, 600)
        assert zoom == 1.0
        # Node centre lands in the middle of the viewport
        assert world_to_screen((50, 25), CanvasState(zoom=zoom, pan_x=pan_x, pan_y=pan_y)) == (
            pytest.approx(400), pytest.approx(300))

    def test_fit_zooms_out_for_wide_content(self):
        nodes = [make_node("a", 0, 0), make_node("b", 3000, 0)]
        zoom, _, _ = fit_to_view(nodes, 800, 600)
        assert zoom < 1.0
        assert zoom == pytest.approx(800 / (3150 + 100))


def test_snap_to_grid():
    assert snap_to_grid((31, 49), 20) == (40, 40)
    assert snap_to_grid((31, 49), 0) == (31, 49)


def test_stepped_path_turns_at_midpoint():
    points = stepped_path((0, 0), (100, 50))
    assert points[0] == (0, 0)
    assert points[-1] == (100, 50)
    assert points[1][0] == points[2][0] == 50


def test_minimap_layout_scales_bounds():
    canvas = CanvasState(bounds=CanvasBounds(min_x=0, max_x=1600, min_y=0, max_y=1200))
    points, viewport = minimap_layout(canvas, [make_node("a", 800, 600)], 800, 600)
    assert points["a"] == (80.0, 60.0)
    assert viewport == (0.0, 0.0, 80.0, 60.0)
