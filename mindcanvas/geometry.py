"""Coordinate transforms and hit testing.

Screen coordinates are pixels relative to the canvas widget. World
coordinates are the units node positions are stored in:

    screen = world * zoom + pan
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from mindcanvas import config
from mindcanvas.model import CanvasBounds, CanvasState, Connection, ConnectionType, Node

Point = Tuple[float, float]


def screen_to_world(point: Point, canvas: CanvasState) -> Point:
    """Convert a screen point to world coordinates."""
    sx, sy = point
    return ((sx - canvas.pan_x) / canvas.zoom, (sy - canvas.pan_y) / canvas.zoom)


def world_to_screen(point: Point, canvas: CanvasState) -> Point:
    """Convert a world point to screen coordinates."""
    wx, wy = point
    return (wx * canvas.zoom + canvas.pan_x, wy * canvas.zoom + canvas.pan_y)


def hit_test(point: Point, node: Node) -> bool:
    """True if ``point`` (world) lies inside the node's box, edges included.

    Circles and diamonds are tested against their bounding box too.
    """
    px, py = point
    return node.x <= px <= node.x + node.width and node.y <= py <= node.y + node.height


def find_top_node_at(point: Point, nodes: Iterable[Node]) -> Optional[Node]:
    """Return the first node in list order containing ``point``.

    Nodes are drawn in list order, so with overlapping nodes this picks the
    bottom-most one rather than the one drawn on top.
    """
    for node in nodes:
        if hit_test(point, node):
            return node
    return None


def node_center(node: Node) -> Point:
    return (node.x + node.width / 2, node.y + node.height / 2)


def snap_to_grid(point: Point, grid_size: int) -> Point:
    """Round a world point to the nearest grid intersection."""
    if grid_size <= 0:
        return point
    x, y = point
    return (round(x / grid_size) * grid_size, round(y / grid_size) * grid_size)


# ==================== Zoom ====================

def clamp_zoom(zoom: float) -> float:
    return min(max(zoom, config.MIN_ZOOM), config.MAX_ZOOM)


def zoom_in_value(zoom: float) -> float:
    return clamp_zoom(zoom * config.ZOOM_STEP)


def zoom_out_value(zoom: float) -> float:
    return clamp_zoom(zoom / config.ZOOM_STEP)


# ==================== Pan ====================

def _clamp(value: float, low: float, high: float) -> float:
    if low > high:
        # Viewport wider than the bounds; keep it centred
        return (low + high) / 2
    return min(max(value, low), high)


def clamp_pan(pan_x: float, pan_y: float, zoom: float, bounds: CanvasBounds,
              viewport_width: float, viewport_height: float) -> Point:
    """Keep the visible world rectangle's top-left corner inside ``bounds``.

    The corner may travel half a viewport past the minimum edge and must stay
    half a viewport before the maximum edge, so the content never scrolls
    completely out of view.
    """
    # Visible left edge is -pan_x / zoom, visible width is viewport_width / zoom
    low_x = viewport_width / 2 - bounds.max_x * zoom
    high_x = viewport_width / 2 - bounds.min_x * zoom
    low_y = viewport_height / 2 - bounds.max_y * zoom
    high_y = viewport_height / 2 - bounds.min_y * zoom
    return (_clamp(pan_x, low_x, high_x), _clamp(pan_y, low_y, high_y))


def visible_world_rect(canvas: CanvasState, viewport_width: float,
                       viewport_height: float) -> Tuple[float, float, float, float]:
    """Return (x, y, width, height) of the world area shown in the viewport."""
    return (
        -canvas.pan_x / canvas.zoom,
        -canvas.pan_y / canvas.zoom,
        viewport_width / canvas.zoom,
        viewport_height / canvas.zoom,
    )


# ==================== Content Bounds ====================

def content_bounds(nodes: Sequence[Node], padding: float = 0.0
                   ) -> Optional[Tuple[float, float, float, float]]:
    """Return (min_x, min_y, max_x, max_y) around all nodes, or None if empty."""
    if not nodes:
        return None
    min_x = min(node.x for node in nodes) - padding
    min_y = min(node.y for node in nodes) - padding
    max_x = max(node.x + node.width for node in nodes) + padding
    max_y = max(node.y + node.height for node in nodes) + padding
    return (min_x, min_y, max_x, max_y)


def fit_to_view(nodes: Sequence[Node], viewport_width: float, viewport_height: float,
                padding: float = 50.0) -> Tuple[float, float, float]:
    """Compute (zoom, pan_x, pan_y) that fits every node in the viewport.

    Never zooms in past 1.0. Returns the identity view for an empty map.
    """
    bounds = content_bounds(nodes, padding)
    if bounds is None:
        return (1.0, 0.0, 0.0)

    min_x, min_y, max_x, max_y = bounds
    width = max(max_x - min_x, 1.0)
    height = max(max_y - min_y, 1.0)
    zoom = clamp_zoom(min(viewport_width / width, viewport_height / height, 1.0))

    center_x = (min_x + max_x) / 2
    center_y = (min_y + max_y) / 2
    pan_x = viewport_width / 2 - center_x * zoom
    pan_y = viewport_height / 2 - center_y * zoom
    return (zoom, pan_x, pan_y)


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


# ==================== Connection Paths ====================

def connection_control_points(start: Point, end: Point) -> Tuple[Point, Point]:
    """Bezier control points for a curved connection.

    The control points are offset by a fifth of the length, capped at 50 units.
    """
    curvature = min(distance(start, end) * 0.2, 50.0)
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    return (
        (start[0] + dx * 0.3, start[1] + dy * 0.3 - curvature),
        (end[0] - dx * 0.3, end[1] - dy * 0.3 + curvature),
    )


def stepped_path(start: Point, end: Point) -> Tuple[Point, Point, Point, Point]:
    """Orthogonal path that turns at the horizontal midpoint."""
    mid_x = (start[0] + end[0]) / 2
    return (start, (mid_x, start[1]), (mid_x, end[1]), end)


def connection_polyline(connection_type: ConnectionType, start: Point, end: Point,
                        segments: int = 16) -> List[Point]:
    """Points along a connection as drawn; curves are sampled."""
    if connection_type is ConnectionType.STEPPED:
        return list(stepped_path(start, end))
    if connection_type is not ConnectionType.CURVED:
        return [start, end]
    (c1x, c1y), (c2x, c2y) = connection_control_points(start, end)
    points = []
    for step in range(segments + 1):
        t = step / segments
        u = 1 - t
        points.append((
            u ** 3 * start[0] + 3 * u * u * t * c1x + 3 * u * t * t * c2x + t ** 3 * end[0],
            u ** 3 * start[1] + 3 * u * u * t * c1y + 3 * u * t * t * c2y + t ** 3 * end[1],
        ))
    return points


def distance_to_segment(point: Point, a: Point, b: Point) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(point, a)
    t = ((point[0] - a[0]) * dx + (point[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return distance(point, (a[0] + t * dx, a[1] + t * dy))


def find_connection_at(point: Point, connections: Iterable[Connection], nodes: Iterable[Node],
                       tolerance: float = 6.0) -> Optional[Connection]:
    """First connection whose drawn path passes within ``tolerance`` of ``point`` (world).

    Connections with a missing endpoint are never hit.
    """
    by_id = {node.id: node for node in nodes}
    for connection in connections:
        source = by_id.get(connection.from_node_id)
        target = by_id.get(connection.to_node_id)
        if source is None or target is None:
            continue
        path = connection_polyline(connection.type, node_center(source), node_center(target))
        if any(distance_to_segment(point, a, b) <= tolerance for a, b in zip(path, path[1:])):
            return connection
    return None


# ==================== Minimap ====================

def minimap_layout(canvas: CanvasState, nodes: Sequence[Node], viewport_width: float,
                   viewport_height: float, width: float = 160.0, height: float = 120.0):
    """Scale the canvas bounds into a ``width`` x ``height`` overview.

    Returns ``(node_points, viewport_rect)`` where ``node_points`` maps node id
    to its minimap position and ``viewport_rect`` is (x, y, w, h).
    """
    bounds = canvas.bounds
    scale_x = width / max(bounds.max_x - bounds.min_x, 1.0)
    scale_y = height / max(bounds.max_y - bounds.min_y, 1.0)

    view_x, view_y, view_w, view_h = visible_world_rect(canvas, viewport_width, viewport_height)
    viewport_rect = (
        (view_x - bounds.min_x) * scale_x,
        (view_y - bounds.min_y) * scale_y,
        view_w * scale_x,
        view_h * scale_y,
    )
    node_points = {
        node.id: ((node.x - bounds.min_x) * scale_x, (node.y - bounds.min_y) * scale_y)
        for node in nodes
    }
    return node_points, viewport_rect
