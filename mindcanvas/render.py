"""Cairo drawing of nodes and connections, shared by the canvas and exporters."""

import math
from typing import Dict, Iterable, Optional, Sequence, Tuple

import cairo

from mindcanvas.geometry import Point, connection_control_points, node_center, stepped_path
from mindcanvas.model import Connection, ConnectionType, DashStyle, FontWeight, Node, NodeShape

DASH_PATTERNS = {
    DashStyle.SOLID: (),
    DashStyle.DASHED: (8.0, 4.0),
    DashStyle.DOTTED: (2.0, 2.0),
}

SELECTION_COLOR = (0.231, 0.510, 0.965)  # #3b82f6
BACKGROUND_COLOR = (0.976, 0.980, 0.984)  # #f9fafb
GRID_COLOR = (0.898, 0.906, 0.922)  # #e5e7eb


def hex_to_rgb(value: str) -> Tuple[float, float, float]:
    """Parse ``#rgb`` or ``#rrggbb`` into cairo floats. Bad input gives grey."""
    value = (value or "").lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    try:
        return (
            int(value[0:2], 16) / 255.0,
            int(value[2:4], 16) / 255.0,
            int(value[4:6], 16) / 255.0,
        )
    except ValueError:
        return (0.42, 0.45, 0.5)


def draw_rounded_rect(cr, x, y, w, h, radius):
    """Draw a rounded rectangle path."""
    radius = max(0.0, min(radius, w / 2, h / 2))
    cr.new_path()
    if radius == 0:
        cr.rectangle(x, y, w, h)
        return
    cr.arc(x + w - radius, y + radius, radius, -math.pi / 2, 0)
    cr.arc(x + w - radius, y + h - radius, radius, 0, math.pi / 2)
    cr.arc(x + radius, y + h - radius, radius, math.pi / 2, math.pi)
    cr.arc(x + radius, y + radius, radius, math.pi, 3 * math.pi / 2)
    cr.close_path()


def _shape_path(cr, node: Node):
    x, y, w, h = node.x, node.y, node.width, node.height
    shape = node.style.shape
    if shape is NodeShape.CIRCLE:
        cx, cy = node_center(node)
        cr.new_path()
        cr.arc(cx, cy, min(w, h) / 2, 0, 2 * math.pi)
    elif shape is NodeShape.DIAMOND:
        cr.new_path()
        cr.move_to(x + w / 2, y)
        cr.line_to(x + w, y + h / 2)
        cr.line_to(x + w / 2, y + h)
        cr.line_to(x, y + h / 2)
        cr.close_path()
    elif shape is NodeShape.HEXAGON:
        inset = min(w / 4, h / 2)
        cr.new_path()
        cr.move_to(x + inset, y)
        cr.line_to(x + w - inset, y)
        cr.line_to(x + w, y + h / 2)
        cr.line_to(x + w - inset, y + h)
        cr.line_to(x + inset, y + h)
        cr.line_to(x, y + h / 2)
        cr.close_path()
    else:
        draw_rounded_rect(cr, x, y, w, h, node.style.border_radius)


def draw_node(cr, node: Node, selected: bool = False):
    """Draw a node's shape, border and centred text."""
    style = node.style
    _shape_path(cr, node)

    cr.set_source_rgb(*hex_to_rgb(style.background_color))
    cr.fill_preserve()

    if selected:
        cr.set_source_rgb(*SELECTION_COLOR)
        cr.set_line_width(max(style.border_width, 2) + 1)
        cr.stroke()
    elif style.border_width > 0:
        cr.set_source_rgb(*hex_to_rgb(style.border_color))
        cr.set_line_width(style.border_width)
        cr.stroke()
    else:
        cr.new_path()

    bold = style.font_weight in (FontWeight.SEMIBOLD, FontWeight.BOLD)
    cr.set_source_rgb(*hex_to_rgb(style.text_color))
    cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL,
                        cairo.FONT_WEIGHT_BOLD if bold else cairo.FONT_WEIGHT_NORMAL)
    cr.set_font_size(style.font_size)

    text = node.text
    extents = cr.text_extents(text)
    max_width = node.width - 16
    while text and extents.width > max_width:
        text = text[:-2] + "…" if len(text) > 2 else ""
        extents = cr.text_extents(text)

    cx, cy = node_center(node)
    cr.move_to(cx - extents.width / 2 - extents.x_bearing,
               cy - extents.height / 2 - extents.y_bearing)
    cr.show_text(text)


def draw_connection_path(cr, connection_type: ConnectionType, start: Point, end: Point):
    cr.new_path()
    cr.move_to(*start)
    if connection_type is ConnectionType.CURVED:
        (c1x, c1y), (c2x, c2y) = connection_control_points(start, end)
        cr.curve_to(c1x, c1y, c2x, c2y, end[0], end[1])
    elif connection_type is ConnectionType.STEPPED:
        for point in stepped_path(start, end)[1:]:
            cr.line_to(*point)
    else:
        cr.line_to(*end)


def draw_connection(cr, connection: Connection, nodes_by_id: Dict[str, Node]) -> bool:
    """Draw a connection between node centres. Dangling connections are skipped."""
    source = nodes_by_id.get(connection.from_node_id)
    target = nodes_by_id.get(connection.to_node_id)
    if source is None or target is None:
        return False

    style = connection.style
    r, g, b = hex_to_rgb(style.color)
    cr.set_source_rgba(r, g, b, style.opacity)
    cr.set_line_width(style.width)
    cr.set_line_cap(cairo.LINE_CAP_ROUND)
    cr.set_dash(DASH_PATTERNS.get(style.dash, ()))
    draw_connection_path(cr, connection.type, node_center(source), node_center(target))
    cr.stroke()
    cr.set_dash(())
    return True


def draw_grid(cr, x: float, y: float, width: float, height: float, grid_size: int):
    """Draw grid lines covering the world rectangle (x, y, width, height)."""
    if grid_size <= 0:
        return
    cr.set_source_rgb(*GRID_COLOR)
    cr.set_line_width(1)
    start_x = math.floor(x / grid_size) * grid_size
    start_y = math.floor(y / grid_size) * grid_size
    gx = start_x
    while gx <= x + width:
        cr.move_to(gx, y)
        cr.line_to(gx, y + height)
        gx += grid_size
    gy = start_y
    while gy <= y + height:
        cr.move_to(x, gy)
        cr.line_to(x + width, gy)
        gy += grid_size
    cr.stroke()


def draw_scene(cr, nodes: Sequence[Node], connections: Iterable[Connection],
               selected: Optional[frozenset] = None):
    """Draw connections first, then nodes in list order."""
    nodes_by_id = {node.id: node for node in nodes}
    for connection in connections:
        draw_connection(cr, connection, nodes_by_id)
    selected = selected or frozenset()
    for node in nodes:
        draw_node(cr, node, node.id in selected)
