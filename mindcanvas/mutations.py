"""Mutation engine for MindCanvas documents.

Every function takes a MindMap and returns a new one; nothing is changed in
place. Operations that reference a node or connection that does not exist
are no-ops and return the map unchanged. Malformed arguments raise
``TypeError`` or ``ValueError``.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from mindcanvas import config
from mindcanvas.errors import ValidationError
from mindcanvas.geometry import (
    Point, clamp_zoom, fit_to_view, zoom_in_value, zoom_out_value,
)
from mindcanvas.model import (
    CanvasBounds, CanvasState, Connection, ConnectionStyle, ConnectionType,
    MindMap, Node, NodeType, now_iso, style_field_names, style_for_type,
    validate_mind_map_fields,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def _touch(mind_map: MindMap, **changes) -> MindMap:
    """Replace fields on the map and bump its modification time."""
    return replace(mind_map, updated_at=now_iso(), **changes)


def _replace_nodes(mind_map: MindMap, updated: Iterable[Node]) -> Tuple[Node, ...]:
    by_id = {node.id: node for node in updated}
    return tuple(by_id.get(node.id, node) for node in mind_map.nodes)


# ==================== Map Construction ====================

def new_mind_map(title: str, owner_id: str = "unknown", map_id: Optional[str] = None,
                 description: str = "", is_public: bool = False,
                 tags: Sequence[str] = ()) -> MindMap:
    """Create a map holding a single selected root node titled like the map."""
    validate_mind_map_fields(title=title, description=description, tags=tags)
    stamp = now_iso()
    x, y = config.ROOT_NODE_POSITION
    root = Node(
        id=new_id(),
        text=title,
        x=x,
        y=y,
        width=config.ROOT_NODE_WIDTH,
        height=config.ROOT_NODE_HEIGHT,
        type=NodeType.ROOT,
        style=style_for_type(NodeType.ROOT),
        created_at=stamp,
        updated_at=stamp,
    )
    return MindMap(
        id=map_id or new_id(),
        title=title,
        description=description,
        owner_id=owner_id,
        is_public=is_public,
        nodes=(root,),
        canvas=CanvasState(selected_nodes=frozenset({root.id})),
        tags=tuple(tags),
        created_at=stamp,
        updated_at=stamp,
    )


def seed_root_node(mind_map: MindMap) -> MindMap:
    """Give a freshly created, empty map its root node."""
    if mind_map.nodes:
        return mind_map
    seeded = new_mind_map(mind_map.title or "Untitled", map_id=mind_map.id)
    return replace(mind_map, nodes=seeded.nodes,
                   canvas=replace(mind_map.canvas, selected_nodes=seeded.canvas.selected_nodes))


def update_mind_map(mind_map: MindMap, *, title: Optional[str] = None,
                    description: Optional[str] = None, is_public: Optional[bool] = None,
                    tags: Optional[Sequence[str]] = None) -> MindMap:
    """Edit map metadata. Arguments left as None are unchanged."""
    validate_mind_map_fields(title=title, description=description, tags=tags)
    changes = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    if is_public is not None:
        changes["is_public"] = bool(is_public)
    if tags is not None:
        changes["tags"] = tuple(tags)
    if not changes:
        return mind_map
    return _touch(mind_map, **changes)


# ==================== Node Patches ====================

class NodePatch:
    """Base class for typed partial updates applied by ``update_node``."""

    def apply(self, node: Node) -> Node:
        raise NotImplementedError


@dataclass(frozen=True)
class Retext(NodePatch):
    text: str

    def apply(self, node: Node) -> Node:
        return replace(node, text=self.text)


@dataclass(frozen=True)
class Reposition(NodePatch):
    x: float
    y: float

    def apply(self, node: Node) -> Node:
        return replace(node, x=float(self.x), y=float(self.y))


@dataclass(frozen=True)
class Resize(NodePatch):
    """Change a node's size; values below the minimum are raised to it."""
    width: float
    height: float

    def apply(self, node: Node) -> Node:
        return replace(
            node,
            width=max(float(self.width), config.MIN_NODE_WIDTH),
            height=max(float(self.height), config.MIN_NODE_HEIGHT),
        )


class Restyle(NodePatch):
    """Change some style fields, e.g. ``Restyle(font_size=18, shape=NodeShape.CIRCLE)``."""

    def __init__(self, **changes):
        unknown = set(changes) - style_field_names()
        if unknown:
            raise TypeError(f"Unknown node style fields: {', '.join(sorted(unknown))}")
        self.changes = changes

    def apply(self, node: Node) -> Node:
        style = replace(node.style, **self.changes)
        style.validate()
        return replace(node, style=style)

    def __repr__(self):
        return f"Restyle({self.changes!r})"


@dataclass(frozen=True)
class Retype(NodePatch):
    """Change a node's type, optionally resetting its style to the type default."""
    node_type: NodeType
    reset_style: bool = False

    def apply(self, node: Node) -> Node:
        if not isinstance(self.node_type, NodeType):
            raise TypeError(f"Expected NodeType, got {self.node_type!r}")
        if self.reset_style:
            return replace(node, type=self.node_type, style=style_for_type(self.node_type))
        return replace(node, type=self.node_type)


@dataclass(frozen=True)
class SetCollapsed(NodePatch):
    collapsed: bool

    def apply(self, node: Node) -> Node:
        return replace(node, collapsed=bool(self.collapsed))


class SetMetadata(NodePatch):
    """Merge keys into a node's metadata; a value of None removes the key."""

    def __init__(self, **entries):
        self.entries = entries

    def apply(self, node: Node) -> Node:
        metadata = dict(node.metadata)
        for key, value in self.entries.items():
            if value is None:
                metadata.pop(key, None)
            else:
                metadata[key] = value
        return replace(node, metadata=metadata)

    def __repr__(self):
        return f"SetMetadata({self.entries!r})"


# ==================== Node Operations ====================

def create_node(mind_map: MindMap, parent_id: Optional[str], position: Point,
                text: str = config.NEW_NODE_TEXT) -> Tuple[MindMap, Optional[Node]]:
    """Add a node at ``position`` (world, top-left corner).

    Without a parent the node becomes the root, or a level-0 branch when the
    map already has a root. The new node is selected and put in edit mode.
    Returns the new map and the created node, or the unchanged map and None
    when ``parent_id`` does not exist.
    """
    parent = None
    if parent_id is not None:
        parent = mind_map.get_node(parent_id)
        if parent is None:
            logger.debug("create_node: parent %s not found", parent_id)
            return mind_map, None

    if parent is not None:
        node_type, level = NodeType.BRANCH, parent.level + 1
    elif mind_map.has_root:
        node_type, level = NodeType.BRANCH, 0
    else:
        node_type, level = NodeType.ROOT, 0

    stamp = now_iso()
    x, y = position
    node = Node(
        id=new_id(),
        text=text,
        x=float(x),
        y=float(y),
        width=config.NEW_NODE_WIDTH,
        height=config.NEW_NODE_HEIGHT,
        parent_id=parent_id,
        level=level,
        type=node_type,
        style=style_for_type(node_type),
        created_at=stamp,
        updated_at=stamp,
    )

    nodes = mind_map.nodes
    if parent is not None:
        nodes = _replace_nodes(mind_map, [
            replace(parent, children=parent.children + (node.id,), updated_at=stamp)
        ])

    canvas = replace(mind_map.canvas, selected_nodes=frozenset({node.id}), editing_node=node.id)
    return _touch(mind_map, nodes=nodes + (node,), canvas=canvas), node


def update_node(mind_map: MindMap, node_id: str, *patches: NodePatch) -> MindMap:
    """Apply patches to one node and bump its ``updated_at``."""
    for patch in patches:
        if not isinstance(patch, NodePatch):
            raise TypeError(f"Expected a NodePatch, got {type(patch).__name__}")

    node = mind_map.get_node(node_id)
    if node is None or not patches:
        return mind_map

    for patch in patches:
        node = patch.apply(node)
    node = replace(node, updated_at=now_iso())
    return _touch(mind_map, nodes=_replace_nodes(mind_map, [node]))


def descendant_closure(mind_map: MindMap, node_ids: Iterable[str]) -> Set[str]:
    """Return ``node_ids`` plus every node reachable through ``children``."""
    by_id = {node.id: node for node in mind_map.nodes}
    pending = [node_id for node_id in node_ids if node_id in by_id]
    closure: Set[str] = set()
    while pending:
        node_id = pending.pop()
        if node_id in closure:
            continue
        closure.add(node_id)
        node = by_id.get(node_id)
        if node is not None:
            pending.extend(child for child in node.children if child in by_id)
    return closure


def delete_nodes(mind_map: MindMap, node_ids: Iterable[str]) -> MindMap:
    """Delete nodes with all their descendants and every touching connection."""
    if isinstance(node_ids, str):
        raise TypeError("delete_nodes expects a collection of node ids, not a string")

    removed = descendant_closure(mind_map, node_ids)
    if not removed:
        return mind_map

    nodes = []
    for node in mind_map.nodes:
        if node.id in removed:
            continue
        if any(child in removed for child in node.children):
            node = replace(node, children=tuple(c for c in node.children if c not in removed))
        nodes.append(node)

    connections = tuple(
        connection for connection in mind_map.connections
        if connection.from_node_id not in removed and connection.to_node_id not in removed
    )
    canvas = mind_map.canvas
    canvas = replace(
        canvas,
        selected_nodes=canvas.selected_nodes - removed,
        editing_node=None if canvas.editing_node in removed else canvas.editing_node,
    )
    logger.debug("Deleted %d node(s) from map %s", len(removed), mind_map.id)
    return _touch(mind_map, nodes=tuple(nodes), connections=connections, canvas=canvas)


@dataclass(frozen=True)
class NodeMovement:
    """Absolute target position for one node."""
    node_id: str
    to_x: float
    to_y: float


def move_nodes(mind_map: MindMap, movements: Sequence[NodeMovement]) -> MindMap:
    """Set absolute positions. Descendants are not moved along."""
    targets = {}
    for movement in movements:
        if not isinstance(movement, NodeMovement):
            raise TypeError(f"Expected NodeMovement, got {type(movement).__name__}")
        targets[movement.node_id] = movement

    stamp = now_iso()
    moved = []
    for node in mind_map.nodes:
        movement = targets.get(node.id)
        if movement is not None:
            moved.append(replace(node, x=float(movement.to_x), y=float(movement.to_y),
                                 updated_at=stamp))
    if not moved:
        return mind_map
    return _touch(mind_map, nodes=_replace_nodes(mind_map, moved))


def duplicate_node(mind_map: MindMap, node_id: str) -> Tuple[MindMap, Optional[Node]]:
    """Copy a node (not its subtree) next to the original, under the same parent."""
    original = mind_map.get_node(node_id)
    if original is None:
        return mind_map, None

    stamp = now_iso()
    copy = replace(
        original,
        id=new_id(),
        text=f"{original.text} (Copy)",
        x=original.x + config.DUPLICATE_OFFSET,
        y=original.y + config.DUPLICATE_OFFSET,
        children=(),
        metadata=dict(original.metadata),
        created_at=stamp,
        updated_at=stamp,
    )
    if copy.type is NodeType.ROOT:
        copy = replace(copy, type=NodeType.BRANCH)

    nodes = mind_map.nodes
    parent = mind_map.get_node(original.parent_id)
    if parent is not None:
        nodes = _replace_nodes(mind_map, [replace(parent, children=parent.children + (copy.id,))])
    return _touch(mind_map, nodes=nodes + (copy,)), copy


# ==================== Connection Operations ====================

class ConnectionPatch:
    """Base class for typed partial updates applied by ``update_connection``."""

    def apply(self, connection: Connection) -> Connection:
        raise NotImplementedError


@dataclass(frozen=True)
class SetConnectionType(ConnectionPatch):
    connection_type: ConnectionType

    def apply(self, connection: Connection) -> Connection:
        if not isinstance(self.connection_type, ConnectionType):
            raise TypeError(f"Expected ConnectionType, got {self.connection_type!r}")
        return replace(connection, type=self.connection_type)


class RestyleConnection(ConnectionPatch):
    """Change some connection style fields, e.g. ``RestyleConnection(width=4)``."""

    _FIELDS = ("color", "width", "dash", "opacity")

    def __init__(self, **changes):
        unknown = set(changes) - set(self._FIELDS)
        if unknown:
            raise TypeError(f"Unknown connection style fields: {', '.join(sorted(unknown))}")
        self.changes = changes

    def apply(self, connection: Connection) -> Connection:
        style = replace(connection.style, **self.changes)
        style.validate()
        return replace(connection, style=style)

    def __repr__(self):
        return f"RestyleConnection({self.changes!r})"


def create_connection(mind_map: MindMap, from_node_id: str, to_node_id: str
                      ) -> Tuple[MindMap, Optional[Connection]]:
    """Link two existing, distinct nodes that are not linked yet in either direction."""
    if from_node_id == to_node_id:
        return mind_map, None
    ids = mind_map.node_ids
    if from_node_id not in ids or to_node_id not in ids:
        return mind_map, None
    if any(c.joins(from_node_id, to_node_id) for c in mind_map.connections):
        return mind_map, None

    stamp = now_iso()
    connection = Connection(
        id=new_id(),
        from_node_id=from_node_id,
        to_node_id=to_node_id,
        type=ConnectionType.STRAIGHT,
        style=ConnectionStyle(),
        created_at=stamp,
        updated_at=stamp,
    )
    return _touch(mind_map, connections=mind_map.connections + (connection,)), connection


def delete_connection(mind_map: MindMap, connection_id: str) -> MindMap:
    if mind_map.get_connection(connection_id) is None:
        return mind_map
    return _touch(mind_map, connections=tuple(
        c for c in mind_map.connections if c.id != connection_id
    ))


def update_connection(mind_map: MindMap, connection_id: str,
                      *patches: ConnectionPatch) -> MindMap:
    for patch in patches:
        if not isinstance(patch, ConnectionPatch):
            raise TypeError(f"Expected a ConnectionPatch, got {type(patch).__name__}")

    connection = mind_map.get_connection(connection_id)
    if connection is None or not patches:
        return mind_map

    for patch in patches:
        connection = patch.apply(connection)
    connection = replace(connection, updated_at=now_iso())
    return _touch(mind_map, connections=tuple(
        connection if c.id == connection_id else c for c in mind_map.connections
    ))


# ==================== Canvas Patches ====================

class CanvasPatch:
    """Base class for typed partial updates applied by ``update_canvas``."""

    def apply(self, canvas: CanvasState) -> CanvasState:
        raise NotImplementedError


@dataclass(frozen=True)
class SetZoom(CanvasPatch):
    """Set the zoom factor, clamped to the allowed range."""
    zoom: float

    def apply(self, canvas: CanvasState) -> CanvasState:
        return replace(canvas, zoom=clamp_zoom(float(self.zoom)))


@dataclass(frozen=True)
class SetPan(CanvasPatch):
    pan_x: float
    pan_y: float

    def apply(self, canvas: CanvasState) -> CanvasState:
        return replace(canvas, pan_x=float(self.pan_x), pan_y=float(self.pan_y))


@dataclass(frozen=True)
class SetGrid(CanvasPatch):
    size: Optional[int] = None
    show: Optional[bool] = None

    def apply(self, canvas: CanvasState) -> CanvasState:
        if self.size is not None and self.size <= 0:
            raise ValidationError("Grid size must be positive", field="gridSize")
        return replace(
            canvas,
            grid_size=canvas.grid_size if self.size is None else int(self.size),
            show_grid=canvas.show_grid if self.show is None else bool(self.show),
        )


@dataclass(frozen=True)
class SetSnapToGrid(CanvasPatch):
    enabled: bool

    def apply(self, canvas: CanvasState) -> CanvasState:
        return replace(canvas, snap_to_grid=bool(self.enabled))


@dataclass(frozen=True)
class SetBounds(CanvasPatch):
    bounds: CanvasBounds

    def apply(self, canvas: CanvasState) -> CanvasState:
        if self.bounds.min_x > self.bounds.max_x or self.bounds.min_y > self.bounds.max_y:
            raise ValidationError("Canvas bounds are inverted", field="bounds")
        return replace(canvas, bounds=self.bounds)


def update_canvas(mind_map: MindMap, *patches: CanvasPatch) -> MindMap:
    canvas = mind_map.canvas
    for patch in patches:
        if not isinstance(patch, CanvasPatch):
            raise TypeError(f"Expected a CanvasPatch, got {type(patch).__name__}")
        canvas = patch.apply(canvas)
    if canvas == mind_map.canvas:
        return mind_map
    return replace(mind_map, canvas=canvas)


def zoom_in(mind_map: MindMap) -> MindMap:
    return update_canvas(mind_map, SetZoom(zoom_in_value(mind_map.canvas.zoom)))


def zoom_out(mind_map: MindMap) -> MindMap:
    return update_canvas(mind_map, SetZoom(zoom_out_value(mind_map.canvas.zoom)))


def reset_zoom(mind_map: MindMap) -> MindMap:
    return update_canvas(mind_map, SetZoom(1.0))


def pan_to(mind_map: MindMap, x: float, y: float) -> MindMap:
    return update_canvas(mind_map, SetPan(x, y))


def zoom_to_fit(mind_map: MindMap, viewport_width: float, viewport_height: float) -> MindMap:
    zoom, pan_x, pan_y = fit_to_view(mind_map.nodes, viewport_width, viewport_height)
    return update_canvas(mind_map, SetZoom(zoom), SetPan(pan_x, pan_y))


# ==================== Selection & Editing ====================

def select_nodes(mind_map: MindMap, node_ids: Iterable[str], additive: bool = False) -> MindMap:
    """Select the given nodes, replacing the selection unless ``additive``."""
    if isinstance(node_ids, str):
        raise TypeError("select_nodes expects a collection of node ids, not a string")
    known = mind_map.node_ids
    selected = frozenset(node_id for node_id in node_ids if node_id in known)
    if additive:
        selected = mind_map.canvas.selected_nodes | selected
    return replace(mind_map, canvas=replace(mind_map.canvas, selected_nodes=selected))


def clear_selection(mind_map: MindMap) -> MindMap:
    if not mind_map.canvas.selected_nodes:
        return mind_map
    return replace(mind_map, canvas=replace(mind_map.canvas, selected_nodes=frozenset()))


def toggle_node_selection(mind_map: MindMap, node_id: str) -> MindMap:
    if node_id not in mind_map.node_ids:
        return mind_map
    selected = mind_map.canvas.selected_nodes ^ {node_id}
    return replace(mind_map, canvas=replace(mind_map.canvas, selected_nodes=selected))


def start_editing(mind_map: MindMap, node_id: str) -> MindMap:
    if node_id not in mind_map.node_ids:
        return mind_map
    return replace(mind_map, canvas=replace(mind_map.canvas, editing_node=node_id))


def stop_editing(mind_map: MindMap) -> MindMap:
    if mind_map.canvas.editing_node is None:
        return mind_map
    return replace(mind_map, canvas=replace(mind_map.canvas, editing_node=None))


def clear_transient_state(mind_map: MindMap) -> MindMap:
    """Drop selection and editing state, as done when restoring history."""
    return stop_editing(clear_selection(mind_map))


def selected_nodes(mind_map: MindMap) -> List[Node]:
    """Selected nodes in document order."""
    selected = mind_map.canvas.selected_nodes
    return [node for node in mind_map.nodes if node.id in selected]
