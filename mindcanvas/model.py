"""Document model for MindCanvas.

Every type here is an immutable dataclass. Mutations build new instances with
``dataclasses.replace`` so that history snapshots can be compared by value.
The ``to_dict``/``from_dict`` pairs speak the camelCase JSON shape used by the
remote service and the local store.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from mindcanvas import config
from mindcanvas.errors import ValidationError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ==================== Enumerations ====================

class NodeType(Enum):
    """Semantic kind of a node; selects its default style."""
    ROOT = "root"
    BRANCH = "branch"
    LEAF = "leaf"
    NOTE = "note"
    TASK = "task"
    LINK = "link"


class ConnectionType(Enum):
    STRAIGHT = "straight"
    CURVED = "curved"
    STEPPED = "stepped"


class FontWeight(Enum):
    NORMAL = "normal"
    MEDIUM = "medium"
    SEMIBOLD = "semibold"
    BOLD = "bold"


class NodeShape(Enum):
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    HEXAGON = "hexagon"


class DashStyle(Enum):
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"


def _enum_value(enum_cls, value, default):
    """Coerce a raw value to ``enum_cls``, falling back to ``default``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


# ==================== Styles ====================

@dataclass(frozen=True)
class NodeStyle:
    """Visual style of a node."""
    background_color: str = "#ffffff"
    text_color: str = "#1f2937"
    border_color: str = "#d1d5db"
    border_width: int = 1
    border_radius: int = 8
    font_size: int = 14
    font_weight: FontWeight = FontWeight.NORMAL
    shape: NodeShape = NodeShape.RECTANGLE

    def validate(self):
        """Raise ValidationError when a numeric field is out of range."""
        if not 0 <= self.border_width <= 10:
            raise ValidationError("Border width must be between 0 and 10", field="borderWidth")
        if not 0 <= self.border_radius <= 50:
            raise ValidationError("Border radius must be between 0 and 50", field="borderRadius")
        if not 8 <= self.font_size <= 32:
            raise ValidationError("Font size must be between 8 and 32", field="fontSize")

    def to_dict(self) -> dict:
        return {
            "backgroundColor": self.background_color,
            "textColor": self.text_color,
            "borderColor": self.border_color,
            "borderWidth": self.border_width,
            "borderRadius": self.border_radius,
            "fontSize": self.font_size,
            "fontWeight": self.font_weight.value,
            "shape": self.shape.value,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict], base: Optional["NodeStyle"] = None) -> "NodeStyle":
        """Build a style from wire data, keeping ``base`` values for missing keys."""
        base = base or cls()
        if not isinstance(data, dict):
            return base
        return cls(
            background_color=data.get("backgroundColor", base.background_color),
            text_color=data.get("textColor", base.text_color),
            border_color=data.get("borderColor", base.border_color),
            border_width=int(data.get("borderWidth", base.border_width)),
            border_radius=int(data.get("borderRadius", base.border_radius)),
            font_size=int(data.get("fontSize", base.font_size)),
            font_weight=_enum_value(FontWeight, data.get("fontWeight"), base.font_weight),
            shape=_enum_value(NodeShape, data.get("shape"), base.shape),
        )


DEFAULT_NODE_STYLE = NodeStyle()

NODE_TYPE_STYLES: Dict[NodeType, NodeStyle] = {
    NodeType.ROOT: replace(
        DEFAULT_NODE_STYLE,
        background_color="#3b82f6", text_color="#ffffff", border_color="#1d4ed8",
        border_width=2, font_size=16, font_weight=FontWeight.BOLD,
    ),
    NodeType.BRANCH: replace(
        DEFAULT_NODE_STYLE,
        background_color="#f3f4f6", text_color="#374151", border_color="#9ca3af",
        font_weight=FontWeight.MEDIUM,
    ),
    NodeType.LEAF: replace(
        DEFAULT_NODE_STYLE,
        text_color="#6b7280", font_size=12,
    ),
    NodeType.NOTE: replace(
        DEFAULT_NODE_STYLE,
        background_color="#fef3c7", text_color="#92400e", border_color="#f59e0b",
        font_size=12,
    ),
    NodeType.TASK: replace(
        DEFAULT_NODE_STYLE,
        background_color="#d1fae5", text_color="#065f46", border_color="#10b981",
    ),
    NodeType.LINK: replace(
        DEFAULT_NODE_STYLE,
        background_color="#e0e7ff", text_color="#3730a3", border_color="#6366f1",
    ),
}


def style_for_type(node_type: NodeType) -> NodeStyle:
    return NODE_TYPE_STYLES.get(node_type, DEFAULT_NODE_STYLE)


@dataclass(frozen=True)
class ConnectionStyle:
    """Visual style of a connection."""
    color: str = "#6b7280"
    width: int = 2
    dash: DashStyle = DashStyle.SOLID
    opacity: float = 1.0

    def validate(self):
        if not 1 <= self.width <= 10:
            raise ValidationError("Connection width must be between 1 and 10", field="width")
        if not 0.0 <= self.opacity <= 1.0:
            raise ValidationError("Opacity must be between 0 and 1", field="opacity")

    def to_dict(self) -> dict:
        return {
            "color": self.color,
            "width": self.width,
            "style": self.dash.value,
            "opacity": self.opacity,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ConnectionStyle":
        base = cls()
        if not isinstance(data, dict):
            return base
        return cls(
            color=data.get("color", base.color),
            width=int(data.get("width", base.width)),
            dash=_enum_value(DashStyle, data.get("style"), base.dash),
            opacity=float(data.get("opacity", base.opacity)),
        )


# ==================== Graph Entities ====================

@dataclass(frozen=True)
class Node:
    """A box on the canvas. ``x``/``y`` is the top-left corner in world units."""
    id: str
    text: str = config.NEW_NODE_TEXT
    x: float = 0.0
    y: float = 0.0
    width: float = config.NEW_NODE_WIDTH
    height: float = config.NEW_NODE_HEIGHT
    parent_id: Optional[str] = None
    children: Tuple[str, ...] = ()
    level: int = 0
    type: NodeType = NodeType.BRANCH
    style: NodeStyle = DEFAULT_NODE_STYLE
    collapsed: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "parentId": self.parent_id,
            "children": list(self.children),
            "level": self.level,
            "type": self.type.value,
            "style": self.style.to_dict(),
            "collapsed": self.collapsed,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Node":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError("Node must be an object with an id", field="nodes")
        node_type = _enum_value(NodeType, data.get("type"), NodeType.BRANCH)
        metadata = data.get("metadata")
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=max(float(data.get("width", config.NEW_NODE_WIDTH)), config.MIN_NODE_WIDTH),
            height=max(float(data.get("height", config.NEW_NODE_HEIGHT)), config.MIN_NODE_HEIGHT),
            parent_id=data.get("parentId") or None,
            children=tuple(str(c) for c in data.get("children") or ()),
            level=max(int(data.get("level", 0)), 0),
            type=node_type,
            style=NodeStyle.from_dict(data.get("style"), base=style_for_type(node_type)),
            collapsed=bool(data.get("collapsed", False)),
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
            created_at=str(data.get("createdAt") or ""),
            updated_at=str(data.get("updatedAt") or ""),
        )


@dataclass(frozen=True)
class Connection:
    """A visual edge between two nodes. Direction is informational only."""
    id: str
    from_node_id: str
    to_node_id: str
    type: ConnectionType = ConnectionType.STRAIGHT
    style: ConnectionStyle = ConnectionStyle()
    created_at: str = ""
    updated_at: str = ""

    def joins(self, a: str, b: str) -> bool:
        """True if this connection links ``a`` and ``b`` in either direction."""
        return {self.from_node_id, self.to_node_id} == {a, b}

    def touches(self, node_id: str) -> bool:
        return node_id in (self.from_node_id, self.to_node_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fromNodeId": self.from_node_id,
            "toNodeId": self.to_node_id,
            "type": self.type.value,
            "style": self.style.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Connection":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError("Connection must be an object with an id", field="connections")
        return cls(
            id=str(data["id"]),
            from_node_id=str(data.get("fromNodeId", "")),
            to_node_id=str(data.get("toNodeId", "")),
            type=_enum_value(ConnectionType, data.get("type"), ConnectionType.STRAIGHT),
            style=ConnectionStyle.from_dict(data.get("style")),
            created_at=str(data.get("createdAt") or ""),
            updated_at=str(data.get("updatedAt") or ""),
        )


# ==================== Canvas ====================

@dataclass(frozen=True)
class CanvasBounds:
    """World-coordinate rectangle the viewport is allowed to pan within."""
    min_x: float = config.DEFAULT_BOUNDS[0]
    max_x: float = config.DEFAULT_BOUNDS[1]
    min_y: float = config.DEFAULT_BOUNDS[2]
    max_y: float = config.DEFAULT_BOUNDS[3]

    def to_dict(self) -> dict:
        return {"minX": self.min_x, "maxX": self.max_x, "minY": self.min_y, "maxY": self.max_y}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CanvasBounds":
        base = cls()
        if not isinstance(data, dict):
            return base
        return cls(
            min_x=float(data.get("minX", base.min_x)),
            max_x=float(data.get("maxX", base.max_x)),
            min_y=float(data.get("minY", base.min_y)),
            max_y=float(data.get("maxY", base.max_y)),
        )


@dataclass(frozen=True)
class CanvasState:
    """Viewport, grid settings and the transient selection/editing state."""
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    grid_size: int = config.DEFAULT_GRID_SIZE
    show_grid: bool = False
    snap_to_grid: bool = False
    selected_nodes: FrozenSet[str] = frozenset()
    editing_node: Optional[str] = None
    bounds: CanvasBounds = CanvasBounds()

    def to_dict(self) -> dict:
        return {
            "zoom": self.zoom,
            "panX": self.pan_x,
            "panY": self.pan_y,
            "gridSize": self.grid_size,
            "showGrid": self.show_grid,
            "snapToGrid": self.snap_to_grid,
            "selectedNodes": sorted(self.selected_nodes),
            "editingNode": self.editing_node,
            "bounds": self.bounds.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CanvasState":
        base = cls()
        if not isinstance(data, dict):
            return base
        selected = data.get("selectedNodes")
        zoom = float(data.get("zoom", base.zoom))
        return cls(
            zoom=min(max(zoom, config.MIN_ZOOM), config.MAX_ZOOM),
            pan_x=float(data.get("panX", base.pan_x)),
            pan_y=float(data.get("panY", base.pan_y)),
            grid_size=int(data.get("gridSize", base.grid_size)),
            show_grid=bool(data.get("showGrid", base.show_grid)),
            snap_to_grid=bool(data.get("snapToGrid", base.snap_to_grid)),
            selected_nodes=frozenset(str(s) for s in selected) if isinstance(selected, list) else frozenset(),
            editing_node=data.get("editingNode") or None,
            bounds=CanvasBounds.from_dict(data.get("bounds")),
        )


# ==================== Mind Map ====================

@dataclass(frozen=True)
class MindMap:
    """The aggregate root: one document with its nodes, connections and canvas."""
    id: str
    title: str = "Untitled"
    description: str = ""
    owner_id: str = "unknown"
    is_public: bool = False
    nodes: Tuple[Node, ...] = ()
    connections: Tuple[Connection, ...] = ()
    canvas: CanvasState = CanvasState()
    version: int = 1
    tags: Tuple[str, ...] = ()
    collaborators: Tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""

    def get_node(self, node_id: Optional[str]) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        return None

    @property
    def node_ids(self) -> FrozenSet[str]:
        return frozenset(node.id for node in self.nodes)

    @property
    def has_root(self) -> bool:
        return any(node.type is NodeType.ROOT for node in self.nodes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "userId": self.owner_id,
            "isPublic": self.is_public,
            "nodes": [node.to_dict() for node in self.nodes],
            "connections": [connection.to_dict() for connection in self.connections],
            "canvas": self.canvas.to_dict(),
            "version": self.version,
            "tags": list(self.tags),
            "collaborators": list(self.collaborators),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MindMap":
        return sanitize_mind_map(data)


# ==================== Sanitizing & Validation ====================

def _list_or_empty(value) -> list:
    return value if isinstance(value, list) else []


def sanitize_mind_map(data: Any) -> MindMap:
    """Build a MindMap from untrusted wire data, filling defaults for bad fields.

    Raises ValidationError when ``data`` is not a mapping at all.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid mind map data")

    nodes = tuple(Node.from_dict(n) for n in _list_or_empty(data.get("nodes")))
    known = {node.id for node in nodes}
    canvas = CanvasState.from_dict(data.get("canvas"))
    # Selection may only reference nodes that exist
    canvas = replace(
        canvas,
        selected_nodes=frozenset(s for s in canvas.selected_nodes if s in known),
        editing_node=canvas.editing_node if canvas.editing_node in known else None,
    )
    version = data.get("version")
    stamp = now_iso()

    return MindMap(
        id=str(data.get("id") or data.get("_id") or ""),
        title=data.get("title") or "Untitled",
        description=data.get("description") or "",
        owner_id=str(data.get("userId") or data.get("ownerId") or "unknown"),
        is_public=bool(data.get("isPublic")),
        nodes=nodes,
        connections=tuple(Connection.from_dict(c) for c in _list_or_empty(data.get("connections"))),
        canvas=canvas,
        version=version if isinstance(version, int) and not isinstance(version, bool) else 1,
        tags=tuple(str(t) for t in _list_or_empty(data.get("tags"))),
        collaborators=tuple(str(c) for c in _list_or_empty(data.get("collaborators"))),
        created_at=str(data.get("createdAt") or stamp),
        updated_at=str(data.get("updatedAt") or stamp),
    )


def sanitize_mind_maps(items: Any) -> List[MindMap]:
    """Sanitize a list of maps, skipping entries without an id or that fail to parse."""
    if not isinstance(items, list):
        return []

    maps = []
    for item in items:
        if not isinstance(item, dict) or not (item.get("id") or item.get("_id")):
            continue
        try:
            maps.append(sanitize_mind_map(item))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping corrupted mind map %r: %s", item.get("id"), exc)
    return maps


def validate_mind_map_fields(title: Optional[str] = None,
                             description: Optional[str] = None,
                             tags: Optional[Iterable[str]] = None):
    """Check user-editable map metadata. ``None`` means "not being changed"."""
    if title is not None:
        if not title.strip():
            raise ValidationError("Title is required", field="title")
        if len(title) > config.MAX_TITLE_LENGTH:
            raise ValidationError(
                f"Title cannot exceed {config.MAX_TITLE_LENGTH} characters", field="title")
    if description is not None and len(description) > config.MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description cannot exceed {config.MAX_DESCRIPTION_LENGTH} characters",
            field="description")
    for tag in tags or ():
        if len(tag) > config.MAX_TAG_LENGTH:
            raise ValidationError(
                f"Tag '{tag}' cannot exceed {config.MAX_TAG_LENGTH} characters", field="tags")


def style_field_names() -> FrozenSet[str]:
    return frozenset(f.name for f in fields(NodeStyle))
