"""Interaction state machine for the canvas.

Turns pointer, wheel and keyboard input (in screen coordinates) into
mutations of the session's current document. The machine is in exactly one
``Mode`` at a time; the fields used by the other modes are reset on every
transition.

Node drags are previewed without touching the document and committed as a
single move on pointer-up. Pans are applied live. All transitions silently
do nothing when the node they refer to has disappeared.
"""

import logging
import re
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from mindcanvas import config
from mindcanvas.errors import ValidationError
from mindcanvas.geometry import (
    Point, clamp_pan, find_top_node_at, node_center, screen_to_world, snap_to_grid,
)
from mindcanvas.model import ConnectionType, MindMap, Node
from mindcanvas.mutations import (
    NodeMovement, Restyle, Retext, SetConnectionType, SetPan, clear_selection,
    create_connection, create_node, delete_connection, delete_nodes, move_nodes,
    select_nodes, start_editing, stop_editing, update_canvas, update_connection,
    update_node, zoom_in, zoom_out,
)
from mindcanvas.session import EditorSession

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class Mode(Enum):
    IDLE = "idle"
    DRAGGING_NODE = "dragging_node"
    PANNING_CANVAS = "panning_canvas"
    CONNECTING_FROM = "connecting_from"
    EDITING_TEXT = "editing_text"


DELETE_KEYS = ("Delete", "BackSpace", "Backspace")
SPACE_KEYS = ("space", " ", "Space")


class InteractionStateMachine:
    """Gesture recognizer bound to one EditorSession."""

    def __init__(self, session: EditorSession,
                 viewport_width: float = config.DEFAULT_VIEWPORT[0],
                 viewport_height: float = config.DEFAULT_VIEWPORT[1]):
        self.session = session
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.mode = Mode.IDLE
        self.space_held = False
        self.hovered_node_id: Optional[str] = None

        # DRAGGING_NODE
        self._drag_anchor: Optional[Point] = None
        self._drag_origins: Dict[str, Point] = {}
        self._drag_previews: Dict[str, Point] = {}

        # PANNING_CANVAS
        self._pan_anchor: Optional[Point] = None

        # CONNECTING_FROM
        self.connect_from: Optional[str] = None
        self._connect_pointer: Optional[Point] = None

        # EDITING_TEXT
        self.editing_node_id: Optional[str] = None
        self._edit_original_text: Optional[str] = None

    # ==================== Helpers ====================

    @property
    def document(self) -> Optional[MindMap]:
        return self.session.current

    def set_viewport_size(self, width: float, height: float):
        if width > 0 and height > 0:
            self.viewport_width = width
            self.viewport_height = height

    def _to_world(self, x: float, y: float) -> Point:
        return screen_to_world((x, y), self.document.canvas)

    def _node_at(self, x: float, y: float) -> Optional[Node]:
        return find_top_node_at(self._to_world(x, y), self.document.nodes)

    def _reset_transient(self):
        self._drag_anchor = None
        self._drag_origins = {}
        self._drag_previews = {}
        self._pan_anchor = None
        self.connect_from = None
        self._connect_pointer = None
        self.editing_node_id = None
        self._edit_original_text = None

    def _to_idle(self):
        self._reset_transient()
        self.mode = Mode.IDLE

    # ==================== Pointer Input ====================

    def pointer_down(self, x: float, y: float):
        """Primary button pressed at screen point (x, y)."""
        if self.document is None:
            return
        if self.mode is Mode.EDITING_TEXT:
            self.finish_editing()
        elif self.mode in (Mode.DRAGGING_NODE, Mode.PANNING_CANVAS):
            # Missed a release; drop the unfinished gesture
            self._to_idle()

        node = self._node_at(x, y)

        if self.mode is Mode.CONNECTING_FROM:
            start_id = self.connect_from
            if node is not None and node.id != start_id:
                mind_map, connection = create_connection(self.document, start_id, node.id)
                if connection is not None:
                    self.session.commit(mind_map, "connect")
            self._to_idle()
            return

        if node is None:
            # Space-panning keeps the selection
            if not self.space_held:
                self.session.apply(clear_selection(self.document))
            self._begin_pan(x, y)
            return

        self._begin_drag(node, x, y)

    def _begin_pan(self, x: float, y: float):
        self._reset_transient()
        self.mode = Mode.PANNING_CANVAS
        self._pan_anchor = (x, y)

    def _begin_drag(self, node: Node, x: float, y: float):
        mind_map = self.document
        if node.id not in mind_map.canvas.selected_nodes:
            mind_map = select_nodes(mind_map, [node.id])
            self.session.apply(mind_map)

        self._reset_transient()
        self.mode = Mode.DRAGGING_NODE
        self._drag_anchor = self._to_world(x, y)
        self._drag_origins = {
            n.id: (n.x, n.y) for n in mind_map.nodes if n.id in mind_map.canvas.selected_nodes
        }
        self._drag_previews = dict(self._drag_origins)

    def pointer_move(self, x: float, y: float):
        """Pointer moved to screen point (x, y), pressed or not."""
        if self.document is None:
            return

        if self.mode is Mode.DRAGGING_NODE:
            self._update_drag_preview(x, y)
        elif self.mode is Mode.PANNING_CANVAS:
            self._pan_by(x, y)
        elif self.mode is Mode.CONNECTING_FROM:
            self._connect_pointer = self._to_world(x, y)
        else:
            node = self._node_at(x, y)
            self.hovered_node_id = node.id if node else None

    def _update_drag_preview(self, x: float, y: float):
        canvas = self.document.canvas
        wx, wy = self._to_world(x, y)
        dx = wx - self._drag_anchor[0]
        dy = wy - self._drag_anchor[1]

        previews = {}
        for node_id, (ox, oy) in self._drag_origins.items():
            target = (ox + dx, oy + dy)
            if canvas.snap_to_grid:
                target = snap_to_grid(target, canvas.grid_size)
            previews[node_id] = target
        self._drag_previews = previews

    def _pan_by(self, x: float, y: float):
        canvas = self.document.canvas
        ax, ay = self._pan_anchor
        pan_x, pan_y = clamp_pan(
            canvas.pan_x + (x - ax), canvas.pan_y + (y - ay), canvas.zoom, canvas.bounds,
            self.viewport_width, self.viewport_height,
        )
        self.session.apply(update_canvas(self.document, SetPan(pan_x, pan_y)))
        self._pan_anchor = (x, y)

    def pointer_up(self, x: float, y: float):
        """Primary button released at screen point (x, y)."""
        if self.document is None:
            self._to_idle()
            return

        if self.mode is Mode.DRAGGING_NODE:
            self._update_drag_preview(x, y)
            self._commit_drag()
            self._to_idle()
        elif self.mode is Mode.PANNING_CANVAS:
            self._to_idle()

    def _commit_drag(self):
        existing = self.document.node_ids
        movements = [
            NodeMovement(node_id, px, py)
            for node_id, (px, py) in self._drag_previews.items()
            if node_id in existing and (px, py) != self._drag_origins.get(node_id)
        ]
        if not movements:
            return
        self.session.commit(move_nodes(self.document, movements), "move")
        logger.debug("Moved %d node(s)", len(movements))

    def double_click(self, x: float, y: float):
        """Double-click at screen point (x, y)."""
        if self.document is None:
            return
        if self.mode is Mode.EDITING_TEXT:
            self.finish_editing()
        elif self.mode is not Mode.IDLE:
            self._to_idle()

        node = self._node_at(x, y)
        if node is not None:
            self.begin_editing(node.id)
            return

        mind_map, created = create_node(self.document, None, self._to_world(x, y),
                                        config.NEW_NODE_TEXT)
        if created is None:
            return
        self.session.commit(mind_map, "create")
        self._enter_editing(created)

    def wheel(self, delta_y: float):
        """Scroll wheel: negative delta zooms in, anything else zooms out.

        Zoom is anchored at the world origin, so the point under the cursor
        moves.
        """
        if self.document is None:
            return
        if delta_y < 0:
            self.session.apply(zoom_in(self.document))
        else:
            self.session.apply(zoom_out(self.document))

    # ==================== Connections ====================

    def start_connection(self, node_id: str):
        """Connection handle on ``node_id`` was clicked."""
        if self.document is None or self.document.get_node(node_id) is None:
            return
        if self.mode is Mode.EDITING_TEXT:
            self.finish_editing()
        self._reset_transient()
        self.mode = Mode.CONNECTING_FROM
        self.connect_from = node_id
        self._connect_pointer = node_center(self.document.get_node(node_id))

    def cancel_connection(self):
        if self.mode is Mode.CONNECTING_FROM:
            self._to_idle()

    # ==================== Text Editing ====================

    def begin_editing(self, node_id: str):
        if self.document is None:
            return
        node = self.document.get_node(node_id)
        if node is None or self.editing_node_id == node_id:
            return
        if self.mode is Mode.EDITING_TEXT:
            self.finish_editing()
        self.session.apply(start_editing(select_nodes(self.document, [node_id]), node_id))
        self._enter_editing(node)

    def _enter_editing(self, node: Node):
        self._reset_transient()
        self.mode = Mode.EDITING_TEXT
        self.editing_node_id = node.id
        self._edit_original_text = node.text

    def text_input(self, text: str):
        """Replace the text of the node being edited."""
        if self.mode is not Mode.EDITING_TEXT or self.document is None:
            return
        self.session.apply(update_node(self.document, self.editing_node_id, Retext(text)))

    def finish_editing(self):
        """Leave text editing, recording an undo step if the text changed."""
        if self.mode is not Mode.EDITING_TEXT:
            return
        node_id = self.editing_node_id
        original = self._edit_original_text
        self._to_idle()
        if self.document is None:
            return

        mind_map = stop_editing(self.document)
        node = mind_map.get_node(node_id)
        if node is not None and node.text != original:
            self.session.commit(mind_map, "edit")
        else:
            self.session.apply(mind_map)

    # ==================== Keyboard ====================

    def key_down(self, key: str, ctrl: bool = False, shift: bool = False) -> bool:
        """Handle a key press. Returns True if the key was consumed."""
        if key in SPACE_KEYS and self.mode is not Mode.EDITING_TEXT:
            self.space_held = True
            return True

        if key == "Escape":
            if self.mode is Mode.CONNECTING_FROM:
                self.cancel_connection()
            elif self.mode is Mode.EDITING_TEXT:
                self.finish_editing()
            elif self.document is not None:
                self.session.apply(clear_selection(self.document))
            return True

        if self.mode is Mode.EDITING_TEXT:
            if key in ("Return", "Enter", "KP_Enter"):
                self.finish_editing()
                return True
            # Everything else belongs to the text entry
            return False

        if ctrl and key.lower() == "z":
            if shift:
                return self.session.redo()
            return self.session.undo()
        if ctrl and key.lower() == "y":
            return self.session.redo()

        if key in DELETE_KEYS:
            return self.delete_selection()

        return False

    def key_up(self, key: str):
        if key in SPACE_KEYS:
            self.space_held = False

    def delete_selection(self) -> bool:
        if self.document is None or self.mode is Mode.EDITING_TEXT:
            return False
        selected = self.document.canvas.selected_nodes
        if not selected:
            return False
        if self.mode is Mode.DRAGGING_NODE:
            self._to_idle()
        self.session.commit(delete_nodes(self.document, selected), "delete")
        return True

    # ==================== Render Views ====================

    def preview_position(self, node_id: str) -> Optional[Point]:
        """Where ``node_id`` should be drawn: its drag preview or stored position."""
        if node_id in self._drag_previews:
            return self._drag_previews[node_id]
        if self.document is None:
            return None
        node = self.document.get_node(node_id)
        return (node.x, node.y) if node else None

    def render_nodes(self) -> List[Node]:
        """Document nodes with drag previews applied."""
        if self.document is None:
            return []
        if not self._drag_previews:
            return list(self.document.nodes)
        nodes = []
        for node in self.document.nodes:
            preview = self._drag_previews.get(node.id)
            if preview is not None:
                node = replace(node, x=preview[0], y=preview[1])
            nodes.append(node)
        return nodes

    def connection_preview(self) -> Optional[Tuple[Point, Point]]:
        """Line from the connecting node's centre to the pointer (world)."""
        if self.mode is not Mode.CONNECTING_FROM or self.document is None:
            return None
        node = self.document.get_node(self.connect_from)
        if node is None or self._connect_pointer is None:
            return None
        return node_center(node), self._connect_pointer

    # ==================== Properties ====================

    def selected_node(self) -> Optional[Node]:
        """The selected node when exactly one is selected."""
        if self.document is None:
            return None
        selected = self.document.canvas.selected_nodes
        if len(selected) != 1:
            return None
        return self.document.get_node(next(iter(selected)))

    def set_node_text(self, node_id: str, text: str) -> bool:
        """Retext a node from outside the canvas; one ``"edit"`` step per change."""
        if self.document is None:
            return False
        if self.mode is Mode.EDITING_TEXT and self.editing_node_id == node_id:
            self.finish_editing()
        node = self.document.get_node(node_id)
        if node is None or node.text == text:
            return False
        self.session.commit(update_node(self.document, node_id, Retext(text)), "edit")
        return True

    def set_node_color(self, node_id: str, color: str) -> bool:
        """Change a node's background colour (``#rrggbb``) as one ``"style"`` step."""
        if self.document is None:
            return False
        if not HEX_COLOR.match(color):
            raise ValidationError(f"Invalid colour: {color!r}", field="backgroundColor")
        node = self.document.get_node(node_id)
        if node is None or node.style.background_color.lower() == color.lower():
            return False
        self.session.commit(update_node(self.document, node_id,
                                        Restyle(background_color=color)), "style")
        return True

    def set_connection_type(self, connection_id: str,
                            connection_type: ConnectionType) -> bool:
        if self.document is None:
            return False
        connection = self.document.get_connection(connection_id)
        if connection is None or connection.type is connection_type:
            return False
        self.session.commit(update_connection(self.document, connection_id,
                                              SetConnectionType(connection_type)), "style")
        return True

    def remove_connection(self, connection_id: str) -> bool:
        if self.document is None or self.document.get_connection(connection_id) is None:
            return False
        self.session.commit(delete_connection(self.document, connection_id), "delete")
        return True
