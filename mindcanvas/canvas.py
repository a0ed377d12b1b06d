"""Canvas widget for rendering and editing the current mind map."""

import math
from typing import Optional

import gi

gi.require_version("Gtk", "4.0")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gdk, GLib, Gio

import cairo

from mindcanvas import config
from mindcanvas.geometry import (
    distance, find_connection_at, find_top_node_at, minimap_layout, node_center,
    screen_to_world, visible_world_rect,
)
from mindcanvas.interaction import InteractionStateMachine, Mode
from mindcanvas.model import ConnectionType, Node, NodeType
from mindcanvas.mutations import (
    Retype, SetCollapsed, create_node, duplicate_node, reset_zoom, select_nodes,
    update_node, zoom_in, zoom_out, zoom_to_fit,
)
from mindcanvas.render import (
    BACKGROUND_COLOR, SELECTION_COLOR, draw_connection_path, draw_grid,
    draw_rounded_rect, draw_scene,
)
from mindcanvas.session import EditorSession


class MindMapCanvas(Gtk.DrawingArea):
    """Draws the session's current map and feeds input to the state machine."""

    MINIMAP_WIDTH = 160
    MINIMAP_HEIGHT = 120
    MINIMAP_PADDING = 16
    HANDLE_RADIUS = 6
    CONNECTION_TOLERANCE = 6
    CHILD_SPACING = 60

    PRESS_CANVAS = "canvas"
    PRESS_HANDLE = "handle"
    PRESS_IGNORED = "ignored"

    def __init__(self, session: EditorSession):
        super().__init__()

        self.session = session
        self.machine = InteractionStateMachine(session)
        self.show_minimap = True

        # What the current primary-button press started
        self._press: Optional[str] = None
        self._press_x = 0.0
        self._press_y = 0.0

        # Context popover tracking
        self._context_popover: Optional[Gtk.PopoverMenu] = None

        # Setup widget
        self.set_draw_func(self._on_draw)
        self.set_focusable(True)
        self.set_can_focus(True)
        self.connect("resize", self._on_resize)

        self._setup_event_controllers()

        self.set_hexpand(True)
        self.set_vexpand(True)

    def _setup_event_controllers(self):
        """Setup mouse and keyboard event controllers."""
        # Press, move and release of the primary button
        drag_ctrl = Gtk.GestureDrag()
        drag_ctrl.set_button(1)
        drag_ctrl.connect("drag-begin", self._on_drag_begin)
        drag_ctrl.connect("drag-update", self._on_drag_update)
        drag_ctrl.connect("drag-end", self._on_drag_end)
        self.add_controller(drag_ctrl)

        # Double click
        click_ctrl = Gtk.GestureClick()
        click_ctrl.set_button(1)
        click_ctrl.connect("pressed", self._on_click)
        self.add_controller(click_ctrl)

        # Hover and connection preview
        motion_ctrl = Gtk.EventControllerMotion()
        motion_ctrl.connect("motion", self._on_motion)
        motion_ctrl.connect("leave", self._on_leave)
        self.add_controller(motion_ctrl)

        # Scroll (zoom)
        scroll_ctrl = Gtk.EventControllerScroll()
        scroll_ctrl.set_flags(Gtk.EventControllerScrollFlags.VERTICAL)
        scroll_ctrl.connect("scroll", self._on_scroll)
        self.add_controller(scroll_ctrl)

        # Keyboard
        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_key_pressed)
        key_ctrl.connect("key-released", self._on_key_released)
        self.add_controller(key_ctrl)

        # Right-click for context menu
        right_click = Gtk.GestureClick()
        right_click.set_button(3)
        right_click.connect("pressed", self._on_right_click)
        self.add_controller(right_click)

    def refresh(self):
        """Redraw after the session changed."""
        self.queue_draw()

    # ==================== Drawing ====================

    def _on_resize(self, area, width, height):
        self.machine.set_viewport_size(width, height)

    def _on_draw(self, area, cr, width, height):
        """Main drawing function."""
        cr.set_source_rgb(*BACKGROUND_COLOR)
        cr.paint()

        mind_map = self.session.current
        if mind_map is None:
            self._draw_placeholder(cr, width, height)
            return

        canvas = mind_map.canvas
        cr.save()
        cr.translate(canvas.pan_x, canvas.pan_y)
        cr.scale(canvas.zoom, canvas.zoom)

        if canvas.show_grid:
            draw_grid(cr, *visible_world_rect(canvas, width, height), canvas.grid_size)

        nodes = self.machine.render_nodes()
        draw_scene(cr, nodes, mind_map.connections, canvas.selected_nodes)
        self._draw_connection_preview(cr)
        self._draw_overlays(cr, nodes)

        cr.restore()

        if self.show_minimap and nodes:
            self._draw_minimap(cr, width, height, nodes)

    def _draw_placeholder(self, cr, width, height):
        cr.set_source_rgb(0.42, 0.45, 0.5)
        cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(16)
        text = "Open or create a mind map to start"
        extents = cr.text_extents(text)
        cr.move_to(width / 2 - extents.width / 2, height / 2)
        cr.show_text(text)

    def _draw_connection_preview(self, cr):
        preview = self.machine.connection_preview()
        if preview is None:
            return
        start, end = preview
        cr.set_source_rgba(*SELECTION_COLOR, 0.8)
        cr.set_line_width(2)
        cr.set_dash((6.0, 4.0))
        draw_connection_path(cr, ConnectionType.STRAIGHT, start, end)
        cr.stroke()
        cr.set_dash(())

    def _draw_overlays(self, cr, nodes):
        """Hover outline, connection handles and the text caret."""
        selected = self.session.current.canvas.selected_nodes
        for node in nodes:
            if node.id == self.machine.hovered_node_id and node.id not in selected:
                draw_rounded_rect(cr, node.x - 2, node.y - 2, node.width + 4, node.height + 4,
                                  node.style.border_radius + 2)
                cr.set_source_rgba(*SELECTION_COLOR, 0.4)
                cr.set_line_width(1)
                cr.stroke()
            if node.id in selected and self.machine.mode is not Mode.EDITING_TEXT:
                hx, hy = self._handle_position(node)
                cr.arc(hx, hy, self.HANDLE_RADIUS, 0, 2 * math.pi)
                cr.set_source_rgb(*SELECTION_COLOR)
                cr.fill()

        if self.machine.mode is Mode.EDITING_TEXT:
            node = self.session.current.get_node(self.machine.editing_node_id)
            if node is not None:
                self._draw_caret(cr, node)

    def _draw_caret(self, cr, node: Node):
        cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(node.style.font_size)
        extents = cr.text_extents(node.text) if node.text else None
        text_width = extents.x_advance if extents else 0
        cx, cy = node_center(node)
        caret_x = min(cx + text_width / 2 + 2, node.x + node.width - 6)
        cr.set_source_rgb(*SELECTION_COLOR)
        cr.set_line_width(1.5)
        cr.move_to(caret_x, cy - node.style.font_size / 2)
        cr.line_to(caret_x, cy + node.style.font_size / 2)
        cr.stroke()

    def _draw_minimap(self, cr, width: float, height: float, nodes):
        """Draw minimap in corner."""
        mm_w, mm_h = self.MINIMAP_WIDTH, self.MINIMAP_HEIGHT
        mm_x = width - mm_w - self.MINIMAP_PADDING
        mm_y = height - mm_h - self.MINIMAP_PADDING
        canvas = self.session.current.canvas

        cr.save()
        draw_rounded_rect(cr, mm_x, mm_y, mm_w, mm_h, 4)
        cr.set_source_rgba(1, 1, 1, 0.9)
        cr.fill_preserve()
        cr.set_source_rgb(0.82, 0.84, 0.86)
        cr.set_line_width(1)
        cr.stroke()

        cr.rectangle(mm_x, mm_y, mm_w, mm_h)
        cr.clip()

        points, viewport = minimap_layout(canvas, nodes, width, height, mm_w, mm_h)
        scale_x = mm_w / max(canvas.bounds.max_x - canvas.bounds.min_x, 1.0)
        scale_y = mm_h / max(canvas.bounds.max_y - canvas.bounds.min_y, 1.0)
        for node in nodes:
            px, py = points[node.id]
            if node.id in canvas.selected_nodes:
                cr.set_source_rgb(*SELECTION_COLOR)
            else:
                cr.set_source_rgb(0.42, 0.45, 0.5)
            cr.rectangle(mm_x + px, mm_y + py, max(2, node.width * scale_x),
                         max(2, node.height * scale_y))
            cr.fill()

        vx, vy, vw, vh = viewport
        cr.set_source_rgba(*SELECTION_COLOR, 0.2)
        cr.rectangle(mm_x + vx, mm_y + vy, vw, vh)
        cr.fill_preserve()
        cr.set_source_rgb(*SELECTION_COLOR)
        cr.stroke()
        cr.restore()

    # ==================== Connection Handles ====================

    def _handle_position(self, node: Node):
        return node.x + node.width, node.y + node.height / 2

    def _handle_at(self, x: float, y: float) -> Optional[Node]:
        """Selected node whose connection handle is under screen point (x, y)."""
        mind_map = self.session.current
        point = screen_to_world((x, y), mind_map.canvas)
        radius = (self.HANDLE_RADIUS + 2) / mind_map.canvas.zoom
        for node in reversed(mind_map.nodes):
            if node.id in mind_map.canvas.selected_nodes and \
                    distance(point, self._handle_position(node)) <= radius:
                return node
        return None

    # ==================== Pointer Input ====================

    def _on_drag_begin(self, gesture, start_x, start_y):
        self.grab_focus()
        self._press = None
        mind_map = self.session.current
        if mind_map is None:
            return
        self._press_x, self._press_y = start_x, start_y

        if self.machine.mode is Mode.EDITING_TEXT:
            # Presses inside the node being edited belong to the text
            node = find_top_node_at(screen_to_world((start_x, start_y), mind_map.canvas),
                                    mind_map.nodes)
            if node is not None and node.id == self.machine.editing_node_id:
                self._press = self.PRESS_IGNORED
                return
        elif self.machine.mode is not Mode.CONNECTING_FROM:
            handle_node = self._handle_at(start_x, start_y)
            if handle_node is not None:
                self._press = self.PRESS_HANDLE
                self.machine.start_connection(handle_node.id)
                self.queue_draw()
                return

        self._press = self.PRESS_CANVAS
        self.machine.pointer_down(start_x, start_y)
        self.queue_draw()

    def _on_drag_update(self, gesture, offset_x, offset_y):
        if self._press is None or self._press == self.PRESS_IGNORED:
            return
        self.machine.pointer_move(self._press_x + offset_x, self._press_y + offset_y)
        self.queue_draw()

    def _on_drag_end(self, gesture, offset_x, offset_y):
        press, self._press = self._press, None
        x, y = self._press_x + offset_x, self._press_y + offset_y
        if press == self.PRESS_HANDLE:
            # A plain click on the handle waits for a second click on the target
            if math.hypot(offset_x, offset_y) >= config.DRAG_THRESHOLD:
                self.machine.pointer_down(x, y)
        elif press == self.PRESS_CANVAS:
            self.machine.pointer_up(x, y)
        self.queue_draw()

    def _on_click(self, gesture, n_press, x, y):
        if n_press == 2:
            self.machine.double_click(x, y)
            self.queue_draw()

    def _on_motion(self, controller, x, y):
        if self.session.current is None:
            return
        old_hover = self.machine.hovered_node_id
        self.machine.pointer_move(x, y)
        if old_hover != self.machine.hovered_node_id or \
                self.machine.mode is Mode.CONNECTING_FROM:
            self.queue_draw()

    def _on_leave(self, controller):
        if self.machine.hovered_node_id:
            self.machine.hovered_node_id = None
            self.queue_draw()

    def _on_scroll(self, controller, dx, dy):
        if self.session.current is None:
            return False
        self.machine.wheel(dy)
        return True

    # ==================== Keyboard ====================

    def _on_key_pressed(self, controller, keyval, keycode, state):
        ctrl = bool(state & Gdk.ModifierType.CONTROL_MASK)
        shift = bool(state & Gdk.ModifierType.SHIFT_MASK)
        key = Gdk.keyval_name(keyval) or ""

        if ctrl and key in ("plus", "equal"):
            self.zoom_in()
            return True
        if ctrl and key == "minus":
            self.zoom_out()
            return True
        if ctrl and key == "0":
            self.zoom_to_fit()
            return True
        if ctrl and key == "1":
            self.reset_zoom()
            return True

        if self.machine.key_down(key, ctrl=ctrl, shift=shift):
            self.queue_draw()
            return True

        if self.machine.mode is Mode.EDITING_TEXT and not ctrl:
            return self._handle_edit_key(keyval, key)

        if key == "F2":
            selected = self.session.current.canvas.selected_nodes if self.session.current else ()
            if len(selected) == 1:
                self.machine.begin_editing(next(iter(selected)))
                self.queue_draw()
            return True
        return False

    def _handle_edit_key(self, keyval, key: str) -> bool:
        """Typing while a node is edited changes its text live."""
        node = self.session.current.get_node(self.machine.editing_node_id)
        if node is None:
            return False
        if key == "BackSpace":
            self.machine.text_input(node.text[:-1])
        else:
            uc = Gdk.keyval_to_unicode(keyval)
            if not uc or not chr(uc).isprintable():
                return False
            self.machine.text_input(node.text + chr(uc))
        self.queue_draw()
        return True

    def _on_key_released(self, controller, keyval, keycode, state):
        self.machine.key_up(Gdk.keyval_name(keyval) or "")

    # ==================== View Commands ====================

    def zoom_in(self):
        if self.session.current is not None:
            self.session.apply(zoom_in(self.session.current))

    def zoom_out(self):
        if self.session.current is not None:
            self.session.apply(zoom_out(self.session.current))

    def reset_zoom(self):
        if self.session.current is not None:
            self.session.apply(reset_zoom(self.session.current))

    def zoom_to_fit(self):
        if self.session.current is not None:
            self.session.apply(zoom_to_fit(self.session.current, self.machine.viewport_width,
                                           self.machine.viewport_height))

    def toggle_minimap(self):
        self.show_minimap = not self.show_minimap
        self.queue_draw()

    # ==================== Node Commands ====================

    def add_child(self, parent: Node):
        position = (parent.x + parent.width + self.CHILD_SPACING, parent.y)
        mind_map, child = create_node(self.session.current, parent.id, position,
                                      config.NEW_NODE_TEXT)
        if child is None:
            return
        self.session.commit(select_nodes(mind_map, [child.id]), "create")
        self.machine.begin_editing(child.id)

    def add_topic_at(self, x: float, y: float):
        self.machine.double_click(x, y)

    def duplicate(self, node: Node):
        mind_map, copy = duplicate_node(self.session.current, node.id)
        if copy is not None:
            self.session.commit(select_nodes(mind_map, [copy.id]), "duplicate")

    def set_type(self, node: Node, node_type: NodeType):
        self.session.commit(update_node(self.session.current, node.id, Retype(node_type)),
                            "style")

    def toggle_collapsed(self, node: Node):
        self.session.commit(
            update_node(self.session.current, node.id, SetCollapsed(not node.collapsed)),
            "collapse")

    def _on_right_click(self, gesture, n_press, x, y):
        """Handle right-click for context menu."""
        mind_map = self.session.current
        if mind_map is None:
            return
        self.grab_focus()
        clicked = find_top_node_at(screen_to_world((x, y), mind_map.canvas), mind_map.nodes)

        menu = Gio.Menu()
        action_group = Gio.SimpleActionGroup()

        def add(label: str, name: str, callback):
            menu.append(label, f"canvas.{name}")
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p: (callback(), self.queue_draw()))
            action_group.add_action(action)

        if clicked is not None:
            if clicked.id not in mind_map.canvas.selected_nodes:
                self.session.apply(select_nodes(mind_map, [clicked.id]))
            add("Edit", "edit-node", lambda: self.machine.begin_editing(clicked.id))
            add("Add Child", "add-child", lambda: self.add_child(clicked))
            add("Connect To...", "connect", lambda: self.machine.start_connection(clicked.id))
            add("Duplicate", "duplicate", lambda: self.duplicate(clicked))
            add("Expand" if clicked.collapsed else "Collapse", "collapse",
                lambda: self.toggle_collapsed(clicked))

            type_menu = Gio.Menu()
            for node_type in NodeType:
                name = f"type-{node_type.value}"
                type_menu.append(node_type.value.capitalize(), f"canvas.{name}")
                action = Gio.SimpleAction.new(name, None)
                action.connect("activate",
                               lambda a, p, t=node_type: (self.set_type(clicked, t),
                                                          self.queue_draw()))
                action_group.add_action(action)
            menu.append_submenu("Type", type_menu)

            add("Delete", "delete-node", self.machine.delete_selection)
        else:
            world = screen_to_world((x, y), mind_map.canvas)
            tolerance = self.CONNECTION_TOLERANCE / mind_map.canvas.zoom
            connection = find_connection_at(world, mind_map.connections, mind_map.nodes,
                                            tolerance=tolerance)
            if connection is not None:
                style_menu = Gio.Menu()
                for connection_type in ConnectionType:
                    name = f"line-{connection_type.value}"
                    style_menu.append(connection_type.value.capitalize(), f"canvas.{name}")
                    action = Gio.SimpleAction.new(name, None)
                    action.connect("activate",
                                   lambda a, p, t=connection_type: (
                                       self.machine.set_connection_type(connection.id, t),
                                       self.queue_draw()))
                    action_group.add_action(action)
                menu.append_submenu("Line Style", style_menu)
                add("Delete Connection", "delete-connection",
                    lambda: self.machine.remove_connection(connection.id))
            else:
                add("Add Topic", "add-topic", lambda: self.add_topic_at(x, y))
                add("Zoom to Fit", "fit", self.zoom_to_fit)

        self.insert_action_group("canvas", action_group)

        # Unparent previous popover if still attached
        if self._context_popover is not None:
            self._context_popover.unparent()
            self._context_popover = None

        popover = Gtk.PopoverMenu.new_from_model(menu)
        popover.set_parent(self)
        popover.set_has_arrow(True)

        # Defer unparent to idle so the action callback fires first
        def _on_popover_closed(p):
            def _do_unparent():
                if self._context_popover is p:
                    p.unparent()
                    self._context_popover = None
                return False
            GLib.idle_add(_do_unparent)
        popover.connect("closed", _on_popover_closed)

        self._context_popover = popover

        rect = Gdk.Rectangle()
        rect.x = int(x)
        rect.y = int(y)
        rect.width = 1
        rect.height = 1
        popover.set_pointing_to(rect)
        popover.popup()
