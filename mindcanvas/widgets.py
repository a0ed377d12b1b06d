"""Custom widgets for MindCanvas application."""

from typing import Callable, List, Optional

import gi

gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
from gi.repository import Gtk, Gdk, GLib, Gio, Adw, Pango

from mindcanvas import config
from mindcanvas.api import SORT_FIELDS, SearchResult
from mindcanvas.model import CanvasState, MindMap, Node
from mindcanvas.session import EditorSession


class MapListRow(Gtk.Box):
    """A row in the maps list sidebar."""

    def __init__(self, mind_map: MindMap):
        super().__init__(orientation=Gtk.Orientation.VERTICAL, spacing=4)
        self.mind_map = mind_map

        self.set_margin_start(12)
        self.set_margin_end(12)
        self.set_margin_top(8)
        self.set_margin_bottom(8)

        self.name_label = Gtk.Label(label=mind_map.title)
        self.name_label.set_halign(Gtk.Align.START)
        self.name_label.set_ellipsize(Pango.EllipsizeMode.END)
        self.name_label.add_css_class("heading")
        self.append(self.name_label)

        self.date_label = Gtk.Label(label=self._subtitle(mind_map))
        self.date_label.set_halign(Gtk.Align.START)
        self.date_label.add_css_class("dim-label")
        self.append(self.date_label)

    @staticmethod
    def _subtitle(mind_map: MindMap) -> str:
        date_str = mind_map.updated_at[:10] if mind_map.updated_at else ""
        count = len(mind_map.nodes)
        return f"{count} node{'s' if count != 1 else ''} · Modified: {date_str}"


class MapsSidebar(Gtk.Box):
    """Left sidebar showing the session's list of maps."""

    def __init__(self, session: EditorSession):
        super().__init__(orientation=Gtk.Orientation.VERTICAL)
        self.session = session

        self.add_css_class("sidebar")
        self.set_size_request(280, -1)

        # Callbacks
        self.on_map_selected: Optional[Callable[[MindMap], None]] = None
        self.on_new_map: Optional[Callable[[], None]] = None
        self.on_map_delete: Optional[Callable[[MindMap], None]] = None
        self.on_map_rename: Optional[Callable[[MindMap], None]] = None
        self.on_map_duplicate: Optional[Callable[[MindMap], None]] = None
        self.on_map_share: Optional[Callable[[MindMap], None]] = None

        # Right-click target
        self._right_click_map: Optional[MindMap] = None
        self._context_popover: Optional[Gtk.PopoverMenu] = None
        # Suppresses on_map_selected while rows are rebuilt
        self._refreshing = False

        # Header
        header = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        header.set_margin_start(16)
        header.set_margin_end(8)
        header.set_margin_top(12)
        header.set_margin_bottom(12)

        title = Gtk.Label(label="Mind Maps")
        title.set_hexpand(True)
        title.set_halign(Gtk.Align.START)
        title.add_css_class("title-4")
        header.append(title)

        new_btn = Gtk.Button()
        new_btn.set_icon_name("list-add-symbolic")
        new_btn.set_tooltip_text("New Map (Ctrl+N)")
        new_btn.add_css_class("flat")
        new_btn.connect("clicked", self._on_new_clicked)
        header.append(new_btn)

        self.append(header)

        # Filter entry
        search_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        search_box.set_margin_start(12)
        search_box.set_margin_end(12)
        search_box.set_margin_bottom(8)

        self.search_entry = Gtk.SearchEntry()
        self.search_entry.set_placeholder_text("Filter maps...")
        self.search_entry.set_hexpand(True)
        self.search_entry.connect("search-changed", self._on_search_changed)
        search_box.append(self.search_entry)

        self.append(search_box)

        # Offline indicator
        self.mode_label = Gtk.Label(label="Offline: maps are stored on this computer")
        self.mode_label.add_css_class("dim-label")
        self.mode_label.set_wrap(True)
        self.mode_label.set_margin_start(12)
        self.mode_label.set_margin_end(12)
        self.mode_label.set_margin_bottom(8)
        self.mode_label.set_visible(False)
        self.append(self.mode_label)

        self.append(Gtk.Separator(orientation=Gtk.Orientation.HORIZONTAL))

        scrolled = Gtk.ScrolledWindow()
        scrolled.set_vexpand(True)
        scrolled.set_policy(Gtk.PolicyType.NEVER, Gtk.PolicyType.AUTOMATIC)

        self.listbox = Gtk.ListBox()
        self.listbox.set_selection_mode(Gtk.SelectionMode.SINGLE)
        self.listbox.add_css_class("navigation-sidebar")
        self.listbox.connect("row-selected", self._on_row_selected)
        self.listbox.set_filter_func(self._filter_func)

        right_click = Gtk.GestureClick()
        right_click.set_button(3)
        right_click.connect("pressed", self._on_right_click)
        self.listbox.add_controller(right_click)

        scrolled.set_child(self.listbox)
        self.append(scrolled)

        self.rows: List[Gtk.ListBoxRow] = []
        self.filter_text = ""

        self.refresh()

    def refresh(self):
        """Rebuild the list from the session."""
        self._refreshing = True
        while True:
            row = self.listbox.get_row_at_index(0)
            if row is None:
                break
            self.listbox.remove(row)
        self.rows.clear()

        maps = self.session.mind_maps
        for mind_map in maps:
            row = Gtk.ListBoxRow()
            row.set_child(MapListRow(mind_map))
            row.mind_map = mind_map
            self.listbox.append(row)
            self.rows.append(row)

        if not maps:
            self._show_empty_state()

        self.mode_label.set_visible(self.session.local_mode)
        current = self.session.current
        if current is not None:
            self.select_map(current.id)
        self._refreshing = False

    def _show_empty_state(self):
        empty_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=8)
        empty_box.set_valign(Gtk.Align.CENTER)
        empty_box.set_margin_top(40)
        empty_box.set_margin_bottom(40)

        label = Gtk.Label(label="No maps yet")
        label.add_css_class("dim-label")
        empty_box.append(label)

        hint = Gtk.Label(label="Press Ctrl+N to create one")
        hint.add_css_class("dim-label")
        hint.set_opacity(0.6)
        empty_box.append(hint)

        row = Gtk.ListBoxRow()
        row.set_child(empty_box)
        row.set_selectable(False)
        row.set_activatable(False)
        self.listbox.append(row)

    def _filter_func(self, row: Gtk.ListBoxRow) -> bool:
        if not self.filter_text or not hasattr(row, "mind_map"):
            return True
        return self.filter_text.lower() in row.mind_map.title.lower()

    def _on_search_changed(self, entry):
        self.filter_text = entry.get_text()
        self.listbox.invalidate_filter()

    def _on_row_selected(self, listbox, row):
        if self._refreshing:
            return
        if row and hasattr(row, "mind_map") and self.on_map_selected:
            self.on_map_selected(row.mind_map)

    def _on_new_clicked(self, button):
        if self.on_new_map:
            self.on_new_map()

    def _on_right_click(self, gesture, n_press, x, y):
        """Handle right-click for context menu."""
        row = self.listbox.get_row_at_y(int(y))
        if not row or not hasattr(row, "mind_map"):
            return

        self._right_click_map = row.mind_map

        menu = Gio.Menu()
        menu.append("Rename", "sidebar.rename-map")
        menu.append("Duplicate", "sidebar.duplicate-map")
        if not self.session.local_mode:
            menu.append("Share...", "sidebar.share-map")
        menu.append("Delete", "sidebar.delete-map")

        action_group = Gio.SimpleActionGroup()
        for name, callback in (
            ("rename-map", lambda: self.on_map_rename),
            ("duplicate-map", lambda: self.on_map_duplicate),
            ("share-map", lambda: self.on_map_share),
            ("delete-map", lambda: self.on_map_delete),
        ):
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p, cb=callback: self._dispatch(cb()))
            action_group.add_action(action)

        self.insert_action_group("sidebar", action_group)

        if self._context_popover is not None:
            self._context_popover.unparent()
            self._context_popover = None

        popover = Gtk.PopoverMenu.new_from_model(menu)
        popover.set_parent(self.listbox)
        popover.set_has_arrow(True)
        rect = Gdk.Rectangle()
        rect.x, rect.y, rect.width, rect.height = int(x), int(y), 1, 1
        popover.set_pointing_to(rect)

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
        popover.popup()

    def _dispatch(self, callback: Optional[Callable[[MindMap], None]]):
        if callback and self._right_click_map:
            callback(self._right_click_map)

    def select_map(self, map_id: str):
        """Select a map by ID."""
        for row in self.rows:
            if hasattr(row, "mind_map") and row.mind_map.id == map_id:
                self.listbox.select_row(row)
                break


class PropertiesPanel(Gtk.Box):
    """Right sidebar showing the selected node's text, colour and position."""

    def __init__(self):
        super().__init__(orientation=Gtk.Orientation.VERTICAL)
        self.node_id: Optional[str] = None

        self.add_css_class("sidebar")
        self.set_size_request(260, -1)

        # Callbacks: (node_id, value) -> None
        self.on_text_changed: Optional[Callable[[str, str], None]] = None
        self.on_color_changed: Optional[Callable[[str, str], None]] = None

        self._text_timeout_id: Optional[int] = None

        title = Gtk.Label(label="Properties")
        title.set_halign(Gtk.Align.START)
        title.add_css_class("title-4")
        title.set_margin_start(16)
        title.set_margin_top(12)
        title.set_margin_bottom(12)
        self.append(title)
        self.append(Gtk.Separator(orientation=Gtk.Orientation.HORIZONTAL))

        self.editor = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=6)
        self.editor.set_margin_start(16)
        self.editor.set_margin_end(16)
        self.editor.set_margin_top(12)

        self.editor.append(self._field_label("Node Text"))
        self.text_entry = Gtk.Entry()
        self.text_entry.set_placeholder_text("Enter node text...")
        self.text_entry.connect("changed", self._on_text_changed)
        self.text_entry.connect("activate", lambda e: self._flush_text())
        self.editor.append(self.text_entry)

        self.editor.append(self._field_label("Color"))
        self.color_button = Gtk.ColorDialogButton(dialog=Gtk.ColorDialog())
        self.color_button.set_halign(Gtk.Align.START)
        self.color_button.connect("notify::rgba", self._on_color_set)
        self.editor.append(self.color_button)

        self.editor.append(self._field_label("Position"))
        self.position_label = Gtk.Label()
        self.position_label.set_halign(Gtk.Align.START)
        self.position_label.add_css_class("dim-label")
        self.editor.append(self.position_label)
        self.append(self.editor)

        # Shown when zero or several nodes are selected
        self.empty_state = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=8)
        self.empty_state.set_valign(Gtk.Align.CENTER)
        self.empty_state.set_vexpand(True)
        self.empty_label = Gtk.Label()
        self.empty_label.add_css_class("dim-label")
        self.empty_state.append(self.empty_label)
        self.hint_label = Gtk.Label()
        self.hint_label.add_css_class("dim-label")
        self.hint_label.set_opacity(0.6)
        self.empty_state.append(self.hint_label)
        self.append(self.empty_state)

        self.show_selection(None, 0)

    @staticmethod
    def _field_label(text: str) -> Gtk.Label:
        label = Gtk.Label(label=text)
        label.set_halign(Gtk.Align.START)
        label.add_css_class("heading")
        label.set_margin_top(6)
        return label

    def show_selection(self, node: Optional[Node], selected_count: int):
        """Show ``node``, or an empty state when ``selected_count`` is not one."""
        if node is None:
            self._flush_text()
            self.node_id = None
            self.editor.set_visible(False)
            self.empty_state.set_visible(True)
            if selected_count > 1:
                self.empty_label.set_label("Multiple nodes selected")
                self.hint_label.set_label(f"{selected_count} nodes")
            else:
                self.empty_label.set_label("No node selected")
                self.hint_label.set_label("Select a node to view its properties")
            return

        if node.id != self.node_id:
            self._flush_text()
            self.node_id = node.id
            self._set_entry_text(node.text)
        elif self._text_timeout_id is None and not self.text_entry.has_focus():
            self._set_entry_text(node.text)

        rgba = Gdk.RGBA()
        if rgba.parse(node.style.background_color):
            self.color_button.handler_block_by_func(self._on_color_set)
            self.color_button.set_rgba(rgba)
            self.color_button.handler_unblock_by_func(self._on_color_set)
        self.position_label.set_label(f"X {round(node.x)}   Y {round(node.y)}")

        self.empty_state.set_visible(False)
        self.editor.set_visible(True)

    def _set_entry_text(self, text: str):
        if self.text_entry.get_text() == text:
            return
        self.text_entry.handler_block_by_func(self._on_text_changed)
        self.text_entry.set_text(text)
        self.text_entry.handler_unblock_by_func(self._on_text_changed)

    def _on_text_changed(self, entry):
        if self.node_id is None:
            return
        # One undo step per pause in typing
        if self._text_timeout_id:
            GLib.source_remove(self._text_timeout_id)
        self._text_timeout_id = GLib.timeout_add(800, self._flush_text)

    def _flush_text(self) -> bool:
        if self._text_timeout_id:
            GLib.source_remove(self._text_timeout_id)
        self._text_timeout_id = None
        if self.node_id is not None and self.on_text_changed:
            self.on_text_changed(self.node_id, self.text_entry.get_text())
        return False

    def _on_color_set(self, button, pspec):
        if self.node_id is None or not self.on_color_changed:
            return
        rgba = button.get_rgba()
        color = "#{:02x}{:02x}{:02x}".format(
            round(rgba.red * 255), round(rgba.green * 255), round(rgba.blue * 255))
        self.on_color_changed(self.node_id, color)


class LoginDialog(Adw.Window):
    """Sign in to (or register with) the MindCanvas server."""

    def __init__(self, parent: Gtk.Window):
        super().__init__()
        self.set_transient_for(parent)
        self.set_modal(True)
        self.set_default_size(380, -1)
        self.set_title("Sign In")

        # (name or None, email, password) -> None
        self.on_submit: Optional[Callable[[Optional[str], str, str], None]] = None
        self.on_work_offline: Optional[Callable[[], None]] = None

        toolbar = Adw.ToolbarView()
        toolbar.add_top_bar(Adw.HeaderBar())

        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=12)
        box.set_margin_start(24)
        box.set_margin_end(24)
        box.set_margin_top(12)
        box.set_margin_bottom(24)

        group = Adw.PreferencesGroup()
        self.name_row = Adw.EntryRow(title="Name")
        self.name_row.set_visible(False)
        group.add(self.name_row)
        self.email_row = Adw.EntryRow(title="Email")
        group.add(self.email_row)
        self.password_row = Adw.PasswordEntryRow(title="Password")
        self.password_row.connect("entry-activated", lambda r: self._submit())
        group.add(self.password_row)
        box.append(group)

        self.error_label = Gtk.Label()
        self.error_label.add_css_class("error")
        self.error_label.set_wrap(True)
        self.error_label.set_visible(False)
        box.append(self.error_label)

        self.submit_btn = Gtk.Button(label="Sign In")
        self.submit_btn.add_css_class("suggested-action")
        self.submit_btn.connect("clicked", lambda b: self._submit())
        box.append(self.submit_btn)

        self.register_toggle = Gtk.ToggleButton(label="Create an account instead")
        self.register_toggle.add_css_class("flat")
        self.register_toggle.connect("toggled", self._on_register_toggled)
        box.append(self.register_toggle)

        offline_btn = Gtk.Button(label="Work offline")
        offline_btn.add_css_class("flat")
        offline_btn.connect("clicked", self._on_offline_clicked)
        box.append(offline_btn)

        toolbar.set_content(box)
        self.set_content(toolbar)

    @property
    def registering(self) -> bool:
        return self.register_toggle.get_active()

    def _on_register_toggled(self, button):
        registering = button.get_active()
        self.name_row.set_visible(registering)
        self.submit_btn.set_label("Create Account" if registering else "Sign In")
        button.set_label("I already have an account" if registering
                         else "Create an account instead")

    def _submit(self):
        if not self.on_submit:
            return
        self.set_busy(True)
        name = self.name_row.get_text().strip() if self.registering else None
        self.on_submit(name, self.email_row.get_text().strip(), self.password_row.get_text())

    def _on_offline_clicked(self, button):
        if self.on_work_offline:
            self.on_work_offline()
        self.close()

    def set_busy(self, busy: bool):
        self.submit_btn.set_sensitive(not busy)
        if busy:
            self.error_label.set_visible(False)

    def show_error(self, message: str):
        self.set_busy(False)
        self.error_label.set_label(message)
        self.error_label.set_visible(True)


class SearchDialog(Gtk.Window):
    """Server-side search across the user's maps."""

    SORT_LABELS = {
        "updatedAt": "Last modified",
        "createdAt": "Created",
        "title": "Title",
        "searchScore": "Relevance",
    }

    def __init__(self, parent: Gtk.Window):
        super().__init__()
        self.set_transient_for(parent)
        self.set_modal(True)
        self.set_default_size(600, 420)
        self.set_title("Search Maps")

        # (query, sort_by, sort_order, page) -> None
        self.on_search: Optional[Callable[[str, str, str, int], None]] = None
        self.on_result_selected: Optional[Callable[[MindMap], None]] = None

        self._page = 1
        self._result: Optional[SearchResult] = None
        self._search_timeout_id: Optional[int] = None

        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=0)

        search_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        search_box.set_margin_start(16)
        search_box.set_margin_end(16)
        search_box.set_margin_top(16)
        search_box.set_margin_bottom(16)

        self.search_entry = Gtk.SearchEntry()
        self.search_entry.set_placeholder_text("Search titles, descriptions and nodes...")
        self.search_entry.set_hexpand(True)
        self.search_entry.connect("search-changed", self._on_search_changed)
        search_box.append(self.search_entry)

        self.sort_dropdown = Gtk.DropDown(
            model=Gtk.StringList.new([self.SORT_LABELS[f] for f in SORT_FIELDS]))
        self.sort_dropdown.set_selected(SORT_FIELDS.index("updatedAt"))
        self.sort_dropdown.connect("notify::selected", lambda d, p: self._run(1))
        search_box.append(self.sort_dropdown)

        self.order_btn = Gtk.ToggleButton()
        self.order_btn.set_icon_name("view-sort-descending-symbolic")
        self.order_btn.set_tooltip_text("Toggle sort order")
        self.order_btn.connect("toggled", self._on_order_toggled)
        search_box.append(self.order_btn)

        box.append(search_box)
        box.append(Gtk.Separator(orientation=Gtk.Orientation.HORIZONTAL))

        scrolled = Gtk.ScrolledWindow()
        scrolled.set_vexpand(True)
        scrolled.set_policy(Gtk.PolicyType.NEVER, Gtk.PolicyType.AUTOMATIC)

        self.results_list = Gtk.ListBox()
        self.results_list.set_selection_mode(Gtk.SelectionMode.SINGLE)
        self.results_list.connect("row-activated", self._on_row_activated)
        scrolled.set_child(self.results_list)
        box.append(scrolled)

        footer = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        footer.set_margin_start(16)
        footer.set_margin_end(16)
        footer.set_margin_top(8)
        footer.set_margin_bottom(8)

        self.status_label = Gtk.Label(label="Type to search...")
        self.status_label.set_halign(Gtk.Align.START)
        self.status_label.set_hexpand(True)
        self.status_label.add_css_class("dim-label")
        footer.append(self.status_label)

        self.prev_btn = Gtk.Button(icon_name="go-previous-symbolic")
        self.prev_btn.set_sensitive(False)
        self.prev_btn.connect("clicked", lambda b: self._run(self._page - 1))
        footer.append(self.prev_btn)
        self.next_btn = Gtk.Button(icon_name="go-next-symbolic")
        self.next_btn.set_sensitive(False)
        self.next_btn.connect("clicked", lambda b: self._run(self._page + 1))
        footer.append(self.next_btn)

        box.append(footer)
        self.set_child(box)

        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_key_pressed)
        self.add_controller(key_ctrl)

    def _on_search_changed(self, entry):
        if self._search_timeout_id:
            GLib.source_remove(self._search_timeout_id)
        self._search_timeout_id = GLib.timeout_add(300, self._do_search)

    def _do_search(self) -> bool:
        self._search_timeout_id = None
        self._run(1)
        return False

    def _on_order_toggled(self, button):
        button.set_icon_name("view-sort-ascending-symbolic" if button.get_active()
                             else "view-sort-descending-symbolic")
        self._run(1)

    def _run(self, page: int):
        if not self.on_search or page < 1:
            return
        self._page = page
        sort_by = SORT_FIELDS[self.sort_dropdown.get_selected()]
        sort_order = "asc" if self.order_btn.get_active() else "desc"
        self.status_label.set_label("Searching...")
        self.on_search(self.search_entry.get_text().strip(), sort_by, sort_order, page)

    def show_results(self, result: SearchResult):
        self._result = result
        while True:
            row = self.results_list.get_row_at_index(0)
            if row is None:
                break
            self.results_list.remove(row)

        for mind_map in result.mind_maps:
            row = Gtk.ListBoxRow()
            row.set_child(MapListRow(mind_map))
            row.mind_map = mind_map
            self.results_list.append(row)

        if result.total_results:
            self.status_label.set_label(
                f"{result.total_results} result(s), page {result.page} of "
                f"{max(result.total_pages, 1)}")
        else:
            self.status_label.set_label("No results")
        self.prev_btn.set_sensitive(result.has_prev_page)
        self.next_btn.set_sensitive(result.has_next_page)

    def show_error(self, message: str):
        self.status_label.set_label(message)

    def _on_row_activated(self, listbox, row):
        if hasattr(row, "mind_map") and self.on_result_selected:
            self.on_result_selected(row.mind_map)
            self.close()

    def _on_key_pressed(self, controller, keyval, keycode, state):
        if keyval == Gdk.KEY_Escape:
            self.close()
            return True
        return False


class CollaboratorsDialog(Adw.Window):
    """Lists a map's owner and collaborators and lets the owner add or remove them."""

    def __init__(self, parent: Gtk.Window, mind_map: MindMap):
        super().__init__()
        self.mind_map = mind_map
        self.set_transient_for(parent)
        self.set_modal(True)
        self.set_default_size(420, 460)
        self.set_title(f"Share “{mind_map.title}”")

        self.on_add: Optional[Callable[[str], None]] = None
        self.on_remove: Optional[Callable[[str], None]] = None

        toolbar = Adw.ToolbarView()
        toolbar.add_top_bar(Adw.HeaderBar())

        page = Adw.PreferencesPage()

        add_group = Adw.PreferencesGroup(title="Invite")
        self.email_row = Adw.EntryRow(title="Email address")
        self.email_row.set_show_apply_button(True)
        self.email_row.connect("apply", self._on_add_applied)
        add_group.add(self.email_row)
        page.add(add_group)

        self.people_group = Adw.PreferencesGroup(title="People with access")
        page.add(self.people_group)
        self._people_rows: List[Gtk.Widget] = []

        toolbar.set_content(page)
        self.set_content(toolbar)

    def _on_add_applied(self, row):
        email = row.get_text().strip()
        if email and self.on_add:
            self.on_add(email)
            row.set_text("")

    def show_collaborators(self, data: dict):
        for row in self._people_rows:
            self.people_group.remove(row)
        self._people_rows = []

        owner = data.get("owner") or {}
        if owner:
            row = Adw.ActionRow(title=owner.get("name") or owner.get("email", "Owner"),
                                subtitle="Owner")
            self.people_group.add(row)
            self._people_rows.append(row)

        for person in data.get("collaborators", []):
            user = person.get("user", person) if isinstance(person, dict) else {}
            row = Adw.ActionRow(title=user.get("name") or user.get("email", ""),
                                subtitle=user.get("email", ""))
            user_id = user.get("_id") or user.get("id")
            if user_id:
                remove_btn = Gtk.Button(icon_name="user-trash-symbolic")
                remove_btn.add_css_class("flat")
                remove_btn.set_valign(Gtk.Align.CENTER)
                remove_btn.connect("clicked", lambda b, uid=user_id: self._remove(uid))
                row.add_suffix(remove_btn)
            self.people_group.add(row)
            self._people_rows.append(row)

    def _remove(self, user_id: str):
        if self.on_remove:
            self.on_remove(user_id)


class SettingsDialog(Adw.PreferencesWindow):
    """Canvas preferences for the current map."""

    def __init__(self, parent: Gtk.Window, canvas: CanvasState, show_minimap: bool):
        super().__init__()

        # Live-apply callback: (key: str, value: Any) -> None
        self.on_settings_changed: Optional[Callable] = None

        self.set_transient_for(parent)
        self.set_modal(True)
        self.set_default_size(560, 420)
        self.set_title("Preferences")

        page = Adw.PreferencesPage()
        page.set_title("Canvas")
        page.set_icon_name("applications-graphics-symbolic")

        group = Adw.PreferencesGroup()
        group.set_title("Grid")

        grid_row = Adw.SwitchRow()
        grid_row.set_title("Show Grid")
        grid_row.set_active(canvas.show_grid)
        grid_row.connect("notify::active",
                         lambda r, p: self._notify("show_grid", r.get_active()))
        group.add(grid_row)

        snap_row = Adw.SwitchRow()
        snap_row.set_title("Snap to Grid")
        snap_row.set_subtitle("Dragged nodes land on grid intersections")
        snap_row.set_active(canvas.snap_to_grid)
        snap_row.connect("notify::active",
                         lambda r, p: self._notify("snap_to_grid", r.get_active()))
        group.add(snap_row)

        size_row = Adw.SpinRow.new_with_range(5, 100, 5)
        size_row.set_title("Grid Size")
        size_row.set_value(canvas.grid_size or config.DEFAULT_GRID_SIZE)
        size_row.connect("notify::value",
                         lambda r, p: self._notify("grid_size", int(r.get_value())))
        group.add(size_row)
        page.add(group)

        view_group = Adw.PreferencesGroup()
        view_group.set_title("View")
        minimap_row = Adw.SwitchRow()
        minimap_row.set_title("Show Minimap")
        minimap_row.set_subtitle("Display navigation minimap in corner")
        minimap_row.set_active(show_minimap)
        minimap_row.connect("notify::active",
                            lambda r, p: self._notify("show_minimap", r.get_active()))
        view_group.add(minimap_row)
        page.add(view_group)

        self.add(page)

    def _notify(self, key: str, value):
        if self.on_settings_changed:
            self.on_settings_changed(key, value)
