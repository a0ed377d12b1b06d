"""Main MindCanvas application."""

import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import gi
gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gio, GLib, Adw

from mindcanvas import __version__, __app_id__
from mindcanvas.api import ApiClient, AuthService, MindMapService, TokenStore
from mindcanvas.canvas import MindMapCanvas
from mindcanvas.config import Config
from mindcanvas.errors import MindCanvasError, ValidationError
from mindcanvas.export import MindMapExporter
from mindcanvas.model import MindMap
from mindcanvas.mutations import SetGrid, SetSnapToGrid, update_canvas, update_mind_map
from mindcanvas.session import EditorSession
from mindcanvas.storage import LocalStore
from mindcanvas.sync import SyncAdapter
from mindcanvas.widgets import (
    CollaboratorsDialog, LoginDialog, MapsSidebar, PropertiesPanel, SearchDialog,
    SettingsDialog,
)

logger = logging.getLogger(__name__)

OFFLINE_SETTING = "work_offline"
EXPORT_FORMATS = (
    ("png", "PNG Images", "image/png"),
    ("pdf", "PDF Documents", "application/pdf"),
    ("svg", "SVG Images", "image/svg+xml"),
    ("json", "JSON Documents", "application/json"),
    ("md", "Markdown Files", "text/markdown"),
)


class MindCanvasWindow(Adw.ApplicationWindow):
    """Main application window."""

    def __init__(self, app: Adw.Application, config: Config, store: LocalStore):
        super().__init__(application=app)
        self.config = config
        self.store = store
        self.exporter = MindMapExporter()

        client = ApiClient(config.api_url, TokenStore(store), timeout=config.timeout)
        self.auth = AuthService(client)
        self.session = EditorSession()
        self.sync = SyncAdapter(self.session, MindMapService(client), store)
        self.session.on_changed = self._on_session_changed
        self._listed_maps: tuple = ()

        self.set_title("MindCanvas")
        self.set_default_size(1400, 900)

        self._build_ui()
        self._setup_shortcuts()

        self.session.local_mode = bool(store.get_setting(OFFLINE_SETTING, False))
        self._reload_maps(open_first=True)
        if not self.auth.is_authenticated and not self.session.local_mode:
            GLib.idle_add(self._show_login)

    def _build_ui(self):
        """Build the main UI layout."""
        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL)
        main_box.append(self._build_header())

        self.main_paned = Gtk.Paned(orientation=Gtk.Orientation.HORIZONTAL)
        self.main_paned.set_vexpand(True)

        self.sidebar = MapsSidebar(self.session)
        self.sidebar.on_map_selected = self._on_map_selected
        self.sidebar.on_new_map = self._on_new_map
        self.sidebar.on_map_delete = self._on_map_delete
        self.sidebar.on_map_rename = self._on_map_rename
        self.sidebar.on_map_duplicate = self._on_map_duplicate
        self.sidebar.on_map_share = self._show_collaborators

        self.sidebar_revealer = Gtk.Revealer()
        self.sidebar_revealer.set_transition_type(Gtk.RevealerTransitionType.SLIDE_RIGHT)
        self.sidebar_revealer.set_reveal_child(True)
        self.sidebar_revealer.set_child(self.sidebar)

        self.main_paned.set_start_child(self.sidebar_revealer)
        self.main_paned.set_shrink_start_child(False)
        self.main_paned.set_resize_start_child(False)

        self.canvas = MindMapCanvas(self.session)
        canvas_frame = Gtk.Frame()
        canvas_frame.set_hexpand(True)
        canvas_frame.set_child(self.canvas)

        self.properties_panel = PropertiesPanel()
        self.properties_panel.on_text_changed = self.canvas.machine.set_node_text
        self.properties_panel.on_color_changed = self._on_node_color_changed

        self.properties_revealer = Gtk.Revealer()
        self.properties_revealer.set_transition_type(Gtk.RevealerTransitionType.SLIDE_LEFT)
        self.properties_revealer.set_reveal_child(False)
        self.properties_revealer.set_child(self.properties_panel)

        content_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        content_box.append(canvas_frame)
        content_box.append(self.properties_revealer)
        self.main_paned.set_end_child(content_box)

        overlay = Gtk.Overlay()
        overlay.set_child(self.main_paned)
        self.spinner = Gtk.Spinner()
        self.spinner.set_halign(Gtk.Align.CENTER)
        self.spinner.set_valign(Gtk.Align.CENTER)
        self.spinner.set_size_request(48, 48)
        self.spinner.set_visible(False)
        overlay.add_overlay(self.spinner)

        # Wrap in toast overlay for in-app notifications
        self.toast_overlay = Adw.ToastOverlay()
        self.toast_overlay.set_child(overlay)
        main_box.append(self.toast_overlay)

        self.set_content(main_box)

    def _build_header(self) -> Adw.HeaderBar:
        """Build the header bar."""
        header = Adw.HeaderBar()

        menu_btn = Gtk.MenuButton()
        menu_btn.set_icon_name("open-menu-symbolic")
        menu_btn.set_tooltip_text("Menu")

        menu = Gio.Menu()

        file_section = Gio.Menu()
        file_section.append("New Map", "win.new-map")
        file_section.append("Save", "win.save")
        file_section.append("Duplicate Map", "win.duplicate-map")
        file_section.append("Share Map...", "win.share-map")
        file_section.append("Delete Map", "win.delete-map")
        menu.append_section(None, file_section)

        export_section = Gio.Menu()
        export_menu = Gio.Menu()
        for fmt, label, _mime in EXPORT_FORMATS:
            export_menu.append(f"Export as {fmt.upper()}...", f"win.export-{fmt}")
        export_section.append_submenu("Export", export_menu)
        menu.append_section(None, export_section)

        view_section = Gio.Menu()
        view_section.append("Toggle Sidebar", "win.toggle-sidebar")
        view_section.append("Toggle Properties", "win.toggle-properties")
        view_section.append("Toggle Minimap", "win.toggle-minimap")
        view_section.append("Zoom to Fit", "win.zoom-fit")
        view_section.append("Zoom to 100%", "win.zoom-100")
        menu.append_section(None, view_section)

        account_section = Gio.Menu()
        account_section.append("Sign In...", "win.sign-in")
        account_section.append("Sign Out", "win.sign-out")
        menu.append_section(None, account_section)

        help_section = Gio.Menu()
        help_section.append("Preferences", "win.show-preferences")
        help_section.append("About MindCanvas", "win.show-about")
        menu.append_section(None, help_section)

        popover = Gtk.PopoverMenu()
        popover.set_menu_model(menu)
        menu_btn.set_popover(popover)
        header.pack_start(menu_btn)

        sidebar_btn = Gtk.ToggleButton()
        sidebar_btn.set_icon_name("sidebar-show-symbolic")
        sidebar_btn.set_tooltip_text("Toggle Sidebar (Ctrl+B)")
        sidebar_btn.set_active(True)
        sidebar_btn.connect("toggled", self._on_sidebar_toggled)
        self.sidebar_btn = sidebar_btn
        header.pack_start(sidebar_btn)

        self.title_entry = Gtk.Entry()
        self.title_entry.set_text("MindCanvas")
        self.title_entry.set_max_width_chars(25)
        self.title_entry.add_css_class("flat")
        self.title_entry.connect("activate", self._on_title_changed)
        focus_ctrl = Gtk.EventControllerFocus()
        focus_ctrl.connect("leave", lambda c: self._on_title_changed(self.title_entry))
        self.title_entry.add_controller(focus_ctrl)
        header.pack_start(self.title_entry)

        self.undo_btn = Gtk.Button(icon_name="edit-undo-symbolic")
        self.undo_btn.set_tooltip_text("Undo (Ctrl+Z)")
        self.undo_btn.connect("clicked", lambda b: self._undo())
        header.pack_start(self.undo_btn)

        self.redo_btn = Gtk.Button(icon_name="edit-redo-symbolic")
        self.redo_btn.set_tooltip_text("Redo (Ctrl+Shift+Z)")
        self.redo_btn.connect("clicked", lambda b: self._redo())
        header.pack_start(self.redo_btn)

        save_btn = Gtk.Button(icon_name="document-save-symbolic")
        save_btn.set_tooltip_text("Save (Ctrl+S)")
        save_btn.connect("clicked", lambda b: self._on_save())
        header.pack_end(save_btn)

        search_btn = Gtk.Button(icon_name="system-search-symbolic")
        search_btn.set_tooltip_text("Search (Ctrl+F)")
        search_btn.connect("clicked", lambda b: self._show_search())
        header.pack_end(search_btn)

        zoom_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL)
        zoom_box.add_css_class("linked")
        zoom_out_btn = Gtk.Button(icon_name="zoom-out-symbolic")
        zoom_out_btn.connect("clicked", lambda b: self.canvas.zoom_out())
        zoom_box.append(zoom_out_btn)
        self.zoom_label = Gtk.Button(label="100%")
        self.zoom_label.set_tooltip_text("Reset zoom (Ctrl+1)")
        self.zoom_label.connect("clicked", lambda b: self.canvas.reset_zoom())
        zoom_box.append(self.zoom_label)
        zoom_in_btn = Gtk.Button(icon_name="zoom-in-symbolic")
        zoom_in_btn.connect("clicked", lambda b: self.canvas.zoom_in())
        zoom_box.append(zoom_in_btn)
        header.pack_end(zoom_box)

        return header

    def _setup_shortcuts(self):
        """Setup keyboard shortcuts."""
        actions = [
            ("new-map", self._on_new_map, "<Control>n"),
            ("save", self._on_save, "<Control>s"),
            ("duplicate-map", lambda: self._with_current(self._on_map_duplicate), None),
            ("share-map", lambda: self._with_current(self._show_collaborators), None),
            ("delete-map", lambda: self._with_current(self._on_map_delete), None),
            ("toggle-sidebar", self._toggle_sidebar, "<Control>b"),
            ("toggle-properties", self._toggle_properties, "<Control>i"),
            ("toggle-minimap", self.canvas.toggle_minimap, "<Control>m"),
            ("zoom-fit", self.canvas.zoom_to_fit, None),
            ("zoom-100", self.canvas.reset_zoom, None),
            ("search", self._show_search, "<Control>f"),
            ("show-preferences", self._show_preferences, "<Control>comma"),
            ("show-about", self._show_about, None),
            ("sign-in", self._show_login, None),
            ("sign-out", self._sign_out, None),
            ("quit", lambda: self.close(), "<Control>q"),
        ]
        for fmt, _label, _mime in EXPORT_FORMATS:
            actions.append((f"export-{fmt}", lambda f=fmt: self._export(f), None))

        for name, callback, accel in actions:
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p, cb=callback: cb())
            self.add_action(action)
            if accel:
                self.get_application().set_accels_for_action(f"win.{name}", [accel])

    # ==================== Background Work ====================

    def _run_async(self, work: Callable[[], Any], on_done: Callable[[Any], None],
                   on_error: Optional[Callable[[Exception], None]] = None,
                   what: str = "complete the request"):
        """Run ``work`` on a worker thread and hand its result to the UI thread."""
        self.session.set_loading(True)

        def finish(callback, value):
            self.session.set_loading(False)
            callback(value)
            return False

        def report(exc: Exception):
            self.sync.handle_failure(exc)
            self.session.set_error(f"Failed to {what}: {exc}")
            self._show_toast(str(exc))
            if on_error:
                on_error(exc)

        def target():
            try:
                result = work()
            except MindCanvasError as exc:
                GLib.idle_add(finish, report, exc)
                return
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Unexpected error while trying to %s", what)
                GLib.idle_add(finish, report, exc)
                return
            GLib.idle_add(finish, on_done, result)

        threading.Thread(target=target, daemon=True).start()

    # ==================== Session ====================

    def _on_session_changed(self):
        mind_map = self.session.current
        history = self.session.history
        self.undo_btn.set_sensitive(history.can_undo)
        self.redo_btn.set_sensitive(history.can_redo)
        self.undo_btn.set_tooltip_text(f"Undo {history.undo_description} (Ctrl+Z)"
                                       if history.can_undo else "Undo (Ctrl+Z)")
        self.redo_btn.set_tooltip_text(f"Redo {history.redo_description} (Ctrl+Shift+Z)"
                                       if history.can_redo else "Redo (Ctrl+Shift+Z)")
        self.spinner.set_visible(self.session.loading)
        self.spinner.set_spinning(self.session.loading)

        if mind_map is not None:
            self.zoom_label.set_label(f"{round(mind_map.canvas.zoom * 100)}%")
            if not self.title_entry.has_focus() and \
                    self.title_entry.get_text() != mind_map.title:
                self.title_entry.set_text(mind_map.title)
        else:
            self.title_entry.set_text("MindCanvas")

        selected = mind_map.canvas.selected_nodes if mind_map is not None else ()
        self.properties_panel.show_selection(self.canvas.machine.selected_node(),
                                             len(selected))

        listed = (self.session.local_mode,
                  tuple((m.id, m.title, m.updated_at) for m in self.session.mind_maps))
        if listed != self._listed_maps:
            self._listed_maps = listed
            self.sidebar.refresh()
        self.canvas.refresh()

    def _with_current(self, callback: Callable[[MindMap], None]):
        if self.session.current is not None:
            callback(self.session.current)

    def _reload_maps(self, open_first: bool = False):
        def done(result):
            self.sync.apply_all(result)
            current = self.session.current
            if current is None and open_first and self.session.mind_maps:
                self._open_map(self.session.mind_maps[0])
        self._run_async(self.sync.fetch_all, done, what="load mind maps")

    def _open_map(self, mind_map: MindMap):
        self._run_async(lambda: self.sync.fetch(mind_map.id), self.sync.apply_loaded,
                        what="load mind map")

    # ==================== Map Handlers ====================

    def _on_map_selected(self, mind_map: MindMap):
        current = self.session.current
        if current and current.id == mind_map.id:
            return
        self._open_map(mind_map)

    def _on_new_map(self, *args):
        self._run_async(lambda: self.sync.push_new("Untitled Map"), self.sync.apply_created,
                        what="create mind map")

    def _on_save(self):
        mind_map = self.session.current
        if mind_map is None:
            return
        # The snapshot taken here is what gets sent, even if editing continues
        self._run_async(lambda: self.sync.push(mind_map),
                        lambda saved: (self.sync.apply_saved(saved), self._show_toast("Saved")),
                        what="save mind map")

    def _on_map_duplicate(self, mind_map: MindMap):
        def done(copy):
            self.sync.apply_duplicated(copy)
            self._show_toast(f"Created “{copy.title}”")
        self._run_async(lambda: self.sync.push_duplicate(mind_map.id), done,
                        what="duplicate mind map")

    def _on_map_delete(self, mind_map: MindMap):
        dialog = Adw.MessageDialog(
            transient_for=self,
            heading="Delete Map?",
            body=f"Are you sure you want to delete \"{mind_map.title}\"? This cannot be undone."
        )
        dialog.add_response("cancel", "Cancel")
        dialog.add_response("delete", "Delete")
        dialog.set_response_appearance("delete", Adw.ResponseAppearance.DESTRUCTIVE)
        dialog.set_default_response("cancel")
        dialog.connect("response", lambda d, r: self._confirm_map_delete(r, mind_map))
        dialog.present()

    def _confirm_map_delete(self, response: str, mind_map: MindMap):
        if response != "delete":
            return

        def done(map_id):
            self.sync.apply_deleted(map_id)
            if self.session.current is None and self.session.mind_maps:
                self._open_map(self.session.mind_maps[0])
        self._run_async(lambda: self.sync.push_delete(mind_map.id), done,
                        what="delete mind map")

    def _on_map_rename(self, mind_map: MindMap):
        dialog = Adw.MessageDialog(
            transient_for=self,
            heading="Rename Map",
            body="Enter a new name for the map:"
        )
        entry = Gtk.Entry()
        entry.set_text(mind_map.title)
        entry.set_margin_start(16)
        entry.set_margin_end(16)
        dialog.set_extra_child(entry)

        dialog.add_response("cancel", "Cancel")
        dialog.add_response("rename", "Rename")
        dialog.set_default_response("rename")
        dialog.connect("response",
                       lambda d, r: self._confirm_map_rename(r, mind_map, entry.get_text()))
        dialog.present()
        entry.grab_focus()

    def _confirm_map_rename(self, response: str, mind_map: MindMap, new_name: str):
        if response != "rename" or not new_name.strip():
            return
        current = self.session.current
        if current is not None and current.id == mind_map.id:
            self._rename_current(new_name.strip())
            return
        try:
            renamed = update_mind_map(mind_map, title=new_name.strip())
        except ValidationError as exc:
            self._show_toast(str(exc))
            return
        self._run_async(lambda: self.sync.push(renamed), self.sync.apply_saved,
                        what="rename mind map")

    def _rename_current(self, title: str):
        current = self.session.current
        if current is None or title == current.title:
            return
        try:
            renamed = update_mind_map(current, title=title)
        except ValidationError as exc:
            self._show_toast(str(exc))
            self.title_entry.set_text(current.title)
            return
        self.session.commit(renamed, "rename")
        self.session.upsert_map(renamed)

    def _on_title_changed(self, entry):
        title = entry.get_text().strip()
        if title:
            self._rename_current(title)

    # ==================== Account ====================

    def _show_login(self):
        dialog = LoginDialog(self)

        def submit(name, email, password):
            def work():
                if name is not None:
                    return self.auth.register(name, email, password)
                return self.auth.login(email, password)

            def done(user):
                self.store.set_setting(OFFLINE_SETTING, False)
                self.session.local_mode = False
                dialog.close()
                self._show_toast(f"Signed in as {user.get('name') or email}")
                self._reload_maps(open_first=self.session.current is None)

            self._run_async(work, done, on_error=lambda exc: dialog.show_error(str(exc)),
                            what="sign in")

        def work_offline():
            self.store.set_setting(OFFLINE_SETTING, True)
            self.session.local_mode = True
            self.sidebar.refresh()

        dialog.on_submit = submit
        dialog.on_work_offline = work_offline
        dialog.present()
        return False

    def _sign_out(self):
        self.auth.logout()
        self.session.local_mode = True
        self._show_toast("Signed out; working offline")
        self._reload_maps()

    # ==================== Search & Sharing ====================

    def _show_search(self):
        dialog = SearchDialog(self)

        def search(query, sort_by, sort_order, page):
            self._run_async(
                lambda: self.sync.search(query, sort_by=sort_by, sort_order=sort_order,
                                         page=page),
                dialog.show_results, on_error=lambda exc: dialog.show_error(str(exc)),
                what="search")

        dialog.on_search = search
        dialog.on_result_selected = self._open_map
        dialog.present()
        dialog.search_entry.grab_focus()

    def _show_collaborators(self, mind_map: MindMap):
        if self.session.local_mode:
            self._show_toast("Sign in to share maps")
            return
        dialog = CollaboratorsDialog(self, mind_map)

        def reload(_result=None):
            self._run_async(lambda: self.sync.list_collaborators(mind_map.id),
                            dialog.show_collaborators, what="load collaborators")

        dialog.on_add = lambda email: self._run_async(
            lambda: self.sync.add_collaborator(mind_map.id, email), reload,
            what="add collaborator")
        dialog.on_remove = lambda user_id: self._run_async(
            lambda: self.sync.remove_collaborator(mind_map.id, user_id), reload,
            what="remove collaborator")
        dialog.present()
        reload()

    # ==================== View ====================

    def _on_sidebar_toggled(self, button):
        self.sidebar_revealer.set_reveal_child(button.get_active())

    def _toggle_sidebar(self):
        revealed = self.sidebar_revealer.get_reveal_child()
        self.sidebar_revealer.set_reveal_child(not revealed)
        self.sidebar_btn.set_active(not revealed)

    def _toggle_properties(self):
        revealed = self.properties_revealer.get_reveal_child()
        self.properties_revealer.set_reveal_child(not revealed)

    def _on_node_color_changed(self, node_id: str, color: str):
        try:
            self.canvas.machine.set_node_color(node_id, color)
        except ValidationError as exc:
            self._show_toast(str(exc))

    def _undo(self):
        self.canvas.machine.finish_editing()
        self.session.undo()

    def _redo(self):
        self.canvas.machine.finish_editing()
        self.session.redo()

    def _show_preferences(self):
        current = self.session.current
        if current is None:
            return
        dialog = SettingsDialog(self, current.canvas, self.canvas.show_minimap)
        dialog.on_settings_changed = self._on_settings_changed
        dialog.present()

    def _on_settings_changed(self, key: str, value):
        """Handle real-time setting changes from preferences dialog."""
        current = self.session.current
        if key == "show_minimap":
            self.canvas.show_minimap = bool(value)
            self.canvas.queue_draw()
        elif current is None:
            return
        elif key == "show_grid":
            self.session.apply(update_canvas(current, SetGrid(show=bool(value))))
        elif key == "snap_to_grid":
            self.session.apply(update_canvas(current, SetSnapToGrid(bool(value))))
        elif key == "grid_size":
            self.session.apply(update_canvas(current, SetGrid(size=int(value))))

    def _show_about(self):
        about = Adw.AboutWindow(
            transient_for=self,
            application_name="MindCanvas",
            application_icon="applications-graphics",
            developer_name="MindCanvas Project",
            version=__version__,
            license_type=Gtk.License.MIT_X11,
            comments="A collaborative mind-map editor",
        )
        about.present()

    # ==================== Export ====================

    def _export(self, fmt: str):
        mind_map = self.session.current
        if mind_map is None:
            return
        _fmt, label, mime = next(f for f in EXPORT_FORMATS if f[0] == fmt)

        dialog = Gtk.FileDialog()
        dialog.set_title(f"Export as {fmt.upper()}")
        dialog.set_initial_name(f"{mind_map.title}.{fmt}")
        dialog.set_initial_folder(Gio.File.new_for_path(str(self.config.export_dir)))

        file_filter = Gtk.FileFilter()
        file_filter.set_name(label)
        file_filter.add_mime_type(mime)
        file_filter.add_pattern(f"*.{fmt}")
        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(file_filter)
        dialog.set_filters(filters)

        dialog.save(self, None, lambda d, r: self._on_export_response(d, r, mind_map, fmt))

    def _on_export_response(self, dialog, result, mind_map: MindMap, fmt: str):
        try:
            file = dialog.save_finish(result)
        except GLib.Error as exc:
            logger.debug("Export dialog dismissed: %s", exc.message)
            return
        filepath = file.get_path() if file else None
        if not filepath:
            self._show_toast("Export failed: selected location is not a local file")
            return
        try:
            written = self.exporter.export(mind_map, Path(filepath), fmt)
        except (OSError, ValueError) as exc:
            logger.error("Export to %s failed: %s", filepath, exc)
            self._show_toast(f"Export failed: {exc}")
            return
        self._show_toast(f"Exported to {filepath}" if written
                         else "Nothing to export: the map has no nodes")

    def _show_toast(self, message: str):
        toast = Adw.Toast(title=message)
        toast.set_timeout(3)
        self.toast_overlay.add_toast(toast)


class MindCanvasApp(Adw.Application):
    """Main application class."""

    def __init__(self, config: Optional[Config] = None):
        super().__init__(
            application_id=__app_id__,
            flags=Gio.ApplicationFlags.DEFAULT_FLAGS
        )
        self.config = config or Config.from_env()
        self.store: Optional[LocalStore] = None
        self.window: Optional[MindCanvasWindow] = None

    def do_startup(self):
        Adw.Application.do_startup(self)
        self.store = LocalStore(self.config.db_path)

    def do_activate(self):
        if not self.window:
            self.window = MindCanvasWindow(self, self.config, self.store)
        self.window.present()

    def do_shutdown(self):
        if self.store:
            self.store.close()
        Adw.Application.do_shutdown(self)


def main(config: Optional[Config] = None) -> int:
    """Application entry point."""
    app = MindCanvasApp(config)
    return app.run(sys.argv)


if __name__ == "__main__":
    sys.exit(main())
