"""Export functionality for MindCanvas maps."""

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape, quoteattr

import cairo

from mindcanvas.config import Config
from mindcanvas.geometry import content_bounds, node_center
from mindcanvas.model import MindMap, Node, NodeShape
from mindcanvas.render import draw_scene
from mindcanvas.storage import LocalStore

logger = logging.getLogger(__name__)

EXPORT_PADDING = 50
PAGE_SIZES = {
    "A4": (595, 842),
    "Letter": (612, 792),
}
FORMATS = ("json", "svg", "png", "pdf", "md")


class MindMapExporter:
    """Handles exporting maps to various formats.

    Every ``export_*`` method returns False when the map has no nodes.
    """

    def export_json(self, mind_map: MindMap, filepath: Path) -> bool:
        """Write the map's wire document, pretty-printed."""
        if not mind_map.nodes:
            return False
        data = mind_map.to_dict()
        data["exportedAt"] = datetime.now().isoformat()
        Path(filepath).write_text(json.dumps(data, indent=2), encoding="utf-8")
        return True

    def svg_document(self, mind_map: MindMap) -> Optional[str]:
        """Render the map as an SVG string, or None if it has no nodes."""
        bounds = content_bounds(mind_map.nodes, EXPORT_PADDING)
        if bounds is None:
            return None
        min_x, min_y, max_x, max_y = bounds
        width = max_x - min_x
        height = max_y - min_y
        nodes_by_id = {node.id: node for node in mind_map.nodes}

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            f'<svg width="{width:g}" height="{height:g}" '
            f'viewBox="{min_x:g} {min_y:g} {width:g} {height:g}" '
            'xmlns="http://www.w3.org/2000/svg">',
            "  <defs>",
            "    <style>",
            "      .node-text { font-family: Arial, sans-serif; text-anchor: middle;"
            " dominant-baseline: middle; }",
            "    </style>",
            "  </defs>",
            f'  <rect x="{min_x:g}" y="{min_y:g}" width="{width:g}" height="{height:g}"'
            ' fill="white"/>',
        ]

        for connection in mind_map.connections:
            source = nodes_by_id.get(connection.from_node_id)
            target = nodes_by_id.get(connection.to_node_id)
            if source is None or target is None:
                continue
            (x1, y1), (x2, y2) = node_center(source), node_center(target)
            style = connection.style
            lines.append(
                f'  <line x1="{x1:g}" y1="{y1:g}" x2="{x2:g}" y2="{y2:g}" '
                f'stroke={quoteattr(style.color)} stroke-width="{style.width}" '
                f'opacity="{style.opacity:g}"/>'
            )

        for node in mind_map.nodes:
            lines.extend(self._svg_node(node))

        lines.append("</svg>")
        return "\n".join(lines)

    def _svg_node(self, node: Node) -> List[str]:
        style = node.style
        cx, cy = node_center(node)
        paint = (f'fill={quoteattr(style.background_color)} '
                 f'stroke={quoteattr(style.border_color)} '
                 f'stroke-width="{style.border_width}"')
        if style.shape is NodeShape.CIRCLE:
            shape = (f'  <circle cx="{cx:g}" cy="{cy:g}" '
                     f'r="{min(node.width, node.height) / 2:g}" {paint}/>')
        else:
            shape = (f'  <rect x="{node.x:g}" y="{node.y:g}" width="{node.width:g}" '
                     f'height="{node.height:g}" {paint} rx="{style.border_radius}"/>')
        text = (f'  <text x="{cx:g}" y="{cy:g}" class="node-text" '
                f'fill={quoteattr(style.text_color)} font-size="{style.font_size}" '
                f'font-weight="{style.font_weight.value}">{escape(node.text)}</text>')
        return [shape, text]

    def export_svg(self, mind_map: MindMap, filepath: Path) -> bool:
        document = self.svg_document(mind_map)
        if document is None:
            return False
        Path(filepath).write_text(document, encoding="utf-8")
        return True

    def render_surface(self, mind_map: MindMap, scale: float = 2.0,
                       transparent: bool = False) -> Optional[cairo.ImageSurface]:
        """Draw the map onto a new image surface, or return None if it has no nodes."""
        bounds = content_bounds(mind_map.nodes, EXPORT_PADDING)
        if bounds is None:
            return None
        min_x, min_y, max_x, max_y = bounds
        width = max(int((max_x - min_x) * scale), 1)
        height = max(int((max_y - min_y) * scale), 1)

        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)
        if not transparent:
            cr.set_source_rgb(1, 1, 1)
            cr.paint()

        cr.scale(scale, scale)
        cr.translate(-min_x, -min_y)
        draw_scene(cr, mind_map.nodes, mind_map.connections)
        surface.flush()
        return surface

    def export_png(self, mind_map: MindMap, filepath: Path,
                   scale: float = 2.0, transparent: bool = False) -> bool:
        """Export the map to a PNG image."""
        surface = self.render_surface(mind_map, scale, transparent)
        if surface is None:
            return False
        surface.write_to_png(str(filepath))
        return True

    def export_pdf(self, mind_map: MindMap, filepath: Path, page_size: str = "A4") -> bool:
        """Export the map to PDF, scaled to fit the page (or sized to fit with "Auto")."""
        bounds = content_bounds(mind_map.nodes, EXPORT_PADDING)
        if bounds is None:
            return False
        min_x, min_y, max_x, max_y = bounds
        map_width = max_x - min_x
        map_height = max_y - min_y

        if page_size == "Auto":
            width, height = map_width, map_height
            scale = 1.0
        else:
            width, height = PAGE_SIZES.get(page_size, PAGE_SIZES["A4"])
            scale = min((width - 40) / map_width, (height - 40) / map_height, 1.0)

        surface = cairo.PDFSurface(str(filepath), width, height)
        surface.set_metadata(cairo.PDF_METADATA_TITLE, mind_map.title)
        surface.set_metadata(cairo.PDF_METADATA_CREATE_DATE, datetime.now().isoformat())
        cr = cairo.Context(surface)

        cr.set_source_rgb(1, 1, 1)
        cr.paint()
        cr.translate(width / 2, height / 2)
        cr.scale(scale, scale)
        cr.translate(-(min_x + max_x) / 2, -(min_y + max_y) / 2)
        draw_scene(cr, mind_map.nodes, mind_map.connections)

        surface.finish()
        return True

    def markdown_outline(self, mind_map: MindMap) -> Optional[str]:
        """Render the node hierarchy as a Markdown outline."""
        if not mind_map.nodes:
            return None
        by_id = {node.id: node for node in mind_map.nodes}
        tops = [n for n in mind_map.nodes if n.parent_id is None or n.parent_id not in by_id]

        lines = [
            "---",
            f"title: {mind_map.title}",
            f"created: {mind_map.created_at}",
            f"modified: {mind_map.updated_at}",
            "---",
            "",
            f"# {mind_map.title}",
            "",
        ]
        seen = set()

        def add_node(node: Node, depth: int):
            if node.id in seen:
                return
            seen.add(node.id)
            if depth == 0:
                lines.append(f"## {node.text}")
            elif depth == 1:
                lines.append(f"### {node.text}")
            else:
                lines.append(f"{'  ' * (depth - 2)}- {node.text}")
            notes = node.metadata.get("notes")
            if isinstance(notes, str) and notes.strip():
                for note_line in notes.strip().split("\n"):
                    lines.append(f"  > {note_line}")
                lines.append("")
            for child_id in node.children:
                child = by_id.get(child_id)
                if child is not None:
                    add_node(child, depth + 1)

        for top in tops:
            add_node(top, 0)
        return "\n".join(lines) + "\n"

    def export_markdown(self, mind_map: MindMap, filepath: Path) -> bool:
        outline = self.markdown_outline(mind_map)
        if outline is None:
            return False
        Path(filepath).write_text(outline, encoding="utf-8")
        return True

    def export(self, mind_map: MindMap, filepath: Path, fmt: Optional[str] = None) -> bool:
        """Export by format name, defaulting to the file extension."""
        fmt = (fmt or Path(filepath).suffix.lstrip(".")).lower()
        if fmt == "json":
            return self.export_json(mind_map, filepath)
        if fmt == "svg":
            return self.export_svg(mind_map, filepath)
        if fmt == "png":
            return self.export_png(mind_map, filepath)
        if fmt == "pdf":
            return self.export_pdf(mind_map, filepath)
        if fmt in ("md", "markdown"):
            return self.export_markdown(mind_map, filepath)
        raise ValueError(f"Unsupported export format: {fmt!r}")


def default_export_path(config: Config, mind_map: MindMap, fmt: str) -> Path:
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in mind_map.title) or "mindmap"
    return config.export_dir / f"{safe}.{fmt}"


# ==================== Command Line ====================

def _cmd_list(args: argparse.Namespace, store: LocalStore) -> int:
    maps = store.get_all_maps()
    if not maps:
        print("No stored maps")
    for mind_map in maps:
        print(f"{mind_map.id}  {mind_map.title}  ({len(mind_map.nodes)} nodes)")
    return 0


def _cmd_export(args: argparse.Namespace, store: LocalStore, config: Config) -> int:
    mind_map = store.get_map(args.map_id)
    if mind_map is None:
        print(f"Map not found: {args.map_id}")
        return 1
    out = Path(args.out).expanduser() if args.out else default_export_path(
        config, mind_map, args.format)
    if not MindMapExporter().export(mind_map, out, args.format):
        print("Nothing to export: the map has no nodes")
        return 1
    print(f"Wrote {args.format.upper()}: {out.resolve()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="mindcanvas-export")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="List maps stored on this machine")

    p_exp = sub.add_parser("export", help="Export a stored map")
    p_exp.add_argument("map_id", help="Id of the map to export")
    p_exp.add_argument("--format", choices=FORMATS, default="png", help="Output format")
    p_exp.add_argument("--out", help="Output path (default: the exports folder)")

    args = parser.parse_args(argv)
    config = Config.from_env()
    store = LocalStore(config.db_path)
    try:
        if args.cmd == "list":
            return _cmd_list(args, store)
        return _cmd_export(args, store, config)
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
