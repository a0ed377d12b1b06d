"""Environment and dependency preflight checks.

The desktop client needs GTK 4, libadwaita and pycairo; the sync layer needs
requests. Set MINDCANVAS_SKIP_PREFLIGHT=1 to bypass (useful for development).
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PreflightResult:
    ok: bool
    message: str


def _has_display() -> bool:
    return bool(os.environ.get("WAYLAND_DISPLAY") or os.environ.get("DISPLAY"))


def _check_python_deps(check_gtk: bool = True) -> Optional[str]:
    """Return an error message if required deps are missing."""
    try:
        import cairo  # type: ignore[import-not-found]  # noqa: F401
    except ImportError as exc:
        return (
            "Missing Python dependency 'pycairo'. "
            "Install it with pip (pycairo) and ensure cairo is available. "
            f"Underlying error: {exc}"
        )

    try:
        import requests  # noqa: F401
    except ImportError as exc:
        return f"Missing Python dependency 'requests'. Underlying error: {exc}"

    if not check_gtk:
        return None

    try:
        import gi  # type: ignore[import-not-found]

        gi.require_version("Gtk", "4.0")
        gi.require_version("Adw", "1")
        gi.require_version("Gdk", "4.0")
        from gi.repository import Gtk, Adw, Gdk  # type: ignore[import-not-found]  # noqa: F401
    except (ImportError, ValueError) as exc:
        return (
            "Missing GTK/libadwaita bindings. Install the GTK 4, libadwaita and "
            "PyGObject packages for your distribution. "
            f"Underlying error: {exc}"
        )

    return None


def run_preflight(
    *,
    require_display: bool = True,
    check_deps: bool = True,
    check_gtk: bool = True,
) -> PreflightResult:
    """Run checks and return a structured result.

    `require_display` is only meaningful for the desktop client; the export
    command runs headless.
    """
    if os.environ.get("MINDCANVAS_SKIP_PREFLIGHT") == "1":
        return PreflightResult(True, "Preflight skipped via MINDCANVAS_SKIP_PREFLIGHT=1")

    if require_display and not _has_display():
        return PreflightResult(
            False,
            "MindCanvas needs a graphical session, but neither WAYLAND_DISPLAY "
            "nor DISPLAY is set. Set MINDCANVAS_SKIP_PREFLIGHT=1 to bypass.",
        )

    if check_deps:
        dep_error = _check_python_deps(check_gtk=check_gtk)
        if dep_error:
            return PreflightResult(False, dep_error)

    return PreflightResult(True, "Preflight OK")


def run_preflight_or_die(
    *,
    require_display: bool = True,
    check_deps: bool = True,
    check_gtk: bool = True,
) -> None:
    result = run_preflight(
        require_display=require_display,
        check_deps=check_deps,
        check_gtk=check_gtk,
    )
    if result.ok:
        return

    sys.stderr.write("\nMindCanvas preflight check failed:\n")
    sys.stderr.write(result.message)
    sys.stderr.write("\n\n")
    sys.stderr.write(
        "Suggested setup:\n"
        "  install GTK 4, libadwaita and PyGObject from your distribution\n"
        "  pip install -e .\n\n"
    )
    raise SystemExit(1)
