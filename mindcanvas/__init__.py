"""MindCanvas - a mind-mapping editor with optional remote sync."""

__version__ = "1.0.0"
__app_id__ = "io.github.mindcanvas.MindCanvas"
