from __future__ import annotations

from .session import CanvasArgs, CanvasSession, parse_canvas_args

__all__ = ["CanvasArgs", "CanvasSession", "parse_canvas_args"]
