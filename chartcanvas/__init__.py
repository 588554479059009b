"""Interactive diagram canvas with AI generated tree layouts.

The canvas model is a PySide6 list model; the layout engine, the response
normalizer and the renderer helpers are plain functions that can be used
without a running Qt application.
"""

from .constants import NODE_TYPE_PRESETS
from .errors import (
    CanvasError,
    DanglingReferenceError,
    GenerationInProgressError,
    MalformedResponseError,
    PersistenceError,
)
from .generation import DiagramGenerator, build_canvas_state
from .layout import LayoutResult, compute_layout
from .model import CanvasModel
from .normalizer import NormalizedDiagram, extract_diagram_payload, fallback_diagram, normalize_response
from .persistence import CanvasStore, FileCanvasStore
from .renderer import (
    arrow_marker,
    canvas_theme,
    classify_shape,
    compute_connector_path,
    grid_pattern,
    node_style,
    paint_canvas,
)
from .types import (
    ArrowType,
    CanvasState,
    ConnectionStyle,
    DiagramConnection,
    DiagramNode,
    LineStyle,
    NodeShape,
    NodeStyle,
    Point,
)

__all__ = [
    "ArrowType",
    "CanvasError",
    "CanvasModel",
    "CanvasState",
    "CanvasStore",
    "ConnectionStyle",
    "DanglingReferenceError",
    "DiagramConnection",
    "DiagramGenerator",
    "DiagramNode",
    "FileCanvasStore",
    "GenerationInProgressError",
    "LayoutResult",
    "LineStyle",
    "MalformedResponseError",
    "NODE_TYPE_PRESETS",
    "NodeShape",
    "NodeStyle",
    "NormalizedDiagram",
    "PersistenceError",
    "Point",
    "arrow_marker",
    "build_canvas_state",
    "canvas_theme",
    "classify_shape",
    "compute_connector_path",
    "compute_layout",
    "extract_diagram_payload",
    "fallback_diagram",
    "grid_pattern",
    "node_style",
    "normalize_response",
    "paint_canvas",
]
