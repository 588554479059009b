"""Constants and presets for chartcanvas diagrams."""

from typing import Any, Dict

CANVAS_STATE_VERSION = 1

DEFAULT_NODE_WIDTH = 150.0
DEFAULT_NODE_HEIGHT = 80.0
DEFAULT_NODE_TEXT = "New Node"
APPEND_NODE_SPACING = 60.0

# Tree layout
LEVEL_HEIGHT = 160.0
LAYOUT_TOP = 100.0
LAYOUT_MARGIN = 100.0
CANVAS_PADDING = 200.0
MIN_CANVAS_SIZE = 2000.0
DEFAULT_LAYOUT_WIDTH = 1200.0
DECISION_MIN_BRANCH_SPACING = 250.0
DECISION_BRANCH_UNIT = 100.0
DECISION_MULTI_MIN_WIDTH = 350.0
DECISION_LEAF_WIDTH = 250.0
DECISION_BRANCH_GAP = 50.0
CHILD_MIN_WIDTH_FEW = 300.0
CHILD_MIN_WIDTH_MANY = 220.0
CHILD_LEAF_WIDTH = 200.0

# Viewport
MIN_SCALE = 0.1
MAX_SCALE = 5.0
ZOOM_SPEED = 0.05
GRID_SIZE = 20.0
HANDLE_HIT_RADIUS = 8.0

# Connectors
DEFAULT_CORNER_RADIUS = 15.0
ELBOW_TOLERANCE = 10.0
DEFAULT_ARROW_SIZE = 6.0
LABEL_BOX_WIDTH = 100.0
LABEL_BOX_HEIGHT = 24.0

AUTOSAVE_DELAY_MS = 1000


def palette(dark_mode: bool) -> Dict[str, str]:
    """Named colours used by node and connection presets."""
    if dark_mode:
        return {
            "primary": "#4f46e5",
            "secondary": "#0ea5e9",
            "success": "#16a34a",
            "warning": "#ea580c",
            "danger": "#dc2626",
            "info": "#0284c7",
            "light": "#475569",
            "dark": "#1e293b",
            "text": "#f8fafc",
        }
    return {
        "primary": "#6366f1",
        "secondary": "#38bdf8",
        "success": "#22c55e",
        "warning": "#f97316",
        "danger": "#ef4444",
        "info": "#0ea5e9",
        "light": "#f1f5f9",
        "dark": "#334155",
        "text": "#0f172a",
    }


# Semantic node type -> shape and palette entry. Border colours are (light, dark).
NODE_TYPE_PRESETS: Dict[str, Dict[str, Any]] = {
    "start": {
        "shape": "rounded-rectangle",
        "color": "success",
        "border": ("#16a34a", "#15803d"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 16,
    },
    "end": {
        "shape": "rounded-rectangle",
        "color": "danger",
        "border": ("#dc2626", "#b91c1c"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 16,
    },
    "decision": {
        "shape": "diamond",
        "color": "warning",
        "border": ("#ea580c", "#c2410c"),
        "text_color": ("#000000", "#ffffff"),
        "border_radius": 2,
    },
    "process": {
        "shape": "rectangle",
        "color": "light",
        "border": ("#cbd5e1", "#334155"),
        "text_color": ("#0f172a", "#ffffff"),
        "border_radius": 8,
    },
    "input": {
        "shape": "parallelogram",
        "color": "info",
        "border": ("#0284c7", "#0369a1"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 0,
        "skew_x": -15,
    },
    "output": {
        "shape": "parallelogram",
        "color": "info",
        "border": ("#0284c7", "#0369a1"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 0,
        "skew_x": 15,
    },
    "database": {
        "shape": "cylinder",
        "color": "secondary",
        "border": ("#38bdf8", "#0284c7"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 8,
    },
    "document": {
        "shape": "document",
        "color": "light",
        "border": ("#cbd5e1", "#475569"),
        "text_color": ("#0f172a", "#ffffff"),
        "border_radius": 4,
    },
    "default": {
        "shape": "rectangle",
        "color": "primary",
        "border": ("#4f46e5", "#4338ca"),
        "text_color": ("#ffffff", "#ffffff"),
        "border_radius": 8,
    },
}

NODE_TYPE_ALIASES: Dict[str, str] = {
    "begin": "start",
    "terminal": "end",
    "storage": "database",
}
