"""Data types for chartcanvas diagrams.

This module contains the core data structures used throughout the
canvas: nodes, connections, their optional styles and the persisted
``CanvasState`` snapshot with its JSON wire format.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .constants import (
    CANVAS_STATE_VERSION,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_TEXT,
    DEFAULT_NODE_WIDTH,
)
from .errors import DanglingReferenceError

logger = logging.getLogger(__name__)


class NodeShape(Enum):
    """Visual shapes a node can take."""

    RECTANGLE = "rectangle"
    ROUNDED_RECTANGLE = "rounded-rectangle"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    PARALLELOGRAM = "parallelogram"
    CYLINDER = "cylinder"
    DOCUMENT = "document"


class ArrowType(Enum):
    NONE = "none"
    ARROW = "arrow"
    TRIANGLE = "triangle"
    DIAMOND = "diamond"


class LineStyle(Enum):
    STRAIGHT = "straight"
    BEZIER = "bezier"
    ORTHOGONAL = "orthogonal"


@dataclass(frozen=True)
class Point:
    """A point in world coordinates."""

    x: float
    y: float


# (python attribute, wire key) pairs
_NODE_STYLE_KEYS: Tuple[Tuple[str, str], ...] = (
    ("background_color", "backgroundColor"),
    ("border_color", "borderColor"),
    ("text_color", "textColor"),
    ("border_width", "borderWidth"),
    ("border_radius", "borderRadius"),
    ("box_shadow", "boxShadow"),
    ("skew_x", "skewX"),
    ("skew_y", "skewY"),
    ("opacity", "opacity"),
)

_CONNECTION_STYLE_KEYS: Tuple[Tuple[str, str], ...] = (
    ("stroke_color", "strokeColor"),
    ("stroke_width", "strokeWidth"),
    ("arrow_type", "arrowType"),
    ("line_style", "lineStyle"),
    ("corner_radius", "cornerRadius"),
    ("stroke_dasharray", "strokeDasharray"),
    ("end_arrow_size", "endArrowSize"),
    ("label_background_color", "labelBackgroundColor"),
    ("label_text_color", "labelTextColor"),
    ("label_font_size", "labelFontSize"),
    ("label_padding", "labelPadding"),
    ("label_border_radius", "labelBorderRadius"),
)


def _style_to_dict(style: Any, keys: Tuple[Tuple[str, str], ...]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for attr, wire_key in keys:
        value = getattr(style, attr)
        if value is None:
            continue
        result[wire_key] = value.value if isinstance(value, Enum) else value
    return result


@dataclass
class NodeStyle:
    """Optional visual overrides for a node. Unset fields use shape defaults."""

    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None
    border_width: Optional[float] = None
    border_radius: Optional[float] = None
    box_shadow: Optional[str] = None
    skew_x: Optional[float] = None
    skew_y: Optional[float] = None
    opacity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _style_to_dict(self, _NODE_STYLE_KEYS)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeStyle":
        if not isinstance(data, dict):
            return cls()
        return cls(**{attr: data.get(wire_key) for attr, wire_key in _NODE_STYLE_KEYS})


@dataclass
class ConnectionStyle:
    """Optional visual overrides for a connection."""

    stroke_color: Optional[str] = None
    stroke_width: Optional[float] = None
    arrow_type: Optional[ArrowType] = None
    line_style: Optional[LineStyle] = None
    corner_radius: Optional[float] = None
    stroke_dasharray: Optional[str] = None
    end_arrow_size: Optional[float] = None
    label_background_color: Optional[str] = None
    label_text_color: Optional[str] = None
    label_font_size: Optional[float] = None
    label_padding: Optional[float] = None
    label_border_radius: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _style_to_dict(self, _CONNECTION_STYLE_KEYS)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConnectionStyle":
        if not isinstance(data, dict):
            return cls()
        values = {attr: data.get(wire_key) for attr, wire_key in _CONNECTION_STYLE_KEYS}
        values["arrow_type"] = _enum_or_none(ArrowType, values["arrow_type"])
        values["line_style"] = _enum_or_none(LineStyle, values["line_style"])
        return cls(**values)


def _enum_or_none(enum_cls, value):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


@dataclass
class DiagramNode:
    """A shape displayed on the canvas, anchored at its top-left corner."""

    id: str
    x: float
    y: float
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT
    text: str = DEFAULT_NODE_TEXT
    shape: NodeShape = NodeShape.RECTANGLE
    style: NodeStyle = field(default_factory=NodeStyle)

    def __post_init__(self) -> None:
        # Integer coordinates would serialize as 100 here and 100.0 after a reload.
        self.x = float(self.x)
        self.y = float(self.y)
        self.width = float(self.width)
        self.height = float(self.height)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, x: float, y: float, margin: float = 0.0) -> bool:
        return (self.x - margin <= x <= self.x + self.width + margin
                and self.y - margin <= y <= self.y + self.height + margin)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "node",
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
            "shape": self.shape.value,
            "style": self.style.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagramNode":
        try:
            shape = NodeShape(data.get("shape", NodeShape.RECTANGLE.value))
        except ValueError:
            shape = NodeShape.RECTANGLE
        return cls(
            id=str(data.get("id", "")),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", DEFAULT_NODE_WIDTH)),
            height=float(data.get("height", DEFAULT_NODE_HEIGHT)),
            text=str(data.get("text", DEFAULT_NODE_TEXT)),
            shape=shape,
            style=NodeStyle.from_dict(data.get("style")),
        )


@dataclass
class DiagramConnection:
    """A directed connection between two diagram nodes."""

    id: str
    source_id: str
    target_id: str
    label: str = ""
    style: ConnectionStyle = field(default_factory=ConnectionStyle)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": "connection",
            "sourceId": self.source_id,
            "targetId": self.target_id,
        }
        if self.label:
            data["label"] = self.label
        data["style"] = self.style.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagramConnection":
        return cls(
            id=str(data.get("id", "")),
            source_id=str(data.get("sourceId", "")),
            target_id=str(data.get("targetId", "")),
            label=str(data.get("label") or ""),
            style=ConnectionStyle.from_dict(data.get("style")),
        )


DiagramElement = Union[DiagramNode, DiagramConnection]


@dataclass
class CanvasState:
    """Snapshot of everything on a canvas.

    ``elements`` keeps paint order. ``canvas_width``/``canvas_height`` size the
    scrollable world when a layout has computed them.
    """

    elements: List[DiagramElement] = field(default_factory=list)
    version: int = CANVAS_STATE_VERSION
    canvas_width: Optional[float] = None
    canvas_height: Optional[float] = None

    # --- Queries ------------------------------------------------------------
    def nodes(self) -> List[DiagramNode]:
        return [el for el in self.elements if isinstance(el, DiagramNode)]

    def connections(self) -> List[DiagramConnection]:
        return [el for el in self.elements if isinstance(el, DiagramConnection)]

    def get_node(self, node_id: str) -> Optional[DiagramNode]:
        for element in self.elements:
            if isinstance(element, DiagramNode) and element.id == node_id:
                return element
        return None

    def iter_dangling(self) -> Iterator[Tuple[DiagramConnection, str]]:
        """Yield (connection, missing node id) for every unresolved endpoint."""
        node_ids = {node.id for node in self.nodes()}
        for conn in self.connections():
            for endpoint in (conn.source_id, conn.target_id):
                if endpoint not in node_ids:
                    yield conn, endpoint
                    break

    def validate(self) -> None:
        """Raise DanglingReferenceError if any connection names a missing node."""
        for conn, missing in self.iter_dangling():
            raise DanglingReferenceError(conn.id, missing)

    def is_empty(self) -> bool:
        return not self.elements

    def copy(self) -> "CanvasState":
        return copy.deepcopy(self)

    # --- Serialization ------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "elements": [element.to_dict() for element in self.elements],
            "version": self.version,
        }
        if self.canvas_width is not None:
            data["canvasWidth"] = self.canvas_width
        if self.canvas_height is not None:
            data["canvasHeight"] = self.canvas_height
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanvasState":
        """Build a state from its wire dict, skipping unknown element types."""
        elements: List[DiagramElement] = []
        for element_data in data.get("elements", []) or []:
            if not isinstance(element_data, dict):
                continue
            kind = element_data.get("type")
            if kind == "node":
                elements.append(DiagramNode.from_dict(element_data))
            elif kind == "connection":
                elements.append(DiagramConnection.from_dict(element_data))
            else:
                logger.warning("Skipping canvas element with unknown type %r", kind)
        width = data.get("canvasWidth")
        height = data.get("canvasHeight")
        return cls(
            elements=elements,
            version=int(data.get("version", CANVAS_STATE_VERSION)),
            canvas_width=float(width) if width is not None else None,
            canvas_height=float(height) if height is not None else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, payload: str) -> "CanvasState":
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Canvas state must be a JSON object")
        return cls.from_dict(data)
