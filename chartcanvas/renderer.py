"""Shape and path rendering helpers.

Everything here is a pure function of its arguments and the dark-mode flag:
node type classification and preset styles, resolved paint attributes,
orthogonal connector geometry with rounded elbows, arrow markers, label
boxes, the canvas grid, conversion of all of it to ``QPainterPath`` and a
``QPainter`` pass that draws a whole canvas.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from PySide6.QtCore import QLineF, QPointF, QRectF, Qt
from PySide6.QtGui import QBrush, QColor, QPainter, QPainterPath, QPen, QPolygonF, QTextOption, QTransform

from .constants import (
    DEFAULT_ARROW_SIZE,
    DEFAULT_CORNER_RADIUS,
    ELBOW_TOLERANCE,
    GRID_SIZE,
    LABEL_BOX_HEIGHT,
    LABEL_BOX_WIDTH,
    NODE_TYPE_ALIASES,
    NODE_TYPE_PRESETS,
    palette,
)
from .types import (
    ArrowType,
    ConnectionStyle,
    DiagramConnection,
    DiagramNode,
    LineStyle,
    NodeShape,
    NodeStyle,
    Point,
)

ROUNDED_RECTANGLE_RADIUS = 16.0
GENERATED_BORDER_WIDTH = 2.0
GENERATED_ARROW_SIZE = 10.0
DRAWN_CORNER_RADIUS = 12.0

# Marker glyphs in a 10x10 box whose reference point is (5, 5).
_MARKER_GLYPHS: Dict[ArrowType, Tuple[Tuple[float, float], ...]] = {
    ArrowType.ARROW: ((0, 0), (10, 5), (0, 10)),
    ArrowType.TRIANGLE: ((0, 0), (10, 5), (0, 10)),
    ArrowType.DIAMOND: ((0, 5), (5, 0), (10, 5), (5, 10)),
    ArrowType.NONE: (),
}
MARKER_BOX = 10.0


def _fmt(value: float) -> str:
    value = round(float(value), 3)
    if value.is_integer():
        return str(int(value))
    return repr(value)


# --- Node types and styles ---------------------------------------------------
def normalize_node_type(node_type: Optional[str]) -> str:
    """Lowercase a semantic type and fold aliases onto their preset."""
    key = (node_type or "").strip().lower()
    key = NODE_TYPE_ALIASES.get(key, key)
    return key if key in NODE_TYPE_PRESETS else "default"


def classify_shape(node_type: Optional[str]) -> NodeShape:
    """Map a semantic node type such as ``"decision"`` to its shape."""
    return NodeShape(NODE_TYPE_PRESETS[normalize_node_type(node_type)]["shape"])


def box_shadow(dark_mode: bool) -> str:
    return "0 4px 6px rgba(0, 0, 0, 0.3)" if dark_mode else "0 4px 6px rgba(0, 0, 0, 0.1)"


def node_style(node_type: Optional[str], dark_mode: bool) -> NodeStyle:
    """Preset style for a generated node of ``node_type``."""
    preset = NODE_TYPE_PRESETS[normalize_node_type(node_type)]
    index = 1 if dark_mode else 0
    return NodeStyle(
        background_color=palette(dark_mode)[preset["color"]],
        border_color=preset["border"][index],
        text_color=preset["text_color"][index],
        border_width=GENERATED_BORDER_WIDTH,
        border_radius=preset["border_radius"],
        box_shadow=box_shadow(dark_mode),
        skew_x=preset.get("skew_x"),
    )


def default_node_style(dark_mode: bool) -> NodeStyle:
    """Style given to nodes the user adds by hand."""
    if dark_mode:
        return NodeStyle(background_color="#333333", border_color="#666666", text_color="#ffffff", border_radius=5)
    return NodeStyle(background_color="#ffffff", border_color="#cccccc", text_color="#333333", border_radius=5)


def _connection_stroke(dark_mode: bool) -> str:
    return "#94a3b8" if dark_mode else "#64748b"


def generated_connection_style(dark_mode: bool) -> ConnectionStyle:
    """Style for connections created from an AI generated diagram."""
    return ConnectionStyle(
        stroke_color=_connection_stroke(dark_mode),
        stroke_width=2,
        arrow_type=ArrowType.TRIANGLE,
        line_style=LineStyle.ORTHOGONAL,
        corner_radius=DEFAULT_CORNER_RADIUS,
        end_arrow_size=GENERATED_ARROW_SIZE,
        label_background_color="#1e293b80" if dark_mode else "#f8fafc80",
        label_text_color="#ffffff" if dark_mode else "#0f172a",
        label_font_size=12,
        label_padding=4,
        label_border_radius=4,
    )


def drawn_connection_style(dark_mode: bool) -> ConnectionStyle:
    """Style for connections the user draws between handles."""
    return ConnectionStyle(
        stroke_color=_connection_stroke(dark_mode),
        stroke_width=2,
        arrow_type=ArrowType.TRIANGLE,
        line_style=LineStyle.ORTHOGONAL,
        corner_radius=DRAWN_CORNER_RADIUS,
    )


def preview_connection_style(dark_mode: bool) -> ConnectionStyle:
    """Dashed style of the rubber-band line shown while drawing."""
    return ConnectionStyle(
        stroke_color=_connection_stroke(dark_mode),
        stroke_width=2,
        arrow_type=ArrowType.ARROW,
        stroke_dasharray="5 3",
        end_arrow_size=DEFAULT_ARROW_SIZE,
    )


@dataclass(frozen=True)
class NodeAppearance:
    """Fully resolved paint attributes of a node."""

    background_color: str
    border_color: str
    border_width: float
    border_radius: float
    text_color: str
    box_shadow: str
    opacity: float
    skew_x: float


def resolve_node_appearance(node: DiagramNode, dark_mode: bool) -> NodeAppearance:
    style = node.style
    radius = style.border_radius if style.border_radius is not None else 5.0
    if node.shape is NodeShape.ROUNDED_RECTANGLE:
        radius = ROUNDED_RECTANGLE_RADIUS
    elif node.shape is NodeShape.CIRCLE:
        radius = min(node.width, node.height) / 2
    skew = (style.skew_x or 0.0) if node.shape is NodeShape.PARALLELOGRAM else 0.0
    return NodeAppearance(
        background_color=style.background_color or ("#333333" if dark_mode else "#ffffff"),
        border_color=style.border_color or ("#666666" if dark_mode else "#cccccc"),
        border_width=style.border_width if style.border_width is not None else 1.0,
        border_radius=radius,
        text_color=style.text_color or ("#ffffff" if dark_mode else "#333333"),
        box_shadow=style.box_shadow or "",
        opacity=style.opacity if style.opacity is not None else 1.0,
        skew_x=skew,
    )


@dataclass(frozen=True)
class ConnectionAppearance:
    """Fully resolved paint attributes of a connection and its label."""

    stroke_color: str
    stroke_width: float
    stroke_dasharray: str
    arrow_type: ArrowType
    arrow_size: float
    label_background_color: str
    label_text_color: str
    label_font_size: float
    label_padding: float
    label_border_radius: float


def resolve_connection_appearance(style: Optional[ConnectionStyle], dark_mode: bool) -> ConnectionAppearance:
    style = style or ConnectionStyle()

    def pick(value, default):
        return default if value is None else value

    return ConnectionAppearance(
        stroke_color=style.stroke_color or ("#66b2ff" if dark_mode else "#0066cc"),
        stroke_width=pick(style.stroke_width, 2.0),
        stroke_dasharray=style.stroke_dasharray or "",
        arrow_type=pick(style.arrow_type, ArrowType.ARROW),
        arrow_size=pick(style.end_arrow_size, DEFAULT_ARROW_SIZE),
        label_background_color=style.label_background_color or (
            "rgba(30, 41, 59, 0.7)" if dark_mode else "rgba(248, 250, 252, 0.7)"
        ),
        label_text_color=style.label_text_color or ("#ffffff" if dark_mode else "#0f172a"),
        label_font_size=pick(style.label_font_size, 12.0),
        label_padding=pick(style.label_padding, 4.0),
        label_border_radius=pick(style.label_border_radius, 4.0),
    )


# --- Handles -----------------------------------------------------------------
def node_handles(node: DiagramNode) -> Dict[str, Point]:
    """Connection handles: top-center, bottom-center and right-center."""
    return {
        "top": Point(node.x + node.width / 2, node.y),
        "bottom": Point(node.x + node.width / 2, node.y + node.height),
        "right": Point(node.x + node.width, node.y + node.height / 2),
    }


# --- Connector geometry ------------------------------------------------------
class PathCommand(NamedTuple):
    """One SVG style drawing command: ``M``, ``L`` or ``Q``."""

    op: str
    points: Tuple[Point, ...]


@dataclass(frozen=True)
class ConnectorPath:
    """Geometry of a connection between two nodes."""

    kind: str
    points: Tuple[Point, ...]
    commands: Tuple[PathCommand, ...]
    label_point: Point

    @property
    def start(self) -> Point:
        return self.points[0]

    @property
    def end(self) -> Point:
        return self.points[-1]

    @property
    def label_rect(self) -> Tuple[float, float, float, float]:
        """(x, y, width, height) of the fixed label box centred on the label point."""
        return (
            self.label_point.x - LABEL_BOX_WIDTH / 2,
            self.label_point.y - LABEL_BOX_HEIGHT / 2,
            LABEL_BOX_WIDTH,
            LABEL_BOX_HEIGHT,
        )

    @property
    def svg_path(self) -> str:
        parts = []
        for command in self.commands:
            coords = " ".join(f"{_fmt(p.x)},{_fmt(p.y)}" for p in command.points)
            parts.append(f"{command.op} {coords}")
        return " ".join(parts)

    def end_direction(self) -> Tuple[float, float]:
        """Unit vector of the last non-degenerate segment."""
        for index in range(len(self.points) - 1, 0, -1):
            dx = self.points[index].x - self.points[index - 1].x
            dy = self.points[index].y - self.points[index - 1].y
            length = math.hypot(dx, dy)
            if length > 0:
                return dx / length, dy / length
        return 1.0, 0.0


def connector_anchors(source: DiagramNode, target: DiagramNode) -> Tuple[str, Point, Point]:
    """Pick the connector kind and its start/end anchor points."""
    dx = target.x - source.x
    dy = target.y - source.y
    if target.y > source.y:
        return (
            "vertical",
            Point(source.x + source.width / 2, source.y + source.height),
            Point(target.x + target.width / 2, target.y),
        )
    if abs(dx) > abs(dy):
        start_x = source.x + source.width if source.x < target.x else source.x
        start = Point(start_x, source.y + source.height / 2)
        if target.y < source.y:
            end = Point(target.x + target.width / 2, target.y + target.height)
        else:
            end_x = target.x if source.x < target.x else target.x + target.width
            end = Point(end_x, target.y + target.height / 2)
        return "horizontal", start, end
    return "direct", source.center, target.center


def connector_points(kind: str, start: Point, end: Point, line_style: Optional[LineStyle]) -> List[Point]:
    """Polyline through the anchors: two points, or four with an elbow pair."""
    if line_style is LineStyle.STRAIGHT:
        return [start, end]
    if kind == "vertical":
        if abs(start.x - end.x) > ELBOW_TOLERANCE:
            mid_y = start.y + (end.y - start.y) / 2
            return [start, Point(start.x, mid_y), Point(end.x, mid_y), end]
        return [start, end]
    if kind == "horizontal":
        if abs(start.y - end.y) > ELBOW_TOLERANCE:
            mid_x = start.x + (end.x - start.x) / 2
            return [start, Point(mid_x, start.y), Point(mid_x, end.y), end]
        return [start, end]
    mid_x = (start.x + end.x) / 2
    return [start, Point(mid_x, start.y), Point(mid_x, end.y), end]


def rounded_commands(points: Sequence[Point], radius: float, straight: bool = False) -> List[PathCommand]:
    """Draw ``points`` as lines, rounding each interior corner with a quadratic curve.

    A corner stays sharp when either adjacent segment is shorter than ``radius``.
    """
    commands = [PathCommand("M", (points[0],))]
    if len(points) <= 2 or straight:
        commands.extend(PathCommand("L", (p,)) for p in points[1:])
        return commands

    for index in range(1, len(points) - 1):
        prev, current, nxt = points[index - 1], points[index], points[index + 1]
        in_dx, in_dy = current.x - prev.x, current.y - prev.y
        out_dx, out_dy = nxt.x - current.x, nxt.y - current.y
        in_len = math.hypot(in_dx, in_dy)
        out_len = math.hypot(out_dx, out_dy)
        if in_len < radius or out_len < radius:
            commands.append(PathCommand("L", (current,)))
            continue
        corner_start = Point(current.x - in_dx / in_len * radius, current.y - in_dy / in_len * radius)
        corner_end = Point(current.x + out_dx / out_len * radius, current.y + out_dy / out_len * radius)
        commands.append(PathCommand("L", (corner_start,)))
        commands.append(PathCommand("Q", (current, corner_end)))
    commands.append(PathCommand("L", (points[-1],)))
    return commands


def label_anchor(points: Sequence[Point]) -> Point:
    index = max(len(points) // 2 - 1, 0)
    first, second = points[index], points[min(index + 1, len(points) - 1)]
    return Point((first.x + second.x) / 2, (first.y + second.y) / 2)


def compute_connector_path(
    source: DiagramNode,
    target: DiagramNode,
    style: Optional[ConnectionStyle] = None,
) -> ConnectorPath:
    """Geometry of the connector from ``source`` to ``target``."""
    style = style or ConnectionStyle()
    kind, start, end = connector_anchors(source, target)
    points = connector_points(kind, start, end, style.line_style)
    radius = style.corner_radius or DEFAULT_CORNER_RADIUS
    straight = style.line_style is LineStyle.STRAIGHT
    return ConnectorPath(
        kind=kind,
        points=tuple(points),
        commands=tuple(rounded_commands(points, radius, straight)),
        label_point=label_anchor(points),
    )


def preview_points(start: Point, end: Point) -> List[Point]:
    """Vertical-first orthogonal polyline used while a connection is drawn."""
    mid_y = (start.y + end.y) / 2
    return [start, Point(start.x, mid_y), Point(end.x, mid_y), end]


def preview_path(start: Point, end: Point) -> str:
    mid_y = (start.y + end.y) / 2
    return f"M {_fmt(start.x)} {_fmt(start.y)} V {_fmt(mid_y)} H {_fmt(end.x)} V {_fmt(end.y)}"


# --- Arrow markers -----------------------------------------------------------
@dataclass(frozen=True)
class ArrowMarker:
    arrow_type: ArrowType
    size: float
    path: str
    glyph: Tuple[Tuple[float, float], ...]


def arrow_marker(arrow_type: Optional[ArrowType] = None, size: Optional[float] = None) -> ArrowMarker:
    """Marker glyph for ``arrow_type`` in a 10x10 box, drawn at ``size``."""
    arrow_type = arrow_type or ArrowType.ARROW
    glyph = _MARKER_GLYPHS[arrow_type]
    path = ""
    if glyph:
        moves = [f"M {_fmt(glyph[0][0])} {_fmt(glyph[0][1])}"]
        moves.extend(f"L {_fmt(x)} {_fmt(y)}" for x, y in glyph[1:])
        path = " ".join(moves) + " z"
    return ArrowMarker(arrow_type=arrow_type, size=size or DEFAULT_ARROW_SIZE, path=path, glyph=glyph)


# --- Canvas theme ------------------------------------------------------------
@dataclass(frozen=True)
class CanvasTheme:
    background_color: str
    grid_color: str
    selection_color: str


def canvas_theme(dark_mode: bool) -> CanvasTheme:
    if dark_mode:
        return CanvasTheme(background_color="#0f1729", grid_color="#1a2436", selection_color="#3b82f6")
    return CanvasTheme(background_color="#ffffff", grid_color="#f0f0f0", selection_color="#3b82f6")


@dataclass(frozen=True)
class GridPattern:
    cell_size: float
    offset_x: float
    offset_y: float


def grid_pattern(scale: float, view_x: float, view_y: float) -> GridPattern:
    """Background grid cell size and offset for the current pan and zoom."""
    cell = GRID_SIZE * scale
    return GridPattern(cell_size=cell, offset_x=math.fmod(view_x, cell), offset_y=math.fmod(view_y, cell))


# --- Qt painter paths --------------------------------------------------------
def _qpoint(point: Point) -> QPointF:
    return QPointF(point.x, point.y)


def connector_painter_path(connector: ConnectorPath) -> QPainterPath:
    path = QPainterPath()
    for command in connector.commands:
        if command.op == "M":
            path.moveTo(_qpoint(command.points[0]))
        elif command.op == "L":
            path.lineTo(_qpoint(command.points[0]))
        elif command.op == "Q":
            path.quadTo(_qpoint(command.points[0]), _qpoint(command.points[1]))
    return path


def preview_painter_path(start: Point, end: Point) -> QPainterPath:
    points = preview_points(start, end)
    path = QPainterPath(_qpoint(points[0]))
    for point in points[1:]:
        path.lineTo(_qpoint(point))
    return path


def arrow_head_path(connector: ConnectorPath, appearance: ConnectionAppearance) -> QPainterPath:
    """Arrow glyph placed on the connector end, pointing along the last segment."""
    marker = arrow_marker(appearance.arrow_type, appearance.arrow_size)
    path = QPainterPath()
    if not marker.glyph:
        return path
    path.addPolygon(QPolygonF([QPointF(x, y) for x, y in marker.glyph]))
    path.closeSubpath()

    dx, dy = connector.end_direction()
    scale = marker.size * appearance.stroke_width / MARKER_BOX
    transform = QTransform()
    transform.translate(connector.end.x, connector.end.y)
    transform.rotate(math.degrees(math.atan2(dy, dx)))
    transform.scale(scale, scale)
    transform.translate(-MARKER_BOX / 2, -MARKER_BOX / 2)
    return transform.map(path)


def node_outline_path(node: DiagramNode, appearance: Optional[NodeAppearance] = None) -> QPainterPath:
    """Outline of ``node`` in world coordinates for its shape."""
    x, y, w, h = node.x, node.y, node.width, node.height
    rect = QRectF(x, y, w, h)
    path = QPainterPath()
    shape = node.shape

    if shape is NodeShape.CIRCLE:
        path.addEllipse(rect)
    elif shape is NodeShape.DIAMOND:
        path.addPolygon(QPolygonF([
            QPointF(x + w / 2, y),
            QPointF(x + w, y + h / 2),
            QPointF(x + w / 2, y + h),
            QPointF(x, y + h / 2),
        ]))
        path.closeSubpath()
    elif shape is NodeShape.PARALLELOGRAM:
        skew = appearance.skew_x if appearance else (node.style.skew_x or 0.0)
        shift = math.tan(math.radians(skew)) * h / 2
        path.addPolygon(QPolygonF([
            QPointF(x - shift, y),
            QPointF(x + w - shift, y),
            QPointF(x + w + shift, y + h),
            QPointF(x + shift, y + h),
        ]))
        path.closeSubpath()
    elif shape is NodeShape.CYLINDER:
        cap = min(h / 4, 8.0)
        top = QRectF(x, y, w, 2 * cap)
        bottom = QRectF(x, y + h - 2 * cap, w, 2 * cap)
        path.moveTo(x, y + cap)
        path.arcTo(top, 180, -180)
        path.lineTo(x + w, y + h - cap)
        path.arcTo(bottom, 0, -180)
        path.closeSubpath()
        path.arcMoveTo(top, 180)
        path.arcTo(top, 180, 180)
    elif shape is NodeShape.DOCUMENT:
        wave = h * 0.1
        path.moveTo(x, y)
        path.lineTo(x + w, y)
        path.lineTo(x + w, y + h - wave)
        path.cubicTo(x + w * 0.75, y + h - 2 * wave, x + w * 0.25, y + h + wave, x, y + h - wave)
        path.closeSubpath()
    else:
        radius = appearance.border_radius if appearance else (
            ROUNDED_RECTANGLE_RADIUS if shape is NodeShape.ROUNDED_RECTANGLE else (node.style.border_radius or 0.0)
        )
        if radius > 0:
            path.addRoundedRect(rect, radius, radius)
        else:
            path.addRect(rect)
    return path


def label_painter_rect(connector: ConnectorPath) -> QRectF:
    return QRectF(*connector.label_rect)


def connection_paint_data(
    connection: DiagramConnection,
    source: DiagramNode,
    target: DiagramNode,
    dark_mode: bool,
) -> Tuple[ConnectorPath, ConnectionAppearance]:
    """Geometry plus resolved appearance for painting one connection."""
    return (
        compute_connector_path(source, target, connection.style),
        resolve_connection_appearance(connection.style, dark_mode),
    )


# --- Canvas painting ---------------------------------------------------------
_NUMBER = r"(\d+(?:\.\d+)?|\.\d+)"
_CSS_RGB = re.compile(rf"rgba?\(\s*{_NUMBER}\s*,\s*{_NUMBER}\s*,\s*{_NUMBER}\s*(?:,\s*{_NUMBER}\s*)?\)")
_HEX_RGBA = re.compile(r"#[0-9a-fA-F]{8}")


def qcolor(value: str) -> QColor:
    """Parse a CSS colour string.

    ``#rrggbbaa`` puts alpha last, unlike Qt's ``#aarrggbb``, and
    ``rgb()``/``rgba()`` are not understood by ``QColor`` itself.
    """
    value = value.strip()
    match = _CSS_RGB.fullmatch(value)
    if match:
        red, green, blue, alpha = match.groups()
        color = QColor(*(min(255, int(float(channel))) for channel in (red, green, blue)))
        if alpha is not None:
            color.setAlphaF(max(0.0, min(1.0, float(alpha))))
        return color
    if _HEX_RGBA.fullmatch(value):
        color = QColor(value[:7])
        color.setAlpha(int(value[7:], 16))
        return color
    return QColor(value)


def _dash_pattern(dasharray: str, width: float) -> List[float]:
    try:
        dashes = [float(part) for part in dasharray.replace(",", " ").split()]
    except ValueError:
        return []
    if not dashes or width <= 0 or not any(dashes):
        return []
    if len(dashes) % 2:
        dashes *= 2
    # Qt measures dashes in pen widths.
    return [max(dash, 0.01) / width for dash in dashes]


def _connection_pen(appearance: ConnectionAppearance) -> QPen:
    pen = QPen(qcolor(appearance.stroke_color))
    pen.setWidthF(appearance.stroke_width)
    dashes = _dash_pattern(appearance.stroke_dasharray, appearance.stroke_width)
    if dashes:
        pen.setDashPattern(dashes)
    return pen


def _paint_grid(painter: QPainter, grid: GridPattern, color: str, width: float, height: float) -> None:
    if grid.cell_size < 2:
        return
    pen = QPen(qcolor(color))
    pen.setWidthF(1.0)
    painter.setPen(pen)
    x = grid.offset_x - math.ceil(grid.offset_x / grid.cell_size) * grid.cell_size
    while x <= width:
        painter.drawLine(QLineF(x, 0, x, height))
        x += grid.cell_size
    y = grid.offset_y - math.ceil(grid.offset_y / grid.cell_size) * grid.cell_size
    while y <= height:
        painter.drawLine(QLineF(0, y, width, y))
        y += grid.cell_size


def _paint_connection(
    painter: QPainter,
    connector: ConnectorPath,
    appearance: ConnectionAppearance,
    label: str,
) -> None:
    painter.setPen(_connection_pen(appearance))
    painter.setBrush(Qt.NoBrush)
    painter.drawPath(connector_painter_path(connector))

    head = arrow_head_path(connector, appearance)
    if not head.isEmpty():
        painter.fillPath(head, QBrush(qcolor(appearance.stroke_color)))

    if not label:
        return
    rect = label_painter_rect(connector)
    painter.setPen(Qt.NoPen)
    painter.setBrush(QBrush(qcolor(appearance.label_background_color)))
    painter.drawRoundedRect(rect, appearance.label_border_radius, appearance.label_border_radius)
    font = painter.font()
    font.setPixelSize(max(1, int(appearance.label_font_size)))
    painter.setFont(font)
    painter.setPen(qcolor(appearance.label_text_color))
    painter.drawText(rect, label, QTextOption(Qt.AlignCenter))


def _paint_node(painter: QPainter, node: DiagramNode, dark_mode: bool, selection_color: Optional[str]) -> None:
    appearance = resolve_node_appearance(node, dark_mode)
    outline = node_outline_path(node, appearance)
    painter.setOpacity(appearance.opacity)
    if appearance.border_width > 0:
        pen = QPen(qcolor(appearance.border_color))
        pen.setWidthF(appearance.border_width)
        painter.setPen(pen)
    else:
        painter.setPen(Qt.NoPen)
    painter.setBrush(QBrush(qcolor(appearance.background_color)))
    painter.drawPath(outline)

    if selection_color:
        pen = QPen(qcolor(selection_color))
        pen.setWidthF(2.0)
        painter.setPen(pen)
        painter.setBrush(Qt.NoBrush)
        painter.drawPath(outline)

    if node.text:
        option = QTextOption(Qt.AlignCenter)
        option.setWrapMode(QTextOption.WordWrap)
        painter.setPen(qcolor(appearance.text_color))
        painter.drawText(QRectF(node.x, node.y, node.width, node.height), node.text, option)
    painter.setOpacity(1.0)


def paint_canvas(
    painter: QPainter,
    nodes: Sequence[DiagramNode],
    connections: Iterable[DiagramConnection],
    dark_mode: bool,
    scale: float = 1.0,
    view_x: float = 0.0,
    view_y: float = 0.0,
    selected_id: str = "",
    preview: Optional[Tuple[Point, Point]] = None,
) -> None:
    """Paint background, grid, connections, nodes and the drawing preview.

    Elements are in world coordinates and go through the view transform
    ``(world + view) * scale``. Connections whose endpoints are missing are
    skipped. ``preview`` is the (start, end) of a connection being drawn.
    """
    device = painter.device()
    width, height = float(device.width()), float(device.height())
    theme = canvas_theme(dark_mode)

    painter.save()
    painter.fillRect(QRectF(0, 0, width, height), qcolor(theme.background_color))
    _paint_grid(painter, grid_pattern(scale, view_x * scale, view_y * scale), theme.grid_color, width, height)
    painter.setRenderHint(QPainter.Antialiasing)

    painter.scale(scale, scale)
    painter.translate(view_x, view_y)

    by_id = {node.id: node for node in nodes}
    for connection in connections:
        source = by_id.get(connection.source_id)
        target = by_id.get(connection.target_id)
        if source is None or target is None:
            continue
        connector, appearance = connection_paint_data(connection, source, target, dark_mode)
        _paint_connection(painter, connector, appearance, connection.label)

    for node in nodes:
        _paint_node(painter, node, dark_mode, theme.selection_color if node.id == selected_id else None)

    if preview is not None:
        appearance = resolve_connection_appearance(preview_connection_style(dark_mode), dark_mode)
        painter.setPen(_connection_pen(appearance))
        painter.setBrush(Qt.NoBrush)
        painter.drawPath(preview_painter_path(*preview))
    painter.restore()
