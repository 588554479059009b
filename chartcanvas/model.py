"""Core CanvasModel class for chartcanvas.

This module provides the Qt model that owns one canvas: its nodes, its
connections and the view/interaction/persistence state around them.
"""

from __future__ import annotations

import logging
from itertools import count
from typing import Any, Dict, List, Optional

from PySide6.QtCore import (
    QAbstractListModel,
    QModelIndex,
    Property,
    Qt,
    Signal,
    Slot,
)
from PySide6.QtGui import QImage, QPainter

from .constants import (
    APPEND_NODE_SPACING,
    AUTOSAVE_DELAY_MS,
    CANVAS_STATE_VERSION,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_TEXT,
    DEFAULT_NODE_WIDTH,
)
from .errors import CanvasError, DanglingReferenceError
from .generation import DiagramGenerator, GenerationMixin
from .interaction import Gesture, InteractionMixin
from .persistence import AutosaveMixin, CanvasStore
from .renderer import (
    arrow_marker,
    compute_connector_path,
    default_node_style,
    drawn_connection_style,
    paint_canvas,
    resolve_connection_appearance,
    resolve_node_appearance,
)
from .types import CanvasState, ConnectionStyle, DiagramConnection, DiagramNode, NodeStyle
from .viewport import ViewportMixin

logger = logging.getLogger(__name__)


class CanvasModel(
    AutosaveMixin,
    GenerationMixin,
    InteractionMixin,
    ViewportMixin,
    QAbstractListModel,
):
    """Qt model exposing canvas nodes to QML, with connections as a property."""

    IdRole = Qt.UserRole + 1
    XRole = Qt.UserRole + 2
    YRole = Qt.UserRole + 3
    WidthRole = Qt.UserRole + 4
    HeightRole = Qt.UserRole + 5
    TextRole = Qt.UserRole + 6
    ShapeRole = Qt.UserRole + 7
    BackgroundColorRole = Qt.UserRole + 8
    BorderColorRole = Qt.UserRole + 9
    BorderWidthRole = Qt.UserRole + 10
    BorderRadiusRole = Qt.UserRole + 11
    TextColorRole = Qt.UserRole + 12
    SkewRole = Qt.UserRole + 13
    OpacityRole = Qt.UserRole + 14
    SelectedRole = Qt.UserRole + 15

    APPEARANCE_ROLES = [
        BackgroundColorRole,
        BorderColorRole,
        BorderWidthRole,
        BorderRadiusRole,
        TextColorRole,
        SkewRole,
        OpacityRole,
    ]

    nodesChanged = Signal()
    connectionsChanged = Signal()
    canvasSizeChanged = Signal()
    viewportChanged = Signal()
    selectionChanged = Signal()
    interactionChanged = Signal()
    darkModeChanged = Signal()
    generatingChanged = Signal()
    saveStateChanged = Signal()
    saveCompleted = Signal()
    saveFailed = Signal(str)
    generationFailed = Signal(str)
    diagramGenerated = Signal(str)
    errorOccurred = Signal(str)

    def __init__(
        self,
        store: Optional[CanvasStore] = None,
        generator: Optional[DiagramGenerator] = None,
        autosave_delay_ms: int = AUTOSAVE_DELAY_MS,
        dark_mode: bool = False,
    ):
        super().__init__()
        self._nodes: List[DiagramNode] = []
        self._connections: List[DiagramConnection] = []
        self._version = CANVAS_STATE_VERSION
        self._canvas_width: Optional[float] = None
        self._canvas_height: Optional[float] = None
        self._dark_mode = dark_mode
        self._id_source = count(1)

        # Initialize mixins
        self._init_viewport()
        self._init_interaction()
        self._init_autosave(store, autosave_delay_ms)
        self._init_generation(generator)

        self._selected_row_hint = -1
        self.selectionChanged.connect(self._on_selection_changed)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._id_source)}"

    def _resume_ids_after(self, ids: List[str]) -> None:
        """Continue the id counter past every ``prefix_<n>`` id in ``ids``."""
        highest = 0
        for element_id in ids:
            parts = element_id.rsplit("_", 1)
            if len(parts) == 2 and parts[1].isascii() and parts[1].isdigit():
                highest = max(highest, int(parts[1]))
        current = next(self._id_source)
        self._id_source = count(max(current, highest + 1))

    def _row_of(self, node_id: str) -> int:
        for row, node in enumerate(self._nodes):
            if node.id == node_id:
                return row
        return -1

    def _emit_row_changed(self, row: int, roles: List[int]) -> None:
        index = self.index(row, 0)
        self.dataChanged.emit(index, index, roles)

    # --- Qt model overrides -------------------------------------------------
    def rowCount(self, parent: QModelIndex | None = QModelIndex()) -> int:  # type: ignore[override]
        return len(self._nodes)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):  # type: ignore[override]
        if not index.isValid() or not (0 <= index.row() < len(self._nodes)):
            return None

        node = self._nodes[index.row()]
        if role == self.IdRole:
            return node.id
        if role == self.XRole:
            return node.x
        if role == self.YRole:
            return node.y
        if role == self.WidthRole:
            return node.width
        if role == self.HeightRole:
            return node.height
        if role in (self.TextRole, Qt.DisplayRole):
            return node.text
        if role == self.ShapeRole:
            return node.shape.value
        if role == self.SelectedRole:
            return node.id == self._selected_id

        appearance = resolve_node_appearance(node, self._dark_mode)
        if role == self.BackgroundColorRole:
            return appearance.background_color
        if role == self.BorderColorRole:
            return appearance.border_color
        if role == self.BorderWidthRole:
            return appearance.border_width
        if role == self.BorderRadiusRole:
            return appearance.border_radius
        if role == self.TextColorRole:
            return appearance.text_color
        if role == self.SkewRole:
            return appearance.skew_x
        if role == self.OpacityRole:
            return appearance.opacity
        return None

    def roleNames(self) -> Dict[int, bytes]:  # type: ignore[override]
        return {
            self.IdRole: b"nodeId",
            self.XRole: b"x",
            self.YRole: b"y",
            self.WidthRole: b"width",
            self.HeightRole: b"height",
            self.TextRole: b"text",
            self.ShapeRole: b"shape",
            self.BackgroundColorRole: b"backgroundColor",
            self.BorderColorRole: b"borderColor",
            self.BorderWidthRole: b"borderWidth",
            self.BorderRadiusRole: b"borderRadius",
            self.TextColorRole: b"textColor",
            self.SkewRole: b"skewX",
            self.OpacityRole: b"nodeOpacity",
            self.SelectedRole: b"selected",
        }

    # --- Properties exposed to QML -----------------------------------------
    @Property(int, notify=nodesChanged)
    def count(self) -> int:
        return len(self._nodes)

    @Property(list, notify=connectionsChanged)
    def connections(self) -> List[Dict[str, Any]]:
        """Connections with their painted geometry, in paint order."""
        result = []
        for conn in self._connections:
            source = self.getNode(conn.source_id)
            target = self.getNode(conn.target_id)
            if source is None or target is None:
                continue
            path = compute_connector_path(source, target, conn.style)
            appearance = resolve_connection_appearance(conn.style, self._dark_mode)
            label_x, label_y, label_w, label_h = path.label_rect
            result.append({
                "id": conn.id,
                "sourceId": conn.source_id,
                "targetId": conn.target_id,
                "label": conn.label,
                "path": path.svg_path,
                "labelX": label_x,
                "labelY": label_y,
                "labelWidth": label_w,
                "labelHeight": label_h,
                "strokeColor": appearance.stroke_color,
                "strokeWidth": appearance.stroke_width,
                "strokeDasharray": appearance.stroke_dasharray,
                "arrowPath": arrow_marker(appearance.arrow_type, appearance.arrow_size).path,
                "arrowSize": appearance.arrow_size,
                "labelBackgroundColor": appearance.label_background_color,
                "labelTextColor": appearance.label_text_color,
                "labelFontSize": appearance.label_font_size,
            })
        return result

    @Property(float, notify=canvasSizeChanged)
    def canvasWidth(self) -> float:
        return self._canvas_width or 0.0

    @Property(float, notify=canvasSizeChanged)
    def canvasHeight(self) -> float:
        return self._canvas_height or 0.0

    @Property(float, notify=viewportChanged)
    def scale(self) -> float:
        return self._scale

    @Property(float, notify=viewportChanged)
    def viewX(self) -> float:
        return self._view_x

    @Property(float, notify=viewportChanged)
    def viewY(self) -> float:
        return self._view_y

    @Property(str, notify=selectionChanged)
    def selectedId(self) -> str:
        return self._selected_id

    @Property(str, notify=interactionChanged)
    def gesture(self) -> str:
        return self._gesture.value

    @Property(bool, notify=interactionChanged)
    def isDrawingConnection(self) -> bool:
        return self._gesture is Gesture.CONNECT

    @Property(str, notify=interactionChanged)
    def previewPath(self) -> str:
        return self._preview_path()

    @Property(str, notify=interactionChanged)
    def hoverTargetId(self) -> str:
        return self._hover_target_id

    @Property(bool, notify=generatingChanged)
    def isGenerating(self) -> bool:
        return self._is_generating

    @Property(bool, notify=saveStateChanged)
    def isDirty(self) -> bool:
        return self._dirty

    @Property(bool, notify=saveStateChanged)
    def isSaving(self) -> bool:
        return self._save_in_flight

    @Property(bool, notify=darkModeChanged)
    def darkMode(self) -> bool:
        return self._dark_mode

    @darkMode.setter  # type: ignore[no-redef]
    def darkMode(self, value: bool) -> None:
        self._set_dark_mode(value)

    def _set_dark_mode(self, value: bool) -> None:
        if self._dark_mode == value:
            return
        self._dark_mode = value
        if self._nodes:
            self.dataChanged.emit(self.index(0, 0), self.index(len(self._nodes) - 1, 0), self.APPEARANCE_ROLES)
        self.darkModeChanged.emit()
        self.connectionsChanged.emit()

    @Slot(bool)
    def setDarkMode(self, enabled: bool) -> None:
        self._set_dark_mode(enabled)

    def _on_selection_changed(self) -> None:
        if self._selected_row_hint >= 0 and self._selected_row_hint < len(self._nodes):
            self._emit_row_changed(self._selected_row_hint, [self.SelectedRole])
        self._selected_row_hint = self._row_of(self._selected_id)
        if self._selected_row_hint >= 0:
            self._emit_row_changed(self._selected_row_hint, [self.SelectedRole])

    def _set_canvas_size(self, width: Optional[float], height: Optional[float]) -> None:
        if (width, height) == (self._canvas_width, self._canvas_height):
            return
        self._canvas_width = width
        self._canvas_height = height
        self.canvasSizeChanged.emit()

    # --- Node management ----------------------------------------------------
    def add_node(
        self,
        x: float,
        y: float,
        text: str = DEFAULT_NODE_TEXT,
        style: Optional[NodeStyle] = None,
        append_at_origin: bool = True,
    ) -> DiagramNode:
        """Insert a node with a fresh id.

        The first node on an empty canvas is centred in the viewport whatever
        the requested position. On a non-empty canvas, (0, 0) means "no
        position requested" and places the node below the lowest one, unless
        ``append_at_origin`` is False and (0, 0) is meant literally.
        """
        node = DiagramNode(
            id=self._next_id("node"),
            x=x,
            y=y,
            text=text or DEFAULT_NODE_TEXT,
            style=style if style is not None else default_node_style(self._dark_mode),
        )
        if not self._nodes and not self._connections:
            node.x = (self._viewport_width / 2 - node.width / 2) / self._scale - self._view_x
            node.y = (self._viewport_height / 3 - node.height / 2) / self._scale - self._view_y
        elif append_at_origin and x == 0 and y == 0 and self._nodes:
            lowest = max(self._nodes, key=lambda n: n.y + n.height)
            node.x = lowest.x
            node.y = lowest.y + lowest.height + APPEND_NODE_SPACING

        self.beginInsertRows(QModelIndex(), len(self._nodes), len(self._nodes))
        self._nodes.append(node)
        self.endInsertRows()
        self.nodesChanged.emit()
        self._mark_dirty()
        return node

    @Slot(float, float, str, result=str)
    def addNode(self, x: float, y: float, text: str = "") -> str:
        return self.add_node(x, y, text or DEFAULT_NODE_TEXT).id

    @Slot(str, result=str)
    def addNodeAtCenter(self, text: str = "") -> str:
        """Add a node centred on the visible part of the canvas."""
        if not self._nodes and not self._connections:
            return self.addNode(0.0, 0.0, text)
        center = self.viewport_center_world()
        x = center.x - DEFAULT_NODE_WIDTH / 2
        y = center.y - DEFAULT_NODE_HEIGHT / 2
        return self.add_node(x, y, text or DEFAULT_NODE_TEXT).id

    @Slot(float, float, result=str)
    def addNodeAtPointer(self, screen_x: float, screen_y: float) -> str:
        """Add a node whose top-left corner sits under a screen position."""
        world = self.screen_to_world(screen_x, screen_y)
        return self.add_node(world.x, world.y, DEFAULT_NODE_TEXT, append_at_origin=False).id

    def getNode(self, node_id: str) -> Optional[DiagramNode]:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    @Slot(str, result="QVariant")
    def getNodeSnapshot(self, node_id: str) -> Dict[str, Any]:
        node = self.getNode(node_id)
        if not node:
            return {}
        return node.to_dict()

    @Slot(str, float, float)
    def moveNode(self, node_id: str, x: float, y: float) -> None:
        row = self._row_of(node_id)
        if row < 0:
            return
        node = self._nodes[row]
        if node.x == x and node.y == y:
            return
        node.x = float(x)
        node.y = float(y)
        self._emit_row_changed(row, [self.XRole, self.YRole])
        self.nodesChanged.emit()
        if any(conn.source_id == node_id or conn.target_id == node_id for conn in self._connections):
            self.connectionsChanged.emit()
        self._mark_dirty()

    @Slot(str, str)
    def setNodeText(self, node_id: str, text: str) -> None:
        row = self._row_of(node_id)
        if row < 0:
            return
        node = self._nodes[row]
        if node.text == text:
            return
        node.text = text
        self._emit_row_changed(row, [self.TextRole])
        self.nodesChanged.emit()
        self._mark_dirty()

    @Slot(str)
    def removeNode(self, node_id: str) -> None:
        """Remove a node and every connection touching it."""
        row = self._row_of(node_id)
        if row < 0:
            return
        filtered = [c for c in self._connections if c.source_id != node_id and c.target_id != node_id]
        if len(filtered) != len(self._connections):
            self._connections = filtered
            self.connectionsChanged.emit()

        self.beginRemoveRows(QModelIndex(), row, row)
        self._nodes.pop(row)
        self.endRemoveRows()
        self.nodesChanged.emit()

        if self._selected_id == node_id:
            self._selected_row_hint = -1
            self._set_selected("")
        if self._connection_source_id == node_id:
            self._reset_connection_state()
        self._mark_dirty()

    # --- Connection management ----------------------------------------------
    def add_connection(
        self,
        source_id: str,
        target_id: str,
        label: str = "",
        style: Optional[ConnectionStyle] = None,
    ) -> DiagramConnection:
        """Create a connection; raises DanglingReferenceError for unknown endpoints."""
        conn_id = self._next_id("conn")
        for endpoint in (source_id, target_id):
            if self.getNode(endpoint) is None:
                raise DanglingReferenceError(conn_id, endpoint)
        conn = DiagramConnection(
            id=conn_id,
            source_id=source_id,
            target_id=target_id,
            label=label,
            style=style if style is not None else drawn_connection_style(self._dark_mode),
        )
        self._connections.append(conn)
        self.connectionsChanged.emit()
        self._mark_dirty()
        return conn

    @Slot(str, str, str, result=str)
    def connectNodes(self, source_id: str, target_id: str, label: str = "") -> str:
        if not source_id or not target_id or source_id == target_id:
            return ""
        try:
            return self.add_connection(source_id, target_id, label).id
        except DanglingReferenceError as exc:
            logger.warning("%s", exc)
            return ""

    def getConnection(self, connection_id: str) -> Optional[DiagramConnection]:
        for conn in self._connections:
            if conn.id == connection_id:
                return conn
        return None

    def connections_snapshot(self) -> List[DiagramConnection]:
        return list(self._connections)

    @Slot(str)
    def removeConnection(self, connection_id: str) -> None:
        for idx, conn in enumerate(self._connections):
            if conn.id == connection_id:
                self._connections.pop(idx)
                self.connectionsChanged.emit()
                self._mark_dirty()
                return

    @Slot(str, str)
    def setConnectionLabel(self, connection_id: str, label: str) -> None:
        conn = self.getConnection(connection_id)
        if conn is None or conn.label == label:
            return
        conn.label = label
        self.connectionsChanged.emit()
        self._mark_dirty()

    @Slot()
    def clearCanvas(self) -> None:
        if not self._nodes and not self._connections:
            return
        self.replace_state(CanvasState())

    # --- Whole-state access -------------------------------------------------
    def getState(self) -> CanvasState:
        """Snapshot of the canvas; nodes paint above connections."""
        state = CanvasState(
            elements=[*self._connections, *self._nodes],
            version=self._version,
            canvas_width=self._canvas_width,
            canvas_height=self._canvas_height,
        )
        return state.copy()

    def _adopt(self, state: CanvasState) -> None:
        state = state.copy()
        self.beginResetModel()
        self._nodes = state.nodes()
        self._connections = state.connections()
        self._version = state.version
        self.endResetModel()

        self._resume_ids_after([el.id for el in state.elements])
        self._set_canvas_size(state.canvas_width, state.canvas_height)
        self._selected_row_hint = -1
        self._set_selected("")
        self._reset_connection_state()
        self._set_gesture(Gesture.NONE)
        self.nodesChanged.emit()
        self.connectionsChanged.emit()

    def replace_state(self, state: CanvasState) -> None:
        """Adopt ``state`` wholesale and schedule a save.

        Raises DanglingReferenceError if a connection names a missing node.
        """
        state.validate()
        self._adopt(state)
        self._mark_dirty()

    @Slot(result=str)
    def serializedState(self) -> str:
        return self.getState().to_json()

    @Slot(str, result=bool)
    def loadSerializedState(self, payload: str) -> bool:
        """Load a persisted snapshot without scheduling a save.

        Unparseable input leaves an empty canvas; connections that point at
        missing nodes are dropped.
        """
        try:
            state = CanvasState.from_json(payload) if payload.strip() else CanvasState()
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable canvas snapshot: %s", exc)
            self._adopt(CanvasState())
            return False

        dangling = {id(conn) for conn, _ in state.iter_dangling()}
        if dangling:
            logger.warning("Dropping %d connections with missing endpoints", len(dangling))
            state.elements = [el for el in state.elements if id(el) not in dangling]
        self._adopt(state)
        self._set_dirty(False)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return self.getState().to_dict()

    def from_dict(self, data: Dict[str, Any]) -> None:
        try:
            state = CanvasState.from_dict(data)
        except (ValueError, TypeError) as exc:
            raise CanvasError(f"Invalid canvas data: {exc}") from exc
        self.replace_state(state)

    # --- Image export ---------------------------------------------------------
    def render_image(self, width: int = 0, height: int = 0) -> QImage:
        """Paint the canvas as the view currently shows it.

        The image defaults to the viewport size.
        """
        width = max(1, int(width or self._viewport_width))
        height = max(1, int(height or self._viewport_height))
        image = QImage(width, height, QImage.Format_ARGB32)
        preview = None
        if self._gesture is Gesture.CONNECT:
            preview = (self._connection_start, self._connection_end)

        painter = QPainter(image)
        try:
            paint_canvas(
                painter,
                self._nodes,
                self._connections,
                self._dark_mode,
                self._scale,
                self._view_x,
                self._view_y,
                selected_id=self._selected_id,
                preview=preview,
            )
        finally:
            painter.end()
        return image

    @Slot(str, result=bool)
    def exportImage(self, path: str) -> bool:
        """Write the visible canvas to an image file; the format follows the suffix."""
        if not path:
            return False
        if not self.render_image().save(path):
            message = f"Failed to write canvas image to {path}"
            logger.error(message)
            self.errorOccurred.emit(message)
            return False
        return True
