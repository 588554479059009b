"""Pointer interaction mixin for CanvasModel.

This module turns press/move/release events into selection, node dragging,
canvas panning and connection drawing.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING

from PySide6.QtCore import Slot

from .constants import HANDLE_HIT_RADIUS
from .renderer import node_handles, preview_path
from .types import DiagramNode, Point

if TYPE_CHECKING:
    from .model import CanvasModel


class Gesture(Enum):
    NONE = "none"
    DRAG_NODE = "drag-node"
    PAN = "pan"
    CONNECT = "connect"


class InteractionMixin:
    """Mixin providing pointer-driven editing.

    Note: Properties (selectedId, gesture, previewPath, hoverTargetId) are
    defined in CanvasModel since they need access to signals defined there.
    """

    # Attributes expected from CanvasModel
    _nodes: List[DiagramNode]
    _selected_id: str
    _gesture: Gesture
    _drag_offset: Point
    _connection_source_id: str
    _connection_start: Point
    _connection_end: Point
    _hover_target_id: str
    getNode: Callable[[str], Optional[DiagramNode]]
    moveNode: Callable[[str, float, float], None]
    connectNodes: Callable[[str, str, str], str]
    screen_to_world: Callable[[float, float], Point]

    def _init_interaction(self) -> None:
        """Initialize interaction state. Call from CanvasModel.__init__."""
        self._selected_id = ""
        self._gesture = Gesture.NONE
        self._drag_offset = Point(0.0, 0.0)
        self._connection_source_id = ""
        self._connection_start = Point(0.0, 0.0)
        self._connection_end = Point(0.0, 0.0)
        self._hover_target_id = ""

    # --- Hit testing --------------------------------------------------------
    def node_at(self, x: float, y: float, margin: float = 0.0, exclude: str = "") -> Optional[DiagramNode]:
        """Topmost node containing the world point (x, y)."""
        for node in reversed(self._nodes):
            if node.id != exclude and node.contains(x, y, margin):
                return node
        return None

    def handle_at(self, x: float, y: float) -> Optional[Tuple[DiagramNode, str, Point]]:
        """Connection handle under the world point, as (node, handle name, position)."""
        for node in reversed(self._nodes):
            for name, point in node_handles(node).items():
                if abs(point.x - x) <= HANDLE_HIT_RADIUS and abs(point.y - y) <= HANDLE_HIT_RADIUS:
                    return node, name, point
        return None

    @Slot(float, float, result=str)
    def nodeIdAt(self, x: float, y: float) -> str:
        node = self.node_at(x, y)
        return node.id if node else ""

    # --- Selection ----------------------------------------------------------
    def _set_selected(self, node_id: str) -> None:
        if self._selected_id == node_id:
            return
        self._selected_id = node_id
        self.selectionChanged.emit()

    @Slot(str)
    def selectNode(self, node_id: str) -> None:
        self._set_selected(node_id if self.getNode(node_id) else "")

    @Slot()
    def clearSelection(self) -> None:
        self._set_selected("")

    def _set_gesture(self, gesture: Gesture) -> None:
        if self._gesture is gesture:
            return
        self._gesture = gesture
        self.interactionChanged.emit()

    # --- Connection drawing -------------------------------------------------
    @Slot(str, str, result=bool)
    def startConnection(self, node_id: str, handle: str) -> bool:
        """Begin drawing a connection from one of a node's handles."""
        node = self.getNode(node_id)
        if node is None:
            return False
        point = node_handles(node).get(handle)
        if point is None:
            return False
        self._connection_source_id = node.id
        self._connection_start = point
        self._connection_end = point
        self._hover_target_id = ""
        self._set_gesture(Gesture.CONNECT)
        self.interactionChanged.emit()
        return True

    @Slot(float, float)
    def updateConnectionDrag(self, x: float, y: float) -> None:
        """Move the loose end to the world point, snapping to a hovered node's top."""
        if self._gesture is not Gesture.CONNECT:
            return
        target = self.node_at(x, y, exclude=self._connection_source_id)
        if target is not None:
            self._connection_end = node_handles(target)["top"]
            self._hover_target_id = target.id
        else:
            self._connection_end = Point(x, y)
            self._hover_target_id = ""
        self.interactionChanged.emit()

    @Slot(result=str)
    def finishConnection(self) -> str:
        """Commit the drawn connection if it ends on a node; discard it otherwise."""
        if self._gesture is not Gesture.CONNECT:
            return ""
        source_id, target_id = self._connection_source_id, self._hover_target_id
        self._reset_connection_state()
        if not target_id:
            return ""
        return self.connectNodes(source_id, target_id, "")

    @Slot()
    def cancelConnection(self) -> None:
        if self._gesture is Gesture.CONNECT:
            self._reset_connection_state()

    def _reset_connection_state(self) -> None:
        self._connection_source_id = ""
        self._connection_start = Point(0.0, 0.0)
        self._connection_end = Point(0.0, 0.0)
        self._hover_target_id = ""
        self._set_gesture(Gesture.NONE)
        self.interactionChanged.emit()

    def _preview_path(self) -> str:
        if self._gesture is not Gesture.CONNECT:
            return ""
        return preview_path(self._connection_start, self._connection_end)

    # --- Pointer events -----------------------------------------------------
    @Slot(float, float, int, result=bool)
    def pointerPressed(self, screen_x: float, screen_y: float, button: int = 0) -> bool:
        """Start a gesture. Only the primary button (0) is handled."""
        if button != 0:
            return False
        world = self.screen_to_world(screen_x, screen_y)

        hit = self.handle_at(world.x, world.y)
        if hit is not None:
            node, handle, _ = hit
            return self.startConnection(node.id, handle)

        node = self.node_at(world.x, world.y)
        if node is not None:
            self._set_selected(node.id)
            self._drag_offset = Point(world.x - node.x, world.y - node.y)
            self._set_gesture(Gesture.DRAG_NODE)
            return True

        self._set_selected("")
        self._begin_pan(screen_x, screen_y)
        self._set_gesture(Gesture.PAN)
        return True

    @Slot(float, float)
    def pointerMoved(self, screen_x: float, screen_y: float) -> None:
        if self._gesture is Gesture.DRAG_NODE and self._selected_id:
            world = self.screen_to_world(screen_x, screen_y)
            self.moveNode(self._selected_id, world.x - self._drag_offset.x, world.y - self._drag_offset.y)
        elif self._gesture is Gesture.PAN:
            self._pan_to(screen_x, screen_y)
        elif self._gesture is Gesture.CONNECT:
            world = self.screen_to_world(screen_x, screen_y)
            self.updateConnectionDrag(world.x, world.y)

    @Slot(float, float, result=str)
    def pointerReleased(self, screen_x: float, screen_y: float) -> str:
        """End the current gesture. Returns the id of a newly drawn connection, if any."""
        if self._gesture is Gesture.CONNECT:
            world = self.screen_to_world(screen_x, screen_y)
            self.updateConnectionDrag(world.x, world.y)
            return self.finishConnection()
        self._set_gesture(Gesture.NONE)
        return ""

    @Slot()
    def pointerLeft(self) -> None:
        """Pointer left the canvas: drags keep their last position, draws are dropped."""
        if self._gesture is Gesture.CONNECT:
            self._reset_connection_state()
        else:
            self._set_gesture(Gesture.NONE)
