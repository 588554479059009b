"""Pan/zoom mixin for CanvasModel.

Three coordinate spaces are kept apart:

* screen: raw pointer positions as delivered by the view,
* viewport-local: screen minus the canvas origin,
* world: viewport-local divided by scale, minus the pan offset.

Elements always live in world space. The view renders them through one
transform, ``screen = (world + view) * scale + origin``.
"""

from __future__ import annotations

from typing import Any, Dict, TYPE_CHECKING

from PySide6.QtCore import Slot

from .constants import MAX_SCALE, MIN_SCALE, ZOOM_SPEED
from .types import Point

if TYPE_CHECKING:
    from .model import CanvasModel

DEFAULT_VIEWPORT_WIDTH = 1200.0
DEFAULT_VIEWPORT_HEIGHT = 800.0


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


class ViewportMixin:
    """Mixin holding scale, pan offset and viewport geometry.

    Note: Properties (scale, viewX, viewY) are defined in CanvasModel since
    they need access to signals defined there.
    """

    # Attributes expected from CanvasModel
    _scale: float
    _view_x: float
    _view_y: float
    _origin_x: float
    _origin_y: float
    _viewport_width: float
    _viewport_height: float
    _pan_start_view: Point
    _pan_start_mouse: Point

    def _init_viewport(self) -> None:
        """Initialize viewport state. Call from CanvasModel.__init__."""
        self._scale = 1.0
        self._view_x = 0.0
        self._view_y = 0.0
        self._origin_x = 0.0
        self._origin_y = 0.0
        self._viewport_width = DEFAULT_VIEWPORT_WIDTH
        self._viewport_height = DEFAULT_VIEWPORT_HEIGHT
        self._pan_start_view = Point(0.0, 0.0)
        self._pan_start_mouse = Point(0.0, 0.0)

    def _set_view(self, scale: float, view_x: float, view_y: float) -> None:
        if (scale, view_x, view_y) == (self._scale, self._view_x, self._view_y):
            return
        self._scale = scale
        self._view_x = view_x
        self._view_y = view_y
        self.viewportChanged.emit()

    @Slot(float, float, float, float)
    def setViewportGeometry(self, origin_x: float, origin_y: float, width: float, height: float) -> None:
        """Record where the canvas sits on screen and how big it is."""
        self._origin_x = origin_x
        self._origin_y = origin_y
        self._viewport_width = max(0.0, width)
        self._viewport_height = max(0.0, height)
        self.viewportChanged.emit()

    # --- Coordinate transforms ---------------------------------------------
    def screen_to_local(self, screen_x: float, screen_y: float) -> Point:
        return Point(screen_x - self._origin_x, screen_y - self._origin_y)

    def local_to_world(self, local_x: float, local_y: float) -> Point:
        return Point(local_x / self._scale - self._view_x, local_y / self._scale - self._view_y)

    def screen_to_world(self, screen_x: float, screen_y: float) -> Point:
        local = self.screen_to_local(screen_x, screen_y)
        return self.local_to_world(local.x, local.y)

    def world_to_screen(self, world_x: float, world_y: float) -> Point:
        return Point(
            (world_x + self._view_x) * self._scale + self._origin_x,
            (world_y + self._view_y) * self._scale + self._origin_y,
        )

    @Slot(float, float, result="QVariant")
    def mapToWorld(self, screen_x: float, screen_y: float) -> Dict[str, Any]:
        point = self.screen_to_world(screen_x, screen_y)
        return {"x": point.x, "y": point.y}

    @Slot(float, float, result="QVariant")
    def mapToScreen(self, world_x: float, world_y: float) -> Dict[str, Any]:
        point = self.world_to_screen(world_x, world_y)
        return {"x": point.x, "y": point.y}

    def viewport_center_world(self) -> Point:
        return self.local_to_world(self._viewport_width / 2, self._viewport_height / 2)

    # --- Zoom ---------------------------------------------------------------
    @Slot(float, float, float)
    def zoomAtPointer(self, screen_x: float, screen_y: float, steps: float) -> None:
        """Zoom by ``steps`` notches keeping the world point under the cursor fixed.

        Each notch multiplies the scale by ``1 + ZOOM_SPEED``; negative steps
        zoom out. The result is clamped to [MIN_SCALE, MAX_SCALE].
        """
        if steps == 0:
            return
        local = self.screen_to_local(screen_x, screen_y)
        world = self.local_to_world(local.x, local.y)
        new_scale = clamp_scale(self._scale * (1.0 + ZOOM_SPEED) ** steps)
        self._set_view(new_scale, local.x / new_scale - world.x, local.y / new_scale - world.y)

    @Slot(float, float, float)
    def wheelZoom(self, screen_x: float, screen_y: float, angle_delta: float) -> None:
        """Handle a wheel event: positive delta (wheel away) zooms in one notch."""
        if angle_delta > 0:
            self.zoomAtPointer(screen_x, screen_y, 1.0)
        elif angle_delta < 0:
            self.zoomAtPointer(screen_x, screen_y, -1.0)

    @Slot()
    def zoomIn(self) -> None:
        self.zoomAtPointer(self._origin_x + self._viewport_width / 2, self._origin_y + self._viewport_height / 2, 1.0)

    @Slot()
    def zoomOut(self) -> None:
        self.zoomAtPointer(self._origin_x + self._viewport_width / 2, self._origin_y + self._viewport_height / 2, -1.0)

    @Slot()
    def resetView(self) -> None:
        self._set_view(1.0, 0.0, 0.0)

    # --- Pan ----------------------------------------------------------------
    def _begin_pan(self, screen_x: float, screen_y: float) -> None:
        self._pan_start_view = Point(self._view_x, self._view_y)
        self._pan_start_mouse = Point(screen_x, screen_y)

    def _pan_to(self, screen_x: float, screen_y: float) -> None:
        """Move the view so the content follows the pointer."""
        self._set_view(
            self._scale,
            self._pan_start_view.x - (self._pan_start_mouse.x - screen_x) / self._scale,
            self._pan_start_view.y - (self._pan_start_mouse.y - screen_y) / self._scale,
        )

    @Slot(float, float)
    def panBy(self, screen_dx: float, screen_dy: float) -> None:
        """Pan by a distance measured in screen pixels."""
        self._set_view(self._scale, self._view_x + screen_dx / self._scale, self._view_y + screen_dy / self._scale)
