"""AI diagram generation mixin for CanvasModel.

A generator collaborator receives the prompt and the current snapshot and
later reports back with the raw AI response. The response is normalized,
laid out and adopted as the new canvas in one full replacement. Only one
generation may be in flight per canvas.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol, TYPE_CHECKING

from PySide6.QtCore import Slot

from .constants import DEFAULT_LAYOUT_WIDTH
from .errors import GenerationInProgressError
from .layout import LayoutResult, compute_layout
from .normalizer import NormalizedDiagram, normalize_response
from .renderer import classify_shape, generated_connection_style, node_style
from .types import CanvasState, DiagramConnection, DiagramElement, DiagramNode, NodeShape, Point

if TYPE_CHECKING:
    from .model import CanvasModel

logger = logging.getLogger(__name__)

GenerationCallback = Callable[[Any, Optional[str]], None]


class DiagramGenerator(Protocol):
    """AI service collaborator.

    ``request_diagram`` must eventually call ``done(response, None)`` with
    the raw response, or ``done(None, message)`` on failure.
    """

    def request_diagram(self, prompt: str, current_state: str, done: GenerationCallback) -> None:
        ...


def build_canvas_state(
    diagram: NormalizedDiagram,
    layout: LayoutResult,
    dark_mode: bool,
    next_id: Callable[[str], str],
) -> CanvasState:
    """Turn a normalized, laid out diagram into canvas elements.

    Node and connection ids come from ``next_id`` so they never clash with
    ids already issued on the canvas.
    """
    elements: List[DiagramElement] = []
    id_map = {}
    for node in diagram.nodes:
        position = layout.positions.get(node.id, Point(100.0, 100.0))
        element_id = next_id("node")
        id_map[node.id] = element_id
        elements.append(DiagramNode(
            id=element_id,
            x=position.x,
            y=position.y,
            text=node.text,
            shape=classify_shape(node.type),
            style=node_style(node.type, dark_mode),
        ))

    for conn in diagram.connections:
        source_id = id_map.get(conn.source_id)
        target_id = id_map.get(conn.target_id)
        if source_id is None or target_id is None:
            logger.warning("Could not create connection %s: missing node", conn.id)
            continue
        elements.append(DiagramConnection(
            id=next_id("conn"),
            source_id=source_id,
            target_id=target_id,
            label=conn.label,
            style=generated_connection_style(dark_mode),
        ))

    return CanvasState(
        elements=elements,
        canvas_width=layout.canvas_width,
        canvas_height=layout.canvas_height,
    )


def describe_result(diagram: NormalizedDiagram) -> str:
    """Chat message summarizing an adopted diagram."""
    if diagram.is_error_recovery:
        message = "Something went wrong while processing the diagram, so a basic flowchart was created instead."
    elif diagram.is_fallback:
        message = "I couldn't find a diagram in the response, so a basic flowchart was created instead."
    else:
        message = (
            f"I've created a diagram with {len(diagram.nodes)} nodes and "
            f"{len(diagram.connections)} connections. You can now interact with it."
        )
    if diagram.explanation:
        message += "\n\n" + diagram.explanation
    return message


class GenerationMixin:
    """Mixin providing the generate -> normalize -> layout -> replace pipeline.

    Note: the isGenerating property is defined in CanvasModel since it needs
    access to signals defined there.
    """

    # Attributes expected from CanvasModel
    _generator: Optional[DiagramGenerator]
    _is_generating: bool
    _dark_mode: bool
    _nodes: List[DiagramNode]
    _viewport_width: float
    _scale: float
    _next_id: Callable[[str], str]
    replace_state: Callable[[CanvasState], None]
    moveNode: Callable[[str, float, float], None]
    serializedState: Callable[[], str]

    def _init_generation(self, generator: Optional[DiagramGenerator]) -> None:
        """Initialize generation state. Call from CanvasModel.__init__."""
        self._generator = generator
        self._is_generating = False

    def _set_generating(self, generating: bool) -> None:
        if self._is_generating == generating:
            return
        self._is_generating = generating
        self.generatingChanged.emit()

    def _layout_width(self) -> float:
        return self._viewport_width if self._viewport_width > 0 else DEFAULT_LAYOUT_WIDTH

    def begin_generation(self) -> None:
        """Claim the generation slot or raise GenerationInProgressError."""
        if self._is_generating:
            raise GenerationInProgressError("A diagram is already being generated for this canvas")
        self._set_generating(True)

    def end_generation(self) -> None:
        self._set_generating(False)

    @Slot(str, result=bool)
    def generateDiagram(self, prompt: str) -> bool:
        """Ask the generator for a diagram. Returns False if nothing was started."""
        prompt = prompt.strip()
        if not prompt:
            return False
        if self._generator is None:
            self.errorOccurred.emit("No diagram generator configured")
            return False
        try:
            self.begin_generation()
        except GenerationInProgressError as exc:
            logger.info("%s", exc)
            return False

        try:
            self._generator.request_diagram(prompt, self.serializedState(), self._on_generation_finished)
        except Exception as exc:
            logger.exception("Diagram generator raised")
            self._on_generation_finished(None, str(exc) or type(exc).__name__)
        return True

    def _on_generation_finished(self, response: Any, error: Optional[str]) -> None:
        if not self._is_generating:
            return
        self.end_generation()
        if error:
            logger.error("Diagram generation failed: %s", error)
            self.generationFailed.emit(error)
            self.errorOccurred.emit(error)
            return
        self.apply_generated_response(response)

    def apply_generated_response(self, response: Any) -> NormalizedDiagram:
        """Normalize ``response``, lay it out and adopt it as the canvas."""
        diagram = normalize_response(response)
        layout = compute_layout(diagram.nodes, diagram.connections, self._layout_width())
        state = build_canvas_state(diagram, layout, self._dark_mode, self._next_id)
        self.replace_state(state)
        logger.info(
            "Adopted generated diagram with %d nodes and %d connections",
            len(diagram.nodes), len(diagram.connections),
        )
        self.diagramGenerated.emit(describe_result(diagram))
        return diagram

    @Slot(str, result=bool)
    def applyGeneratedJson(self, response_text: str) -> bool:
        """Adopt a raw response string. Returns False when it fell back."""
        return not self.apply_generated_response(response_text).is_fallback

    @Slot()
    def autoLayout(self) -> None:
        """Re-run the tree layout over the nodes currently on the canvas."""
        if not self._nodes:
            return
        nodes = [
            {"id": node.id, "type": "decision" if node.shape is NodeShape.DIAMOND else ""}
            for node in self._nodes
        ]
        layout = compute_layout(nodes, self.connections_snapshot(), self._layout_width())
        for node in list(self._nodes):
            position = layout.positions.get(node.id)
            if position is not None:
                self.moveNode(node.id, position.x, position.y)
        self._set_canvas_size(layout.canvas_width, layout.canvas_height)
