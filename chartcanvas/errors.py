"""Exception taxonomy for chartcanvas.

Geometry and normalization problems are recovered locally with a
deterministic fallback; only persistence and generation failures reach the
caller.
"""

from __future__ import annotations


class CanvasError(Exception):
    """Base class for chartcanvas errors."""


class MalformedResponseError(CanvasError):
    """AI output could not be parsed into a recognizable diagram."""


class DanglingReferenceError(CanvasError):
    """A connection names a node that is not on the canvas."""

    def __init__(self, connection_id: str, node_id: str):
        super().__init__(f"Connection {connection_id!r} references unknown node {node_id!r}")
        self.connection_id = connection_id
        self.node_id = node_id


class PersistenceError(CanvasError):
    """The external store rejected or failed a save."""


class GenerationInProgressError(CanvasError):
    """A diagram generation is already running for this canvas."""
