"""Debounced autosave mixin for CanvasModel.

Every mutation marks the canvas dirty and restarts a single-shot timer, so a
burst of edits produces one save once the user pauses. Saves always carry
the snapshot taken when the timer fires. If edits arrive while a save is in
flight, another save is scheduled as soon as it completes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol, TYPE_CHECKING, Union

from PySide6.QtCore import QTimer, Slot

from .constants import AUTOSAVE_DELAY_MS
from .errors import PersistenceError

if TYPE_CHECKING:
    from .model import CanvasModel

logger = logging.getLogger(__name__)

SaveCallback = Callable[[Optional[str]], None]


class CanvasStore(Protocol):
    """Persistence collaborator that stores one opaque snapshot string.

    ``save_canvas_state`` must eventually call ``done`` with ``None`` on
    success or an error message on failure. It may call ``done`` before
    returning. Any exception raised by the call counts as a failure.
    """

    def save_canvas_state(self, payload: str, done: SaveCallback) -> None:
        ...

    def load_canvas_state(self) -> Optional[str]:
        ...


class FileCanvasStore:
    """Stores the snapshot in a single file, replacing it whole on each save."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save_canvas_state(self, payload: str, done: SaveCallback) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".canvas-", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self.path)
            except OSError:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            done(f"Failed to save canvas: {exc}")
            return
        done(None)

    def load_canvas_state(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to read canvas from {self.path}: {exc}") from exc


class AutosaveMixin:
    """Mixin providing trailing-debounce persistence.

    Note: Properties (isDirty, isSaving) are defined in CanvasModel since they
    need access to signals defined there.
    """

    # Attributes expected from CanvasModel
    _store: Optional[CanvasStore]
    _save_timer: QTimer
    _dirty: bool
    _save_in_flight: bool
    _save_requested_during_flight: bool
    serializedState: Callable[[], str]

    def _init_autosave(self, store: Optional[CanvasStore], delay_ms: int = AUTOSAVE_DELAY_MS) -> None:
        """Initialize autosave state. Call from CanvasModel.__init__."""
        self._store = store
        self._dirty = False
        self._save_in_flight = False
        self._save_requested_during_flight = False
        self._save_timer = QTimer(self)
        self._save_timer.setSingleShot(True)
        self._save_timer.setInterval(max(0, int(delay_ms)))
        self._save_timer.timeout.connect(self._flush_save)

    def _set_dirty(self, dirty: bool) -> None:
        if self._dirty == dirty:
            return
        self._dirty = dirty
        self.saveStateChanged.emit()

    def _mark_dirty(self) -> None:
        """Record a mutation and (re)start the debounce timer."""
        self._set_dirty(True)
        if self._store is None:
            return
        if self._save_in_flight:
            self._save_requested_during_flight = True
        self._save_timer.start()

    def set_store(self, store: Optional[CanvasStore]) -> None:
        self._store = store
        if store is not None and self._dirty:
            self._save_timer.start()

    @Slot()
    def saveNow(self) -> None:
        """Skip the debounce delay and save immediately."""
        self._save_timer.stop()
        self._flush_save()

    def _flush_save(self) -> None:
        if self._store is None or not self._dirty:
            return
        if self._save_in_flight:
            self._save_requested_during_flight = True
            return

        payload = self.serializedState()
        self._set_dirty(False)
        self._save_in_flight = True
        self._save_requested_during_flight = False
        self.saveStateChanged.emit()
        logger.debug("Saving canvas snapshot (%d bytes)", len(payload))
        try:
            self._store.save_canvas_state(payload, self._on_save_finished)
        except Exception as exc:
            logger.exception("Canvas store raised while saving")
            self._on_save_finished(str(exc) or type(exc).__name__)

    def _on_save_finished(self, error: Optional[str]) -> None:
        if not self._save_in_flight:
            return
        self._save_in_flight = False
        follow_up = self._save_requested_during_flight
        self._save_requested_during_flight = False

        if error:
            logger.error("Canvas save failed: %s", error)
            # The snapshot never reached the store; keep it pending for the next mutation.
            self._set_dirty(True)
            self.saveStateChanged.emit()
            self.saveFailed.emit(error)
            self.errorOccurred.emit(error)
            if follow_up:
                self._save_timer.start()
            return

        self.saveStateChanged.emit()
        self.saveCompleted.emit()
        if follow_up and self._dirty:
            self._save_timer.start()

    @Slot(result=bool)
    def loadFromStore(self) -> bool:
        """Replace the canvas with the snapshot held by the store."""
        if self._store is None:
            return False
        try:
            payload = self._store.load_canvas_state()
        except (OSError, PersistenceError) as exc:
            logger.error("Canvas load failed: %s", exc)
            self.errorOccurred.emit(str(exc))
            return False
        if payload is None:
            return False
        return self.loadSerializedState(payload)
