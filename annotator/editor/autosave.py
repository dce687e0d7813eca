"""
Debounced autosave for the annotation editor.

The coordinator keeps the live annotation set it was last told about and
the set that was last persisted. Every change restarts a single-shot
timer; when it fires with changes pending, each annotation is numbered one
above the highest version persisted for its id and the injected save
callback is invoked.
"""

from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from annotator.editor.annotations import AnnotationBase, bump_versions, clone_annotations
from annotator.services.logging_service import get_logger


DEFAULT_AUTOSAVE_DELAY_MS = 2000
DEFAULT_SAVED_STATUS_MS = 1000

# on_save(annotations, is_autosave); raises to signal failure
SaveCallback = Callable[[List[AnnotationBase], bool], None]


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"


class AutosaveCoordinator(QObject):
    """
    Owns the debounce and status timers for one editor session.

    Signals:
        status_changed: New SaveStatus.
        saved: The persisted (version-bumped) annotation list.
    """

    status_changed = Signal(object)
    saved = Signal(object)

    def __init__(
        self,
        on_save: SaveCallback,
        initial: Iterable[AnnotationBase] = (),
        delay_ms: int = DEFAULT_AUTOSAVE_DELAY_MS,
        status_ms: int = DEFAULT_SAVED_STATUS_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._logger = get_logger(__name__)
        self._on_save = on_save

        self._annotations: List[AnnotationBase] = clone_annotations(initial)
        self._last_saved: List[AnnotationBase] = clone_annotations(initial)
        # Highest version persisted per id; survives undo and deletion
        self._persisted: Dict[str, int] = {
            annotation.annotation_id: annotation.version for annotation in self._last_saved
        }
        self._status = SaveStatus.IDLE
        self._active = True

        self._debounce_timer = QTimer(self)
        self._debounce_timer.setSingleShot(True)
        self._debounce_timer.setInterval(delay_ms)
        self._debounce_timer.timeout.connect(self._on_debounce_timeout)

        self._status_timer = QTimer(self)
        self._status_timer.setSingleShot(True)
        self._status_timer.setInterval(status_ms)
        self._status_timer.timeout.connect(lambda: self._set_status(SaveStatus.IDLE))

    # ─── State ────────────────────────────────────────────────────────────

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def annotations(self) -> List[AnnotationBase]:
        return clone_annotations(self._annotations)

    @property
    def last_saved(self) -> List[AnnotationBase]:
        return clone_annotations(self._last_saved)

    @property
    def has_unsaved_changes(self) -> bool:
        return self._annotations != self._last_saved

    @property
    def is_pending(self) -> bool:
        """True while the debounce timer is running."""
        return self._debounce_timer.isActive()

    def _set_status(self, status: SaveStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self.status_changed.emit(status)

    # ─── Change Tracking ──────────────────────────────────────────────────

    def notify_changed(self, annotations: Iterable[AnnotationBase]) -> None:
        """Take the new live set and restart the debounce."""
        if not self._active:
            return
        self._annotations = clone_annotations(annotations)
        self._debounce_timer.start()

    def _on_debounce_timeout(self) -> None:
        if not self.has_unsaved_changes:
            return
        if not self._annotations:
            self._logger.debug("Autosave skipped: annotation set is empty")
            return
        self.save(is_autosave=True)

    # ─── Saving ───────────────────────────────────────────────────────────

    def save(self, is_autosave: bool = False) -> bool:
        """
        Persist the live set, each version one above the highest persisted.

        Does nothing when there are no unsaved changes. Callback failures
        are logged and leave the changes pending for the next cycle.

        Returns:
            True if the callback succeeded.
        """
        if not self._active or not self.has_unsaved_changes:
            return False

        self._debounce_timer.stop()
        self._status_timer.stop()
        self._set_status(SaveStatus.SAVING)

        to_save = bump_versions(self._annotations, self._persisted)
        kind = "Autosave" if is_autosave else "Save"
        try:
            self._on_save(clone_annotations(to_save), is_autosave)
        except Exception as e:
            self._logger.error(f"{kind} failed: {e}", exc_info=True)
            self._set_status(SaveStatus.IDLE)
            return False

        self._annotations = to_save
        self._last_saved = clone_annotations(to_save)
        self._persisted.update((a.annotation_id, a.version) for a in to_save)
        self._logger.info(f"{kind} stored {len(to_save)} annotation(s)")

        self._set_status(SaveStatus.SAVED)
        self.saved.emit(clone_annotations(to_save))
        if self._active:
            self._status_timer.start()
        return True

    def shutdown(self) -> None:
        """Stop both timers; no callbacks fire afterwards."""
        self._active = False
        self._debounce_timer.stop()
        self._status_timer.stop()
        self._logger.debug("Autosave coordinator shut down")
