"""
Undo/redo history for the annotation editor.

History is linear: a list of annotation-set snapshots plus an index. The
first entry is the set the editor opened with. It is kept on a QUndoStack
whose commands carry the snapshot before and after each committed change,
so the stack index is the history index and pushing after an undo drops
the redo tail.
"""

from typing import Dict, Iterable, List, Optional

from PySide6.QtCore import QObject
from PySide6.QtGui import QUndoCommand, QUndoStack

from annotator.editor.annotations import AnnotationBase, clone_annotations
from annotator.services.logging_service import get_logger


class SnapshotCommand(QUndoCommand):
    """Moves the history between two annotation-set snapshots."""

    def __init__(
        self,
        history: "AnnotationHistory",
        before: List[AnnotationBase],
        after: List[AnnotationBase],
    ) -> None:
        super().__init__("Edit Annotations")
        self._history = history
        self._before = before
        self._after = after

    def redo(self) -> None:
        self._history._current = self._after

    def undo(self) -> None:
        self._history._current = self._before


class AnnotationHistory:
    """
    Snapshot history with undo and redo.

    Snapshots are deep copies and callers always get fresh copies back.
    Stored entries change only through apply_versions().
    _snapshots[i] is the snapshot at stack index i.
    """

    def __init__(
        self,
        initial: Iterable[AnnotationBase] = (),
        parent: Optional[QObject] = None,
    ) -> None:
        self._logger = get_logger(__name__)
        self._stack = QUndoStack(parent)
        self._current: List[AnnotationBase] = clone_annotations(initial)
        self._snapshots: List[List[AnnotationBase]] = [self._current]

    @property
    def index(self) -> int:
        """Position of the current snapshot; 0 is the initial entry."""
        return self._stack.index()

    @property
    def count(self) -> int:
        """Number of snapshots, including the initial entry."""
        return self._stack.count() + 1

    @property
    def can_undo(self) -> bool:
        return self._stack.canUndo()

    @property
    def can_redo(self) -> bool:
        return self._stack.canRedo()

    @property
    def current(self) -> List[AnnotationBase]:
        return clone_annotations(self._current)

    def record(self, annotations: Iterable[AnnotationBase]) -> bool:
        """
        Push a snapshot if the set differs from the current entry.

        Returns:
            True if a new entry was appended.
        """
        snapshot = clone_annotations(annotations)
        if snapshot == self._current:
            return False

        del self._snapshots[self.index + 1:]
        self._snapshots.append(snapshot)
        self._stack.push(SnapshotCommand(self, self._current, snapshot))
        self._logger.debug(f"History entry {self.index} of {self.count - 1} recorded")
        return True

    def undo(self) -> Optional[List[AnnotationBase]]:
        """Step back one entry. Returns the snapshot, or None at the start."""
        if not self._stack.canUndo():
            return None
        self._stack.undo()
        return self.current

    def redo(self) -> Optional[List[AnnotationBase]]:
        """Step forward one entry. Returns the snapshot, or None at the end."""
        if not self._stack.canRedo():
            return None
        self._stack.redo()
        return self.current

    def reset(self, initial: Iterable[AnnotationBase] = ()) -> None:
        """Drop all entries and start over from a single initial snapshot."""
        self._stack.clear()
        self._current = clone_annotations(initial)
        self._snapshots = [self._current]

    def apply_versions(self, versions: Dict[str, int]) -> None:
        """
        Overwrite version numbers by annotation id in every snapshot.

        Undo and redo then never hand back a version below one that has
        already been persisted.
        """
        for snapshot in self._snapshots:
            for annotation in snapshot:
                if annotation.annotation_id in versions:
                    annotation.version = versions[annotation.annotation_id]
