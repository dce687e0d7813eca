"""
Annotation editor component for Filla.

This widget composes the complete editor interface:
- Top toolbar with tool buttons, colour palette and stroke width
- History and edit actions (undo, redo, delete, clear, reset)
- Center canvas for image display and annotation
- Bottom status line with the save indicator

The host supplies the image, the initial annotations and two callbacks:
on_save(annotations, is_autosave), which raises on failure, and
on_cancel(), which closes the editor.
"""

from enum import Enum
from typing import Callable, Iterable, List, Optional

from PySide6.QtCore import QPointF, Qt, Slot
from PySide6.QtGui import QColor, QIcon, QImage, QKeyEvent, QPainter, QPen, QPixmap, QPolygonF
from PySide6.QtWidgets import (
    QButtonGroup,
    QComboBox,
    QFrame,
    QHBoxLayout,
    QInputDialog,
    QLabel,
    QMessageBox,
    QPushButton,
    QSizePolicy,
    QToolBar,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from annotator.editor.annotations import (
    AnnotationBase,
    AnnotationColor,
    StrokeWidth,
    TextAnnotation,
    arrowhead_points,
    clone_annotations,
)
from annotator.editor.autosave import AutosaveCoordinator, SaveCallback, SaveStatus
from annotator.editor.editor_canvas import EditorCanvas
from annotator.editor.tools import ToolType
from annotator.services.config_service import ConfigService
from annotator.services.logging_service import get_logger


class CancelChoice(Enum):
    """Answer to the unsaved-changes prompt."""
    DISCARD = "discard"
    SAVE_AND_CLOSE = "save_and_close"
    KEEP_EDITING = "keep_editing"


STATUS_TEXT = {
    SaveStatus.SAVING: "Saving…",
    SaveStatus.SAVED: "Saved",
}


class ColorSwatch(QPushButton):
    """Checkable button showing one palette colour."""

    def __init__(self, color: AnnotationColor, parent=None):
        super().__init__(parent)
        self._color = color
        self.setCheckable(True)
        self.setFixedSize(24, 24)
        self.setToolTip(color.value.replace("-", " ").title())
        self.setStyleSheet(f"""
            QPushButton {{
                background-color: {color.hex};
                border: 2px solid #555;
                border-radius: 12px;
            }}
            QPushButton:checked {{
                border-color: #4a90e2;
            }}
        """)

    @property
    def color(self) -> AnnotationColor:
        return self._color


def _create_tool_icon(shape: str, color: QColor = QColor(220, 220, 220)) -> QIcon:
    """Draw a toolbar icon."""
    size = 24
    margin = 4
    pixmap = QPixmap(size, size)
    pixmap.fill(Qt.GlobalColor.transparent)

    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setPen(QPen(color, 2))
    painter.setBrush(Qt.BrushStyle.NoBrush)

    if shape == "select":
        painter.setBrush(color)
        painter.drawPolygon(QPolygonF([
            QPointF(6, 4), QPointF(6, 18), QPointF(10, 14),
            QPointF(14, 20), QPointF(16, 18), QPointF(12, 12), QPointF(18, 12),
        ]))

    elif shape == "pin":
        painter.setBrush(color)
        painter.drawEllipse(QPointF(12, 12), 5, 5)

    elif shape == "arrow":
        start, end = QPointF(6, 18), QPointF(18, 6)
        painter.drawLine(start, end)
        painter.setBrush(color)
        painter.drawPolygon(QPolygonF(arrowhead_points(start, end, 6)))

    elif shape == "rect":
        painter.drawRect(margin, margin + 2, size - margin * 2, size - margin * 2 - 4)

    elif shape == "circle":
        painter.drawEllipse(margin, margin, size - margin * 2, size - margin * 2)

    elif shape == "text":
        font = painter.font()
        font.setPixelSize(16)
        font.setBold(True)
        painter.setFont(font)
        painter.drawText(pixmap.rect(), Qt.AlignmentFlag.AlignCenter, "T")

    painter.end()
    return QIcon(pixmap)


class AnnotationEditor(QWidget):
    """
    Image annotation editor: toolbar, canvas and save status.

    Changes are autosaved after a quiet period; Save persists at once.
    Cancel asks before throwing away unsaved work.
    """

    TOOL_SHORTCUTS = {
        Qt.Key.Key_P: ToolType.PIN,
        Qt.Key.Key_A: ToolType.ARROW,
        Qt.Key.Key_R: ToolType.RECT,
        Qt.Key.Key_C: ToolType.CIRCLE,
        Qt.Key.Key_T: ToolType.TEXT,
        Qt.Key.Key_V: ToolType.SELECT,
        Qt.Key.Key_Escape: ToolType.SELECT,
    }

    def __init__(
        self,
        image: Optional[QImage],
        initial_annotations: Iterable[AnnotationBase],
        on_save: SaveCallback,
        on_cancel: Callable[[], None],
        config: Optional[ConfigService] = None,
        parent: Optional[QWidget] = None,
        confirm_cancel: Optional[Callable[[], CancelChoice]] = None,
    ) -> None:
        super().__init__(parent)
        self._logger = get_logger(__name__)
        self._config = config
        self._initial: List[AnnotationBase] = clone_annotations(initial_annotations)
        self._on_cancel = on_cancel
        self._confirm_cancel = confirm_cancel or self._ask_cancel_choice
        self._closed = False

        self._setup_ui()

        self._canvas.set_image(image)
        self._canvas.set_annotations(self._initial)
        self._apply_default_style()

        self._autosave = AutosaveCoordinator(
            on_save,
            initial=self._initial,
            delay_ms=config.autosave_delay_ms if config else 2000,
            status_ms=config.saved_status_ms if config else 1000,
            parent=self,
        )

        self._connect_signals()
        self._refresh_actions()
        self._logger.info(f"Editor opened with {len(self._initial)} annotation(s)")

    def _setup_ui(self) -> None:
        """Build the UI layout."""
        main_layout = QVBoxLayout(self)
        main_layout.setContentsMargins(0, 0, 0, 0)
        main_layout.setSpacing(0)

        # ─── Top Toolbar ──────────────────────────────────────────────
        self._toolbar = QToolBar()
        self._toolbar.setMovable(False)
        self._toolbar.setStyleSheet("""
            QToolBar {
                background-color: #2a2a2a;
                border-bottom: 1px solid #3a3a3a;
                padding: 6px 8px;
                spacing: 4px;
            }
            QToolBar::separator {
                background-color: #444;
                width: 1px;
                margin: 4px 6px;
            }
            QToolButton {
                background-color: transparent;
                color: #ddd;
                border: none;
                border-radius: 8px;
                padding: 6px 8px;
                margin: 2px;
                min-width: 32px;
                min-height: 32px;
            }
            QToolButton:hover {
                background-color: rgba(255, 255, 255, 0.1);
            }
            QToolButton:checked {
                background-color: rgba(74, 144, 226, 0.3);
            }
            QToolButton:disabled {
                color: #666;
            }
        """)

        # Tool buttons
        self._tool_group = QButtonGroup(self)
        self._tool_group.setExclusive(True)
        self._tool_buttons = {}

        tool_configs = [
            (ToolType.SELECT, "Select", "select", "V"),
            (ToolType.PIN, "Pin", "pin", "P"),
            (ToolType.ARROW, "Arrow", "arrow", "A"),
            (ToolType.RECT, "Rectangle", "rect", "R"),
            (ToolType.CIRCLE, "Circle", "circle", "C"),
            (ToolType.TEXT, "Text", "text", "T"),
        ]

        for tool_type, tooltip, icon_shape, shortcut in tool_configs:
            btn = QToolButton()
            btn.setIcon(_create_tool_icon(icon_shape))
            btn.setToolTip(f"{tooltip} ({shortcut})")
            btn.setCheckable(True)
            btn.clicked.connect(lambda checked, t=tool_type: self.select_tool(t))
            self._tool_group.addButton(btn)
            self._toolbar.addWidget(btn)
            self._tool_buttons[tool_type] = btn

        self._tool_buttons[ToolType.SELECT].setChecked(True)
        self._toolbar.addSeparator()

        # Palette
        self._color_group = QButtonGroup(self)
        self._color_group.setExclusive(True)
        self._color_swatches = {}
        for color in AnnotationColor:
            swatch = ColorSwatch(color)
            swatch.clicked.connect(lambda checked, c=color: self.set_color(c))
            self._color_group.addButton(swatch)
            self._toolbar.addWidget(swatch)
            self._color_swatches[color] = swatch

        # Stroke width
        self._stroke_combo = QComboBox()
        for width in StrokeWidth:
            self._stroke_combo.addItem(width.value.title())
        self._stroke_combo.currentIndexChanged.connect(self._on_stroke_index_changed)
        self._toolbar.addWidget(self._stroke_combo)

        self._toolbar.addSeparator()

        # History and edit actions
        self._undo_btn = self._add_action_button("Undo", "Undo (Ctrl+Z)", lambda: self._canvas.undo())
        self._redo_btn = self._add_action_button("Redo", "Redo (Ctrl+Shift+Z)", lambda: self._canvas.redo())
        self._delete_btn = self._add_action_button("Delete", "Delete selected (Del)", lambda: self._canvas.delete_selected())
        self._clear_btn = self._add_action_button("Clear", "Remove all annotations", lambda: self._canvas.clear_all())
        self._reset_btn = self._add_action_button("Reset", "Restore the original annotations", self.reset)

        # Spacer
        spacer = QWidget()
        spacer.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Preferred)
        self._toolbar.addWidget(spacer)

        self._cancel_btn = self._add_action_button("Cancel", "Close the editor", self.cancel)
        self._save_btn = self._add_action_button("Save", "Save (Ctrl+S)", self.save)

        main_layout.addWidget(self._toolbar)

        # ─── Canvas ───────────────────────────────────────────────────
        if self._config:
            self._canvas = EditorCanvas(
                hit_tolerance=self._config.hit_tolerance_px,
                touch_hit_tolerance=self._config.touch_hit_tolerance_px,
            )
        else:
            self._canvas = EditorCanvas()
        main_layout.addWidget(self._canvas, 1)

        # ─── Bottom Status ────────────────────────────────────────────
        status_bar = QFrame()
        status_bar.setFixedHeight(28)
        status_bar.setStyleSheet("""
            QFrame {
                background-color: #2a2a2a;
                border-top: 1px solid #3a3a3a;
            }
            QLabel {
                color: #aaa;
                font-size: 11px;
            }
        """)
        status_layout = QHBoxLayout(status_bar)
        status_layout.setContentsMargins(12, 0, 12, 0)
        self._count_label = QLabel("")
        self._status_label = QLabel("")
        status_layout.addWidget(self._count_label)
        status_layout.addStretch()
        status_layout.addWidget(self._status_label)
        main_layout.addWidget(status_bar)

    def _add_action_button(self, text: str, tooltip: str, slot: Callable) -> QToolButton:
        btn = QToolButton()
        btn.setText(text)
        btn.setToolTip(tooltip)
        btn.clicked.connect(slot)
        self._toolbar.addWidget(btn)
        return btn

    def _apply_default_style(self) -> None:
        """Seed the tool style from configuration."""
        color = AnnotationColor.CHARCOAL
        width = StrokeWidth.MEDIUM
        if self._config:
            try:
                color = AnnotationColor(self._config.default_color)
                width = StrokeWidth(self._config.default_stroke_width)
            except ValueError as e:
                self._logger.warning(f"Invalid default style in config: {e}")

        self._canvas.set_selected_style(color=color, stroke_width=width)
        self._sync_style_controls(color, width)

    def _connect_signals(self) -> None:
        """Connect widget signals."""
        self._canvas.annotations_changed.connect(self._on_annotations_changed)
        self._canvas.selection_changed.connect(self._on_selection_changed)
        self._canvas.tool_changed.connect(self._on_tool_changed)
        self._canvas.history_changed.connect(self._refresh_actions)
        self._canvas.text_edit_requested.connect(self._on_text_edit_requested)
        self._autosave.status_changed.connect(self._on_status_changed)
        self._autosave.saved.connect(self._canvas.apply_saved_versions)

    # ─── Accessors ────────────────────────────────────────────────────────

    @property
    def canvas(self) -> EditorCanvas:
        return self._canvas

    @property
    def autosave(self) -> AutosaveCoordinator:
        return self._autosave

    @property
    def annotations(self) -> List[AnnotationBase]:
        return self._canvas.snapshot()

    @property
    def has_unsaved_changes(self) -> bool:
        return self._autosave.has_unsaved_changes

    @property
    def status_text(self) -> str:
        return self._status_label.text()

    # ─── Tools & Style ────────────────────────────────────────────────────

    def select_tool(self, tool_type: ToolType) -> None:
        self._canvas.set_tool(tool_type)

    def set_color(self, color: AnnotationColor) -> None:
        self._canvas.set_selected_style(color=color)
        self._sync_style_controls(color, None)

    def set_stroke_width(self, width: StrokeWidth) -> None:
        self._canvas.set_selected_style(stroke_width=width)
        self._sync_style_controls(None, width)

    def _sync_style_controls(
        self,
        color: Optional[AnnotationColor],
        width: Optional[StrokeWidth],
    ) -> None:
        if color is not None:
            self._color_swatches[color].setChecked(True)
        if width is not None:
            self._stroke_combo.blockSignals(True)
            self._stroke_combo.setCurrentIndex(list(StrokeWidth).index(width))
            self._stroke_combo.blockSignals(False)

    def _on_stroke_index_changed(self, index: int) -> None:
        if 0 <= index < len(StrokeWidth):
            self._canvas.set_selected_style(stroke_width=list(StrokeWidth)[index])

    # ─── Save / Reset / Cancel ────────────────────────────────────────────

    def save(self) -> bool:
        """Manual save. Ignored when nothing changed."""
        if not self._autosave.has_unsaved_changes:
            self._logger.debug("Save ignored: no unsaved changes")
            return False
        return self._autosave.save(is_autosave=False)

    def reset(self) -> None:
        """
        Restore the annotations the editor was opened with.

        History restarts from them. The autosave baseline stays the last
        persisted set, so a reset after a save is an unsaved change.
        """
        self._logger.info("Resetting to initial annotations")
        self._canvas.set_annotations(self._initial)

    def cancel(self) -> None:
        """Close, asking first when there are unsaved changes."""
        if not self._autosave.has_unsaved_changes:
            self._close()
            return

        choice = self._confirm_cancel()
        self._logger.info(f"Cancel with unsaved changes: {choice.value}")

        if choice == CancelChoice.DISCARD:
            self._close()
        elif choice == CancelChoice.SAVE_AND_CLOSE:
            if self._autosave.save(is_autosave=False):
                self._close()

    def _ask_cancel_choice(self) -> CancelChoice:
        box = QMessageBox(self)
        box.setIcon(QMessageBox.Icon.Warning)
        box.setWindowTitle("Unsaved changes")
        box.setText("You have unsaved annotation changes.")
        discard = box.addButton("Discard", QMessageBox.ButtonRole.DestructiveRole)
        save_close = box.addButton("Save and close", QMessageBox.ButtonRole.AcceptRole)
        keep = box.addButton("Keep editing", QMessageBox.ButtonRole.RejectRole)
        box.setDefaultButton(keep)
        box.exec()

        clicked = box.clickedButton()
        if clicked is discard:
            return CancelChoice.DISCARD
        if clicked is save_close:
            return CancelChoice.SAVE_AND_CLOSE
        return CancelChoice.KEEP_EDITING

    def _close(self) -> None:
        self.close_editor()
        self._on_cancel()

    def close_editor(self) -> None:
        """Stop autosave timers. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._autosave.shutdown()
        self._logger.info("Editor closed")

    # ─── Signal Handlers ──────────────────────────────────────────────────

    @Slot()
    def _on_annotations_changed(self) -> None:
        self._autosave.notify_changed(self._canvas.annotations)
        self._refresh_actions()

    @Slot(object)
    def _on_selection_changed(self, annotation) -> None:
        self._delete_btn.setEnabled(annotation is not None)

    @Slot(object)
    def _on_tool_changed(self, tool_type: ToolType) -> None:
        btn = self._tool_buttons.get(tool_type)
        if btn:
            btn.setChecked(True)

    @Slot(object)
    def _on_status_changed(self, status: SaveStatus) -> None:
        self._status_label.setText(STATUS_TEXT.get(status, ""))

    @Slot(object)
    def _on_text_edit_requested(self, annotation: TextAnnotation) -> None:
        text, ok = QInputDialog.getText(self, "Edit text", "Label:", text=annotation.text)
        if ok:
            self._canvas.set_annotation_text(annotation.annotation_id, text)

    @Slot()
    def _refresh_actions(self) -> None:
        history = self._canvas.history
        count = len(self._canvas.annotations)
        self._undo_btn.setEnabled(history.can_undo)
        self._redo_btn.setEnabled(history.can_redo)
        self._delete_btn.setEnabled(self._canvas.selected_annotation is not None)
        self._clear_btn.setEnabled(count > 0)
        self._count_label.setText(f"{count} annotation{'s' if count != 1 else ''}")

    # ─── Key Events ───────────────────────────────────────────────────────

    def keyPressEvent(self, event: QKeyEvent) -> None:
        """Handle keyboard shortcuts."""
        key = event.key()
        modifiers = event.modifiers()

        if key == Qt.Key.Key_S and modifiers & Qt.KeyboardModifier.ControlModifier:
            self.save()
            return

        if key in self.TOOL_SHORTCUTS and not modifiers:
            self.select_tool(self.TOOL_SHORTCUTS[key])
            return

        super().keyPressEvent(event)

    def closeEvent(self, event) -> None:
        self.close_editor()
        super().closeEvent(event)
