"""
Editor canvas widget for the Filla annotator.

The EditorCanvas is the drawing area that displays:
- The background image, scaled to fit and centred
- All annotations on top, in z-order
- A dashed highlight around the selected annotation
- The live preview of a shape being drawn

Supports:
- Tool-based interaction (delegated to the active tool)
- Hit-testing with a larger slack for touch input
- Undo/Redo over annotation-set snapshots
"""

from typing import Iterable, List, Optional

from PySide6.QtCore import QPointF, QRectF, Qt, Signal
from PySide6.QtGui import (
    QColor,
    QImage,
    QInputDevice,
    QKeyEvent,
    QMouseEvent,
    QPainter,
    QPen,
)
from PySide6.QtWidgets import QWidget

from annotator.editor.annotations import (
    AnnotationBase,
    AnnotationColor,
    ImageFrame,
    StrokeWidth,
    TextAnnotation,
    clone_annotations,
)
from annotator.editor.history import AnnotationHistory
from annotator.editor.tools import (
    InteractionState,
    SelectTool,
    ToolBase,
    ToolStyle,
    ToolType,
    create_tool,
)
from annotator.services.logging_service import get_logger


DEFAULT_HIT_TOLERANCE = 8.0
DEFAULT_TOUCH_HIT_TOLERANCE = 20.0

SELECTION_COLOR = QColor(59, 130, 246)
BACKGROUND_COLOR = QColor(244, 243, 240)


class EditorCanvas(QWidget):
    """
    Canvas widget holding the live annotation set.

    Signals:
        annotations_changed: Live set changed (including mid-drag moves).
        selection_changed: Selected annotation changed (object or None).
        tool_changed: Active tool changed (ToolType).
        history_changed: Undo/redo availability may have changed.
        text_edit_requested: A text annotation was double-clicked.
    """

    annotations_changed = Signal()
    selection_changed = Signal(object)
    tool_changed = Signal(object)
    history_changed = Signal()
    text_edit_requested = Signal(object)

    def __init__(
        self,
        parent: Optional[QWidget] = None,
        hit_tolerance: float = DEFAULT_HIT_TOLERANCE,
        touch_hit_tolerance: float = DEFAULT_TOUCH_HIT_TOLERANCE,
    ) -> None:
        super().__init__(parent)
        self._logger = get_logger(__name__)

        self._image: Optional[QImage] = None

        # Annotations
        self._annotations: List[AnnotationBase] = []
        self._temp_annotation: Optional[AnnotationBase] = None
        self._selected_annotation: Optional[AnnotationBase] = None

        # Hit-testing
        self._hit_tolerance = hit_tolerance
        self._touch_hit_tolerance = touch_hit_tolerance
        self._touch_input = False

        # Tool
        self._tool_style = ToolStyle()
        self._active_tool: ToolBase = create_tool(ToolType.SELECT)

        # Undo/Redo
        self._history = AnnotationHistory(parent=self)

        self._setup_widget()

    def _setup_widget(self) -> None:
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(200, 200)

    # ─── Image Management ─────────────────────────────────────────────────

    def set_image(self, image: Optional[QImage]) -> None:
        """Show a new background image. A null image leaves the canvas blank."""
        if image is None or image.isNull():
            self._image = None
            self._logger.warning("No usable image; canvas left blank")
        else:
            self._image = image
            self._logger.info(f"Image loaded: {image.width()}x{image.height()}")
        self.update()

    @property
    def image(self) -> Optional[QImage]:
        return self._image

    @property
    def image_frame(self) -> ImageFrame:
        """
        Display rectangle of the image.

        The image is scaled to fit the widget and centred. Without an
        image the whole widget is used so tools keep working.
        """
        width, height = self.width(), self.height()
        if not self._image or self._image.width() == 0 or self._image.height() == 0:
            return ImageFrame(QRectF(0, 0, width, height))

        scale = min(width / self._image.width(), height / self._image.height())
        display_w = self._image.width() * scale
        display_h = self._image.height() * scale
        return ImageFrame(QRectF(
            (width - display_w) / 2,
            (height - display_h) / 2,
            display_w,
            display_h,
        ))

    # ─── Annotation Management ────────────────────────────────────────────

    @property
    def annotations(self) -> List[AnnotationBase]:
        """The live annotation list (top-most last)."""
        return self._annotations

    def snapshot(self) -> List[AnnotationBase]:
        """Deep copy of the live annotation list."""
        return clone_annotations(self._annotations)

    def set_annotations(self, annotations: Iterable[AnnotationBase]) -> None:
        """Replace the live set and restart history from it."""
        self._annotations = clone_annotations(annotations)
        self._temp_annotation = None
        self._history.reset(self._annotations)
        self.select_annotation(None)
        self.annotations_changed.emit()
        self.history_changed.emit()
        self.update()

    def apply_saved_versions(self, saved: Iterable[AnnotationBase]) -> None:
        """
        Copy persisted version numbers onto the live set and the history,
        matched by id. No history entry is added.
        """
        versions = {annotation.annotation_id: annotation.version for annotation in saved}
        for annotation in self._annotations:
            if annotation.annotation_id in versions:
                annotation.version = versions[annotation.annotation_id]
        self._history.apply_versions(versions)

    @property
    def temp_annotation(self) -> Optional[AnnotationBase]:
        return self._temp_annotation

    def set_temp_annotation(self, annotation: Optional[AnnotationBase]) -> None:
        """Set the in-progress preview (None clears it)."""
        self._temp_annotation = annotation
        self.update()

    def commit_annotation(self, annotation: AnnotationBase) -> None:
        """Append a finished annotation, select it and disarm the tool."""
        self._annotations.append(annotation)
        self._logger.debug(f"Added {annotation.annotation_type.value} {annotation.annotation_id}")
        self.commit_changes()
        self.select_annotation(annotation)
        self.set_tool(ToolType.SELECT)

    def commit_changes(self) -> None:
        """Record the live set in history and announce the change."""
        if self._history.record(self._annotations):
            self.history_changed.emit()
        self.annotations_changed.emit()
        self.update()

    def notify_annotation_moved(self, annotation: AnnotationBase) -> None:
        """Live change during a drag; history is recorded on release."""
        self.annotations_changed.emit()
        self.update()

    def delete_selected(self) -> bool:
        """Remove the selected annotation. Returns True if one was removed."""
        selected = self._selected_annotation
        if selected is None or selected not in self._annotations:
            return False

        self._annotations.remove(selected)
        self.select_annotation(None)
        self.commit_changes()
        return True

    def clear_all(self) -> bool:
        """Remove every annotation. Returns True if anything was removed."""
        if not self._annotations:
            return False

        self._annotations = []
        self.select_annotation(None)
        self.commit_changes()
        return True

    def set_annotation_text(self, annotation_id: str, text: str) -> bool:
        """Change the text of a text annotation."""
        for annotation in self._annotations:
            if annotation.annotation_id == annotation_id and isinstance(annotation, TextAnnotation):
                if annotation.text == text:
                    return False
                annotation.text = text
                self.commit_changes()
                return True
        return False

    @property
    def tool_style(self) -> ToolStyle:
        return self._tool_style

    def set_selected_style(
        self,
        color: Optional[AnnotationColor] = None,
        stroke_width: Optional[StrokeWidth] = None,
    ) -> None:
        """
        Change the style for new annotations.

        The selected annotation, if any, is restyled as well.
        """
        if color is not None:
            self._tool_style.color = color
        if stroke_width is not None:
            self._tool_style.stroke_width = stroke_width

        selected = self._selected_annotation
        if selected is None:
            return

        if color is not None:
            selected.stroke_color = color
            if isinstance(selected, TextAnnotation):
                selected.text_color = color
        if stroke_width is not None:
            selected.stroke_width = stroke_width
        self.commit_changes()

    # ─── Selection & Hit-Testing ──────────────────────────────────────────

    def select_annotation(self, annotation: Optional[AnnotationBase]) -> None:
        if annotation is self._selected_annotation:
            return
        self._selected_annotation = annotation
        self.selection_changed.emit(annotation)
        self.update()

    @property
    def selected_annotation(self) -> Optional[AnnotationBase]:
        return self._selected_annotation

    @property
    def hit_tolerance(self) -> float:
        """Tolerance for the current input device, in display pixels."""
        return self._touch_hit_tolerance if self._touch_input else self._hit_tolerance

    def hit_test_at(self, point: QPointF, tolerance: float) -> Optional[AnnotationBase]:
        """
        Find the top-most annotation under a display-space point.

        Annotations are tested in reverse draw order, so the last drawn wins.
        """
        frame = self.image_frame
        for annotation in reversed(self._annotations):
            if annotation.hit_test(point, frame, tolerance):
                return annotation
        return None

    def hit_test_annotations(self, pos: QPointF) -> Optional[AnnotationBase]:
        """Find the top-most annotation under a normalized position."""
        point = self.image_frame.to_display(pos.x(), pos.y())
        return self.hit_test_at(point, self.hit_tolerance)

    # ─── Tool Management ──────────────────────────────────────────────────

    def set_tool(self, tool_type: ToolType) -> None:
        """Arm a tool. Any shape being drawn with the old tool is dropped."""
        self._active_tool.on_deactivate(self)
        self._active_tool = create_tool(tool_type)
        self.setCursor(self._active_tool.cursor)
        self.tool_changed.emit(tool_type)
        self.update()

    @property
    def active_tool(self) -> ToolBase:
        return self._active_tool

    @property
    def tool_type(self) -> ToolType:
        return self._active_tool.tool_type

    @property
    def interaction_state(self) -> InteractionState:
        return self._active_tool.state

    # ─── Pointer Input (normalized coordinates) ───────────────────────────

    def pointer_press(self, pos: QPointF, touch: bool = False) -> None:
        self._touch_input = touch
        self._active_tool.on_pointer_press(pos, self)

    def pointer_move(self, pos: QPointF) -> None:
        self._active_tool.on_pointer_move(pos, self)

    def pointer_release(self, pos: QPointF) -> None:
        self._active_tool.on_pointer_release(pos, self)

    # ─── Undo/Redo ────────────────────────────────────────────────────────

    @property
    def history(self) -> AnnotationHistory:
        return self._history

    def undo(self) -> bool:
        return self._restore(self._history.undo())

    def redo(self) -> bool:
        return self._restore(self._history.redo())

    def _restore(self, snapshot: Optional[List[AnnotationBase]]) -> bool:
        if snapshot is None:
            return False

        self._annotations = snapshot
        self.select_annotation(None)
        self.annotations_changed.emit()
        self.history_changed.emit()
        self.update()
        return True

    # ─── Rendering ────────────────────────────────────────────────────────

    def _draw(
        self,
        painter: QPainter,
        frame: ImageFrame,
        overlays: bool,
        draw_image: bool = True,
    ) -> None:
        """Draw image and annotations; overlays adds selection and preview."""
        if draw_image and self._image:
            painter.drawImage(frame.rect, self._image)

        for annotation in self._annotations:
            painter.save()
            annotation.paint(painter, frame)
            painter.restore()

        if not overlays:
            return

        selected = self._selected_annotation
        if selected is not None and selected in self._annotations:
            self._draw_selection(painter, selected, frame)

        if self._temp_annotation is not None:
            painter.save()
            self._temp_annotation.paint(painter, frame)
            painter.restore()

    def _draw_selection(self, painter: QPainter, annotation: AnnotationBase, frame: ImageFrame) -> None:
        """Dashed box around the selected annotation."""
        pen = QPen(SELECTION_COLOR, 1)
        pen.setStyle(Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(annotation.bounding_rect(frame).adjusted(-4, -4, 4, 4))

    def render_to_image(self) -> QImage:
        """
        Render the image with all annotations at its native size.

        Selection and preview are left out. Returns a null image when
        nothing is loaded.
        """
        if not self._image:
            return QImage()

        result = self._image.convertToFormat(QImage.Format.Format_ARGB32)
        frame = ImageFrame(QRectF(0, 0, result.width(), result.height()))

        painter = QPainter(result)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            self._draw(painter, frame, overlays=False, draw_image=False)
        except Exception as e:
            self._logger.error(f"Failed to render annotations: {e}", exc_info=True)
        finally:
            painter.end()

        return result

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
            painter.fillRect(self.rect(), BACKGROUND_COLOR)
            self._draw(painter, self.image_frame, overlays=True)
        except Exception as e:
            # Keep the editor usable; the next repaint tries again
            self._logger.error(f"Failed to draw frame: {e}", exc_info=True)
        finally:
            painter.end()

    # ─── Event Handlers ───────────────────────────────────────────────────

    def _event_position(self, event: QMouseEvent) -> QPointF:
        return self.image_frame.to_normalized(event.position())

    @staticmethod
    def _is_touch(event: QMouseEvent) -> bool:
        device = event.pointingDevice()
        return device is not None and device.type() == QInputDevice.DeviceType.TouchScreen

    def mousePressEvent(self, event: QMouseEvent) -> None:
        if event.button() == Qt.MouseButton.LeftButton:
            self.pointer_press(self._event_position(event), touch=self._is_touch(event))

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        pos = self._event_position(event)
        self.pointer_move(pos)

        if isinstance(self._active_tool, SelectTool) and not self._active_tool.is_dragging:
            hit = self.hit_test_annotations(pos)
            self.setCursor(Qt.CursorShape.SizeAllCursor if hit else self._active_tool.cursor)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if event.button() == Qt.MouseButton.LeftButton:
            self.pointer_release(self._event_position(event))

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:
        hit = self.hit_test_annotations(self._event_position(event))
        if isinstance(hit, TextAnnotation):
            self.text_edit_requested.emit(hit)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        key = event.key()
        modifiers = event.modifiers()

        if modifiers & Qt.KeyboardModifier.ControlModifier:
            if key == Qt.Key.Key_Z:
                if modifiers & Qt.KeyboardModifier.ShiftModifier:
                    self.redo()
                else:
                    self.undo()
                return
            if key == Qt.Key.Key_Y:
                self.redo()
                return

        if key in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
            if self.delete_selected():
                return

        if key == Qt.Key.Key_Escape:
            if self.tool_type != ToolType.SELECT:
                self.set_tool(ToolType.SELECT)
            else:
                self.select_annotation(None)
            return

        super().keyPressEvent(event)
