"""
Tool framework and implementations for the annotation editor.

The canvas converts pointer events to normalized image coordinates and
hands them to the active tool. Tools create, preview and move annotations
and report back through the canvas.

Tools:
- SelectTool: No tool armed. Select and drag existing annotations
- PinTool: Drop a pin with a single press
- ArrowTool: Drag from tail to head
- RectTool: Drag between opposite corners
- CircleTool: Drag from centre outwards
- TextTool: Drag out the width of a text label
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional, Tuple

from PySide6.QtCore import QPointF, Qt

from annotator.editor.annotations import (
    AnnotationBase,
    AnnotationColor,
    ArrowAnnotation,
    CircleAnnotation,
    PinAnnotation,
    RectAnnotation,
    StrokeWidth,
    TextAnnotation,
    TextBackground,
    clamp01,
)
from annotator.services.logging_service import get_logger

if TYPE_CHECKING:
    from annotator.editor.editor_canvas import EditorCanvas


# Smallest committed sizes, in normalized units
MIN_RECT_SIZE = 0.01
MIN_CIRCLE_RADIUS = 0.01
MIN_TEXT_WIDTH = 0.05
MIN_ARROW_LENGTH = 0.01

# Float noise allowed when comparing against the minimums above. A size equal
# to its minimum is discarded, so a rect pressed at 0.5 and released at 0.49
# (0.5 - 0.49 is 0.010000000000000009) leaves nothing behind.
SIZE_EPSILON = 1e-9


class ToolType(Enum):
    """Enum for tool types. SELECT means no drawing tool is armed."""
    SELECT = auto()
    PIN = auto()
    ARROW = auto()
    RECT = auto()
    CIRCLE = auto()
    TEXT = auto()


class InteractionState(Enum):
    IDLE = auto()
    TOOL_SELECTED = auto()
    DRAWING = auto()
    DRAGGING = auto()


@dataclass
class ToolStyle:
    """Style applied to newly created annotations."""
    color: AnnotationColor = AnnotationColor.CHARCOAL
    stroke_width: StrokeWidth = StrokeWidth.MEDIUM
    fill_color: Optional[AnnotationColor] = None
    text_background: TextBackground = TextBackground.SOFT

    def clone(self) -> "ToolStyle":
        return replace(self)


def exceeds_minimum(size: float, minimum: float) -> bool:
    """True if size is above minimum by more than float noise."""
    return size - minimum > SIZE_EPSILON


def clamp_delta(annotation: AnnotationBase, dx: float, dy: float) -> Tuple[float, float]:
    """
    Limit a move so every anchor point of the annotation stays in [0, 1].

    Arrows move both endpoints by one shared delta, so their shape survives
    a drag that runs into the image edge.
    """
    points = annotation.anchor_points()
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]

    dx = max(-min(xs), min(1.0 - max(xs), dx))
    dy = max(-min(ys), min(1.0 - max(ys), dy))
    return dx, dy


def _clamped(pos: QPointF) -> QPointF:
    return QPointF(clamp01(pos.x()), clamp01(pos.y()))


class ToolBase(ABC):
    """
    Base class for all tools.

    Positions passed to the handlers are normalized image coordinates.
    """

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    @property
    @abstractmethod
    def tool_type(self) -> ToolType:
        """Return the type of this tool."""

    @property
    @abstractmethod
    def cursor(self) -> Qt.CursorShape:
        """Return the cursor to use when this tool is active."""

    @property
    def state(self) -> InteractionState:
        return InteractionState.TOOL_SELECTED

    @abstractmethod
    def on_pointer_press(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        """Handle pointer press."""

    def on_pointer_move(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        """Handle pointer move."""

    def on_pointer_release(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        """Handle pointer release."""

    def on_deactivate(self, canvas: "EditorCanvas") -> None:
        """Called when another tool is selected."""


class SelectTool(ToolBase):
    """
    Default tool when nothing is armed.

    - Press on an annotation: select it and start dragging
    - Drag: move it, keeping the pointer-to-anchor offset
    - Press on empty image: clear the selection
    """

    def __init__(self) -> None:
        super().__init__()
        self._drag_annotation: Optional[AnnotationBase] = None
        self._drag_offset: Tuple[float, float] = (0.0, 0.0)
        self._moved: bool = False

    @property
    def tool_type(self) -> ToolType:
        return ToolType.SELECT

    @property
    def cursor(self) -> Qt.CursorShape:
        return Qt.CursorShape.ArrowCursor

    @property
    def state(self) -> InteractionState:
        if self._drag_annotation is not None:
            return InteractionState.DRAGGING
        return InteractionState.IDLE

    @property
    def is_dragging(self) -> bool:
        return self._drag_annotation is not None

    def on_pointer_press(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        hit = canvas.hit_test_annotations(pos)
        canvas.select_annotation(hit)

        if hit is None:
            return

        self._drag_annotation = hit
        self._drag_offset = (pos.x() - hit.x, pos.y() - hit.y)
        self._moved = False

    def on_pointer_move(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        annotation = self._drag_annotation
        if annotation is None:
            return

        dx = pos.x() - self._drag_offset[0] - annotation.x
        dy = pos.y() - self._drag_offset[1] - annotation.y
        dx, dy = clamp_delta(annotation, dx, dy)
        if dx == 0 and dy == 0:
            return

        annotation.move_by(dx, dy)
        annotation.clamp_to_image()
        self._moved = True
        canvas.notify_annotation_moved(annotation)

    def on_pointer_release(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        self._finish_drag(canvas)

    def on_deactivate(self, canvas: "EditorCanvas") -> None:
        self._finish_drag(canvas)

    def _finish_drag(self, canvas: "EditorCanvas") -> None:
        moved = self._moved and self._drag_annotation is not None
        self._drag_annotation = None
        self._drag_offset = (0.0, 0.0)
        self._moved = False

        if moved:
            canvas.commit_changes()


class PinTool(ToolBase):
    """Drops a pin on press. Pins need no drag, so the tool disarms at once."""

    @property
    def tool_type(self) -> ToolType:
        return ToolType.PIN

    @property
    def cursor(self) -> Qt.CursorShape:
        return Qt.CursorShape.PointingHandCursor

    def on_pointer_press(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        pos = _clamped(pos)
        style = canvas.tool_style
        pin = PinAnnotation(
            x=pos.x(),
            y=pos.y(),
            stroke_color=style.color,
            stroke_width=style.stroke_width,
        )
        canvas.commit_annotation(pin)


class ShapeTool(ToolBase):
    """
    Drag-to-create tool.

    Press starts a temporary preview, moves update it, release commits it
    when it is larger than the tool's minimum size and drops it otherwise.
    """

    def __init__(self) -> None:
        super().__init__()
        self._start: Optional[QPointF] = None
        self._current: Optional[AnnotationBase] = None

    @property
    def cursor(self) -> Qt.CursorShape:
        return Qt.CursorShape.CrossCursor

    @property
    def state(self) -> InteractionState:
        if self._current is not None:
            return InteractionState.DRAWING
        return InteractionState.TOOL_SELECTED

    @abstractmethod
    def _create(self, start: QPointF, style: ToolStyle) -> AnnotationBase:
        """Build the zero-size preview at the press position."""

    @abstractmethod
    def _update(self, annotation: AnnotationBase, start: QPointF, pos: QPointF) -> None:
        """Reshape the preview for the current pointer position."""

    @abstractmethod
    def _is_large_enough(self, annotation: AnnotationBase) -> bool:
        """Whether the finished shape should be kept."""

    def on_pointer_press(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        canvas.select_annotation(None)
        self._start = _clamped(pos)
        self._current = self._create(self._start, canvas.tool_style)
        canvas.set_temp_annotation(self._current)

    def on_pointer_move(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        if self._current is None or self._start is None:
            return
        self._update(self._current, self._start, _clamped(pos))
        canvas.update()

    def on_pointer_release(self, pos: QPointF, canvas: "EditorCanvas") -> None:
        annotation = self._current
        start = self._start
        self._current = None
        self._start = None
        canvas.set_temp_annotation(None)

        if annotation is None or start is None:
            return

        self._update(annotation, start, _clamped(pos))
        if self._is_large_enough(annotation):
            canvas.commit_annotation(annotation)
        else:
            self._logger.debug(f"Discarded undersized {annotation.annotation_type.value}")

    def on_deactivate(self, canvas: "EditorCanvas") -> None:
        if self._current is not None:
            self._logger.debug("Tool switched mid-draw; preview cancelled")
        self._current = None
        self._start = None
        canvas.set_temp_annotation(None)


class RectTool(ShapeTool):
    """Rectangle between the press point and the pointer."""

    @property
    def tool_type(self) -> ToolType:
        return ToolType.RECT

    def _create(self, start: QPointF, style: ToolStyle) -> AnnotationBase:
        return RectAnnotation(
            x=start.x(),
            y=start.y(),
            stroke_color=style.color,
            stroke_width=style.stroke_width,
            fill_color=style.fill_color,
        )

    def _update(self, annotation: RectAnnotation, start: QPointF, pos: QPointF) -> None:
        # Dragging up or left still leaves (x, y) at the top-left corner
        annotation.x = min(start.x(), pos.x())
        annotation.y = min(start.y(), pos.y())
        annotation.width = abs(pos.x() - start.x())
        annotation.height = abs(pos.y() - start.y())

    def _is_large_enough(self, annotation: RectAnnotation) -> bool:
        return (exceeds_minimum(annotation.width, MIN_RECT_SIZE)
                and exceeds_minimum(annotation.height, MIN_RECT_SIZE))


class CircleTool(ShapeTool):
    """Circle centred on the press point."""

    @property
    def tool_type(self) -> ToolType:
        return ToolType.CIRCLE

    def _create(self, start: QPointF, style: ToolStyle) -> AnnotationBase:
        return CircleAnnotation(
            x=start.x(),
            y=start.y(),
            stroke_color=style.color,
            stroke_width=style.stroke_width,
            fill_color=style.fill_color,
        )

    def _update(self, annotation: CircleAnnotation, start: QPointF, pos: QPointF) -> None:
        radius = math.hypot(pos.x() - start.x(), pos.y() - start.y())
        annotation.radius = clamp01(radius)

    def _is_large_enough(self, annotation: CircleAnnotation) -> bool:
        return exceeds_minimum(annotation.radius, MIN_CIRCLE_RADIUS)


class ArrowTool(ShapeTool):
    """Arrow from the press point; the head follows the pointer."""

    @property
    def tool_type(self) -> ToolType:
        return ToolType.ARROW

    def _create(self, start: QPointF, style: ToolStyle) -> AnnotationBase:
        point = (start.x(), start.y())
        return ArrowAnnotation(
            start=point,
            end=point,
            stroke_color=style.color,
            stroke_width=style.stroke_width,
        )

    def _update(self, annotation: ArrowAnnotation, start: QPointF, pos: QPointF) -> None:
        annotation.end = (pos.x(), pos.y())

    def _is_large_enough(self, annotation: ArrowAnnotation) -> bool:
        return exceeds_minimum(annotation.length, MIN_ARROW_LENGTH)


class TextTool(ShapeTool):
    """Text label whose width follows the horizontal drag distance."""

    @property
    def tool_type(self) -> ToolType:
        return ToolType.TEXT

    @property
    def cursor(self) -> Qt.CursorShape:
        return Qt.CursorShape.IBeamCursor

    def _create(self, start: QPointF, style: ToolStyle) -> AnnotationBase:
        return TextAnnotation(
            x=start.x(),
            y=start.y(),
            stroke_color=style.color,
            stroke_width=style.stroke_width,
            text_color=style.color,
            background=style.text_background,
        )

    def _update(self, annotation: TextAnnotation, start: QPointF, pos: QPointF) -> None:
        annotation.x = min(start.x(), pos.x())
        annotation.width = abs(pos.x() - start.x())

    def _is_large_enough(self, annotation: TextAnnotation) -> bool:
        return exceeds_minimum(annotation.width, MIN_TEXT_WIDTH)


def create_tool(tool_type: ToolType) -> ToolBase:
    """
    Factory function to create tools by type.

    Raises:
        ValueError: Unknown tool type.
    """
    tool_classes = {
        ToolType.SELECT: SelectTool,
        ToolType.PIN: PinTool,
        ToolType.ARROW: ArrowTool,
        ToolType.RECT: RectTool,
        ToolType.CIRCLE: CircleTool,
        ToolType.TEXT: TextTool,
    }

    if tool_type not in tool_classes:
        raise ValueError(f"Unknown tool type: {tool_type}")

    return tool_classes[tool_type]()
