"""
Annotation models for the Filla annotator.

Every annotation is a dataclass positioned in normalized image coordinates
(0..1 of the image width/height). Each variant knows how to:
- Paint itself on a QPainter, given the image's display frame
- Hit-test a display-space point
- Move by a normalized delta
- Convert to and from the JSON wire format

Annotation Types:
- PinAnnotation: Point marker
- ArrowAnnotation: Line with arrowhead between two endpoints
- RectAnnotation: Outlined rectangle with optional fill
- CircleAnnotation: Outlined circle with optional fill
- TextAnnotation: Word-wrapped text label with optional soft background
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, Type, Union
from uuid import uuid4

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QFontMetrics, QPainter, QPen, QPolygonF


Point = Tuple[float, float]

# Display sizes, in pixels
PIN_RADIUS = 10.0
TEXT_FONT_PX = 16
TEXT_PADDING = 6.0
# Approximate text box height used for hit-testing and selection
TEXT_HIT_HEIGHT = 24.0
FILL_ALPHA = 80


class AnnotationType(Enum):
    """Annotation variants, valued by their wire name."""
    PIN = "pin"
    ARROW = "arrow"
    RECT = "rect"
    CIRCLE = "circle"
    TEXT = "text"


class AnnotationColor(Enum):
    """Fixed stroke/fill palette."""
    CHARCOAL = "charcoal"
    WHITE = "white"
    WARNING_ORANGE = "warning-orange"
    DANGER_RED = "danger-red"
    CALM_BLUE = "calm-blue"
    SUCCESS_GREEN = "success-green"

    @property
    def hex(self) -> str:
        return PALETTE_HEX[self]

    def qcolor(self, alpha: int = 255) -> QColor:
        color = QColor(self.hex)
        color.setAlpha(alpha)
        return color


PALETTE_HEX: Dict[AnnotationColor, str] = {
    AnnotationColor.CHARCOAL: "#2C2C2C",
    AnnotationColor.WHITE: "#FFFFFF",
    AnnotationColor.WARNING_ORANGE: "#F59E0B",
    AnnotationColor.DANGER_RED: "#EF4444",
    AnnotationColor.CALM_BLUE: "#3B82F6",
    AnnotationColor.SUCCESS_GREEN: "#22C55E",
}


class StrokeWidth(Enum):
    THIN = "thin"
    MEDIUM = "medium"
    BOLD = "bold"

    @property
    def pixels(self) -> int:
        return {StrokeWidth.THIN: 2, StrokeWidth.MEDIUM: 4, StrokeWidth.BOLD: 6}[self]


class TextBackground(Enum):
    NONE = "none"
    SOFT = "soft"


def clamp01(value: float) -> float:
    """Clamp a normalized coordinate into [0, 1]."""
    return max(0.0, min(1.0, value))


@dataclass
class ImageFrame:
    """
    Where the image sits on the drawing surface.

    Converts between normalized image coordinates and display pixels.
    Circle radii are normalized to the shorter side of this frame.
    """
    rect: QRectF

    @property
    def short_side(self) -> float:
        return min(self.rect.width(), self.rect.height())

    def to_display(self, x: float, y: float) -> QPointF:
        return QPointF(
            self.rect.left() + x * self.rect.width(),
            self.rect.top() + y * self.rect.height(),
        )

    def to_normalized(self, point: QPointF) -> QPointF:
        """Map a display point to image coordinates (not clamped)."""
        if self.rect.width() <= 0 or self.rect.height() <= 0:
            return QPointF(0, 0)
        return QPointF(
            (point.x() - self.rect.left()) / self.rect.width(),
            (point.y() - self.rect.top()) / self.rect.height(),
        )


# ─── Geometry helpers ─────────────────────────────────────────────────────────


def distance(a: QPointF, b: QPointF) -> float:
    return math.hypot(a.x() - b.x(), a.y() - b.y())


def distance_to_line(point: QPointF, start: QPointF, end: QPointF) -> float:
    """Perpendicular distance from point to the infinite line start-end."""
    dx = end.x() - start.x()
    dy = end.y() - start.y()
    length = math.hypot(dx, dy)

    if length == 0:
        return distance(point, start)

    return abs(dy * point.x() - dx * point.y() + end.x() * start.y() - end.y() * start.x()) / length


def arrowhead_points(start: QPointF, end: QPointF, head_length: float) -> List[QPointF]:
    """Return the triangle [tip, left, right] for an arrow ending at end."""
    angle = math.atan2(end.y() - start.y(), end.x() - start.x())
    spread = math.pi / 6
    return [
        QPointF(end),
        QPointF(
            end.x() - head_length * math.cos(angle - spread),
            end.y() - head_length * math.sin(angle - spread),
        ),
        QPointF(
            end.x() - head_length * math.cos(angle + spread),
            end.y() - head_length * math.sin(angle + spread),
        ),
    ]


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> List[str]:
    """
    Word-wrap text so each line measures at most max_width.

    Explicit newlines are kept. A single word wider than max_width is broken
    at the last character that still fits.
    """
    lines: List[str] = []

    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue

        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if measure(candidate) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)
                current = ""

            # Break overlong words by measuring growing substrings
            while measure(word) > max_width and len(word) > 1:
                cut = 1
                while cut < len(word) and measure(word[:cut + 1]) <= max_width:
                    cut += 1
                lines.append(word[:cut])
                word = word[cut:]
            current = word

        lines.append(current)

    return lines


# ─── Annotations ──────────────────────────────────────────────────────────────


@dataclass
class AnnotationBase(ABC):
    """
    Fields shared by every annotation.

    (x, y) is the anchor in normalized image coordinates. The id stays the
    same across edits; version goes up by one each time the set is saved.
    """
    annotation_type: ClassVar[AnnotationType]

    x: float = 0.0
    y: float = 0.0
    stroke_color: AnnotationColor = AnnotationColor.CHARCOAL
    stroke_width: StrokeWidth = StrokeWidth.MEDIUM
    annotation_id: str = field(default_factory=lambda: str(uuid4()))
    version: int = 1

    @abstractmethod
    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        """Display-space bounds, used for the selection highlight."""

    @abstractmethod
    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        """Paint the annotation in display coordinates."""

    @abstractmethod
    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        """
        Test whether a display-space point touches this annotation.

        Args:
            point: Pointer position in display pixels.
            frame: The image's display frame.
            tolerance: Extra hit area in pixels (larger for touch).
        """

    def anchor_points(self) -> List[Point]:
        """Every normalized point that moves with the annotation."""
        return [(self.x, self.y)]

    def move_by(self, dx: float, dy: float) -> None:
        """Translate by a normalized delta. Callers clamp the delta."""
        self.x += dx
        self.y += dy

    def clamp_to_image(self) -> None:
        """Pull the position back into [0, 1]."""
        self.x = clamp01(self.x)
        self.y = clamp01(self.y)

    def clone(self) -> "AnnotationBase":
        """Deep copy with the same id and version."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "annotationId": self.annotation_id,
            "version": self.version,
            "type": self.annotation_type.value,
            "x": self.x,
            "y": self.y,
            "strokeColor": self.stroke_color.value,
            "strokeWidth": self.stroke_width.value,
        }
        data.update(self._extra_to_dict())
        return data

    def _extra_to_dict(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def _extra_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    def _pen(self, color: Optional[QColor] = None) -> QPen:
        pen = QPen(color or self.stroke_color.qcolor())
        pen.setWidth(self.stroke_width.pixels)
        pen.setCapStyle(Qt.PenCapStyle.RoundCap)
        pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        return pen


@dataclass
class PinAnnotation(AnnotationBase):
    """Point marker centred on (x, y)."""
    annotation_type: ClassVar[AnnotationType] = AnnotationType.PIN

    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        center = frame.to_display(self.x, self.y)
        return QRectF(
            center.x() - PIN_RADIUS, center.y() - PIN_RADIUS,
            PIN_RADIUS * 2, PIN_RADIUS * 2,
        )

    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        center = frame.to_display(self.x, self.y)
        painter.setPen(QPen(QColor(255, 255, 255), 2))
        painter.setBrush(self.stroke_color.qcolor())
        painter.drawEllipse(center, PIN_RADIUS, PIN_RADIUS)

        # Inner dot
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QColor(255, 255, 255))
        painter.drawEllipse(center, PIN_RADIUS / 3, PIN_RADIUS / 3)

    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        return distance(point, frame.to_display(self.x, self.y)) <= PIN_RADIUS + tolerance


@dataclass
class ArrowAnnotation(AnnotationBase):
    """
    Arrow from start to end, arrowhead at end.

    The anchor (x, y) always equals start.
    """
    annotation_type: ClassVar[AnnotationType] = AnnotationType.ARROW

    start: Point = (0.0, 0.0)
    end: Point = (0.0, 0.0)

    def __post_init__(self) -> None:
        self.start = (float(self.start[0]), float(self.start[1]))
        self.end = (float(self.end[0]), float(self.end[1]))
        self.x, self.y = self.start

    @property
    def length(self) -> float:
        """Normalized length of the shaft."""
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])

    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        a = frame.to_display(*self.start)
        b = frame.to_display(*self.end)
        return QRectF(a, b).normalized()

    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        a = frame.to_display(*self.start)
        b = frame.to_display(*self.end)

        painter.setPen(self._pen())
        painter.setBrush(self.stroke_color.qcolor())
        painter.drawLine(a, b)

        if distance(a, b) < 1:
            return

        head = arrowhead_points(a, b, 10 + self.stroke_width.pixels * 2)
        painter.drawPolygon(QPolygonF(head))

    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        a = frame.to_display(*self.start)
        b = frame.to_display(*self.end)

        # The line test alone would match points beyond either end
        bounds = QRectF(a, b).normalized().adjusted(-tolerance, -tolerance, tolerance, tolerance)
        if not bounds.contains(point):
            return False

        return distance_to_line(point, a, b) <= tolerance

    def anchor_points(self) -> List[Point]:
        return [self.start, self.end]

    def move_by(self, dx: float, dy: float) -> None:
        self.start = (self.start[0] + dx, self.start[1] + dy)
        self.end = (self.end[0] + dx, self.end[1] + dy)
        self.x, self.y = self.start

    def clamp_to_image(self) -> None:
        self.start = (clamp01(self.start[0]), clamp01(self.start[1]))
        self.end = (clamp01(self.end[0]), clamp01(self.end[1]))
        self.x, self.y = self.start

    def _extra_to_dict(self) -> Dict[str, Any]:
        return {
            "from": {"x": self.start[0], "y": self.start[1]},
            "to": {"x": self.end[0], "y": self.end[1]},
        }

    @classmethod
    def _extra_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "start": (data["from"]["x"], data["from"]["y"]),
            "end": (data["to"]["x"], data["to"]["y"]),
        }


@dataclass
class RectAnnotation(AnnotationBase):
    """Rectangle with top-left corner at (x, y)."""
    annotation_type: ClassVar[AnnotationType] = AnnotationType.RECT

    width: float = 0.0
    height: float = 0.0
    fill_color: Optional[AnnotationColor] = None

    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        top_left = frame.to_display(self.x, self.y)
        return QRectF(
            top_left.x(), top_left.y(),
            self.width * frame.rect.width(), self.height * frame.rect.height(),
        )

    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        painter.setPen(self._pen())
        if self.fill_color:
            painter.setBrush(self.fill_color.qcolor(FILL_ALPHA))
        else:
            painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(self.bounding_rect(frame))

    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        return self.bounding_rect(frame).contains(point)

    def _extra_to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "fillColor": self.fill_color.value if self.fill_color else "transparent",
        }

    @classmethod
    def _extra_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "width": data["width"],
            "height": data["height"],
            "fill_color": _fill_from_wire(data.get("fillColor")),
        }


@dataclass
class CircleAnnotation(AnnotationBase):
    """Circle centred on (x, y); radius is relative to the image's shorter side."""
    annotation_type: ClassVar[AnnotationType] = AnnotationType.CIRCLE

    radius: float = 0.0
    fill_color: Optional[AnnotationColor] = None

    def _display_radius(self, frame: ImageFrame) -> float:
        return self.radius * frame.short_side

    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        center = frame.to_display(self.x, self.y)
        r = self._display_radius(frame)
        return QRectF(center.x() - r, center.y() - r, r * 2, r * 2)

    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        painter.setPen(self._pen())
        if self.fill_color:
            painter.setBrush(self.fill_color.qcolor(FILL_ALPHA))
        else:
            painter.setBrush(Qt.BrushStyle.NoBrush)
        r = self._display_radius(frame)
        painter.drawEllipse(frame.to_display(self.x, self.y), r, r)

    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        center = frame.to_display(self.x, self.y)
        return distance(point, center) <= self._display_radius(frame) + tolerance

    def _extra_to_dict(self) -> Dict[str, Any]:
        return {
            "radius": self.radius,
            "fillColor": self.fill_color.value if self.fill_color else "transparent",
        }

    @classmethod
    def _extra_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "radius": data["radius"],
            "fill_color": _fill_from_wire(data.get("fillColor")),
        }


@dataclass
class TextAnnotation(AnnotationBase):
    """
    Text label with top-left corner at (x, y).

    Lines wrap at the box width. The soft background is a translucent
    rounded box behind the text.
    """
    annotation_type: ClassVar[AnnotationType] = AnnotationType.TEXT

    width: float = 0.0
    text: str = "Text"
    text_color: AnnotationColor = AnnotationColor.CHARCOAL
    background: TextBackground = TextBackground.SOFT

    def bounding_rect(self, frame: ImageFrame) -> QRectF:
        top_left = frame.to_display(self.x, self.y)
        return QRectF(
            top_left.x(), top_left.y(),
            self.width * frame.rect.width(), TEXT_HIT_HEIGHT,
        )

    def paint(self, painter: QPainter, frame: ImageFrame) -> None:
        font = QFont()
        font.setPixelSize(TEXT_FONT_PX)
        metrics = QFontMetrics(font)

        box = self.bounding_rect(frame)
        max_width = max(box.width() - TEXT_PADDING * 2, 1.0)
        lines = wrap_text(self.text, max_width, metrics.horizontalAdvance)
        box.setHeight(max(TEXT_HIT_HEIGHT, len(lines) * metrics.height() + TEXT_PADDING * 2))

        if self.background == TextBackground.SOFT:
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(QColor(255, 255, 255, 200))
            painter.drawRoundedRect(box, 6, 6)

        painter.setFont(font)
        painter.setPen(self.text_color.qcolor())
        y = box.top() + TEXT_PADDING + metrics.ascent()
        for line in lines:
            painter.drawText(QPointF(box.left() + TEXT_PADDING, y), line)
            y += metrics.height()

    def hit_test(self, point: QPointF, frame: ImageFrame, tolerance: float) -> bool:
        return self.bounding_rect(frame).contains(point)

    def _extra_to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "text": self.text,
            "textColor": self.text_color.value,
            "background": self.background.value,
        }

    @classmethod
    def _extra_from_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "width": data["width"],
            "text": data.get("text", ""),
            "text_color": AnnotationColor(data.get("textColor", AnnotationColor.CHARCOAL.value)),
            "background": TextBackground(data.get("background", TextBackground.NONE.value)),
        }


Annotation = Union[PinAnnotation, ArrowAnnotation, RectAnnotation, CircleAnnotation, TextAnnotation]

ANNOTATION_CLASSES: Dict[AnnotationType, Type[AnnotationBase]] = {
    AnnotationType.PIN: PinAnnotation,
    AnnotationType.ARROW: ArrowAnnotation,
    AnnotationType.RECT: RectAnnotation,
    AnnotationType.CIRCLE: CircleAnnotation,
    AnnotationType.TEXT: TextAnnotation,
}


def _fill_from_wire(value: Optional[str]) -> Optional[AnnotationColor]:
    if value in (None, "", "transparent"):
        return None
    return AnnotationColor(value)


def annotation_from_dict(data: Dict[str, Any]) -> AnnotationBase:
    """
    Build an annotation from its wire dict.

    Raises:
        ValueError: Unknown type, unknown enum value, or missing field.
    """
    try:
        annotation_type = AnnotationType(data["type"])
    except KeyError:
        raise ValueError("Annotation is missing its 'type'")

    cls = ANNOTATION_CLASSES[annotation_type]
    try:
        return cls(
            annotation_id=data["annotationId"],
            version=int(data.get("version", 1)),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            stroke_color=AnnotationColor(data.get("strokeColor", AnnotationColor.CHARCOAL.value)),
            stroke_width=StrokeWidth(data.get("strokeWidth", StrokeWidth.MEDIUM.value)),
            **cls._extra_from_dict(data),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed {annotation_type.value} annotation: {e}") from e


def clone_annotations(annotations: Iterable[AnnotationBase]) -> List[AnnotationBase]:
    return [annotation.clone() for annotation in annotations]


def bump_versions(
    annotations: Iterable[AnnotationBase],
    persisted: Optional[Dict[str, int]] = None,
) -> List[AnnotationBase]:
    """
    Copies of the annotations with every version raised by one.

    With persisted (highest stored version per id), each copy is numbered
    one above the larger of its own version and the stored one.
    """
    persisted = persisted or {}
    return [
        replace(
            annotation,
            version=max(annotation.version, persisted.get(annotation.annotation_id, 0)) + 1,
        )
        for annotation in annotations
    ]
