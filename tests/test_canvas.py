import pytest
from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QImage

from annotator.editor.annotations import (
    AnnotationColor,
    ArrowAnnotation,
    CircleAnnotation,
    PinAnnotation,
    RectAnnotation,
    StrokeWidth,
    TextAnnotation,
)
from annotator.editor.editor_canvas import EditorCanvas
from annotator.editor.tools import ToolType

from conftest import make_image


def is_white(color: QColor) -> bool:
    return (color.red(), color.green(), color.blue()) == (255, 255, 255)


def test_image_is_fitted_and_centred(qapp):
    c = EditorCanvas()
    c.resize(1000, 500)
    c.set_image(make_image(400, 400))

    rect = c.image_frame.rect
    assert (rect.x(), rect.y(), rect.width(), rect.height()) == (250, 0, 500, 500)


def test_null_image_leaves_canvas_blank(qapp):
    c = EditorCanvas()
    c.set_image(QImage())

    assert c.image is None
    assert c.render_to_image().isNull()


def test_render_to_image_draws_annotations_at_native_size(canvas):
    canvas.set_image(make_image(100, 100))
    canvas.set_annotations([
        RectAnnotation(x=0.2, y=0.2, width=0.6, height=0.6, fill_color=AnnotationColor.DANGER_RED),
    ])

    result = canvas.render_to_image()

    assert (result.width(), result.height()) == (100, 100)
    assert not is_white(result.pixelColor(50, 50))
    assert is_white(result.pixelColor(5, 5))


def test_render_leaves_out_selection_and_preview(canvas):
    canvas.set_image(make_image(100, 100))
    canvas.set_tool(ToolType.RECT)
    canvas.pointer_press(QPointF(0.1, 0.1))
    canvas.pointer_move(QPointF(0.9, 0.9))

    result = canvas.render_to_image()
    assert is_white(result.pixelColor(10, 50))


def test_paint_survives_a_failing_annotation(canvas):
    canvas.set_annotations([PinAnnotation(x=0.5, y=0.5)])

    def boom(painter, frame):
        raise RuntimeError("bad geometry")

    canvas.annotations[0].paint = boom

    pixmap = canvas.grab()
    assert not pixmap.isNull()
    assert not canvas.render_to_image().isNull()


def test_every_annotation_type_paints(canvas):
    canvas.set_annotations([
        PinAnnotation(x=0.1, y=0.1),
        ArrowAnnotation(start=(0.2, 0.2), end=(0.4, 0.3), stroke_width=StrokeWidth.BOLD),
        RectAnnotation(x=0.5, y=0.5, width=0.2, height=0.1),
        CircleAnnotation(x=0.3, y=0.7, radius=0.1, fill_color=AnnotationColor.CALM_BLUE),
        TextAnnotation(x=0.6, y=0.1, width=0.3, text="Crack along the sill, check moisture"),
    ])
    canvas.select_annotation(canvas.annotations[4])

    assert not canvas.grab().isNull()


def test_set_annotations_copies_and_resets_history(canvas):
    original = PinAnnotation(x=0.4, y=0.4)
    canvas.set_annotations([original])

    assert canvas.annotations[0] == original
    assert canvas.annotations[0] is not original
    assert canvas.history.count == 1


def test_set_selected_style_restyles_selection(canvas):
    canvas.set_annotations([TextAnnotation(x=0.1, y=0.1, width=0.3)])
    canvas.select_annotation(canvas.annotations[0])

    canvas.set_selected_style(color=AnnotationColor.WARNING_ORANGE, stroke_width=StrokeWidth.THIN)

    text = canvas.annotations[0]
    assert text.stroke_color is AnnotationColor.WARNING_ORANGE
    assert text.text_color is AnnotationColor.WARNING_ORANGE
    assert text.stroke_width is StrokeWidth.THIN
    assert canvas.tool_style.color is AnnotationColor.WARNING_ORANGE
    assert canvas.history.count == 2


def test_set_annotation_text(canvas):
    canvas.set_annotations([TextAnnotation(x=0.1, y=0.1, width=0.3)])
    annotation_id = canvas.annotations[0].annotation_id

    assert canvas.set_annotation_text(annotation_id, "Water damage")
    assert canvas.annotations[0].text == "Water damage"
    assert not canvas.set_annotation_text(annotation_id, "Water damage")
    assert not canvas.set_annotation_text("missing", "x")


def test_saved_versions_reach_live_set_and_history(canvas):
    canvas.set_annotations([PinAnnotation(x=0.4, y=0.4, annotation_id="p1")])

    canvas.apply_saved_versions([PinAnnotation(annotation_id="p1", version=2)])

    assert canvas.annotations[0].version == 2
    assert canvas.history.current[0].version == 2
    # Nothing changed, so committing records nothing
    canvas.commit_changes()
    assert canvas.history.count == 1


def test_undo_after_save_keeps_saved_version(canvas):
    canvas.set_annotations([PinAnnotation(x=0.4, y=0.4, annotation_id="p1")])
    canvas.annotations[0].x = 0.7
    canvas.commit_changes()

    canvas.apply_saved_versions([PinAnnotation(annotation_id="p1", x=0.7, y=0.4, version=2)])
    canvas.undo()

    [pin] = canvas.annotations
    assert pin.x == 0.4
    assert pin.version == 2


def test_signals_fire_on_changes(canvas):
    changes = []
    selections = []
    tools = []
    canvas.annotations_changed.connect(lambda: changes.append(len(canvas.annotations)))
    canvas.selection_changed.connect(selections.append)
    canvas.tool_changed.connect(tools.append)

    canvas.set_tool(ToolType.PIN)
    canvas.pointer_press(QPointF(0.5, 0.5))

    assert changes == [1]
    assert selections == [canvas.annotations[0]]
    assert tools == [ToolType.PIN, ToolType.SELECT]


def test_drag_emits_live_changes(canvas):
    canvas.set_annotations([PinAnnotation(x=0.5, y=0.5)])
    changes = []
    canvas.annotations_changed.connect(lambda: changes.append(canvas.annotations[0].x))

    canvas.pointer_press(QPointF(0.5, 0.5))
    canvas.pointer_move(QPointF(0.6, 0.5))
    canvas.pointer_move(QPointF(0.7, 0.5))
    canvas.pointer_release(QPointF(0.7, 0.5))

    assert changes == pytest.approx([0.6, 0.7, 0.7])
