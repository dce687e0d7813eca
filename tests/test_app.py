import pytest
from PySide6.QtCore import QPointF
from PySide6.QtTest import QTest

from annotator.app import build_parser, default_image_id, parse_session
from annotator.editor.annotations import PinAnnotation
from annotator.editor.tools import ToolType
from annotator.services.annotation_store import AnnotationStore
from annotator.ui.main_window import MainWindow

from conftest import make_image


def test_parser_defaults():
    args = build_parser().parse_args(["/photos/kitchen.jpg"])

    assert args.image == "/photos/kitchen.jpg"
    assert args.task_id == "local"
    assert args.image_id is None
    assert not args.debug


def test_session_from_args():
    args = build_parser().parse_args([
        "https://cdn.example.com/img/roof.png?size=large",
        "--task-id", "T-42",
        "--user", "sam",
    ])
    session = parse_session(args)

    assert session.task_id == "T-42"
    assert session.image_id == "roof"
    assert session.user == "sam"


def test_default_image_id():
    assert default_image_id("/photos/kitchen.jpg") == "kitchen"
    assert default_image_id("https://example.com/a/b/wall.png") == "wall"


def test_image_argument_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


@pytest.fixture
def make_window(qapp, tmp_path):
    windows = []

    def factory(image_id, store=None):
        window = MainWindow(store or AnnotationStore(tmp_path / "store"), "T-1", image_id, "sam")
        windows.append(window)
        return window

    yield factory

    # Hidden windows stop claiming the File menu shortcuts
    for window in windows:
        if window.editor:
            window.editor.close_editor()
        window.hide()
        window.deleteLater()
    QTest.qWait(10)


def test_main_window_loads_and_saves_through_store(make_window, tmp_path):
    store = AnnotationStore(tmp_path / "store")
    existing = PinAnnotation(x=0.4, y=0.4, version=3)
    store.save("T-1", "kitchen", [existing], created_by="sam")

    window = make_window("kitchen")
    editor = window.open_editor(make_image(200, 100))

    assert editor.annotations == [existing]

    editor.canvas.select_annotation(editor.canvas.annotations[0])
    editor.canvas.delete_selected()
    assert editor.save()

    log = store.history("T-1", "kitchen")
    assert len(log) == 1


def test_main_window_appends_new_annotations(make_window, tmp_path):
    window = make_window("porch")
    editor = window.open_editor(make_image(200, 100))

    editor.canvas.set_annotations([PinAnnotation(x=0.5, y=0.5)])
    editor.canvas.select_annotation(editor.canvas.annotations[0])
    editor.canvas.delete_selected()
    editor.canvas.undo()
    assert editor.save()

    [loaded] = AnnotationStore(tmp_path / "store").load("T-1", "porch")
    assert loaded.version == 2


def test_undone_edit_is_persisted_with_a_newer_version(make_window, tmp_path):
    window = make_window("garage")
    editor = window.open_editor(make_image(200, 200))
    canvas = editor.canvas

    canvas.set_tool(ToolType.PIN)
    canvas.pointer_press(QPointF(0.3, 0.3))
    canvas.pointer_release(QPointF(0.3, 0.3))
    assert editor.save()

    canvas.annotations[0].x = 0.6
    canvas.commit_changes()
    assert editor.save()

    canvas.undo()
    assert editor.save()

    store = AnnotationStore(tmp_path / "store")
    [loaded] = store.load("T-1", "garage")
    assert loaded.x == pytest.approx(0.3)
    assert loaded.version == 4
    assert [entry["version"] for entry in store.history("T-1", "garage")] == [2, 3, 4]


def test_export_image(make_window, tmp_path):
    window = make_window("porch")
    editor = window.open_editor(make_image(120, 80))
    editor.canvas.set_annotations([PinAnnotation(x=0.5, y=0.5)])

    out = tmp_path / "export.png"
    assert window.export_image(str(out))
    assert out.exists()
