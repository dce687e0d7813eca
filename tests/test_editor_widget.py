import pytest
from PySide6.QtCore import QPointF, Qt
from PySide6.QtTest import QTest

from annotator.editor.annotations import AnnotationColor, PinAnnotation, StrokeWidth
from annotator.editor.editor_widget import AnnotationEditor, CancelChoice
from annotator.editor.tools import ToolType
from annotator.services.config_service import ConfigService

from conftest import make_image


class Host:
    """Stands in for the page that embeds the editor."""

    def __init__(self, choice=CancelChoice.KEEP_EDITING, fail_saves=0):
        self.saves = []
        self.cancelled = 0
        self.prompts = 0
        self.choice = choice
        self.fail_saves = fail_saves

    def on_save(self, annotations, is_autosave):
        if self.fail_saves:
            self.fail_saves -= 1
            raise OSError("disk full")
        self.saves.append((annotations, is_autosave))

    def on_cancel(self):
        self.cancelled += 1

    def confirm(self):
        self.prompts += 1
        return self.choice


@pytest.fixture
def config(tmp_path):
    cfg = ConfigService(tmp_path / "config.json")
    cfg.set("autosave_delay_ms", 50)
    cfg.set("saved_status_ms", 50)
    return cfg


def open_editor(host, config, initial=()):
    editor = AnnotationEditor(
        make_image(400, 400),
        list(initial),
        on_save=host.on_save,
        on_cancel=host.on_cancel,
        config=config,
        confirm_cancel=host.confirm,
    )
    editor.resize(800, 800)
    return editor


def add_pin(editor, x=0.5, y=0.5):
    editor.select_tool(ToolType.PIN)
    editor.canvas.pointer_press(QPointF(x, y))
    editor.canvas.pointer_release(QPointF(x, y))


def test_opens_with_initial_annotations(qapp, config):
    host = Host()
    pin = PinAnnotation(x=0.3, y=0.3)
    editor = open_editor(host, config, [pin])

    assert editor.annotations == [pin]
    assert not editor.has_unsaved_changes
    assert editor.canvas.history.count == 1
    editor.close_editor()


def test_default_style_comes_from_config(qapp, config):
    config.set("default_color", "danger-red")
    config.set("default_stroke_width", "bold")
    editor = open_editor(Host(), config)

    assert editor.canvas.tool_style.color is AnnotationColor.DANGER_RED
    assert editor.canvas.tool_style.stroke_width is StrokeWidth.BOLD
    editor.close_editor()


def test_edit_is_autosaved_after_quiet_period(qapp, config):
    host = Host()
    editor = open_editor(host, config)

    add_pin(editor)
    assert editor.has_unsaved_changes
    QTest.qWait(250)

    assert len(host.saves) == 1
    saved, is_autosave = host.saves[0]
    assert is_autosave
    assert saved[0].version == 2
    # Live set picks up the saved version, so nothing is pending
    assert editor.canvas.annotations[0].version == 2
    assert not editor.has_unsaved_changes
    editor.close_editor()


def test_manual_save_ignored_without_changes(qapp, config):
    host = Host()
    editor = open_editor(host, config, [PinAnnotation()])

    assert not editor.save()
    assert host.saves == []
    editor.close_editor()


def test_ctrl_s_saves_immediately(qapp, config):
    host = Host()
    editor = open_editor(host, config)
    editor.show()
    editor.activateWindow()

    add_pin(editor)
    QTest.keyClick(editor, Qt.Key.Key_S, Qt.KeyboardModifier.ControlModifier)

    assert len(host.saves) == 1
    assert host.saves[0][1] is False
    assert editor.status_text == "Saved"
    editor.close_editor()


def test_tool_shortcuts(qapp, config):
    editor = open_editor(Host(), config)
    editor.show()

    for key, tool_type in [
        (Qt.Key.Key_R, ToolType.RECT),
        (Qt.Key.Key_C, ToolType.CIRCLE),
        (Qt.Key.Key_A, ToolType.ARROW),
        (Qt.Key.Key_T, ToolType.TEXT),
        (Qt.Key.Key_P, ToolType.PIN),
        (Qt.Key.Key_V, ToolType.SELECT),
    ]:
        QTest.keyClick(editor, key)
        assert editor.canvas.tool_type is tool_type
    editor.close_editor()


def test_reset_restores_initial_annotations(qapp, config):
    pin = PinAnnotation(x=0.3, y=0.3)
    editor = open_editor(Host(), config, [pin])

    add_pin(editor, 0.7, 0.7)
    assert len(editor.annotations) == 2

    editor.reset()

    assert editor.annotations == [pin]
    assert not editor.canvas.history.can_undo
    assert not editor.has_unsaved_changes
    editor.close_editor()


def test_reset_after_save_is_saved_with_newer_versions(qapp, config):
    host = Host()
    pin = PinAnnotation(annotation_id="p", x=0.3, y=0.3)
    editor = open_editor(host, config, [pin])

    editor.canvas.annotations[0].x = 0.6
    editor.canvas.commit_changes()
    assert editor.save()

    editor.reset()

    assert editor.annotations == [pin]
    assert not editor.canvas.history.can_undo
    assert editor.has_unsaved_changes
    assert editor.save()
    [restored] = host.saves[-1][0]
    assert restored.x == 0.3
    assert restored.version == 3
    editor.close_editor()


def test_restyling_with_same_colour_after_save_adds_no_history(qapp, config):
    editor = open_editor(Host(), config, [PinAnnotation(x=0.2, y=0.2)])
    add_pin(editor)
    assert editor.save()
    count = editor.canvas.history.count

    editor.set_color(editor.canvas.selected_annotation.stroke_color)

    assert editor.canvas.history.count == count
    assert not editor.has_unsaved_changes
    editor.close_editor()


def test_cancel_without_changes_closes_without_asking(qapp, config):
    host = Host()
    editor = open_editor(host, config)

    editor.cancel()

    assert host.cancelled == 1
    assert host.prompts == 0


def test_cancel_keep_editing(qapp, config):
    host = Host(choice=CancelChoice.KEEP_EDITING)
    editor = open_editor(host, config)
    add_pin(editor)

    editor.cancel()

    assert host.prompts == 1
    assert host.cancelled == 0
    assert host.saves == []
    editor.close_editor()


def test_cancel_discard(qapp, config):
    host = Host(choice=CancelChoice.DISCARD)
    editor = open_editor(host, config)
    add_pin(editor)

    editor.cancel()
    QTest.qWait(150)

    assert host.cancelled == 1
    assert host.saves == []


def test_cancel_save_and_close(qapp, config):
    host = Host(choice=CancelChoice.SAVE_AND_CLOSE)
    editor = open_editor(host, config)
    add_pin(editor)

    editor.cancel()

    assert len(host.saves) == 1
    assert host.saves[0][1] is False
    assert host.cancelled == 1


def test_failed_save_and_close_keeps_editor_open(qapp, config):
    host = Host(choice=CancelChoice.SAVE_AND_CLOSE, fail_saves=1)
    editor = open_editor(host, config)
    add_pin(editor)

    editor.cancel()

    assert host.cancelled == 0
    assert editor.has_unsaved_changes
    editor.close_editor()


def test_color_choice_applies_to_selection(qapp, config):
    editor = open_editor(Host(), config)
    add_pin(editor)

    editor.set_color(AnnotationColor.SUCCESS_GREEN)
    editor.set_stroke_width(StrokeWidth.THIN)

    pin = editor.canvas.annotations[0]
    assert pin.stroke_color is AnnotationColor.SUCCESS_GREEN
    assert pin.stroke_width is StrokeWidth.THIN
    editor.close_editor()
