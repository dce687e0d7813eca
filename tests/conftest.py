import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtGui import QColor, QImage
from PySide6.QtWidgets import QApplication

from annotator.editor.editor_canvas import EditorCanvas


def make_image(width: int = 1000, height: int = 1000, color: QColor = QColor(255, 255, 255)) -> QImage:
    image = QImage(width, height, QImage.Format.Format_ARGB32)
    image.fill(color)
    return image


@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def canvas(qapp):
    # Square widget and image: normalized 0.1 is exactly 100 display pixels
    c = EditorCanvas()
    c.resize(1000, 1000)
    c.set_image(make_image())
    yield c
    c.deleteLater()
