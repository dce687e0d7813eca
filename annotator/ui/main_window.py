"""
Main window for the Filla annotator.

Hosts a single AnnotationEditor for one (task, image) pair. Saves go to the
annotation store; cancelling the editor closes the window.
"""

from typing import List, Optional

from PySide6.QtGui import QAction, QImage, QKeySequence
from PySide6.QtWidgets import QFileDialog, QMainWindow, QWidget

from annotator.editor.annotations import AnnotationBase
from annotator.editor.editor_widget import AnnotationEditor
from annotator.services.annotation_store import AnnotationStore
from annotator.services.config_service import ConfigService
from annotator.services.logging_service import get_logger


class MainWindow(QMainWindow):
    """
    Main application window.

    Features:
    - Dark themed UI
    - File menu with Save, Export and Close
    - The annotation editor as central widget
    """

    def __init__(
        self,
        store: AnnotationStore,
        task_id: str,
        image_id: str,
        user: str,
        config_service: Optional[ConfigService] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._logger = get_logger(__name__)
        self._store = store
        self._task_id = task_id
        self._image_id = image_id
        self._user = user
        self._config = config_service
        self._editor: Optional[AnnotationEditor] = None
        self._closing = False

        self._setup_window()
        self._setup_menu_bar()

        self._logger.info("MainWindow initialized")

    def _setup_window(self) -> None:
        self.setWindowTitle(f"Filla - {self._image_id}")
        self.setMinimumSize(800, 600)
        self.resize(1200, 800)

    def _setup_menu_bar(self) -> None:
        """Create and configure the menu bar."""
        file_menu = self.menuBar().addMenu("&File")

        save_action = QAction("&Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.setStatusTip("Save annotations now")
        save_action.triggered.connect(self._on_save)
        file_menu.addAction(save_action)

        export_action = QAction("&Export Image…", self)
        export_action.setStatusTip("Export the image with annotations as PNG")
        export_action.triggered.connect(self._on_export)
        file_menu.addAction(export_action)

        file_menu.addSeparator()

        close_action = QAction("&Close", self)
        close_action.setShortcut(QKeySequence.StandardKey.Close)
        close_action.triggered.connect(self.close)
        file_menu.addAction(close_action)

    # ─── Public Methods ───────────────────────────────────────────────────

    @property
    def editor(self) -> Optional[AnnotationEditor]:
        return self._editor

    def open_editor(self, image: QImage) -> AnnotationEditor:
        """
        Load stored annotations and show the editor for the image.

        Args:
            image: The image to annotate. A null image opens a blank canvas.
        """
        initial = self._store.load(self._task_id, self._image_id)

        self._editor = AnnotationEditor(
            image,
            initial,
            on_save=self._save_annotations,
            on_cancel=self._on_editor_cancelled,
            config=self._config,
            parent=self,
        )
        self.setCentralWidget(self._editor)

        if not image.isNull():
            self.setWindowTitle(
                f"Filla - {self._image_id} - {image.width()}×{image.height()}"
            )

        self.show()
        self.raise_()
        self.activateWindow()
        self._logger.info(f"Editor opened for task {self._task_id}, image {self._image_id}")
        return self._editor

    def export_image(self, path: str) -> bool:
        """Write the annotated image to path as PNG."""
        if not self._editor:
            return False

        rendered = self._editor.canvas.render_to_image()
        if rendered.isNull():
            self._logger.warning("Nothing to export: no image loaded")
            return False

        if rendered.save(path, "PNG"):
            self._logger.info(f"Exported annotated image to {path}")
            return True

        self._logger.error(f"Failed to export image to {path}")
        return False

    # ─── Editor Callbacks ─────────────────────────────────────────────────

    def _save_annotations(self, annotations: List[AnnotationBase], is_autosave: bool) -> None:
        """Persist through the store; errors propagate to the editor."""
        self._store.save(self._task_id, self._image_id, annotations, created_by=self._user)

    def _on_editor_cancelled(self) -> None:
        self._closing = True
        self.close()

    # ─── Menu Actions ─────────────────────────────────────────────────────

    def _on_save(self) -> None:
        if self._editor:
            self._editor.save()

    def _on_export(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self, "Export Image", f"{self._image_id}.png", "PNG Images (*.png)"
        )
        if path:
            self.export_image(path)

    def closeEvent(self, event) -> None:
        """Route window close through the editor's cancel flow."""
        if self._editor and not self._closing:
            event.ignore()
            self._editor.cancel()
            return

        self._logger.info("MainWindow closing")
        if self._editor:
            self._editor.close_editor()
        super().closeEvent(event)
