"""
Application core for the Filla annotator.

This module contains the AppCore class which is responsible for:
- Initializing services (config, store, HTTP session)
- Applying global styling (dark theme)
- Loading the image and opening the editor window

This is the central orchestration point for the application.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from PySide6.QtCore import QObject
from PySide6.QtGui import QColor, QPalette
from PySide6.QtWidgets import QApplication

from annotator.services.annotation_store import AnnotationStore
from annotator.services.config_service import ConfigService
from annotator.services.image_loader import load_image
from annotator.services.logging_service import get_logger
from annotator.ui.main_window import MainWindow


@dataclass
class EditSession:
    """What to annotate and on whose behalf."""
    image_source: str
    task_id: str
    image_id: str
    user: str


class AppCore(QObject):
    """
    Central application core that wires together all components.

    Responsibilities:
    - Initialize services
    - Apply global dark theme
    - Load the image and show the MainWindow with the editor
    """

    def __init__(
        self,
        app: QApplication,
        session: EditSession,
        config_path: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self._app = app
        self._session = session
        self._logger = get_logger(__name__)

        self._config_service: Optional[ConfigService] = None
        self._store: Optional[AnnotationStore] = None
        self._http: Optional[requests.Session] = None
        self._main_window: Optional[MainWindow] = None

        self._init_services(config_path)
        self._apply_dark_theme()
        self._init_ui()

    def _init_services(self, config_path: Optional[Path]) -> None:
        """Initialize all application services."""
        self._logger.info("Initializing Filla annotator core...")

        self._config_service = ConfigService(config_path)
        self._store = AnnotationStore(self._config_service.store_dir)
        self._http = requests.Session()
        self._logger.info(f"Annotation store at {self._store.store_dir}")

    def _apply_dark_theme(self) -> None:
        """
        Apply a dark color palette to the application.

        Uses Qt's QPalette for a native-looking dark theme.
        """
        palette = QPalette()

        # Window and base colors
        palette.setColor(QPalette.ColorRole.Window, QColor(45, 45, 45))
        palette.setColor(QPalette.ColorRole.WindowText, QColor(220, 220, 220))
        palette.setColor(QPalette.ColorRole.Base, QColor(35, 35, 35))
        palette.setColor(QPalette.ColorRole.AlternateBase, QColor(50, 50, 50))

        # Text and buttons
        palette.setColor(QPalette.ColorRole.Text, QColor(220, 220, 220))
        palette.setColor(QPalette.ColorRole.BrightText, QColor(255, 255, 255))
        palette.setColor(QPalette.ColorRole.Button, QColor(55, 55, 55))
        palette.setColor(QPalette.ColorRole.ButtonText, QColor(220, 220, 220))

        # Highlight
        palette.setColor(QPalette.ColorRole.Highlight, QColor(59, 130, 246))
        palette.setColor(QPalette.ColorRole.HighlightedText, QColor(255, 255, 255))

        # Disabled state colors
        for role in (
            QPalette.ColorRole.WindowText,
            QPalette.ColorRole.Text,
            QPalette.ColorRole.ButtonText,
        ):
            palette.setColor(QPalette.ColorGroup.Disabled, role, QColor(127, 127, 127))

        self._app.setPalette(palette)
        self._app.setStyleSheet("""
            QToolTip {
                background-color: #3d3d3d;
                color: #dcdcdc;
                border: 1px solid #5a5a5a;
                padding: 4px;
            }
            QMenuBar {
                background-color: #2d2d2d;
                padding: 2px;
            }
            QMenu {
                background-color: #2d2d2d;
                border: 1px solid #3a3a3a;
            }
            QMenu::item:selected {
                background-color: #4a6a9a;
            }
        """)

        self._logger.debug("Dark theme applied")

    def _init_ui(self) -> None:
        """Load the image and open the editor window."""
        image = load_image(
            self._session.image_source,
            session=self._http,
            timeout=self._config_service.image_timeout_s,
        )

        self._main_window = MainWindow(
            self._store,
            self._session.task_id,
            self._session.image_id,
            self._session.user,
            config_service=self._config_service,
        )
        self._main_window.open_editor(image)

    def shutdown(self) -> None:
        """Release network resources."""
        self._logger.info("Shutting down Filla annotator...")
        if self._http:
            self._http.close()

    # ─── Properties ───────────────────────────────────────────────────────

    @property
    def config(self) -> ConfigService:
        if self._config_service is None:
            raise RuntimeError("ConfigService not initialized")
        return self._config_service

    @property
    def main_window(self) -> MainWindow:
        if self._main_window is None:
            raise RuntimeError("MainWindow not initialized")
        return self._main_window
