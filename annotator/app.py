"""
Filla annotator - image annotation editor.

This is the main entry point for the application.
Run with: python -m annotator.app IMAGE [--task-id ID] [--image-id ID]
"""

import argparse
import getpass
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import QApplication

from annotator import __version__
from annotator.core.app_core import AppCore, EditSession
from annotator.services.image_loader import is_remote
from annotator.services.logging_service import get_logger, setup_logging


_should_quit = False


def request_quit(signum, frame) -> None:
    """Signal handler; the event loop picks the flag up on the next tick."""
    global _should_quit
    _should_quit = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filla-annotate",
        description="Annotate an image with pins, arrows, shapes and text.",
    )
    parser.add_argument("image", help="image path, file:// or http(s):// URL")
    parser.add_argument("--task-id", default="local", help="task the image belongs to")
    parser.add_argument("--image-id", help="image identifier (default: file name stem)")
    parser.add_argument("--user", default=None, help="author recorded with saved annotations")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def default_image_id(source: str) -> str:
    path = urlparse(source).path if is_remote(source) else source
    name = Path(path.rstrip("/")).name
    return Path(name).stem or "image"


def parse_session(args: argparse.Namespace) -> EditSession:
    return EditSession(
        image_source=args.image,
        task_id=args.task_id,
        image_id=args.image_id or default_image_id(args.image),
        user=args.user or getpass.getuser(),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    args = build_parser().parse_args(argv)

    log_path = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger(__name__)
    if log_path:
        logger.debug(f"Writing log file {log_path}")

    try:
        logger.info(f"Starting Filla annotator {__version__}...")

        app = QApplication(sys.argv[:1])
        app.setApplicationName("Filla Annotator")
        app.setApplicationVersion(__version__)

        signal.signal(signal.SIGINT, request_quit)
        signal.signal(signal.SIGTERM, request_quit)

        # Qt's event loop blocks Python signal handlers; poll the flag
        quit_timer = QTimer()
        quit_timer.timeout.connect(lambda: app.quit() if _should_quit else None)
        quit_timer.start(100)

        core = AppCore(app, parse_session(args), config_path=args.config)

        exit_code = app.exec()
        core.shutdown()

        logger.info(f"Filla annotator exiting with code {exit_code}")
        return exit_code

    except Exception as e:
        logger.critical(f"Fatal error during startup: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
