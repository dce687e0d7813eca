"""
Image loading for the Filla annotator.

Accepts a local path, a file:// URL or an http(s) URL. Remote images are
fetched with requests. Any failure is logged and yields a null QImage so
the editor can open on a blank canvas.
"""

from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
from PySide6.QtGui import QImage

from annotator.services.logging_service import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 10.0


def is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def _local_path(source: str) -> Path:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(source).expanduser()


def _fetch(url: str, session: Optional[requests.Session], timeout: float) -> QImage:
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout:
        logger.error(f"Image request timed out after {timeout}s: {url}")
        return QImage()
    except requests.exceptions.RequestException as e:
        logger.error(f"Image request failed for {url}: {e}")
        return QImage()

    image = QImage.fromData(response.content)
    if image.isNull():
        logger.error(f"Response from {url} is not a readable image")
    return image


def load_image(
    source: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> QImage:
    """
    Load an image from a path or URL.

    Args:
        source: Local path, file:// URL or http(s):// URL.
        session: Optional requests session for remote fetches.
        timeout: Request timeout in seconds.

    Returns:
        The image, or a null QImage if it could not be loaded.
    """
    if is_remote(source):
        image = _fetch(source, session, timeout)
    else:
        path = _local_path(source)
        if not path.is_file():
            logger.error(f"Image file not found: {path}")
            return QImage()
        image = QImage(str(path))
        if image.isNull():
            logger.error(f"Could not decode image file: {path}")

    if not image.isNull():
        logger.info(f"Loaded image {source} ({image.width()}x{image.height()})")
    return image
