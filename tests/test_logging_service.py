import logging

import pytest

from annotator.services import logging_service
from annotator.services.logging_service import get_logger, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def clean_logging():
    root = logging.getLogger()
    level = root.level
    reset_logging()
    yield
    reset_logging()
    root.setLevel(level)
    logging.getLogger("urllib3").setLevel(logging.NOTSET)


def test_writes_dated_log_file(tmp_path):
    log_path = setup_logging(logging.INFO, log_dir=tmp_path / "logs")

    assert log_path is not None
    assert log_path.parent == tmp_path / "logs"
    assert log_path.name.startswith("annotator_")

    get_logger("annotator.test").info("editor opened")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "annotator.test - INFO - editor opened" in log_path.read_text()


def test_second_call_is_ignored(tmp_path):
    first = setup_logging(log_dir=tmp_path / "a")
    handlers = list(logging.getLogger().handlers)

    second = setup_logging(logging.DEBUG, log_dir=tmp_path / "b")

    assert second == first
    assert logging.getLogger().handlers == handlers
    assert not (tmp_path / "b").exists()


def test_falls_back_to_console_when_dir_unusable(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    assert setup_logging(log_dir=blocker / "logs") is None
    assert logging_service._logging_initialized


def test_console_only(tmp_path):
    assert setup_logging(log_to_file=False, log_dir=tmp_path) is None
    assert not any(tmp_path.iterdir())


def test_urllib3_kept_quiet_in_debug(tmp_path):
    setup_logging(logging.DEBUG, log_to_file=False)
    assert logging.getLogger("urllib3").level == logging.INFO
