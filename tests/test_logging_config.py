"""Tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from cpa_intel.utils.logging_config import LOG_FILE, setup_logging


@pytest.fixture
def restore_loggers():
    urllib3_level = logging.getLogger("urllib3").level
    yield
    logger = logging.getLogger("cpa_intel")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logging.getLogger("urllib3").setLevel(urllib3_level)


class TestSetupLogging:
    def test_writes_rotating_file(self, tmp_path, restore_loggers):
        logger = setup_logging(str(tmp_path / "logs"))
        logging.getLogger("cpa_intel.scrapers.session").info("session established")

        file_handler = next(h for h in logger.handlers if isinstance(h, RotatingFileHandler))
        file_handler.flush()
        assert (tmp_path / "logs" / LOG_FILE).read_text(encoding="utf-8").strip().endswith(
            "[INFO] cpa_intel.scrapers.session: session established"
        )

    def test_repeated_setup_keeps_two_handlers(self, tmp_path, restore_loggers):
        setup_logging(str(tmp_path))
        logger = setup_logging(str(tmp_path), logging.DEBUG)
        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG

    def test_quiets_http_retries(self, tmp_path, restore_loggers):
        setup_logging(str(tmp_path), logging.DEBUG)
        assert logging.getLogger("urllib3").level == logging.WARNING
