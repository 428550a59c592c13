# tests/test_logging.py
import structlog

from storefront.utils.logging import get_logger


class TestGetLogger:
    def test_structlog_is_configured_on_first_use(self):
        logger = get_logger("storefront.tests")

        assert structlog.is_configured()
        logger.info("Logger ready", component="tests")

