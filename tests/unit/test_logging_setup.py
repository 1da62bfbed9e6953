"""Unit tests for logging configuration."""

import logging
from collections.abc import Generator

import pytest

from pa_mcp.config import GeneralConfig
from pa_mcp.logging_setup import FILE_HANDLER_NAME, STDERR_HANDLER_NAME, configure_logging


@pytest.fixture
def restore_root_logger() -> Generator[None, None, None]:
    """Restore root logger handlers after each test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() in (STDERR_HANDLER_NAME, FILE_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_should_write_log_file_under_config_dir(self, tmp_path, restore_root_logger) -> None:
        """Verify records reach the log file in <config_dir>/logs."""
        config = GeneralConfig.load(environ={}, mcp_config_dir=tmp_path)

        logger = configure_logging(config)
        logger.info("server started")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "server started" in config.log_file.read_text()

    def test_should_apply_configured_level(self, tmp_path, restore_root_logger) -> None:
        """Verify PA_MCP_LOG_LEVEL sets the root level."""
        config = GeneralConfig.load(environ={"PA_MCP_LOG_LEVEL": "debug"}, mcp_config_dir=tmp_path)

        configure_logging(config, log_to_file=False)

        assert logging.getLogger().level == logging.DEBUG

    def test_should_fall_back_to_info_for_unknown_level(self, tmp_path, restore_root_logger) -> None:
        """Verify an unknown level name does not break startup."""
        config = GeneralConfig.load(environ={"PA_MCP_LOG_LEVEL": "chatty"}, mcp_config_dir=tmp_path)

        configure_logging(config, log_to_file=False)

        assert logging.getLogger().level == logging.INFO

    def test_should_quiet_httpx_request_logs(self, tmp_path, restore_root_logger) -> None:
        """Verify httpx URL logging is raised above INFO."""
        config = GeneralConfig.load(environ={}, mcp_config_dir=tmp_path)

        configure_logging(config, log_to_file=False)

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_should_replace_own_handlers_on_reconfigure(self, tmp_path, restore_root_logger) -> None:
        """Verify repeated configuration does not duplicate handlers."""
        config = GeneralConfig.load(environ={}, mcp_config_dir=tmp_path)

        configure_logging(config)
        configure_logging(config)

        names = [h.get_name() for h in logging.getLogger().handlers]
        assert names.count(STDERR_HANDLER_NAME) == 1
        assert names.count(FILE_HANDLER_NAME) == 1
