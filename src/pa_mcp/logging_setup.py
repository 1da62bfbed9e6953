"""Logging configuration for the MCP server process.

stdout carries the MCP stdio transport, so log records go to stderr and to
a rotating file under the config directory.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from pa_mcp.config import GeneralConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_LOG_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

STDERR_HANDLER_NAME = "pa_mcp.stderr"
FILE_HANDLER_NAME = "pa_mcp.file"


def configure_logging(config: GeneralConfig, log_to_file: bool = True) -> logging.Logger:
    """Configure root logging for the server.

    Calling this again replaces the handlers it installed previously.

    Args:
        config: Process configuration (level and log file location).
        log_to_file: Also write to ``<config_dir>/logs/pa-mcp-server.log``.

    Returns:
        The configured ``pa_mcp`` package logger.
    """
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() in (STDERR_HANDLER_NAME, FILE_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.set_name(STDERR_HANDLER_NAME)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    if log_to_file:
        try:
            config.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as e:
            root.warning(f"Could not open log file {config.log_file}: {e}")
        else:
            file_handler.set_name(FILE_HANDLER_NAME)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    root.setLevel(level)

    # httpx logs full request URLs at INFO, which include Graph access tokens
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("pa_mcp")
