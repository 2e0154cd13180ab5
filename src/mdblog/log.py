"""Logging setup for the command line and the web server."""

import logging
import sys

from mdblog.config import Settings

ACCESS_LOGGER = "mdblog.access"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: Settings) -> None:
    """Configure the root logger and the access logger.

    The access logger always propagates to the root handlers. When
    ``settings.access_log_path`` is set it also appends raw access lines
    to that file, creating the parent directory if needed.
    """
    level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger().setLevel(level)

    access_logger = logging.getLogger(ACCESS_LOGGER)
    for handler in list(access_logger.handlers):
        access_logger.removeHandler(handler)
        handler.close()

    if settings.access_log_path is not None:
        settings.access_log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.access_log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        access_logger.addHandler(file_handler)

    if settings.debug:
        logger = logging.getLogger(__name__)
        logger.debug("Debug logging enabled")
        logger.debug("Content dir: %s", settings.content_dir)
        logger.debug("Web root: %s", settings.web_root)
        logger.debug("Port: %d, metrics port: %d", settings.port, settings.metrics_port)
        logger.debug("Use memory: %s", settings.use_memory)
