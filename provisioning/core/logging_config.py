"""Logging configuration for the Bulk Provisioning API."""
import logging

from provisioning.core import config


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL with a concise format."""
    level = getattr(logging, config.settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    root_logger = logging.getLogger()

    # Lambda installs its own handler before our code runs
    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setFormatter(formatter)
        return

    logging.basicConfig(level=level)
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)
