import logging
import os

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
}


def setup_logger(level: str | None = None) -> logging.Logger:
    """Configure the root logger for command line use.

    The level comes from ``level`` or the ``LOG_LEVEL`` environment variable (default "info").
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "info")).lower()
    logging_level = LOG_LEVELS.get(level_name, logging.INFO)

    logger = logging.getLogger()
    logging_format = "[{asctime}|{filename}:{funcName}:{lineno:d}]{levelname}  {message}"
    formatter = logging.Formatter(logging_format, style="{", datefmt="%H:%M:%S")

    # Create a handler for console output
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    # Replace any handler installed by a previous call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(console_handler)
    logger.setLevel(logging_level)

    return logger
