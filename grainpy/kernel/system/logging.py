import logging
import sys

ROOT_LOGGER = "grainpy"
LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Attaches a single stderr handler to the package logger.
    Calling it again only changes the level.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Module logger under the package namespace; accepts `__name__`."""
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    prefix = ROOT_LOGGER + "."
    if name.startswith(prefix):
        name = name[len(prefix) :]
    return logging.getLogger(prefix + name)
