import logging
import os
import sys
from typing import Optional, TextIO

# Top-level packages whose loggers share one handler.
LOGGER_NAMESPACES = ("common", "chunkstore", "catalog", "cli")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class WorkdirFilter(logging.Filter):
    """Attach the active working directory to every log record."""

    def __init__(self, workdir: str):
        super().__init__()
        self.workdir = workdir

    def filter(self, record: logging.LogRecord) -> bool:
        record.workdir = self.workdir
        return True


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    workdir: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Args:
        component_name: Name of the component (e.g., 'cli')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        workdir: Optional working directory to include in log format
        stream: Output stream, stderr by default so command output stays clean

    Returns:
        Configured logger for `component_name`
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)

    if workdir:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(workdir)s] - %(message)s',
            datefmt=DATE_FORMAT
        )
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    for namespace in set(LOGGER_NAMESPACES) | {component_name}:
        logger = logging.getLogger(namespace)
        logger.setLevel(level)

        if logger.handlers:
            for handler in logger.handlers:
                handler.setLevel(level)
            continue

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        if workdir:
            handler.addFilter(WorkdirFilter(workdir))

        logger.addHandler(handler)
        logger.propagate = False

    return logging.getLogger(component_name)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
