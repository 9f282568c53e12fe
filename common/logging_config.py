import logging
import os
import sys
from typing import Optional


class SharedRootFilter(logging.Filter):
    """Filter to hide the shared root's absolute location in log records."""

    def __init__(self, shared_root: str, placeholder: str = "<shared>"):
        super().__init__()
        self.shared_root = shared_root.rstrip("/\\")
        self.placeholder = placeholder

    def filter(self, record: logging.LogRecord) -> bool:
        """Replace the shared root prefix in the message and its arguments."""
        if not self.shared_root:
            return True

        if isinstance(record.msg, str):
            record.msg = record.msg.replace(self.shared_root, self.placeholder)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value):
        if isinstance(value, str):
            return value.replace(self.shared_root, self.placeholder)
        return value


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    mask_root: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Handlers are attached to the component logger and to the ``fileserver``
    and ``common`` package loggers so module loggers created with
    ``logging.getLogger(__name__)`` share the same output.

    Args:
        component_name: Name of the component (e.g., 'localtransfer')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        mask_root: Optional shared root path to hide from log output

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        for name in {component_name, 'fileserver', 'common'}:
            logging.getLogger(name).setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    if mask_root:
        handler.addFilter(SharedRootFilter(mask_root))

    for name in {component_name, 'fileserver', 'common'}:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(level)
        package_logger.addHandler(handler)
        package_logger.propagate = False

    return logger

