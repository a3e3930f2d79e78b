import logging

import pytest


@pytest.fixture
def restore_root_logger():
    """Undo configure_logging() side effects on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    logger_class = logging.getLoggerClass()
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.setLoggerClass(logger_class)
