"""
Logging Configuration
Sets up the package logger and the per-instruction trace logger.
"""
import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "befunge"
TRACE_LOGGER = "befunge.trace"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%H:%M:%S'


def _replace_handlers(logger: logging.Logger, *handlers: logging.Handler) -> None:
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging(level: int = logging.WARNING, log_file: Optional[str] = None,
                  trace: bool = False) -> None:
    """
    Configures the 'befunge' loggers.

    Everything goes to stderr so that program output on stdout stays clean.
    Trace lines are already formatted by the engine and are written bare,
    without the timestamp prefix, to stderr and to the log file.

    Args:
        level: Logging level for the package logger (e.g. logging.INFO)
        log_file: Optional path to save logs to a file.
        trace: Emit one line per executed instruction.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    _replace_handlers(logger, *handlers)

    trace_logger = logging.getLogger(TRACE_LOGGER)
    if trace:
        bare = logging.Formatter('%(message)s')
        trace_handlers = []
        for handler in handlers:
            copy = (logging.FileHandler(log_file, mode='a', encoding='utf-8')
                    if isinstance(handler, logging.FileHandler)
                    else logging.StreamHandler(sys.stderr))
            copy.setFormatter(bare)
            trace_handlers.append(copy)
        _replace_handlers(trace_logger, *trace_handlers)
        trace_logger.setLevel(logging.DEBUG)
        trace_logger.propagate = False
    else:
        _replace_handlers(trace_logger)
        trace_logger.setLevel(logging.NOTSET)
        trace_logger.propagate = True

    logger.debug("Logging initialized.")
