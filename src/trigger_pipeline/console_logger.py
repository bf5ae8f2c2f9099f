# src/trigger_pipeline/console_logger.py

import logging
import logging.handlers
import os
import queue

from . import config
from .json_log_handler import JSONLogHandler

# Logger name prefix -> plain text log file
LOG_CATEGORIES = {
    'can_decoder': "can_processing.log",
    'trigger_pipeline': "pipeline.log",
}
STRUCTURED_LOG_FILE = "pipeline_log.jsonl"

FILE_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'


class CategoryFilter(logging.Filter):
    """Passes records whose logger name starts with 'prefix'."""

    def __init__(self, prefix):
        super().__init__()
        self.prefix = prefix

    def filter(self, record):
        return record.name == self.prefix or record.name.startswith(self.prefix + '.')


def setup_logging(output_dir=None, console=None, level=logging.INFO):
    """
    Routes the package loggers through a QueueHandler so worker threads never
    block on file I/O. Returns the started QueueListener; call stop() on it at
    shutdown to flush the remaining records.
    """
    output_dir = output_dir or config.OUTPUT_DIRECTORY
    console = config.ENABLE_CONSOLE_LOGGING if console is None else console
    os.makedirs(output_dir, exist_ok=True)

    handlers = []
    for prefix, filename in LOG_CATEGORIES.items():
        file_handler = logging.FileHandler(os.path.join(output_dir, filename), mode='a')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.addFilter(CategoryFilter(prefix))
        handlers.append(file_handler)

    json_handler = JSONLogHandler(filepath=os.path.join(output_dir, STRUCTURED_LOG_FILE))
    json_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handlers.append(json_handler)

    # The console only sees output when the master switch is on.
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handlers.append(console_handler)

    log_queue = queue.Queue(-1)
    listener = logging.handlers.QueueListener(log_queue, *handlers, respect_handler_level=True)

    for prefix in LOG_CATEGORIES:
        package_logger = logging.getLogger(prefix)
        for handler in list(package_logger.handlers):
            if isinstance(handler, logging.handlers.QueueHandler):
                package_logger.removeHandler(handler)
        package_logger.addHandler(logging.handlers.QueueHandler(log_queue))
        package_logger.setLevel(level)
        package_logger.propagate = False

    listener.start()
    logging.getLogger(__name__).info(
        "Logger initialized. Console logging is {}.".format("ENABLED" if console else "DISABLED")
    )
    return listener


def log_debug(logger, message, flag=None):
    """
    Logs 'message' at INFO when 'flag' is enabled in DEBUG_FLAGS, or
    unconditionally when no flag is given.
    """
    if flag is None or config.DEBUG_FLAGS.get(flag, False):
        logger.info(message)
