"""Logging for the Shogunito backend.

The root logger writes JSON lines to a rotating file, for shipping to a log
store, and plain text to the console. Audit events carry their structured
fields in ``record.extra_fields``; see :func:`log_event`.
"""
import logging
import os
import json
from logging.handlers import RotatingFileHandler
from flask import g, has_request_context, request
from shared.models import now

LOG_FILE_NAME = 'shogunito.log'
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5
CONSOLE_FORMAT = '%(asctime)s %(levelname)-8s %(name)-20s %(message)s'

# Third-party loggers that only report warnings and above
QUIET_LOGGERS = ('werkzeug', 'sqlalchemy.engine', 'PIL', 'libcloud', 'flask_limiter')


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Inside a request the method, path and authenticated user id are added,
    so entries can be correlated without every caller passing them.
    """

    def format(self, record):
        entry = {
            'timestamp': now().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if has_request_context():
            user = getattr(g, 'user', None)
            entry['request'] = {
                'method': request.method,
                'path': request.path,
                'user_id': user.id if user is not None else None,
            }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        entry.update(getattr(record, 'extra_fields', None) or {})
        return json.dumps(entry, default=str)


def _replace_handlers(logger, handlers):
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging(log_level_str=None, logs_dir=None):
    """Configure the root logger; safe to call once per app instance.

    Args:
        log_level_str: Level name; falls back to the LOG_LEVEL env var, then INFO
        logs_dir: Directory for the rotating JSON log file
    """
    level_name = (log_level_str or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)

    logs_dir = logs_dir or os.path.join(os.path.dirname(__file__), '..', 'logs')
    os.makedirs(logs_dir, exist_ok=True)
    log_file = os.path.join(logs_dir, LOG_FILE_NAME)

    file_handler = RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
    file_handler.setFormatter(StructuredFormatter())
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    for handler in (file_handler, console_handler):
        handler.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    _replace_handlers(root, (file_handler, console_handler))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    log_event(root, "Logging initialized", log_level=level_name, log_file=log_file)
    return root


def log_event(logger, message, level=logging.INFO, **fields):
    """Log an audit event with structured fields attached for the JSON handler."""
    logger.log(level, message, extra={'extra_fields': fields})
