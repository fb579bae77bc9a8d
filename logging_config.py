"""
Process-wide logging for Happy Harvests.

Importing this module attaches a console handler plus two rotating files
under LOG_DIR (everything in happyharvests.log, ERROR and above in
errors.log) to the root logger. LOG_FORMAT=json switches every handler
to one JSON object per line.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler

LOG_DIR = os.environ.get('LOG_DIR', 'logs')
try:
    os.makedirs(LOG_DIR, exist_ok=True)
except OSError:
    LOG_DIR = '.'

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MB = 1024 * 1024

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Single-line JSON records.

    Values passed through ``extra=`` (planting_id, path, ...) are emitted
    under a ``context`` key.
    """

    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "filename": record.filename,
            "lineno": record.lineno,
        }
        context = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if context:
            entry["context"] = context
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter():
    if os.environ.get('LOG_FORMAT', 'text').lower() == 'json':
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def _rotating(filename, level, max_mb, backups):
    """Rotating file handler, or None when LOG_DIR is not writable."""
    try:
        handler = RotatingFileHandler(
            os.path.join(LOG_DIR, filename), maxBytes=max_mb * MB, backupCount=backups
        )
    except OSError:
        return None
    handler.setLevel(level)
    return handler


def _configure():
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    handlers = [
        console,
        _rotating('happyharvests.log', logging.DEBUG, max_mb=5, backups=5),
        _rotating('errors.log', logging.ERROR, max_mb=2, backups=3),
    ]

    formatter = _formatter()
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in handlers:
        if handler is None:
            continue
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for noisy in ('urllib3', 'werkzeug'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_configure()

logger = logging.getLogger('happyharvests')
logger.info("Happy Harvests logging initialized")
