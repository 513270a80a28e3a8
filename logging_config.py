"""Logging setup for the web app and the sync client."""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path

ROOT_LOGGER = 'trackr'


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    _STANDARD_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'taskName',
    }

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in self._STANDARD_ATTRS}
        if extra:
            log_data['extra'] = extra
        return json.dumps(log_data, default=str)


def setup_logging(config):
    """Configure the `trackr` logger from a config mapping.

    Console output is always enabled. When LOG_DIR is set, a rotating JSON
    file handler is added as well.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(config.get('LOG_LEVEL', 'INFO'))
    logger.handlers.clear()

    dev_mode = config.get('DEV_MODE', True)
    if dev_mode:
        fmt = '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        datefmt = '%H:%M:%S'
    else:
        fmt = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        datefmt = '%Y-%m-%d %H:%M:%S'

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    logger.addHandler(console)

    log_dir = config.get('LOG_DIR')
    if log_dir:
        path = Path(log_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=path / 'trackr.log',
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8',
        )
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name):
    return logging.getLogger(f'{ROOT_LOGGER}.{name}')
