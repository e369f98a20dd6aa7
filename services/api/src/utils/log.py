"""
Process-wide logging setup.

``init`` is called once at startup; modules obtain loggers with
``get_logger(__name__)``. Development output is a coloured single line per
record; production and staging emit one JSON object per line for log
aggregation.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Optional


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    ENDC = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = f"{self.COLORS.get(record.levelname, '')}{record.levelname:8s}{self.ENDC}"
        module_name = record.name if record.name != '__main__' else 'main'
        line = f"[{timestamp}] {level} [{module_name}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'environment': os.getenv('ENVIRONMENT', 'unknown'),
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _environment() -> str:
    return os.getenv('ENVIRONMENT', 'development').lower()


def init(level: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if _environment() in ('production', 'prod', 'staging'):
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ColoredFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # uvicorn installs its own handlers; route them through ours instead
    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True

    # APScheduler is chatty at INFO about every job execution
    logging.getLogger('apscheduler').setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
