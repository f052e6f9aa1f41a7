"""
Structured logging for ExcelVC Agent.
Provides JSON file logging with daily rotation and a console handler.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler
from pythonjsonlogger import jsonlogger
from typing import Optional

LOG_FILE_NAME = "excelvc-agent.log"
CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'


class ExcelVCFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every record with timestamp, level and component."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = self.formatTime(record, self.datefmt)

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

        log_record['component'] = 'excelvc-agent'


def setup_logger(
    name: str,
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    console: bool = True,
    json_logs: bool = True,
    retention_days: int = 7
) -> logging.Logger:
    """Setup logger with file and console handlers.

    Args:
        name: Logger name
        log_dir: Directory for log files (no file handler when None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console: Enable console logging
        json_logs: Use JSON format for file logs
        retention_days: Number of rotated log files to keep

    Returns:
        Configured logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            fmt=CONSOLE_FORMAT,
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(console_handler)

    if log_dir:
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=log_dir / LOG_FILE_NAME,
            when='midnight',
            interval=1,
            backupCount=retention_days,
            encoding='utf-8'
        )
        file_handler.setLevel(level)

        if json_logs:
            file_handler.setFormatter(ExcelVCFormatter(
                fmt='%(timestamp)s %(level)s %(name)s %(message)s'
            ))
        else:
            file_handler.setFormatter(logging.Formatter(
                fmt=CONSOLE_FORMAT,
                datefmt='%Y-%m-%d %H:%M:%S'
            ))

        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "excelvc_agent") -> logging.Logger:
    """Get or create logger for a module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


_global_logger: Optional[logging.Logger] = None


def init_global_logger(
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    console: bool = True
) -> logging.Logger:
    """Initialize the package-wide logger once.

    Module loggers are children of ``excelvc_agent`` and propagate to it.
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = setup_logger(
            name="excelvc_agent",
            log_dir=log_dir,
            log_level=log_level,
            console=console,
            json_logs=True
        )

    return _global_logger
