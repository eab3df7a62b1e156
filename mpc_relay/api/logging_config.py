"""Centralized logging configuration module"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Settings, settings as default_settings

# Whether already initialized
_initialized = False

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(settings: Optional[Settings] = None):
    """Configure console and rotating file logging for the relay."""
    global _initialized

    if _initialized:
        return

    settings = settings or default_settings

    # Create logs directory
    logs_dir = settings.log_dir
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / settings.log_file_name

    # Write session separator
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write("\n" + "=" * 100 + "\n")
        f.write(f"Relay started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write("=" * 100 + "\n\n")

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding='utf-8',
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    # Configure root logger
    logging.basicConfig(
        level=level,
        handlers=[console_handler, file_handler],
        force=True
    )

    logging.getLogger('mpc_relay').setLevel(level)

    # Reduce log level for third-party libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    _initialized = True

    logging.getLogger(__name__).info(
        "Logging initialized: %s (max %s bytes per file, keep %s backups)",
        log_file.absolute(), settings.log_max_bytes, settings.log_backup_count,
    )
