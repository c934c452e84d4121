import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d) - %(message)s'

# Third-party loggers that drown out playback and API traces
QUIET_LOGGERS = {
    "aiosqlite": logging.INFO,
    "asyncio": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "vlc": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}

def setup_logging(level=logging.INFO, log_to_file=True, log_file="flix.log"):
    """
    Configure the root logger for the desktop app and the relay.
    Console output always; a rotating log file unless disabled.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Re-running setup (tests, relay reloads) must not stack handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_path = Path(log_file)
    if log_to_file:
        file_handler = RotatingFileHandler(log_path, maxBytes=2 * 1024 * 1024, backupCount=3, encoding='utf-8')
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    root_logger.info(f"Logging ready ({logging.getLevelName(level)}), file: {log_path if log_to_file else 'off'}")

def get_logger(name):
    return logging.getLogger(name)
