import os
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

from .config import default_config_dir


def setup_logging(log_dir=None, log_level=logging.INFO):
    """
    Set up logging with rotating file handler and console output.

    Args:
        log_dir: Directory to store log files, defaults to the user's AppData directory
        log_level: Logging level (default: INFO)

    Returns:
        The configured logger
    """
    logger = logging.getLogger("winsw_manager")
    logger.setLevel(log_level)

    # Clear any existing handlers
    if logger.handlers:
        logger.handlers.clear()

    if not log_dir:
        log_dir = os.path.join(default_config_dir(), 'logs')

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    current_date = datetime.now().strftime('%Y-%m-%d')
    log_file = os.path.join(log_dir, f'winsw_manager_{current_date}.log')

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # File handler with rotation (10 MB max size, keep 5 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10_485_760, backupCount=5, encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.debug(f"Logging initialized. Log file: {log_file}")

    return logger

