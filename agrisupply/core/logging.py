"""
AgriSupply Logging Configuration
Console output plus rotating files per area of the service
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple
from .config import settings

ROOT_LOGGER = "agrisupply"

# child logger -> (file name, rotated copies kept)
AREA_LOG_FILES: Dict[str, Tuple[str, int]] = {
    "database": ("database.log", 3),
    "api": ("api.log", 5),
    "services": ("intake.log", 5),
    "security": ("security.log", 10),
}

LINE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(module)s:%(lineno)d %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _rotating_file(path: Path, max_mb: int, backups: int, level: int, formatter: logging.Formatter):
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the `agrisupply` logger tree.

    Everything goes to the console and `settings.LOG_FILE`; errors are also
    copied to `settings.ERROR_LOG_FILE`. Each entry of AREA_LOG_FILES gets its
    own file so intake traffic can be read apart from sign-in noise.

    Args:
        log_level: Level name, defaults to settings.LOG_LEVEL
        log_to_file: Write the rotating files under settings.LOG_DIR
        log_to_console: Write to stdout

    Returns:
        The root `agrisupply` logger
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    line_formatter = logging.Formatter(fmt=LINE_FORMAT, datefmt=DATE_FORMAT)
    file_formatter = logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT)

    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(line_formatter)
        logger.addHandler(console)

    log_dir = None
    if log_to_file:
        log_dir = settings.LOG_DIR
        log_dir.mkdir(exist_ok=True, parents=True)
        logger.addHandler(_rotating_file(log_dir / settings.LOG_FILE, 10, 5, level, file_formatter))
        logger.addHandler(_rotating_file(log_dir / settings.ERROR_LOG_FILE, 5, 3, logging.ERROR, file_formatter))

    setup_area_loggers(level, file_formatter, log_dir)

    return logger


def setup_area_loggers(
    level: int,
    formatter: logging.Formatter,
    log_dir: Optional[Path] = None
):
    for area, (filename, backups) in AREA_LOG_FILES.items():
        area_logger = logging.getLogger(f"{ROOT_LOGGER}.{area}")
        # sign-in events are always kept
        area_logger.setLevel(logging.INFO if area == "security" else level)
        area_logger.handlers.clear()
        if log_dir:
            area_logger.addHandler(_rotating_file(log_dir / filename, 5, backups, level, formatter))


__all__ = [
    'setup_logging',
]
