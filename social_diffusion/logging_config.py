"""
日志配置 - 默认静默，由调用方显式开启
Logging Configuration - silent by default, enabled explicitly by the caller

用法 / usage:
    from social_diffusion.logging_config import enable_console_logging
    enable_console_logging(level="DEBUG")

环境变量 / environment variables (configure_from_env):
    SD_LOGGING   日志级别 DEBUG / INFO / WARNING / ERROR / CRITICAL
    SD_LOG_FILE  日志文件路径（启用滚动文件日志）
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

LOGGER_NAME = "social_diffusion"


def _get_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def _get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def enable_console_logging(level: Union[str, int] = "INFO",
                           format: str = DEFAULT_FORMAT,
                           date_format: str = DEFAULT_DATE_FORMAT) -> logging.StreamHandler:
    """
    开启控制台（stderr）日志
    Enable console logging for social_diffusion
    """
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    handler = logging.StreamHandler()
    handler.setLevel(_get_level(level))
    handler.setFormatter(logging.Formatter(format, date_format))

    logger.addHandler(handler)
    return handler


def enable_file_logging(path: Union[str, Path],
                        level: Union[str, int] = "INFO",
                        max_bytes: int = DEFAULT_MAX_BYTES,
                        backup_count: int = DEFAULT_BACKUP_COUNT,
                        format: str = DEFAULT_FORMAT,
                        date_format: str = DEFAULT_DATE_FORMAT) -> RotatingFileHandler:
    """
    开启滚动文件日志
    Enable rotating file logging; parent directories are created.
    """
    logger = _get_logger()
    logger.setLevel(_get_level(level))

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(_get_level(level))
    handler.setFormatter(logging.Formatter(format, date_format))

    logger.addHandler(handler)
    return handler


def disable_logging():
    """Remove every handler except the library NullHandler."""
    logger = _get_logger()
    for handler in logger.handlers[:]:
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)


def set_level(level: Union[str, int]):
    _get_logger().setLevel(_get_level(level))


def configure_from_env():
    """Configure logging from SD_LOGGING / SD_LOG_FILE; no-op if both unset."""
    level = os.environ.get("SD_LOGGING", "").upper()
    log_file = os.environ.get("SD_LOG_FILE", "")

    if not level and not log_file:
        return

    level = level or "INFO"
    if log_file:
        enable_file_logging(log_file, level=level)
    else:
        enable_console_logging(level=level)
