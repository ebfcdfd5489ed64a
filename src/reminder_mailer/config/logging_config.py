"""Logging configuration module built on loguru."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, Optional

from loguru import logger


VALID_LEVELS: frozenset[str] = frozenset(
    {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
)


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging system."""

    # File logging; None disables file sinks
    log_file: Optional[Path] = Path("logs/reminder_mailer.log")
    log_level: str = "INFO"
    rotation_size: str = "10 MB"
    retention_count: int = 10
    compression: str = "zip"

    # Console logging
    console_enabled: bool = True
    console_level: str = "INFO"
    console_format: str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

    file_format: str = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {process.id} | {message} | {extra}"

    # Separate error log with backtraces
    enable_error_context: bool = True
    slow_operation_threshold_seconds: float = 5.0

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        if self.log_level.upper() not in VALID_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")
        if self.console_level.upper() not in VALID_LEVELS:
            raise ValueError(f"Invalid console log level: {self.console_level}")
        if self.retention_count < 1:
            raise ValueError("Retention count must be at least 1")
        if self.slow_operation_threshold_seconds <= 0:
            raise ValueError("Slow operation threshold must be positive")


def setup_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """Install loguru sinks according to ``config``.

    Removes any existing handlers first, so calling it twice is safe.

    Args:
        config: Logging configuration. If None, uses default configuration.

    Returns:
        The configuration that was applied.
    """
    if config is None:
        config = LoggingConfig()

    logger.remove()

    if config.console_enabled:
        logger.add(
            sys.stderr,
            level=config.console_level.upper(),
            format=config.console_format,
            colorize=True,
            enqueue=True,
        )

    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(config.log_file),
            level=config.log_level.upper(),
            format=config.file_format,
            rotation=config.rotation_size,
            retention=config.retention_count,
            compression=config.compression,
            enqueue=True,
        )

        if config.enable_error_context:
            logger.add(
                str(config.log_file.with_suffix('.error.log')),
                level="ERROR",
                format=(
                    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | "
                    "{message}\nException: {exception}\nExtra: {extra}\n---"
                ),
                rotation=config.rotation_size,
                retention=config.retention_count,
                compression=config.compression,
                enqueue=True,
                backtrace=True,
                diagnose=False,
            )

    logger.info(
        "Logging system initialized",
        log_file=str(config.log_file),
        log_level=config.log_level,
        console_enabled=config.console_enabled,
    )
    return config


class LoggedOperation:
    """Context manager for logging operations with automatic timing."""

    def __init__(
        self,
        operation_name: str,
        slow_threshold_seconds: float = 5.0,
        **context: Any
    ) -> None:
        self.operation_name: str = operation_name
        self.slow_threshold_seconds: float = slow_threshold_seconds
        self.context: Dict[str, Any] = context
        self.operation_id: str = f"{operation_name}_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"
        self.start_time: Optional[datetime] = None
        self.duration_seconds: Optional[float] = None

    def __enter__(self) -> LoggedOperation:
        self.start_time = datetime.now()
        logger.info(
            f"Operation started: {self.operation_name}",
            operation_id=self.operation_id,
            **self.context
        )
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        _: Optional[TracebackType]
    ) -> None:
        if self.start_time is None:
            return
        self.duration_seconds = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            logger.success(
                f"Operation completed: {self.operation_name} in {self.duration_seconds:.2f}s",
                operation_id=self.operation_id,
                **self.context
            )
        else:
            logger.error(
                f"Operation failed: {self.operation_name}",
                operation_id=self.operation_id,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.context
            )

        if self.duration_seconds > self.slow_threshold_seconds:
            logger.warning(
                f"Slow operation detected: {self.operation_name} took {self.duration_seconds:.2f}s",
                operation_id=self.operation_id,
            )
