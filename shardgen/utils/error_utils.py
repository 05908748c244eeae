"""
Error taxonomy for shardgen.
Every failure is tagged with the pipeline phase it happened in and, where one
exists, the path and operation that failed.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Pipeline phase an error belongs to."""
    CONFIGURATION = "configuration"
    DISCOVERY = "discovery"
    CONVERT = "convert"
    SPLIT = "split"
    CLEANUP = "cleanup"
    UNKNOWN = "unknown"


class ShardGenError(Exception):
    """Base exception class for shardgen errors."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 severity: ErrorSeverity = ErrorSeverity.HIGH, path: Optional[PathLike] = None,
                 operation: Optional[str] = None, context_data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.path = Path(path) if path is not None else None
        self.operation = operation
        self.context_data = context_data or {}
        self.timestamp = time.time()

    def __str__(self):
        return f"[{self.category.value}:{self.severity.value}] {super().__str__()}"


class ConfigurationError(ShardGenError):
    """Invalid or unreadable configuration."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CONFIGURATION, ErrorSeverity.HIGH, **kwargs)


class DiscoveryError(ShardGenError):
    """Input or output directory cannot be listed or created."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.DISCOVERY, ErrorSeverity.HIGH, **kwargs)


class ConversionError(ShardGenError):
    """The external converter failed for one input file.

    ``path`` is always the game-record file that was being converted.
    """
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CONVERT, ErrorSeverity.CRITICAL, **kwargs)


class SplitError(ShardGenError):
    """Counting or splitting an intermediate sample file failed."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.SPLIT, ErrorSeverity.CRITICAL, **kwargs)


class CleanupError(ShardGenError):
    """Removing stale output or intermediate files failed."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CLEANUP, ErrorSeverity.HIGH, **kwargs)


_CATEGORY_ERRORS: Dict[ErrorCategory, Type[ShardGenError]] = {
    ErrorCategory.CONFIGURATION: ConfigurationError,
    ErrorCategory.DISCOVERY: DiscoveryError,
    ErrorCategory.CONVERT: ConversionError,
    ErrorCategory.SPLIT: SplitError,
    ErrorCategory.CLEANUP: CleanupError,
}


def error_for(category: ErrorCategory, message: str, path: Optional[PathLike] = None,
              operation: Optional[str] = None) -> ShardGenError:
    """Build the exception type matching ``category``."""
    error_cls = _CATEGORY_ERRORS.get(category)
    if error_cls is None:
        return ShardGenError(message, category=category, path=path, operation=operation)
    return error_cls(message, path=path, operation=operation)


def safe_operation(category: ErrorCategory, path: PathLike, operation: str):
    """Context manager turning ``OSError`` into a categorised error.

    Usage::

        with safe_operation(ErrorCategory.CLEANUP, path, "unlink"):
            path.unlink()
    """
    return ErrorHandlingContext(category, path, operation)


class ErrorHandlingContext:
    """Context manager for filesystem operations inside a pipeline phase."""

    def __init__(self, category: ErrorCategory, path: PathLike, operation: str):
        self.category = category
        self.path = Path(path)
        self.operation = operation

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None or isinstance(exc_val, ShardGenError):
            return False
        if issubclass(exc_type, OSError):
            reason = exc_val.strerror or str(exc_val)
            error = error_for(
                self.category,
                f"{self.operation} failed for {self.path}: {reason}",
                path=self.path,
                operation=self.operation,
            )
            logger.debug("%s during %s of %s", exc_type.__name__, self.operation, self.path)
            raise error from exc_val
        return False
