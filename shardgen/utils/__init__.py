"""Utility helpers for shardgen."""

from .error_utils import (CleanupError, ConfigurationError, ConversionError,
                          DiscoveryError, ErrorCategory, ErrorHandlingContext,
                          ErrorSeverity, ShardGenError, SplitError, error_for,
                          safe_operation)

__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorHandlingContext",
    "ShardGenError",
    "ConfigurationError",
    "DiscoveryError",
    "ConversionError",
    "SplitError",
    "CleanupError",
    "error_for",
    "safe_operation",
]
