"""
Leasy services
"""
from .error_logging import (
    log_error, retry_with_backoff, with_fallback, CircuitBreaker, CircuitOpenError, cleanup_old_errors
)

__all__ = [
    'log_error', 'retry_with_backoff', 'with_fallback', 'CircuitBreaker', 'CircuitOpenError', 'cleanup_old_errors'
]
