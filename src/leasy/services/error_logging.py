"""
Error categorisation, persistence and recovery helpers.

Every handled error gets a category, a severity and a recoverable flag,
is written to the application log and, inside an app context, stored in
the ``error_logs`` table for the admin error dashboard.
"""
import json
import logging
import time
import traceback
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import requests
from flask import has_app_context
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..database import db, ErrorLog
from ..errors import (
    LeasyError, ValidationError, ImportFileError, PermissionDeniedError, DuplicateListingError
)

LOGGER = logging.getLogger(__name__)

T = TypeVar('T')

CATEGORIES = (
    'validation', 'network', 'upload', 'duplicate_detection', 'media_processing',
    'authentication', 'database', 'unknown',
)
SEVERITIES = ('low', 'medium', 'high', 'critical')

_LOG_LEVELS = {
    'critical': logging.ERROR,
    'high': logging.ERROR,
    'medium': logging.WARNING,
    'low': logging.INFO,
}


def _message(error: Union[BaseException, str]) -> str:
    return error if isinstance(error, str) else (str(error) or error.__class__.__name__)


def categorize(error: Union[BaseException, str]) -> str:
    """Best guess category for an exception"""
    if isinstance(error, (ValidationError, ImportFileError)):
        return 'upload' if isinstance(error, ImportFileError) else 'validation'
    if isinstance(error, DuplicateListingError):
        return 'duplicate_detection'
    if isinstance(error, PermissionDeniedError):
        return 'authentication'
    if isinstance(error, requests.RequestException):
        return 'network'
    if isinstance(error, SQLAlchemyError):
        return 'database'
    if isinstance(error, OSError) and not isinstance(error, (ConnectionError, TimeoutError)):
        return 'media_processing'
    if isinstance(error, (ConnectionError, TimeoutError)):
        return 'network'
    return 'unknown'


def categorize_severity(error: Union[BaseException, str], category: str) -> str:
    message = _message(error).lower()

    if category == 'authentication' or 'authentication' in message:
        return 'critical'
    if category == 'database' or 'database' in message:
        return 'critical'
    if 'network' in message and 'timeout' in message:
        return 'high'
    if category == 'upload' and 'failed' in message:
        return 'high'
    if category == 'media_processing' and 'corrupt' in message:
        return 'high'
    if category in ('validation', 'duplicate_detection'):
        return 'medium'
    return 'low'


def is_recoverable(error: Union[BaseException, str], category: str) -> bool:
    message = _message(error).lower()
    if category == 'authentication':
        return False
    if 'permission denied' in message or 'not found' in message:
        return False
    return True


def log_error(
    error: Union[BaseException, str],
    category: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    url: Optional[str] = None,
    user_agent: Optional[str] = None,
    stack: Optional[str] = None,
    persist: bool = True
) -> Dict[str, Any]:
    """
    Record an error.

    Args:
        error: Exception or message
        category: One of ``CATEGORIES``; guessed from the exception when omitted
        context: Extra JSON-serialisable details
        persist: Store an ``ErrorLog`` row (only inside an app context)

    Returns:
        The recorded error as a dictionary
    """
    if category not in CATEGORIES:
        category = categorize(error)
    severity = categorize_severity(error, category)
    recoverable = is_recoverable(error, category)
    message = _message(error)

    if stack is None and isinstance(error, BaseException) and error.__traceback__ is not None:
        stack = ''.join(traceback.format_exception(type(error), error, error.__traceback__))

    LOGGER.log(_LOG_LEVELS[severity], "[%s] %s: %s", severity.upper(), category, message)

    record = {
        'message': message,
        'category': category,
        'severity': severity,
        'recoverable': recoverable,
        'context': context or {},
        'timestamp': datetime.utcnow().isoformat(),
    }

    if persist and has_app_context():
        try:
            entry = ErrorLog(
                message=message[:5000],
                category=category,
                severity=severity,
                recoverable=recoverable,
                stack=stack,
                context=json.dumps(context or {}, default=str),
                user_agent=(user_agent or '')[:300] or None,
                url=(url or '')[:500] or None,
                user_id=user_id,
            )
            db.session.add(entry)
            db.session.commit()
            record['id'] = entry.id
        except SQLAlchemyError:
            db.session.rollback()
            LOGGER.exception("could not store error log entry")

    return record


def retry_with_backoff(
    operation: Callable[[], T],
    retries: int = 3,
    delay: float = 1.0,
    context: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """Call ``operation`` up to ``retries`` times, doubling the wait after each failure"""
    for attempt in range(1, retries + 1):
        try:
            return operation()
        except Exception as e:
            if attempt >= retries:
                log_error(e, 'network', {'attempts': attempt, 'context': context})
                raise
            wait = delay * (2 ** (attempt - 1))
            LOGGER.warning("attempt %d failed, retrying in %.1fs: %s", attempt, wait, e)
            sleep(wait)
    raise ValueError('retries must be at least 1')


def with_fallback(primary: Callable[[], T], fallback: Callable[[], T], category: str = 'unknown') -> T:
    """Run ``primary``; on failure record it and return ``fallback()`` instead"""
    try:
        return primary()
    except Exception as primary_error:
        log_error(primary_error, category, {'fallback_used': True})
        try:
            return fallback()
        except Exception as fallback_error:
            log_error(fallback_error, category,
                      {'primary_error': _message(primary_error), 'fallback_failed': True})
            raise


class CircuitOpenError(LeasyError):
    status_code = 503


class CircuitBreaker:
    """
    Stops calling a failing service for a while.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls fail fast until ``reset_timeout`` seconds have passed; the next
    call is then let through as a trial.
    """

    def __init__(self, service_name: str, failure_threshold: int = 5, reset_timeout: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self.reset()

    def reset(self):
        self.failures = 0
        self.state = 'closed'
        self.opened_at = 0.0

    def call(self, operation: Callable[[], T]) -> T:
        if self.state == 'open':
            if self.clock() - self.opened_at > self.reset_timeout:
                self.state = 'half-open'
            else:
                raise CircuitOpenError(
                    f'Service {self.service_name} is currently unavailable (circuit breaker open)'
                )

        try:
            result = operation()
        except Exception:
            self.failures += 1
            if self.state == 'half-open' or self.failures >= self.failure_threshold:
                self.state = 'open'
                self.opened_at = self.clock()
                log_error(f'Circuit breaker opened for {self.service_name}', 'network',
                          {'failures': self.failures, 'threshold': self.failure_threshold})
            raise

        self.failures = 0
        self.state = 'closed'
        return result


def get_error_stats(hours: int = 24) -> Dict[str, Any]:
    """Counts of stored errors by severity and category"""
    since = datetime.utcnow() - timedelta(hours=hours)
    base = ErrorLog.query.filter(ErrorLog.created_at >= since)

    by_severity = dict(
        db.session.query(ErrorLog.severity, func.count(ErrorLog.id))
        .filter(ErrorLog.created_at >= since).group_by(ErrorLog.severity).all()
    )
    by_category = dict(
        db.session.query(ErrorLog.category, func.count(ErrorLog.id))
        .filter(ErrorLog.created_at >= since).group_by(ErrorLog.category).all()
    )
    recent = base.order_by(ErrorLog.created_at.desc()).limit(10).all()

    return {
        'total': base.count(),
        'by_severity': by_severity,
        'by_category': by_category,
        'recent': [e.to_dict() for e in recent],
    }


def cleanup_old_errors(days: Optional[int] = None) -> int:
    """Delete stored errors older than ``days`` (ERROR_LOG_RETENTION_DAYS by default)"""
    if days is None:
        days = settings.ERROR_LOG_RETENTION_DAYS
    cutoff = datetime.utcnow() - timedelta(days=days)
    deleted = ErrorLog.query.filter(ErrorLog.created_at < cutoff).delete()
    db.session.commit()
    return deleted
