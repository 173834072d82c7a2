"""
API error taxonomy plus error aggregation to keep repeated failures quiet.
"""
import hashlib
import time
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    """Error that maps directly onto an HTTP response.

    ``key`` is the JSON field carrying the message: auth failures answer with
    ``{"message": ...}``, everything else with ``{"error": ...}``.
    """

    status_code: int = 500
    key: str = "error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, key: Optional[str] = None):
        self.message = message or self.default_message
        if key:
            self.key = key
        super().__init__(self.message)

    def to_body(self) -> Dict[str, str]:
        return {self.key: self.message}


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationFailed(ApiError):
    status_code = 401
    key = "message"
    default_message = "Authentication required"


class TokenRejected(ApiError):
    status_code = 403
    key = "message"
    default_message = "Invalid token"


class NotFound(ApiError):
    status_code = 404
    default_message = "Event not found"


class StoreUnavailable(ApiError):
    status_code = 500


class ErrorSeverity(Enum):
    LOW = "low"           # 4xx, validation errors, expected failures
    MEDIUM = "medium"     # recoverable store errors, timeouts
    HIGH = "high"         # auth misuse, repeated store failures
    CRITICAL = "critical" # unhandled exceptions


class ErrorPattern:
    """Track one kind of error so duplicates can be counted instead of logged."""

    def __init__(self, error_type: str, message: str, context: Dict[str, Any]):
        self.error_type = error_type
        self.message = message[:100]
        self.endpoint = context.get('endpoint', '')
        self.fingerprint = self._generate_fingerprint()
        self.first_seen = time.time()
        self.last_seen = self.first_seen
        self.count = 1

    def _generate_fingerprint(self) -> str:
        content = f"{self.error_type}:{self.message}:{self.endpoint}"
        return hashlib.md5(content.encode(), usedforsecurity=False).hexdigest()[:8]

    def update(self):
        self.last_seen = time.time()
        self.count += 1


class ErrorAggregator:
    """Deduplicate errors: log the first occurrence, then every Nth."""

    def __init__(self, log_threshold: int = 10, time_window: int = 300):
        self.log_threshold = log_threshold
        self.time_window = time_window
        self.patterns: Dict[str, ErrorPattern] = {}

    def should_log(self, pattern: ErrorPattern, severity: ErrorSeverity) -> bool:
        if severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            return True
        if pattern.count == 1:
            return True
        if severity == ErrorSeverity.MEDIUM:
            return pattern.count % self.log_threshold == 0
        return pattern.count % (self.log_threshold * 5) == 0

    def _prune(self, now: float):
        # Quiet for a whole window: forget it, so the next one logs again
        stale = [fp for fp, p in self.patterns.items() if now - p.last_seen >= self.time_window]
        for fp in stale:
            del self.patterns[fp]

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None,
                  severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> str:
        context = context or {}
        error_type = type(error).__name__
        message = str(error)

        self._prune(time.time())
        pattern = ErrorPattern(error_type, message, context)
        fingerprint = pattern.fingerprint

        existing = self.patterns.get(fingerprint)
        if existing:
            existing.update()
            pattern = existing
        else:
            self.patterns[fingerprint] = pattern

        if self.should_log(pattern, severity):
            logger.error(
                "aggregated_error",
                error_hash=fingerprint,
                error_type=error_type,
                error=message,
                count=pattern.count,
                severity=severity.value,
                **context,
            )

        return fingerprint


# Process-wide aggregator; counters only, no request data
error_aggregator = ErrorAggregator()


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None,
              severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> str:
    """Log errors through the global aggregator."""
    return error_aggregator.log_error(error, context, severity)
