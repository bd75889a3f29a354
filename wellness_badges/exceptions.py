"""
Exception hierarchy for wellness-badges

Every error carries a request id, the operation and user it concerns, a
context dict and a message safe to show to the user. Errors log themselves
when created: caller mistakes (bad platform, badge not unlocked) at WARNING,
everything else at ERROR.

    WellnessBadgesError
    ├── ValidationError
    ├── DatabaseError
    │   ├── ConnectionError
    │   └── QueryError
    ├── BadgeError
    │   ├── CriteriaError
    │   ├── BadgeNotFoundError
    │   └── NotificationError
    └── ConfigurationError
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import psycopg

logger = logging.getLogger(__name__)


class WellnessBadgesError(Exception):
    """
    Base exception for all wellness-badges errors

    Subclasses set `default_user_message` and `log_level` instead of
    overriding __init__ unless they carry extra fields.

    Example:
        raise WellnessBadgesError(
            message="Failed to load badge catalog",
            user_id="user-123",
            operation="get_active_definitions",
            context={"locale": "en"}
        )
    """

    default_user_message = "An error occurred. Please try again."
    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or self.default_user_message
        self.timestamp = datetime.now(timezone.utc)

        self._log()

    def _log(self) -> None:
        # 'message' and 'context' would clash with LogRecord attributes
        extra = {
            "error_type": type(self).__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
        }
        if self.cause:
            extra["cause"] = repr(self.cause)

        logger.log(
            self.log_level,
            f"{type(self).__name__}: {self.message}",
            extra=extra,
            exc_info=self.cause if self.log_level >= logging.ERROR else None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses (no internal context)"""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


class ValidationError(WellnessBadgesError):
    """Caller passed a value the engine doesn't accept (unknown share platform, locale)"""

    log_level = logging.WARNING

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None, **kwargs):
        self.field = field
        self.value = value
        kwargs.setdefault("user_message", f"Invalid {field}: {message}" if field else message)
        super().__init__(message, context={"field": field, "value": value}, **kwargs)


# ==========================================
# Persistence
# ==========================================

class DatabaseError(WellnessBadgesError):
    """Store failure; evaluation treats it as 'no decision' for the rule at hand"""

    default_user_message = "We encountered an issue loading your badges. Please try again."


class ConnectionError(DatabaseError):
    """Pool or server unreachable"""

    default_user_message = "We're having trouble connecting to the database. Please try again in a moment."


class QueryError(DatabaseError):
    """A statement failed"""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        self.query = query
        context = kwargs.pop("context", None) or {}
        if query:
            context["query"] = query
        super().__init__(message, context=context, **kwargs)


# ==========================================
# Badges
# ==========================================

class BadgeError(WellnessBadgesError):
    """Badge evaluation or bookkeeping error"""


class CriteriaError(BadgeError):
    """
    Achievement criteria cannot be evaluated as written, e.g. an equality
    filter on a column the activity table doesn't expose
    """

    default_user_message = "This achievement is temporarily unavailable."

    def __init__(self, message: str, achievement_key: Optional[str] = None, **kwargs):
        self.achievement_key = achievement_key
        context = kwargs.pop("context", None) or {}
        context["achievement_key"] = achievement_key
        super().__init__(message, context=context, **kwargs)


class BadgeNotFoundError(BadgeError):
    """Badge is not unlocked for the user, or its definition is gone"""

    default_user_message = "Badge not found or not unlocked yet."
    log_level = logging.WARNING

    def __init__(self, message: str, badge_id: Optional[str] = None, **kwargs):
        self.badge_id = badge_id
        super().__init__(message, context={"badge_id": badge_id}, **kwargs)


class NotificationError(BadgeError):
    """Unlock notification could not be queued; the unlock itself stands"""

    default_user_message = "We couldn't send your badge notification."


class ConfigurationError(WellnessBadgesError):
    """Invalid or missing setting, raised at startup"""

    default_user_message = "The system is not properly configured. Please contact support."

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        self.config_key = config_key
        super().__init__(message, context={"config_key": config_key}, **kwargs)


def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> WellnessBadgesError:
    """
    Translate a driver exception into the hierarchy

    Connection-level psycopg failures become ConnectionError, other psycopg
    errors QueryError, anything else the base class.

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="count_activity", user_id=user_id) from e
    """
    if isinstance(error, (psycopg.OperationalError, psycopg.InterfaceError)):
        error_class = ConnectionError
        message = f"Database connection failed: {error}"
    elif isinstance(error, psycopg.Error):
        error_class = QueryError
        message = f"Database query failed: {error}"
    else:
        error_class = WellnessBadgesError
        message = f"{operation} failed: {error}"

    return error_class(
        message,
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
