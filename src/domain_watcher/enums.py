"""
Enumeration types for the domain watcher system.

These enums provide type-safe constants for lifecycle states, event types,
channel types and error codes throughout the system.
"""

from enum import Enum


class DomainStatus(Enum):
    """Lifecycle status of a watched domain."""

    UNKNOWN = "unknown"
    REGISTERED = "registered"
    EXPIRING_SOON = "expiring_soon"
    GRACE_PERIOD = "grace_period"
    REDEMPTION = "redemption"
    PENDING_DELETE = "pending_delete"
    AVAILABLE = "available"
    ERROR = "error"


class EventType(Enum):
    """Kind of history entry."""

    STATUS_CHANGE = "status_change"
    REGISTRATION_ATTEMPT = "registration_attempt"


class ChannelType(Enum):
    """Notification channel types."""

    WEBHOOK = "webhook"
    TELEGRAM = "telegram"
    EMAIL = "email"
    NTFY = "ntfy"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_FORMAT = "invalid_format"
    INVALID_TLD = "invalid_tld"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"


class RDAPErrorCode(Enum):
    """Error codes for RDAP client operations."""

    NO_SERVER = "no_server"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"


class RDAPStatus(Enum):
    """RDAP query result status."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"
