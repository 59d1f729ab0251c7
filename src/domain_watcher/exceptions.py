"""
Exception classes for the domain watcher system.

All exceptions inherit from DomainWatcherError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DomainWatcherError(Exception):
    """Base exception for all domain watcher errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainWatcherError):
    """Raised when domain validation fails."""

    pass


class NetworkError(DomainWatcherError):
    """Raised when network operations fail."""

    pass


class ProtocolError(DomainWatcherError):
    """Raised when protocol-level errors occur (invalid RDAP response, malformed JSON)."""

    pass


class NoServerFoundError(ProtocolError):
    """Raised when no RDAP server can be resolved for a TLD."""

    def __init__(self, tld: str) -> None:
        super().__init__(
            code="no_server",
            message=f"No RDAP server found for TLD: .{tld}",
            details={"tld": tld},
        )
        self.tld = tld


class PersistenceError(DomainWatcherError):
    """Raised when persistence operations fail (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class NotificationError(DomainWatcherError):
    """Raised when notification delivery fails."""

    pass


class SmtpError(NotificationError):
    """Raised when the mail transport exchange fails."""

    def __init__(
        self,
        message: str,
        reply_code: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(code="smtp_error", message=message, details=details)
        self.reply_code = reply_code


class CredentialError(DomainWatcherError):
    """Raised when an encrypted credential cannot be decrypted."""

    pass


class ConfigurationError(DomainWatcherError):
    """Raised when required configuration is missing or insecure."""

    pass


class RegistrarError(DomainWatcherError):
    """Raised on transport-level failures talking to a registrar API."""

    pass
