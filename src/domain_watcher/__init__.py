"""
Domain Watcher - domain lifecycle monitor with optional auto-registration.

This package polls the authoritative RDAP server for each watched domain,
tracks lifecycle transitions, notifies configured channels and can register a
domain through a registrar adapter the moment it becomes available.
"""

__version__ = "0.1.0"
__author__ = "Domain Watcher Team"

from domain_watcher.exceptions import (
    DomainWatcherError,
    ValidationError,
    NetworkError,
    ProtocolError,
    NoServerFoundError,
    PersistenceError,
    TamperingError,
    NotificationError,
    SmtpError,
    CredentialError,
    ConfigurationError,
    RegistrarError,
)
from domain_watcher.enums import (
    DomainStatus,
    EventType,
    ChannelType,
    LogLevel,
    DomainValidationErrorCode,
    RDAPErrorCode,
    RDAPStatus,
)
from domain_watcher.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from domain_watcher.config import (
    RateLimitConfig,
    PersistenceConfig,
    LoggingConfig,
    SchedulerConfig,
    SmtpConfig,
    SystemConfig,
    MonitorSettings,
)
from domain_watcher.models import (
    WatchedDomain,
    HistoryEntry,
    RegistrarConfig,
    NotificationChannelConfig,
    CheckResult,
    SweepResult,
    SchedulerState,
)
from domain_watcher.rate_limiter import RateLimiter
from domain_watcher.bootstrap import RDAPBootstrap
from domain_watcher.rdap_client import (
    RDAPClient,
    RDAPResponse,
    RDAPParsedFields,
    RDAPEvent,
    RDAPEntity,
    RDAPError,
)
from domain_watcher.status_mapper import map_status, next_check_interval_minutes
from domain_watcher.repository import Repository
from domain_watcher.state_store import StateStore
from domain_watcher.audit_logger import AuditLogger, LogEntry
from domain_watcher.crypto import CredentialCipher
from domain_watcher.smtp_client import SmtpClient, SmtpState
from domain_watcher.notifications import (
    NotificationPayload,
    NotificationDispatcher,
    DispatchResult,
    WebhookSender,
    TelegramSender,
    NtfySender,
    EmailSender,
)
from domain_watcher.registrars import (
    RegistrarAdapter,
    create_adapter,
    get_initialized_adapter,
    list_adapter_types,
)
from domain_watcher.registration import AutoRegistrationOrchestrator, RegistrationOutcome
from domain_watcher.orchestrator import CheckOrchestrator
from domain_watcher.scheduler import SweepScheduler
from domain_watcher.cli import main as cli_main, build_engine

__all__ = [
    # Exceptions
    "DomainWatcherError",
    "ValidationError",
    "NetworkError",
    "ProtocolError",
    "NoServerFoundError",
    "PersistenceError",
    "TamperingError",
    "NotificationError",
    "SmtpError",
    "CredentialError",
    "ConfigurationError",
    "RegistrarError",
    # Enums
    "DomainStatus",
    "EventType",
    "ChannelType",
    "LogLevel",
    "DomainValidationErrorCode",
    "RDAPErrorCode",
    "RDAPStatus",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Configuration
    "RateLimitConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "SmtpConfig",
    "SystemConfig",
    "MonitorSettings",
    # Models
    "WatchedDomain",
    "HistoryEntry",
    "RegistrarConfig",
    "NotificationChannelConfig",
    "CheckResult",
    "SweepResult",
    "SchedulerState",
    # RDAP
    "RateLimiter",
    "RDAPBootstrap",
    "RDAPClient",
    "RDAPResponse",
    "RDAPParsedFields",
    "RDAPEvent",
    "RDAPEntity",
    "RDAPError",
    "map_status",
    "next_check_interval_minutes",
    # Persistence
    "Repository",
    "StateStore",
    # Logging
    "AuditLogger",
    "LogEntry",
    # Credentials
    "CredentialCipher",
    # Notifications
    "SmtpClient",
    "SmtpState",
    "NotificationPayload",
    "NotificationDispatcher",
    "DispatchResult",
    "WebhookSender",
    "TelegramSender",
    "NtfySender",
    "EmailSender",
    # Registrars
    "RegistrarAdapter",
    "create_adapter",
    "get_initialized_adapter",
    "list_adapter_types",
    "AutoRegistrationOrchestrator",
    "RegistrationOutcome",
    # Engine
    "CheckOrchestrator",
    "SweepScheduler",
    "cli_main",
    "build_engine",
]
