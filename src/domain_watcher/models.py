"""
Data models for the domain watcher system.

This module defines the watched domain record, the audit history entry,
registrar and notification channel configuration, and the results produced
by checks and sweeps.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import DomainStatus, EventType


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_NOTIFY_ON = frozenset({"available", "expiring_soon"})


@dataclass
class WatchedDomain:
    """A domain name the user wants to acquire."""

    domain: str  # Canonical form
    tld: str
    id: str = field(default_factory=_new_id)
    current_status: DomainStatus = DomainStatus.UNKNOWN
    previous_status: Optional[DomainStatus] = None
    expiry_date: Optional[str] = None
    registrar: Optional[str] = None
    rdap_raw: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    next_check_at: Optional[datetime] = None  # None means due immediately
    auto_register: bool = False
    registrar_adapter: Optional[str] = None
    priority: int = 0
    notes: str = ""
    tags: set[str] = field(default_factory=set)
    added_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def is_due(self, now: datetime) -> bool:
        """Check whether the domain should be checked at ``now``."""
        return self.next_check_at is None or self.next_check_at <= now


@dataclass
class HistoryEntry:
    """Immutable audit record of a status change or registration attempt."""

    domain_id: str
    from_status: Optional[DomainStatus]
    to_status: DomainStatus
    event_type: EventType
    details: dict[str, Any] = field(default_factory=dict)
    notified: bool = False
    timestamp: datetime = field(default_factory=_utc_now)
    id: str = field(default_factory=_new_id)


@dataclass
class RegistrarConfig:
    """Stored credentials and settings for one registrar adapter."""

    adapter_name: str
    display_name: str
    api_key: str  # Encrypted token
    api_secret: Optional[str] = None  # Encrypted token
    sandbox_mode: bool = True
    extra_config: dict[str, Any] = field(default_factory=dict)
    balance: Optional[float] = None
    balance_updated_at: Optional[datetime] = None
    enabled: bool = True
    id: str = field(default_factory=_new_id)


@dataclass
class NotificationChannelConfig:
    """A configured notification destination."""

    type: str  # One of ChannelType values
    name: str
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    notify_on: set[str] = field(default_factory=lambda: set(DEFAULT_NOTIFY_ON))
    id: str = field(default_factory=_new_id)


@dataclass
class CheckResult:
    """Outcome of a single domain check."""

    domain: str
    status: DomainStatus
    previous_status: DomainStatus
    checked_at: datetime
    next_check_at: datetime
    expiry_date: Optional[str] = None
    registrar: Optional[str] = None
    rdap_raw: Optional[str] = None
    error: Optional[str] = None
    history_entry_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "status": self.status.value,
            "previous_status": self.previous_status.value,
            "checked_at": self.checked_at.isoformat(),
            "next_check_at": self.next_check_at.isoformat(),
            "expiry_date": self.expiry_date,
            "registrar": self.registrar,
            "error": self.error,
            "changed": self.changed,
        }


@dataclass
class SweepResult:
    """Counters for one scheduler sweep."""

    checked: int = 0
    changed: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {"checked": self.checked, "changed": self.changed, "errors": self.errors}


@dataclass
class SchedulerState:
    """In-memory scheduler state; lost on restart."""

    is_running: bool = False
    last_run_at: Optional[datetime] = None
    last_result: Optional[SweepResult] = None
