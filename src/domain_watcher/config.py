"""
Configuration dataclasses for the domain watcher system.

This module defines the static process configuration (rate limiting,
persistence, logging, scheduling, mail transport) and the runtime monitor
settings that are stored as string key/value pairs by the persistence layer.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

IANA_BOOTSTRAP_URL = "https://data.iana.org/rdap/dns.json"
DEFAULT_USER_AGENT = "DomainWatcher/1.0"

# Runtime settings and their defaults, seeded into a fresh store
DEFAULT_SETTINGS: dict[str, str] = {
    "check_interval_minutes": "60",
    "expiring_threshold_days": "30",
    "auto_register_enabled": "false",
    "rdap_timeout_ms": "10000",
    "max_concurrent_checks": "5",
    "low_balance_threshold": "10",
}


@dataclass
class RateLimitConfig:
    """Outbound RDAP throttling."""

    max_concurrent: int = 5
    min_interval_seconds: float = 1.0


@dataclass
class PersistenceConfig:
    """Persistence and state storage configuration."""

    state_file_path: Path
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SchedulerConfig:
    """Cadence of the unattended sweep loop."""

    interval_seconds: float = 60.0


@dataclass
class SmtpConfig:
    """Mail transport behaviour shared by all email channels."""

    timeout_seconds: float = 30.0
    helo_name: str = "domainwatcher"


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    persistence: PersistenceConfig
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    bootstrap_url: str = IANA_BOOTSTRAP_URL
    user_agent: str = DEFAULT_USER_AGENT


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class MonitorSettings:
    """Typed view over the persisted settings table."""

    expiring_threshold_days: int = 30
    auto_register_enabled: bool = False
    rdap_timeout_ms: int = 10000
    max_concurrent_checks: int = 5
    low_balance_threshold: float = 10.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "MonitorSettings":
        """
        Build settings from raw string values.

        Missing or unparsable values fall back to their defaults. The
        auto-register toggle is only on for the literal string "true".
        """
        return cls(
            expiring_threshold_days=_parse_int(values.get("expiring_threshold_days"), 30),
            auto_register_enabled=values.get("auto_register_enabled") == "true",
            rdap_timeout_ms=_parse_int(values.get("rdap_timeout_ms"), 10000),
            max_concurrent_checks=max(1, _parse_int(values.get("max_concurrent_checks"), 5)),
            low_balance_threshold=_parse_float(values.get("low_balance_threshold"), 10.0),
        )
