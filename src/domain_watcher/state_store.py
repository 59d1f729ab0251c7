"""
State Store module for persistent watcher state.

This module provides HMAC-protected JSON storage for watched domains, their
history, runtime settings, registrar credentials and notification channels.
The whole document is rewritten atomically on every mutation, and a file
whose HMAC does not verify is refused.
"""

import copy
import dataclasses
import hashlib
import hmac
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .config import DEFAULT_SETTINGS
from .enums import DomainStatus, EventType
from .exceptions import PersistenceError, TamperingError
from .models import (
    HistoryEntry,
    NotificationChannelConfig,
    RegistrarConfig,
    WatchedDomain,
)

_DOMAIN_FIELDS = {f.name for f in dataclasses.fields(WatchedDomain)}
_IMMUTABLE_DOMAIN_FIELDS = {"id", "domain", "added_at"}


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _status_or_none(value: Optional[str]) -> Optional[DomainStatus]:
    return DomainStatus(value) if value else None


def _domain_to_dict(domain: WatchedDomain) -> dict:
    return {
        "id": domain.id,
        "domain": domain.domain,
        "tld": domain.tld,
        "current_status": domain.current_status.value,
        "previous_status": domain.previous_status.value if domain.previous_status else None,
        "expiry_date": domain.expiry_date,
        "registrar": domain.registrar,
        "rdap_raw": domain.rdap_raw,
        "last_checked_at": _dt_to_str(domain.last_checked_at),
        "next_check_at": _dt_to_str(domain.next_check_at),
        "auto_register": domain.auto_register,
        "registrar_adapter": domain.registrar_adapter,
        "priority": domain.priority,
        "notes": domain.notes,
        "tags": sorted(domain.tags),
        "added_at": _dt_to_str(domain.added_at),
        "updated_at": _dt_to_str(domain.updated_at),
    }


def _domain_from_dict(data: dict) -> WatchedDomain:
    return WatchedDomain(
        id=data["id"],
        domain=data["domain"],
        tld=data["tld"],
        current_status=DomainStatus(data.get("current_status", "unknown")),
        previous_status=_status_or_none(data.get("previous_status")),
        expiry_date=data.get("expiry_date"),
        registrar=data.get("registrar"),
        rdap_raw=data.get("rdap_raw"),
        last_checked_at=_str_to_dt(data.get("last_checked_at")),
        next_check_at=_str_to_dt(data.get("next_check_at")),
        auto_register=bool(data.get("auto_register", False)),
        registrar_adapter=data.get("registrar_adapter"),
        priority=int(data.get("priority", 0)),
        notes=data.get("notes", ""),
        tags=set(data.get("tags", [])),
        added_at=_str_to_dt(data.get("added_at")),
        updated_at=_str_to_dt(data.get("updated_at")),
    )


def _history_to_dict(entry: HistoryEntry) -> dict:
    return {
        "id": entry.id,
        "domain_id": entry.domain_id,
        "from_status": entry.from_status.value if entry.from_status else None,
        "to_status": entry.to_status.value,
        "event_type": entry.event_type.value,
        "details": entry.details,
        "notified": entry.notified,
        "timestamp": _dt_to_str(entry.timestamp),
    }


def _history_from_dict(data: dict) -> HistoryEntry:
    return HistoryEntry(
        id=data["id"],
        domain_id=data["domain_id"],
        from_status=_status_or_none(data.get("from_status")),
        to_status=DomainStatus(data["to_status"]),
        event_type=EventType(data["event_type"]),
        details=data.get("details", {}),
        notified=bool(data.get("notified", False)),
        timestamp=_str_to_dt(data["timestamp"]),
    )


def _registrar_to_dict(config: RegistrarConfig) -> dict:
    return {
        "id": config.id,
        "adapter_name": config.adapter_name,
        "display_name": config.display_name,
        "api_key": config.api_key,
        "api_secret": config.api_secret,
        "sandbox_mode": config.sandbox_mode,
        "extra_config": config.extra_config,
        "balance": config.balance,
        "balance_updated_at": _dt_to_str(config.balance_updated_at),
        "enabled": config.enabled,
    }


def _registrar_from_dict(data: dict) -> RegistrarConfig:
    return RegistrarConfig(
        id=data["id"],
        adapter_name=data["adapter_name"],
        display_name=data.get("display_name", data["adapter_name"]),
        api_key=data["api_key"],
        api_secret=data.get("api_secret"),
        sandbox_mode=bool(data.get("sandbox_mode", True)),
        extra_config=data.get("extra_config", {}),
        balance=data.get("balance"),
        balance_updated_at=_str_to_dt(data.get("balance_updated_at")),
        enabled=bool(data.get("enabled", True)),
    )


def _channel_to_dict(channel: NotificationChannelConfig) -> dict:
    return {
        "id": channel.id,
        "type": channel.type,
        "name": channel.name,
        "config": channel.config,
        "enabled": channel.enabled,
        "notify_on": sorted(channel.notify_on),
    }


def _channel_from_dict(data: dict) -> NotificationChannelConfig:
    return NotificationChannelConfig(
        id=data["id"],
        type=data["type"],
        name=data.get("name", ""),
        config=data.get("config", {}),
        enabled=bool(data.get("enabled", True)),
        notify_on=set(data.get("notify_on", [])),
    )


class StateStore:
    """
    Persistent state storage with HMAC protection.

    Implements the Repository interface. Objects handed out are copies;
    changes only take effect through the update methods.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the state store.

        Args:
            file_path: Path to the state file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        self._file_path = Path(file_path)
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._loaded = False
        self._domains: dict[str, WatchedDomain] = {}
        self._history: dict[str, HistoryEntry] = {}
        self._settings: dict[str, str] = {}
        self._registrars: dict[str, RegistrarConfig] = {}
        self._channels: dict[str, NotificationChannelConfig] = {}

    @property
    def file_path(self) -> Path:
        """Get the state file path."""
        return self._file_path

    def load(self) -> None:
        """
        Load state from file and validate HMAC.

        A missing file yields an empty store seeded with the default settings.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If file cannot be read or parsed
        """
        self._domains.clear()
        self._history.clear()
        self._registrars.clear()
        self._channels.clear()
        self._settings = dict(DEFAULT_SETTINGS)
        self._loaded = True

        if not self._file_path.exists():
            return

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.pop("hmac", "")
        computed_hmac = self.compute_hmac(raw_data)
        if not self.validate_hmac(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - data may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        try:
            for item in raw_data.get("domains", []):
                domain = _domain_from_dict(item)
                self._domains[domain.id] = domain
            for item in raw_data.get("history", []):
                entry = _history_from_dict(item)
                self._history[entry.id] = entry
            for item in raw_data.get("registrars", []):
                config = _registrar_from_dict(item)
                self._registrars[config.adapter_name] = config
            for item in raw_data.get("channels", []):
                channel = _channel_from_dict(item)
                self._channels[channel.id] = channel
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Malformed record in state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        self._settings.update({str(k): str(v) for k, v in raw_data.get("settings", {}).items()})

    def save(self) -> None:
        """
        Write the whole state to disk with HMAC protection.

        The document is written to a temporary file next to the target and
        renamed over it, so readers never see a partial file.

        Raises:
            PersistenceError: If file cannot be written
        """
        self._ensure_loaded()
        data = {
            "version": self.VERSION,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "domains": [_domain_to_dict(d) for d in self._domains.values()],
            "history": [_history_to_dict(h) for h in self._history.values()],
            "settings": dict(sorted(self._settings.items())),
            "registrars": [_registrar_to_dict(r) for r in self._registrars.values()],
            "channels": [_channel_to_dict(c) for c in self._channels.values()],
        }
        data["hmac"] = self.compute_hmac(data)

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._file_path.parent,
                prefix=f".{self._file_path.name}.",
                delete=False,
            ) as f:
                tmp_path = f.name
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._file_path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write state file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over (without the hmac field)

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # Domains

    def get_domain(self, domain_id: str) -> Optional[WatchedDomain]:
        self._ensure_loaded()
        domain = self._domains.get(domain_id)
        return copy.deepcopy(domain) if domain else None

    def get_domain_by_name(self, name: str) -> Optional[WatchedDomain]:
        self._ensure_loaded()
        for domain in self._domains.values():
            if domain.domain == name:
                return copy.deepcopy(domain)
        return None

    def list_domains(self) -> list[WatchedDomain]:
        self._ensure_loaded()
        return [
            copy.deepcopy(d)
            for d in sorted(self._domains.values(), key=lambda d: (-d.priority, d.domain))
        ]

    def list_due_domains(self, now: datetime) -> list[WatchedDomain]:
        """Domains whose next check is unset or not after ``now``."""
        return [d for d in self.list_domains() if d.is_due(now)]

    def add_domain(self, name: str, tld: str, **fields: Any) -> WatchedDomain:
        """
        Add a watched domain with status unknown and an immediate check.

        Raises:
            PersistenceError: If the domain is already watched or a field is unknown
        """
        self._ensure_loaded()
        if self.get_domain_by_name(name) is not None:
            raise PersistenceError(
                code="duplicate",
                message=f"Domain already watched: {name}",
                details={"domain": name},
            )
        self._check_fields(fields)
        domain = WatchedDomain(domain=name, tld=tld, **fields)
        self._domains[domain.id] = domain
        self.save()
        return copy.deepcopy(domain)

    def update_domain(self, domain_id: str, **fields: Any) -> WatchedDomain:
        """
        Update fields of a watched domain and persist.

        Raises:
            PersistenceError: If the domain does not exist or a field is unknown
        """
        self._ensure_loaded()
        domain = self._domains.get(domain_id)
        if domain is None:
            raise PersistenceError(
                code="not_found",
                message=f"Domain not found: {domain_id}",
                details={"domain_id": domain_id},
            )
        self._check_fields(fields)
        updated = dataclasses.replace(
            domain, updated_at=datetime.now(timezone.utc), **fields
        )
        self._domains[domain_id] = updated
        self.save()
        return copy.deepcopy(updated)

    def delete_domain(self, domain_id: str) -> bool:
        """Delete a domain and its history. Returns False if it did not exist."""
        self._ensure_loaded()
        if self._domains.pop(domain_id, None) is None:
            return False
        self._history = {
            k: v for k, v in self._history.items() if v.domain_id != domain_id
        }
        self.save()
        return True

    @staticmethod
    def _check_fields(fields: dict) -> None:
        unknown = set(fields) - _DOMAIN_FIELDS
        forbidden = set(fields) & _IMMUTABLE_DOMAIN_FIELDS
        if unknown or forbidden:
            raise PersistenceError(
                code="invalid_field",
                message=f"Cannot set fields: {sorted(unknown | forbidden)}",
                details={"fields": sorted(unknown | forbidden)},
            )

    # History

    def insert_history(self, entry: HistoryEntry) -> str:
        self._ensure_loaded()
        self._history[entry.id] = copy.deepcopy(entry)
        self.save()
        return entry.id

    def mark_history_notified(self, entry_id: str) -> None:
        self._ensure_loaded()
        entry = self._history.get(entry_id)
        if entry is None or entry.notified:
            return
        entry.notified = True
        self.save()

    def list_history(self, domain_id: Optional[str] = None) -> list[HistoryEntry]:
        """History entries, oldest first, optionally for one domain."""
        self._ensure_loaded()
        entries = [
            h for h in self._history.values()
            if domain_id is None or h.domain_id == domain_id
        ]
        entries.sort(key=lambda h: h.timestamp)
        return copy.deepcopy(entries)

    # Settings

    def get_settings(self) -> dict[str, str]:
        self._ensure_loaded()
        return dict(self._settings)

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        self._ensure_loaded()
        return self._settings.get(key, default)

    def set_setting(self, key: str, value: str) -> None:
        self._ensure_loaded()
        self._settings[key] = str(value)
        self.save()

    # Registrars

    def get_registrar_config(self, adapter_name: str) -> Optional[RegistrarConfig]:
        self._ensure_loaded()
        config = self._registrars.get(adapter_name)
        return copy.deepcopy(config) if config else None

    def upsert_registrar_config(self, config: RegistrarConfig) -> None:
        self._ensure_loaded()
        self._registrars[config.adapter_name] = copy.deepcopy(config)
        self.save()

    def update_registrar_balance(
        self, adapter_name: str, balance: float, updated_at: datetime
    ) -> None:
        self._ensure_loaded()
        config = self._registrars.get(adapter_name)
        if config is None:
            raise PersistenceError(
                code="not_found",
                message=f"Registrar config not found: {adapter_name}",
                details={"adapter_name": adapter_name},
            )
        config.balance = balance
        config.balance_updated_at = updated_at
        self.save()

    # Notification channels

    def list_channels(self) -> list[NotificationChannelConfig]:
        self._ensure_loaded()
        return copy.deepcopy(list(self._channels.values()))

    def list_enabled_channels(self) -> list[NotificationChannelConfig]:
        return [c for c in self.list_channels() if c.enabled]

    def get_channel(self, channel_id: str) -> Optional[NotificationChannelConfig]:
        self._ensure_loaded()
        channel = self._channels.get(channel_id)
        return copy.deepcopy(channel) if channel else None

    def upsert_channel(self, channel: NotificationChannelConfig) -> None:
        self._ensure_loaded()
        self._channels[channel.id] = copy.deepcopy(channel)
        self.save()
