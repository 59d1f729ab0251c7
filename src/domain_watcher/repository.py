"""
Persistence interface consumed by the monitoring engine.

The engine never touches storage directly; it talks to an object satisfying
``Repository``. ``StateStore`` is the bundled implementation.
"""

from datetime import datetime
from typing import Any, Optional, Protocol

from .models import (
    HistoryEntry,
    NotificationChannelConfig,
    RegistrarConfig,
    WatchedDomain,
)


class Repository(Protocol):
    """Storage operations the engine depends on."""

    # Domains

    def get_domain(self, domain_id: str) -> Optional[WatchedDomain]: ...

    def get_domain_by_name(self, name: str) -> Optional[WatchedDomain]: ...

    def list_domains(self) -> list[WatchedDomain]: ...

    def list_due_domains(self, now: datetime) -> list[WatchedDomain]: ...

    def add_domain(self, name: str, tld: str, **fields: Any) -> WatchedDomain: ...

    def update_domain(self, domain_id: str, **fields: Any) -> WatchedDomain: ...

    def delete_domain(self, domain_id: str) -> bool: ...

    # History

    def insert_history(self, entry: HistoryEntry) -> str: ...

    def mark_history_notified(self, entry_id: str) -> None: ...

    def list_history(self, domain_id: Optional[str] = None) -> list[HistoryEntry]: ...

    # Settings

    def get_settings(self) -> dict[str, str]: ...

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]: ...

    def set_setting(self, key: str, value: str) -> None: ...

    # Registrars

    def get_registrar_config(self, adapter_name: str) -> Optional[RegistrarConfig]: ...

    def upsert_registrar_config(self, config: RegistrarConfig) -> None: ...

    def update_registrar_balance(
        self, adapter_name: str, balance: float, updated_at: datetime
    ) -> None: ...

    # Notification channels

    def list_channels(self) -> list[NotificationChannelConfig]: ...

    def list_enabled_channels(self) -> list[NotificationChannelConfig]: ...

    def get_channel(self, channel_id: str) -> Optional[NotificationChannelConfig]: ...

    def upsert_channel(self, channel: NotificationChannelConfig) -> None: ...
