"""
Registrar adapters and the name to class registry.
"""

from typing import Optional

from ..crypto import CredentialCipher, decrypt_optional
from ..models import RegistrarConfig
from ..repository import Repository
from .base import (
    AvailabilityResult,
    BalanceResult,
    ConfigField,
    ConnectionTestResult,
    RegistrarAdapter,
    RegistrationResult,
)
from .dynadot import DynadotAdapter
from .gandi import GandiAdapter
from .godaddy import GoDaddyAdapter
from .namecheap import NamecheapAdapter

ADAPTERS: dict[str, type[RegistrarAdapter]] = {
    DynadotAdapter.name: DynadotAdapter,
    NamecheapAdapter.name: NamecheapAdapter,
    GandiAdapter.name: GandiAdapter,
    GoDaddyAdapter.name: GoDaddyAdapter,
}


def list_adapter_types() -> list[dict]:
    """Name, display name and config schema of every registered adapter."""
    return [adapter_cls.describe() for adapter_cls in ADAPTERS.values()]


def create_adapter(name: str) -> Optional[RegistrarAdapter]:
    """A fresh, uninitialized adapter, or None for an unknown name."""
    adapter_cls = ADAPTERS.get(name)
    return adapter_cls() if adapter_cls else None


def initialize_from_config(
    adapter: RegistrarAdapter, config: RegistrarConfig, cipher: CredentialCipher
) -> None:
    """
    Decrypt stored credentials and initialize the adapter.

    Raises:
        CredentialError: If a stored credential cannot be decrypted
    """
    adapter.initialize(
        api_key=cipher.decrypt(config.api_key),
        api_secret=decrypt_optional(cipher, config.api_secret),
        sandbox_mode=config.sandbox_mode,
        extra_config=config.extra_config,
    )


def get_initialized_adapter(
    repository: Repository, cipher: CredentialCipher, name: str
) -> Optional[RegistrarAdapter]:
    """
    Build and initialize the adapter for a stored registrar config.

    Returns:
        The adapter, or None if there is no config or no adapter of that name

    Raises:
        CredentialError: If a stored credential cannot be decrypted
    """
    config = repository.get_registrar_config(name)
    if config is None:
        return None
    adapter = create_adapter(name)
    if adapter is None:
        return None
    initialize_from_config(adapter, config, cipher)
    return adapter


__all__ = [
    "ADAPTERS",
    "AvailabilityResult",
    "BalanceResult",
    "ConfigField",
    "ConnectionTestResult",
    "DynadotAdapter",
    "GandiAdapter",
    "GoDaddyAdapter",
    "NamecheapAdapter",
    "RegistrarAdapter",
    "RegistrationResult",
    "create_adapter",
    "get_initialized_adapter",
    "initialize_from_config",
    "list_adapter_types",
]
