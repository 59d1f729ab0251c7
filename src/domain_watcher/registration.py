"""
Auto-Registration Orchestrator.

Decides whether a domain that just became available should be registered,
and if so registers it through the assigned registrar adapter. The guard
chain stops at the first failing condition without touching the adapter.
Whatever the registration outcome, the attempt is recorded in history,
announced through the dispatcher and followed by a balance refresh.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .config import MonitorSettings
from .crypto import CredentialCipher
from .enums import DomainStatus, EventType, LogLevel
from .exceptions import CredentialError
from .models import HistoryEntry, WatchedDomain
from .notifications import NotificationDispatcher
from .registrars import (
    BalanceResult,
    RegistrarAdapter,
    RegistrationResult,
    create_adapter,
    initialize_from_config,
)
from .repository import Repository


@dataclass
class RegistrationOutcome:
    """Result of one auto-registration attempt that passed every guard."""

    domain: str
    adapter: str
    success: bool
    order_id: Optional[str] = None
    cost: Optional[float] = None
    currency: Optional[str] = None
    error: Optional[str] = None
    history_entry_id: Optional[str] = None
    balance: Optional[BalanceResult] = None
    low_balance: bool = False

    def history_details(self) -> dict:
        return {
            "adapter": self.adapter,
            "success": self.success,
            "order_id": self.order_id,
            "cost": self.cost,
            "currency": self.currency,
            "error": self.error,
        }


class AutoRegistrationOrchestrator:
    """
    Guarded auto-registration.

    Guards, in order: global toggle, per-domain toggle, assigned adapter,
    enabled registrar config, successful adapter initialization.
    """

    def __init__(
        self,
        repository: Repository,
        cipher: CredentialCipher,
        dispatcher: Optional[NotificationDispatcher] = None,
        adapter_factory: Callable[[str], Optional[RegistrarAdapter]] = create_adapter,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._repository = repository
        self._cipher = cipher
        self._dispatcher = dispatcher
        self._adapter_factory = adapter_factory
        self._logger = logger

    async def attempt_auto_registration(
        self, domain: WatchedDomain
    ) -> Optional[RegistrationOutcome]:
        """
        Register ``domain`` if every guard passes.

        Returns:
            The outcome, or None when a guard stopped the attempt
        """
        adapter = self._prepare_adapter(domain)
        if adapter is None:
            return None

        adapter_name = domain.registrar_adapter
        self._log_info("Attempting auto-registration", {
            "domain": domain.domain, "adapter": adapter_name,
        })

        try:
            result = await adapter.register_domain(domain.domain)
        except Exception as e:
            result = RegistrationResult(success=False, error=str(e) or type(e).__name__)

        outcome = RegistrationOutcome(
            domain=domain.domain,
            adapter=adapter_name,
            success=result.success,
            order_id=result.order_id,
            cost=result.cost,
            currency=result.currency,
            error=result.error,
        )

        old_status = domain.current_status
        new_status = DomainStatus.REGISTERED if outcome.success else old_status
        entry = HistoryEntry(
            domain_id=domain.id,
            from_status=old_status,
            to_status=new_status,
            event_type=EventType.REGISTRATION_ATTEMPT,
            details=outcome.history_details(),
        )
        outcome.history_entry_id = self._repository.insert_history(entry)

        snapshot = domain
        if outcome.success:
            snapshot = self._repository.update_domain(
                domain.id,
                current_status=DomainStatus.REGISTERED,
                previous_status=old_status,
            )
            self._log_info("Domain registered", {
                "domain": domain.domain, "adapter": adapter_name, "order_id": outcome.order_id,
            })
        else:
            self._log(LogLevel.ERROR, "Auto-registration failed", {
                "domain": domain.domain, "adapter": adapter_name, "error": outcome.error,
            })

        await self._notify(snapshot, new_status, old_status, outcome.history_entry_id)
        await self._refresh_balance(adapter, adapter_name, outcome)
        return outcome

    def _prepare_adapter(self, domain: WatchedDomain) -> Optional[RegistrarAdapter]:
        settings = MonitorSettings.from_mapping(self._repository.get_settings())
        if not settings.auto_register_enabled:
            self._log_info("Auto-register disabled globally, skipping", {"domain": domain.domain})
            return None

        if not domain.auto_register:
            self._log_info("Auto-register not enabled for domain", {"domain": domain.domain})
            return None

        adapter_name = domain.registrar_adapter
        if not adapter_name:
            self._log_info("No registrar adapter assigned", {"domain": domain.domain})
            return None

        config = self._repository.get_registrar_config(adapter_name)
        if config is None or not config.enabled:
            self._log_info("Registrar config not found or disabled", {
                "domain": domain.domain, "adapter": adapter_name,
            })
            return None

        adapter = self._adapter_factory(adapter_name)
        if adapter is None:
            self._log(LogLevel.WARN, "Unknown registrar adapter", {"adapter": adapter_name})
            return None

        try:
            initialize_from_config(adapter, config, self._cipher)
        except CredentialError as e:
            self._log_error("Failed to initialize adapter", e, {"adapter": adapter_name})
            return None

        return adapter

    async def _notify(
        self,
        snapshot: WatchedDomain,
        new_status: DomainStatus,
        old_status: DomainStatus,
        history_entry_id: Optional[str],
    ) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(
                snapshot,
                EventType.REGISTRATION_ATTEMPT,
                new_status,
                old_status,
                history_entry_id,
            )
        except Exception as e:
            self._log_error("Registration notification failed", e, {"domain": snapshot.domain})

    async def _refresh_balance(
        self, adapter: RegistrarAdapter, adapter_name: str, outcome: RegistrationOutcome
    ) -> None:
        try:
            balance = await adapter.get_balance()
            self._repository.update_registrar_balance(
                adapter_name, balance.balance, datetime.now(timezone.utc)
            )
        except Exception as e:
            self._log_error("Balance refresh failed", e, {"adapter": adapter_name})
            return

        outcome.balance = balance
        settings = MonitorSettings.from_mapping(self._repository.get_settings())
        if balance.balance < settings.low_balance_threshold:
            outcome.low_balance = True
            self._log(LogLevel.WARN, "Low registrar balance", {
                "adapter": adapter_name,
                "balance": balance.balance,
                "currency": balance.currency,
                "threshold": settings.low_balance_threshold,
            })

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "AutoRegistration", message, data)

    def _log_info(self, message: str, data: dict) -> None:
        self._log(LogLevel.INFO, message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("AutoRegistration", message, error, data)
