"""
Check Orchestrator for the domain watcher system.

Performs one domain's check end to end: query the authoritative RDAP
server, map the response to a lifecycle status, persist the result and
schedule the next check. On a status change it records a history entry,
notifies the subscribed channels and, when the domain became available,
hands it to the auto-registration orchestrator. Notification and
registration failures are isolated; persistence failures propagate.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .config import MonitorSettings
from .enums import DomainStatus, EventType, LogLevel, RDAPStatus
from .models import CheckResult, HistoryEntry, WatchedDomain
from .notifications import NotificationDispatcher
from .rdap_client import RDAPClient, extract_expiry, extract_registrar
from .registration import AutoRegistrationOrchestrator
from .repository import Repository
from .status_mapper import map_status, next_check_interval_minutes


class CheckOrchestrator:
    """
    Main orchestrator for domain lifecycle checks.

    Settings are re-read from the repository on every check so changes take
    effect without a restart.
    """

    def __init__(
        self,
        repository: Repository,
        rdap_client: RDAPClient,
        dispatcher: Optional[NotificationDispatcher] = None,
        auto_registrar: Optional[AutoRegistrationOrchestrator] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the check orchestrator.

        Args:
            repository: Persistence collaborator
            rdap_client: Client used to query registries
            dispatcher: Optional notification dispatcher for status changes
            auto_registrar: Optional auto-registration orchestrator
            logger: Optional audit logger
        """
        self._repository = repository
        self._rdap_client = rdap_client
        self._dispatcher = dispatcher
        self._auto_registrar = auto_registrar
        self._logger = logger

    async def perform_check(self, domain: WatchedDomain) -> CheckResult:
        """
        Check one domain and persist the outcome.

        Args:
            domain: The watched domain as currently stored

        Returns:
            CheckResult with the new status and the scheduled next check

        Raises:
            PersistenceError: If the repository cannot store the result
        """
        settings = MonitorSettings.from_mapping(self._repository.get_settings())

        response = await self._rdap_client.query_domain(
            domain.domain, domain.tld, timeout_ms=settings.rdap_timeout_ms
        )

        checked_at = datetime.now(timezone.utc)
        status = map_status(
            response.parsed_fields,
            response.http_status_code,
            settings.expiring_threshold_days,
            now=checked_at,
        )
        interval = next_check_interval_minutes(status)
        next_check_at = checked_at + timedelta(minutes=interval)

        error = response.error.message if response.status is RDAPStatus.ERROR else None
        expiry_date = extract_expiry(response.parsed_fields)
        registrar = extract_registrar(response.parsed_fields)
        old_status = domain.current_status

        updated = self._repository.update_domain(
            domain.id,
            current_status=status,
            previous_status=old_status,
            last_checked_at=checked_at,
            next_check_at=next_check_at,
            expiry_date=expiry_date,
            registrar=registrar,
            rdap_raw=response.raw_json,
        )

        result = CheckResult(
            domain=domain.domain,
            status=status,
            previous_status=old_status,
            checked_at=checked_at,
            next_check_at=next_check_at,
            expiry_date=expiry_date,
            registrar=registrar,
            rdap_raw=response.raw_json,
            error=error,
        )

        self._log(LogLevel.DEBUG if not result.changed else LogLevel.INFO, "Domain checked", {
            "domain": domain.domain,
            "status": status.value,
            "previous_status": old_status.value,
            "next_check_in_minutes": interval,
            "error": error,
        })

        if not result.changed:
            return result

        entry = HistoryEntry(
            domain_id=domain.id,
            from_status=old_status,
            to_status=status,
            event_type=EventType.STATUS_CHANGE,
            details={"expiry_date": expiry_date, "registrar": registrar, "error": error},
        )
        result.history_entry_id = self._repository.insert_history(entry)

        await self._notify(updated, status, old_status, result.history_entry_id)

        if status is DomainStatus.AVAILABLE and self._auto_registrar is not None:
            await self._auto_register(updated)

        return result

    async def _notify(
        self,
        domain: WatchedDomain,
        status: DomainStatus,
        old_status: DomainStatus,
        history_entry_id: str,
    ) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(
                domain, EventType.STATUS_CHANGE, status, old_status, history_entry_id
            )
        except Exception as e:
            self._log_error("Notification dispatch failed", e, {"domain": domain.domain})

    async def _auto_register(self, domain: WatchedDomain) -> None:
        try:
            await self._auto_registrar.attempt_auto_registration(domain)
        except Exception as e:
            self._log_error("Auto-registration failed", e, {"domain": domain.domain})

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "CheckOrchestrator", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("CheckOrchestrator", message, error, data)
