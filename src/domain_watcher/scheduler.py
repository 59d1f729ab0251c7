"""
Scheduler module for the domain watcher system.

Runs periodic sweeps over every domain that is due for a check. At most one
sweep runs at a time per scheduler instance; a sweep requested while another
is in progress is skipped rather than queued. There is no cross-process
locking.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .audit_logger import AuditLogger
from .config import MonitorSettings
from .enums import LogLevel
from .models import SchedulerState, SweepResult, WatchedDomain
from .orchestrator import CheckOrchestrator
from .repository import Repository

SKIPPED_RESULT = {"skipped": True, "reason": "Already running"}


class SweepScheduler:
    """
    Fixed-cadence sweep scheduler.

    Holds its own SchedulerState; construct one per process and pass it to
    whatever needs the status or the manual trigger.
    """

    def __init__(
        self,
        repository: Repository,
        orchestrator: CheckOrchestrator,
        interval_seconds: float = 60.0,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            repository: Source of due domains and settings
            orchestrator: Performs each domain check
            interval_seconds: Pause between unattended sweeps
            logger: Optional audit logger
        """
        self._repository = repository
        self._orchestrator = orchestrator
        self._interval_seconds = interval_seconds
        self._logger = logger
        self._state = SchedulerState()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def active(self) -> bool:
        """True while the background loop task is alive."""
        return self._task is not None and not self._task.done()

    def status(self) -> dict[str, Any]:
        """Snapshot of the scheduler state."""
        last_result = self._state.last_result
        return {
            "running": self._state.is_running,
            "active": self.active,
            "last_run_at": self._state.last_run_at.isoformat() if self._state.last_run_at else None,
            "last_result": last_result.to_dict() if last_result else None,
        }

    async def run_sweep_now(self) -> Union[SweepResult, dict]:
        """
        Check every due domain once.

        Returns:
            SweepResult, or ``{"skipped": True, "reason": "Already running"}``
            when another sweep holds the flag

        Raises:
            PersistenceError: If the due domains cannot be listed
        """
        # Test-and-set with no await in between
        if self._state.is_running:
            return dict(SKIPPED_RESULT)
        self._state.is_running = True

        result = SweepResult()
        try:
            now = datetime.now(timezone.utc)
            domains = self._repository.list_due_domains(now)
            settings = MonitorSettings.from_mapping(self._repository.get_settings())
            semaphore = asyncio.Semaphore(settings.max_concurrent_checks)

            async def _check(domain: WatchedDomain) -> None:
                async with semaphore:
                    try:
                        check = await self._orchestrator.perform_check(domain)
                    except Exception as e:
                        result.errors += 1
                        self._log_error("Domain check failed", e, {"domain": domain.domain})
                        return
                result.checked += 1
                if check.changed:
                    result.changed += 1

            await asyncio.gather(*(_check(d) for d in domains))
            self._log(LogLevel.INFO, "Sweep finished", {"due": len(domains), **result.to_dict()})
            return result
        finally:
            self._state.is_running = False
            self._state.last_run_at = datetime.now(timezone.utc)
            self._state.last_result = result

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Sweep every ``interval_seconds`` until stopped.

        A failed sweep is logged and the loop carries on.

        Args:
            stop_event: Optional event to signal the loop to stop
        """
        self._stop_event = stop_event or asyncio.Event()
        self._log(LogLevel.INFO, "Scheduler started", {"interval_seconds": self._interval_seconds})

        while not self._stop_event.is_set():
            try:
                await self.run_sweep_now()
            except Exception as e:
                self._log_error("Sweep failed", e, {})

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass

        self._log(LogLevel.INFO, "Scheduler stopped", {})

    def start(self) -> asyncio.Task:
        """Start the background loop; a second call returns the running task."""
        if self.active:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event))
        return self._task

    async def stop(self) -> None:
        """Stop the background loop. Safe to call when not started."""
        task, self._task = self._task, None
        if self._stop_event is not None:
            self._stop_event.set()
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Scheduler", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("Scheduler", message, error, data)
