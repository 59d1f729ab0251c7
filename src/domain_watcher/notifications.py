"""
Notification Dispatcher module for the domain watcher system.

Provides one sender per channel type (webhook, Telegram, ntfy, email) and a
dispatcher that fans a status change out to every enabled channel subscribed
to the new status. Channels are isolated from each other: a failing channel
is counted and logged, never propagated.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import httpx

from .audit_logger import AuditLogger
from .config import SmtpConfig
from .enums import ChannelType, DomainStatus, EventType, LogLevel
from .exceptions import NotificationError
from .models import WatchedDomain
from .repository import Repository
from .smtp_client import SmtpClient, build_message as build_email_message

STATUS_EMOJI = {
    "available": "\U0001F7E2",
    "registered": "\U0001F534",
    "expiring_soon": "\U0001F7E1",
    "grace_period": "\U0001F7E0",
    "redemption": "\U0001F7E0",
    "pending_delete": "\U0001F535",
    "unknown": "⚪",
    "error": "⚪",
}

STATUS_LABELS = {
    "available": "is now available!",
    "registered": "is now registered",
    "expiring_soon": "is expiring soon",
    "grace_period": "entered grace period",
    "redemption": "entered redemption period",
    "pending_delete": "is pending deletion",
    "unknown": "status is unknown",
    "error": "check returned an error",
}

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_HTTP_TIMEOUT = 30.0


def build_status_message(domain: str, new_status: str) -> str:
    """Human readable, emoji-prefixed one-liner for a status change."""
    emoji = STATUS_EMOJI.get(new_status, "")
    label = STATUS_LABELS.get(new_status, f"status changed to {new_status}")
    return f"{emoji} {domain} {label}"


@dataclass
class NotificationPayload:
    """Payload sent to every channel for one status change."""

    event: str
    domain: str
    previous_status: Optional[str]
    new_status: str
    expiry_date: Optional[str]
    registrar: Optional[str]
    checked_at: str
    auto_register: bool
    priority: int
    tags: list[str] = field(default_factory=list)
    message: str = ""

    @classmethod
    def for_domain(
        cls,
        domain: WatchedDomain,
        event: str,
        new_status: str,
        previous_status: Optional[str],
    ) -> "NotificationPayload":
        return cls(
            event=event,
            domain=domain.domain,
            previous_status=previous_status,
            new_status=new_status,
            expiry_date=domain.expiry_date,
            registrar=domain.registrar,
            checked_at=datetime.now(timezone.utc).isoformat(),
            auto_register=domain.auto_register,
            priority=domain.priority,
            tags=sorted(domain.tags),
            message=build_status_message(domain.domain, new_status),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def detail_lines(self, arrow: str = "->") -> list[str]:
        """Domain, transition and optional expiry/registrar/tags lines."""
        lines = [f"Status: {self.previous_status or 'unknown'} {arrow} {self.new_status}"]
        if self.expiry_date:
            lines.append(f"Expiry: {self.expiry_date}")
        if self.registrar:
            lines.append(f"Registrar: {self.registrar}")
        if self.tags:
            lines.append(f"Tags: {', '.join(self.tags)}")
        return lines


def sample_payload() -> NotificationPayload:
    """Fixed payload used to verify a channel's configuration."""
    return NotificationPayload(
        event="test",
        domain="example.com",
        previous_status="registered",
        new_status="available",
        expiry_date=None,
        registrar=None,
        checked_at=datetime.now(timezone.utc).isoformat(),
        auto_register=False,
        priority=0,
        tags=[],
        message=f"{STATUS_EMOJI['available']} Test notification from DomainWatcher",
    )


@dataclass
class DispatchResult:
    """Counts of successful and failed channel deliveries."""

    sent: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {"sent": self.sent, "errors": self.errors}


class NotificationSender(Protocol):
    """Interface every channel sender implements."""

    async def send(self, config: dict, payload: NotificationPayload) -> None:
        """Deliver the payload; raise NotificationError on failure."""
        ...


def _require(config: dict, *keys: str) -> None:
    missing = [k for k in keys if not config.get(k)]
    if missing:
        raise NotificationError(
            code="invalid_channel_config",
            message=f"Channel config missing: {', '.join(missing)}",
            details={"missing": missing},
        )


class _HttpSender:
    """Shared HTTP plumbing for the HTTP based senders."""

    channel_name = "http"

    def __init__(
        self,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        )

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client_factory() as client:
                response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise NotificationError(
                code="delivery_failed",
                message=f"{self.channel_name} request failed: {e}",
            )
        if not response.is_success:
            raise NotificationError(
                code="delivery_failed",
                message=f"{self.channel_name} returned {response.status_code}: {response.text}",
                details={"status_code": response.status_code},
            )
        return response


class WebhookSender(_HttpSender):
    """Generic webhook: the payload as JSON via HTTP POST."""

    channel_name = "Webhook"

    async def send(self, config: dict, payload: NotificationPayload) -> None:
        _require(config, "url")
        headers = {"Content-Type": "application/json"}
        headers.update(config.get("headers") or {})
        await self._post(config["url"], json=payload.to_dict(), headers=headers)


class TelegramSender(_HttpSender):
    """Telegram Bot API ``sendMessage`` with Markdown formatting."""

    channel_name = "Telegram API"

    def __init__(
        self,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        api_url: str = TELEGRAM_API_URL,
    ) -> None:
        super().__init__(client_factory, timeout)
        self._api_url = api_url.rstrip("/")

    @staticmethod
    def format_text(payload: NotificationPayload) -> str:
        lines = [f"*{payload.message}*", "", f"Domain: `{payload.domain}`"]
        lines.extend(payload.detail_lines(arrow="→"))
        return "\n".join(lines)

    async def send(self, config: dict, payload: NotificationPayload) -> None:
        _require(config, "botToken", "chatId")
        await self._post(
            f"{self._api_url}/bot{config['botToken']}/sendMessage",
            json={
                "chat_id": config["chatId"],
                "text": self.format_text(payload),
                "parse_mode": "Markdown",
            },
        )


class NtfySender(_HttpSender):
    """ntfy push: message body plus title, priority and tag headers."""

    channel_name = "ntfy"

    @staticmethod
    def headers_for(payload: NotificationPayload) -> dict[str, str]:
        available = payload.new_status == DomainStatus.AVAILABLE.value
        return {
            # Header values must be latin-1; the domain is already IDNA encoded
            "Title": f"DomainWatcher: {payload.domain}",
            "Priority": "high" if available else "default",
            "Tags": "green_circle" if available else "information_source",
        }

    async def send(self, config: dict, payload: NotificationPayload) -> None:
        _require(config, "serverUrl", "topic")
        url = f"{config['serverUrl'].rstrip('/')}/{config['topic']}"
        await self._post(
            url,
            content=payload.message.encode("utf-8"),
            headers=self.headers_for(payload),
        )


class EmailSender:
    """Plain-text email through the built-in SMTP client."""

    def __init__(
        self,
        smtp_config: Optional[SmtpConfig] = None,
        client_factory: Optional[Callable[..., SmtpClient]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._smtp_config = smtp_config or SmtpConfig()
        self._client_factory = client_factory or SmtpClient
        self._logger = logger

    @staticmethod
    def format_body(payload: NotificationPayload) -> str:
        lines = [payload.message, "", f"Domain: {payload.domain}"]
        lines.extend(payload.detail_lines())
        lines.extend(["", "-- DomainWatcher"])
        return "\n".join(lines)

    @staticmethod
    def recipients(config: dict) -> list[str]:
        to = config.get("to") or []
        if isinstance(to, str):
            to = to.split(",")
        return [addr.strip() for addr in to if addr.strip()]

    async def send(self, config: dict, payload: NotificationPayload) -> None:
        _require(config, "smtpHost", "smtpPort", "smtpUser", "to")
        recipients = self.recipients(config)
        client = self._client_factory(
            host=config["smtpHost"],
            port=int(config["smtpPort"]),
            username=config["smtpUser"],
            password=config.get("smtpPass", ""),
            timeout=self._smtp_config.timeout_seconds,
            helo_name=self._smtp_config.helo_name,
            logger=self._logger,
        )
        message = build_email_message(
            sender=config["smtpUser"],
            recipient=", ".join(recipients),
            subject=payload.message,
            body=self.format_body(payload),
        )
        await client.send(config["smtpUser"], recipients, message)


def default_senders(
    http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    smtp_config: Optional[SmtpConfig] = None,
    logger: Optional[AuditLogger] = None,
) -> dict[str, NotificationSender]:
    return {
        ChannelType.WEBHOOK.value: WebhookSender(timeout=http_timeout),
        ChannelType.TELEGRAM.value: TelegramSender(timeout=http_timeout),
        ChannelType.NTFY.value: NtfySender(timeout=http_timeout),
        ChannelType.EMAIL.value: EmailSender(smtp_config=smtp_config, logger=logger),
    }


class NotificationDispatcher:
    """
    Fans status changes out to the configured notification channels.

    Channels are processed sequentially. A channel receives a notification
    only if it is enabled and its ``notify_on`` set contains the new status.
    """

    def __init__(
        self,
        repository: Repository,
        senders: Optional[dict[str, NotificationSender]] = None,
        logger: Optional[AuditLogger] = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        smtp_config: Optional[SmtpConfig] = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            repository: Source of channel configs and history entries
            senders: Channel type to sender mapping (defaults to all built-in senders)
            logger: Optional audit logger
            http_timeout: Timeout for the default HTTP senders
            smtp_config: Mail transport settings for the default email sender
        """
        self._repository = repository
        self._senders = senders if senders is not None else default_senders(
            http_timeout, smtp_config, logger
        )
        self._logger = logger

    async def dispatch(
        self,
        domain: WatchedDomain,
        event: EventType,
        new_status: DomainStatus,
        previous_status: Optional[DomainStatus],
        history_entry_id: Optional[str] = None,
    ) -> DispatchResult:
        """
        Send one notification per subscribed channel.

        Args:
            domain: Snapshot of the domain after the change
            event: What triggered the notification
            new_status: Status after the change
            previous_status: Status before the change
            history_entry_id: History entry to mark notified on success

        Returns:
            DispatchResult with sent and error counts
        """
        result = DispatchResult()

        try:
            channels = self._repository.list_enabled_channels()
        except Exception as e:
            self._log_error("Failed to load notification channels", e)
            return result

        payload = NotificationPayload.for_domain(
            domain,
            event.value,
            new_status.value,
            previous_status.value if previous_status else None,
        )

        for channel in channels:
            if new_status.value not in channel.notify_on:
                continue

            sender = self._senders.get(channel.type)
            if sender is None:
                self._log(LogLevel.WARN, "Unknown notification channel type", {
                    "channel_type": channel.type, "channel_name": channel.name,
                })
                continue

            try:
                await sender.send(channel.config, payload)
            except Exception as e:
                result.errors += 1
                self._log_error("Failed to send notification", e, {
                    "channel_type": channel.type,
                    "channel_name": channel.name,
                    "domain": domain.domain,
                })
                continue

            result.sent += 1
            self._log(LogLevel.INFO, "Notification sent", {
                "channel_type": channel.type,
                "channel_name": channel.name,
                "domain": domain.domain,
                "status": new_status.value,
            })

        if history_entry_id and result.sent > 0:
            try:
                self._repository.mark_history_notified(history_entry_id)
            except Exception as e:
                self._log_error("Failed to mark history entry notified", e, {
                    "history_entry_id": history_entry_id,
                })

        return result

    async def send_test(self, channel_id: str) -> None:
        """
        Send the fixed test payload to one channel, regardless of ``notify_on``.

        Raises:
            NotificationError: If the channel does not exist, its type is
                unknown, or delivery fails
        """
        channel = self._repository.get_channel(channel_id)
        if channel is None:
            raise NotificationError(
                code="channel_not_found",
                message=f"Notification channel not found: {channel_id}",
            )

        sender = self._senders.get(channel.type)
        if sender is None:
            raise NotificationError(
                code="unknown_channel_type",
                message=f"Unknown notification channel type: {channel.type}",
            )

        await sender.send(channel.config, sample_payload())
        self._log(LogLevel.INFO, "Test notification sent", {
            "channel_type": channel.type, "channel_name": channel.name,
        })

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "NotificationDispatcher", message, data)

    def _log_error(self, message: str, error: Exception, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log_error("NotificationDispatcher", message, error, data)
