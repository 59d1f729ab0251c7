"""
Minimal SMTP submission client.

A single send is driven by an explicit state machine over one asyncio
stream. Port 587 connects in plain text and upgrades the same stream with
STARTTLS, port 465 connects with implicit TLS, any other port stays plain
unless ``starttls`` is passed explicitly.
Any reply code of 400 or above aborts the exchange.
"""

import asyncio
import base64
import re
import ssl
from contextlib import suppress
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.policy import SMTP as SMTP_POLICY
from email.utils import formatdate, make_msgid
from enum import Enum
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import SmtpError

STARTTLS_PORT = 587
IMPLICIT_TLS_PORT = 465
DEFAULT_TIMEOUT_SECONDS = 30.0


class SmtpState(Enum):
    """States of one mail submission."""

    INIT = "init"
    EHLO_SENT = "ehlo_sent"
    STARTTLS_SENT = "starttls_sent"
    TLS_UPGRADED = "tls_upgraded"
    EHLO_RESENT = "ehlo_resent"
    AUTH_SENT = "auth_sent"
    AUTH_USER_SENT = "auth_user_sent"
    AUTH_PASS_SENT = "auth_pass_sent"
    MAIL_FROM_SENT = "mail_from_sent"
    RCPT_TO_SENT = "rcpt_to_sent"
    DATA_SENT = "data_sent"
    BODY_SENT = "body_sent"
    QUIT_SENT = "quit_sent"
    DONE = "done"


@dataclass
class SmtpReply:
    """A complete (possibly multi-line) server reply."""

    code: int
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(line[4:] for line in self.lines).strip()


class SmtpResponseReader:
    """
    Line-buffered reply reader.

    Raw bytes are accumulated and only whole lines are decoded, so a
    multi-byte character split across reads survives. A reply is complete
    only on a line whose fourth character is not the continuation marker ``-``.
    """

    def __init__(self, reader: Optional[asyncio.StreamReader] = None) -> None:
        self._reader = reader
        self._buffer = b""
        self._pending: list[str] = []
        self._replies: list[SmtpReply] = []

    def feed(self, data: bytes) -> list[SmtpReply]:
        """Add received bytes; returns the replies it completed."""
        self._buffer += data
        completed: list[SmtpReply] = []
        while b"\n" in self._buffer:
            raw, self._buffer = self._buffer.split(b"\n", 1)
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            if not line:
                continue
            self._pending.append(line)
            if len(line) < 4 or line[3] != "-":
                completed.append(self._finish_reply())
        self._replies.extend(completed)
        return completed

    def _finish_reply(self) -> SmtpReply:
        lines, self._pending = self._pending, []
        final = lines[-1]
        if not re.match(r"^\d{3}", final):
            raise SmtpError(
                f"Malformed SMTP reply: {final!r}",
                details={"line": final},
            )
        return SmtpReply(code=int(final[:3]), lines=lines)

    async def read_reply(self) -> SmtpReply:
        """Wait for the next complete reply from the stream."""
        if self._reader is None:
            raise RuntimeError("No stream attached")
        while not self._replies:
            data = await self._reader.read(4096)
            if not data:
                raise SmtpError("SMTP connection closed by server")
            self.feed(data)
        return self._replies.pop(0)


def normalize_host(host: str) -> str:
    """Strip a URL scheme and trailing slashes from a configured host."""
    host = re.sub(r"^https?://", "", host.strip(), flags=re.IGNORECASE)
    return host.rstrip("/")


def dot_stuff(body: str) -> str:
    """Normalize line endings to CRLF and escape lines starting with a dot."""
    lines = body.replace("\r\n", "\n").split("\n")
    return "\r\n".join("." + line if line.startswith(".") else line for line in lines)


def build_message(sender: str, recipient: str, subject: str, body: str,
                  sender_name: str = "DomainWatcher") -> str:
    """Build an RFC 5322 plain-text message."""
    msg = EmailMessage(policy=SMTP_POLICY)
    msg["From"] = f"{sender_name} <{sender}>"
    msg["To"] = recipient
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=False)
    msg["Message-ID"] = make_msgid(domain="domainwatcher")
    msg.set_content(body)
    return msg.as_string()


class SmtpClient:
    """
    One-shot SMTP submission client.

    Each call to ``send`` opens its own connection, walks the state machine
    to DONE and closes the connection. Sends are never pipelined.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        helo_name: str = "domainwatcher",
        ssl_context: Optional[ssl.SSLContext] = None,
        starttls: Optional[bool] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._host = normalize_host(host)
        self._port = int(port)
        self._username = username
        self._password = password
        self._timeout = timeout
        self._helo_name = helo_name
        self._ssl_context = ssl_context
        # None means decide by port
        self._starttls = starttls
        self._logger = logger

        self._state = SmtpState.INIT
        self._visited: list[SmtpState] = []
        self._reader: Optional[SmtpResponseReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._envelope_from = ""
        self._pending_recipients: list[str] = []
        self._payload = ""

        self._handlers: dict[SmtpState, Callable[[SmtpReply], Awaitable[None]]] = {
            SmtpState.INIT: self._on_greeting,
            SmtpState.EHLO_SENT: self._on_ehlo,
            SmtpState.STARTTLS_SENT: self._on_starttls,
            SmtpState.EHLO_RESENT: self._on_ehlo,
            SmtpState.AUTH_SENT: self._on_auth_challenge,
            SmtpState.AUTH_USER_SENT: self._on_auth_user,
            SmtpState.AUTH_PASS_SENT: self._on_authenticated,
            SmtpState.MAIL_FROM_SENT: self._on_mail_from,
            SmtpState.RCPT_TO_SENT: self._on_rcpt_to,
            SmtpState.DATA_SENT: self._on_data,
            SmtpState.BODY_SENT: self._on_body,
            SmtpState.QUIT_SENT: self._on_quit,
        }

    @property
    def host(self) -> str:
        return self._host

    @property
    def state(self) -> SmtpState:
        return self._state

    @property
    def visited_states(self) -> list[SmtpState]:
        """States entered during the last send, in order."""
        return list(self._visited)

    @property
    def uses_starttls(self) -> bool:
        if self._starttls is not None:
            return self._starttls
        return self._port == STARTTLS_PORT

    @property
    def uses_implicit_tls(self) -> bool:
        return self._port == IMPLICIT_TLS_PORT and not self.uses_starttls

    async def send(self, envelope_from: str, recipients: list[str], message: str) -> None:
        """
        Submit one message.

        Args:
            envelope_from: MAIL FROM address
            recipients: RCPT TO addresses
            message: Complete RFC 5322 message (headers and body)

        Raises:
            SmtpError: On any reply >= 400, connection failure or timeout
        """
        if not recipients:
            raise SmtpError("No recipients given")

        self._state = SmtpState.INIT
        self._visited = [SmtpState.INIT]
        self._envelope_from = envelope_from
        self._pending_recipients = list(recipients)
        self._payload = dot_stuff(message.rstrip("\r\n")) + "\r\n.\r\n"

        try:
            await asyncio.wait_for(self._run(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise SmtpError(
                f"SMTP timeout after {self._timeout:g}s",
                details={"host": self._host, "port": self._port, "state": self._state.value},
            )
        except OSError as e:
            raise SmtpError(
                f"SMTP connection failed: {e}",
                details={"host": self._host, "port": self._port, "state": self._state.value},
            )
        finally:
            await self._close()

        self._log(LogLevel.INFO, "Mail submitted", {
            "host": self._host, "port": self._port, "recipients": len(recipients),
        })

    async def _run(self) -> None:
        if self.uses_implicit_tls:
            stream_reader, self._writer = await asyncio.open_connection(
                self._host, self._port,
                ssl=self._get_ssl_context(), server_hostname=self._host,
            )
        else:
            stream_reader, self._writer = await asyncio.open_connection(self._host, self._port)
        self._reader = SmtpResponseReader(stream_reader)

        while self._state is not SmtpState.DONE:
            reply = await self._reader.read_reply()
            if reply.code >= 400:
                self._log(LogLevel.WARN, "SMTP server rejected command", {
                    "state": self._state.value, "reply_code": reply.code,
                })
                raise SmtpError(
                    f"SMTP error {reply.code}: {reply.text}",
                    reply_code=reply.code,
                    details={"state": self._state.value},
                )
            await self._handlers[self._state](reply)

    def _transition(self, state: SmtpState) -> None:
        self._state = state
        self._visited.append(state)

    async def _write(self, line: str, next_state: SmtpState) -> None:
        self._writer.write(line.encode("utf-8") + b"\r\n")
        await self._writer.drain()
        self._transition(next_state)

    async def _on_greeting(self, reply: SmtpReply) -> None:
        await self._write(f"EHLO {self._helo_name}", SmtpState.EHLO_SENT)

    async def _on_ehlo(self, reply: SmtpReply) -> None:
        if self._state is SmtpState.EHLO_SENT and self.uses_starttls:
            await self._write("STARTTLS", SmtpState.STARTTLS_SENT)
        elif self._username:
            await self._write("AUTH LOGIN", SmtpState.AUTH_SENT)
        else:
            await self._write(f"MAIL FROM:<{self._envelope_from}>", SmtpState.MAIL_FROM_SENT)

    async def _on_starttls(self, reply: SmtpReply) -> None:
        # Same stream, wrapped in place; the EHLO capability list is replayed
        await self._writer.start_tls(self._get_ssl_context(), server_hostname=self._host)
        self._transition(SmtpState.TLS_UPGRADED)
        await self._write(f"EHLO {self._helo_name}", SmtpState.EHLO_RESENT)

    async def _on_auth_challenge(self, reply: SmtpReply) -> None:
        await self._write(_b64(self._username or ""), SmtpState.AUTH_USER_SENT)

    async def _on_auth_user(self, reply: SmtpReply) -> None:
        await self._write(_b64(self._password or ""), SmtpState.AUTH_PASS_SENT)

    async def _on_authenticated(self, reply: SmtpReply) -> None:
        await self._write(f"MAIL FROM:<{self._envelope_from}>", SmtpState.MAIL_FROM_SENT)

    async def _on_mail_from(self, reply: SmtpReply) -> None:
        await self._send_next_recipient()

    async def _on_rcpt_to(self, reply: SmtpReply) -> None:
        if self._pending_recipients:
            await self._send_next_recipient()
        else:
            await self._write("DATA", SmtpState.DATA_SENT)

    async def _send_next_recipient(self) -> None:
        recipient = self._pending_recipients.pop(0)
        await self._write(f"RCPT TO:<{recipient}>", SmtpState.RCPT_TO_SENT)

    async def _on_data(self, reply: SmtpReply) -> None:
        self._writer.write(self._payload.encode("utf-8"))
        await self._writer.drain()
        self._transition(SmtpState.BODY_SENT)

    async def _on_body(self, reply: SmtpReply) -> None:
        await self._write("QUIT", SmtpState.QUIT_SENT)

    async def _on_quit(self, reply: SmtpReply) -> None:
        self._transition(SmtpState.DONE)

    def _get_ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = ssl.create_default_context()
        return self._ssl_context

    async def _close(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        writer.close()
        # The peer may already have dropped the connection
        with suppress(OSError, asyncio.TimeoutError):
            await asyncio.wait_for(writer.wait_closed(), timeout=5)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "SmtpClient", message, data)


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")
