"""
RDAP Client for domain lifecycle checking.

This module resolves the authoritative RDAP server for a domain through the
bootstrap registry, queries it through the rate limiter, and parses the
fields the status mapper needs. Every failure is reported as a structured
RDAPResponse; nothing is raised past this layer.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from .audit_logger import AuditLogger
from .bootstrap import RDAPBootstrap
from .config import DEFAULT_USER_AGENT
from .enums import LogLevel, RDAPErrorCode, RDAPStatus
from .exceptions import NoServerFoundError
from .rate_limiter import RateLimiter


@dataclass
class RDAPEvent:
    """A single RDAP event (e.g., registration, expiration)."""

    event_action: str
    event_date: str


@dataclass
class RDAPEntity:
    """An entity attached to the domain object (registrar, registrant, ...)."""

    roles: list[str]
    handle: Optional[str] = None
    full_name: Optional[str] = None  # vCard "fn"


@dataclass
class RDAPParsedFields:
    """Fields extracted from an RDAP domain object; everything else is ignored."""

    domain_name: str
    status: list[str] = field(default_factory=list)
    events: list[RDAPEvent] = field(default_factory=list)
    nameservers: list[str] = field(default_factory=list)
    entities: list[RDAPEntity] = field(default_factory=list)


@dataclass
class RDAPError:
    """Error information from an RDAP query."""

    code: RDAPErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class RDAPResponse:
    """Complete RDAP query response."""

    status: RDAPStatus
    http_status_code: int
    raw_response: Optional[Any]
    parsed_fields: Optional[RDAPParsedFields]
    error: Optional[RDAPError]
    server: Optional[str] = None
    response_time_ms: float = 0.0

    @property
    def raw_json(self) -> Optional[str]:
        """The raw response re-serialized for storage."""
        if self.raw_response is None:
            return None
        return json.dumps(self.raw_response, ensure_ascii=False)


def _vcard_full_name(vcard_array: Any) -> Optional[str]:
    # ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", "Name"], ...]]
    if not isinstance(vcard_array, list) or len(vcard_array) < 2:
        return None
    properties = vcard_array[1]
    if not isinstance(properties, list):
        return None
    for prop in properties:
        if isinstance(prop, list) and len(prop) >= 4 and prop[0] == "fn":
            value = prop[3]
            if isinstance(value, str) and value:
                return value
    return None


def _parse_entities(raw_entities: Any) -> list[RDAPEntity]:
    entities: list[RDAPEntity] = []
    if not isinstance(raw_entities, list):
        return entities
    for entity in raw_entities:
        if not isinstance(entity, dict):
            continue
        roles = entity.get("roles", [])
        entities.append(RDAPEntity(
            roles=[str(r).lower() for r in roles] if isinstance(roles, list) else [],
            handle=entity.get("handle") if isinstance(entity.get("handle"), str) else None,
            full_name=_vcard_full_name(entity.get("vcardArray")),
        ))
    return entities


def parse_domain_object(json_data: dict) -> RDAPParsedFields:
    """
    Extract the defined RDAP fields from a domain object.

    Unknown or malformed members are skipped rather than rejected.
    """
    domain_name = json_data.get("ldhName") or json_data.get("unicodeName") or ""

    status = json_data.get("status", [])
    if not isinstance(status, list):
        status = [status] if status else []

    events = []
    raw_events = json_data.get("events", [])
    if isinstance(raw_events, list):
        for event in raw_events:
            if isinstance(event, dict):
                event_action = event.get("eventAction", "")
                event_date = event.get("eventDate", "")
                if event_action and event_date:
                    events.append(RDAPEvent(event_action=event_action, event_date=event_date))

    nameservers = []
    raw_nameservers = json_data.get("nameservers", [])
    if isinstance(raw_nameservers, list):
        for ns in raw_nameservers:
            if isinstance(ns, dict):
                ns_name = ns.get("ldhName") or ns.get("unicodeName", "")
                if ns_name:
                    nameservers.append(ns_name)

    return RDAPParsedFields(
        domain_name=domain_name,
        status=[str(s) for s in status],
        events=events,
        nameservers=nameservers,
        entities=_parse_entities(json_data.get("entities")),
    )


def extract_registrar(parsed: Optional[RDAPParsedFields]) -> Optional[str]:
    """Display name of the first registrar-role entity, falling back to its handle."""
    if parsed is None:
        return None
    for entity in parsed.entities:
        if "registrar" in entity.roles:
            return entity.full_name or entity.handle
    return None


def extract_expiry(parsed: Optional[RDAPParsedFields]) -> Optional[str]:
    """Date string of the expiration event, if any."""
    if parsed is None:
        return None
    for event in parsed.events:
        if event.event_action.lower() == "expiration":
            return event.event_date
    return None


class RDAPClient:
    """
    Async RDAP client.

    Server resolution goes through RDAPBootstrap; every HTTP request goes
    through the shared RateLimiter keyed by server base URL.
    """

    def __init__(
        self,
        bootstrap: RDAPBootstrap,
        rate_limiter: RateLimiter,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the RDAP client.

        Args:
            bootstrap: TLD to server resolver
            rate_limiter: Shared limiter protecting upstream servers
            timeout: Default request timeout in seconds
            user_agent: User-Agent header sent with every query
            client_factory: Builds the underlying httpx client (tests inject a mock transport)
            logger: Optional audit logger
        """
        self._bootstrap = bootstrap
        self._rate_limiter = rate_limiter
        self._timeout = timeout
        self._user_agent = user_agent
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        )
        self._logger = logger
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RDAPClient":
        self._client = self._client_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def query_domain(
        self, name: str, tld: str, timeout_ms: Optional[int] = None
    ) -> RDAPResponse:
        """
        Query the authoritative RDAP server for a domain.

        Args:
            name: Canonical domain name
            tld: TLD used to resolve the server
            timeout_ms: Per-request timeout override in milliseconds

        Returns:
            RDAPResponse; 404 is reported as NOT_FOUND, every failure as ERROR
        """
        start_time = time.perf_counter()

        try:
            server = await self._bootstrap.resolve(tld)
        except NoServerFoundError as e:
            return self._error_response(RDAPErrorCode.NO_SERVER, e.message, start_time)

        if self._client is None:
            self._client = self._client_factory()

        url = f"{server}/domain/{name}"
        timeout = timeout_ms / 1000 if timeout_ms else self._timeout
        headers = {"Accept": "application/rdap+json", "User-Agent": self._user_agent}

        async def _request() -> httpx.Response:
            return await self._client.get(url, headers=headers, timeout=timeout)

        try:
            response = await self._rate_limiter.with_limit(server, _request)
        except httpx.TimeoutException:
            return self._error_response(
                RDAPErrorCode.TIMEOUT,
                f"RDAP request timed out after {timeout:g}s",
                start_time,
                server=server,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._error_response(
                RDAPErrorCode.NETWORK_ERROR,
                f"Connection error: {e}",
                start_time,
                server=server,
            )

        response_time_ms = self._elapsed_ms(start_time)
        self._log(LogLevel.DEBUG, "RDAP response", {
            "domain": name, "server": server, "http_status": response.status_code,
        })

        if response.status_code == 404:
            return RDAPResponse(
                status=RDAPStatus.NOT_FOUND,
                http_status_code=404,
                raw_response=None,
                parsed_fields=None,
                error=None,
                server=server,
                response_time_ms=response_time_ms,
            )

        if not response.is_success:
            code = (
                RDAPErrorCode.RATE_LIMITED
                if response.status_code == 429
                else RDAPErrorCode.SERVER_ERROR
            )
            return self._error_response(
                code,
                f"RDAP returned HTTP {response.status_code}",
                start_time,
                http_status_code=response.status_code,
                server=server,
            )

        try:
            json_data = response.json()
        except ValueError as e:
            return self._error_response(
                RDAPErrorCode.PARSE_ERROR,
                f"Failed to parse RDAP response: {e}",
                start_time,
                http_status_code=response.status_code,
                server=server,
            )

        if not isinstance(json_data, dict):
            return self._error_response(
                RDAPErrorCode.PARSE_ERROR,
                "RDAP response is not a JSON object",
                start_time,
                http_status_code=response.status_code,
                server=server,
            )

        return RDAPResponse(
            status=RDAPStatus.FOUND,
            http_status_code=response.status_code,
            raw_response=json_data,
            parsed_fields=parse_domain_object(json_data),
            error=None,
            server=server,
            response_time_ms=response_time_ms,
        )

    def _error_response(
        self,
        code: RDAPErrorCode,
        message: str,
        start_time: float,
        http_status_code: Optional[int] = None,
        server: Optional[str] = None,
    ) -> RDAPResponse:
        self._log(LogLevel.WARN, "RDAP query failed", {
            "code": code.value, "message": message, "server": server,
        })
        return RDAPResponse(
            status=RDAPStatus.ERROR,
            http_status_code=http_status_code or 0,
            raw_response=None,
            parsed_fields=None,
            error=RDAPError(code=code, message=message, http_status_code=http_status_code),
            server=server,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "RDAPClient", message, data)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
