"""
RDAP bootstrap registry.

Resolves the authoritative RDAP base URL for a TLD from the IANA bootstrap
document (RFC 9224), cached for 24 hours. A failed refresh keeps serving the
previous mapping so a registry-of-registries outage never fails a check.
"""

import asyncio
import time
from typing import Callable, Optional

import httpx

from .audit_logger import AuditLogger
from .config import DEFAULT_USER_AGENT, IANA_BOOTSTRAP_URL
from .enums import LogLevel
from .exceptions import NoServerFoundError

BOOTSTRAP_TTL_SECONDS = 24 * 60 * 60

# Used when the bootstrap document has no entry for the TLD
FALLBACK_SERVERS: dict[str, str] = {
    "com": "https://rdap.verisign.com/com/v1",
    "net": "https://rdap.verisign.com/net/v1",
    "org": "https://rdap.org",
}


def parse_bootstrap_document(document: dict) -> dict[str, list[str]]:
    """
    Flatten the IANA ``services`` array into a TLD -> server list mapping.

    Each service is ``[[tld, ...], [url, ...]]``; malformed services are skipped.
    """
    mapping: dict[str, list[str]] = {}
    for service in document.get("services", []):
        if not isinstance(service, list) or len(service) < 2:
            continue
        tlds, servers = service[0], service[1]
        if not isinstance(tlds, list) or not isinstance(servers, list):
            continue
        for tld in tlds:
            mapping[str(tld).lower()] = [str(s) for s in servers]
    return mapping


class RDAPBootstrap:
    """TTL-cached TLD to RDAP server mapping."""

    def __init__(
        self,
        url: str = IANA_BOOTSTRAP_URL,
        ttl_seconds: float = BOOTSTRAP_TTL_SECONDS,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._url = url
        self._ttl_seconds = ttl_seconds
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)
        )
        self._user_agent = user_agent
        self._logger = logger
        self._cache: Optional[dict[str, list[str]]] = None
        self._fetched_at: float = 0.0
        self._refresh_lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._cache is not None
            and time.monotonic() - self._fetched_at < self._ttl_seconds
        )

    async def get_mapping(self) -> dict[str, list[str]]:
        """
        Return the current mapping, refreshing it if the TTL has elapsed.

        Readers with a fresh cache return without waiting. While a refresh is
        in flight, readers keep using the previous mapping; only a cold start
        waits for the fetch.
        """
        if self._is_fresh():
            return self._cache
        if self._cache is not None and self._refresh_lock.locked():
            return self._cache

        async with self._refresh_lock:
            if self._is_fresh():
                return self._cache
            try:
                mapping = await self._fetch()
            except (httpx.HTTPError, ValueError) as e:
                self._log(
                    LogLevel.WARN,
                    "RDAP bootstrap refresh failed, serving cached mapping",
                    {"url": self._url, "error": str(e), "cached": self._cache is not None},
                )
                return self._cache or {}

            self._cache = mapping
            self._fetched_at = time.monotonic()
            self._log(LogLevel.INFO, "RDAP bootstrap refreshed", {"tlds": len(mapping)})
            return mapping

    async def _fetch(self) -> dict[str, list[str]]:
        async with self._client_factory() as client:
            response = await client.get(self._url, headers={"User-Agent": self._user_agent})
            response.raise_for_status()
            document = response.json()
        if not isinstance(document, dict):
            raise ValueError("Bootstrap document is not a JSON object")
        return parse_bootstrap_document(document)

    async def resolve(self, tld: str) -> str:
        """
        Resolve the RDAP base URL for a TLD.

        Returns:
            The first listed server without a trailing slash

        Raises:
            NoServerFoundError: If neither the bootstrap nor the fallback table knows the TLD
        """
        tld = tld.lower().lstrip(".")
        mapping = await self.get_mapping()
        servers = mapping.get(tld)
        if servers:
            return servers[0].rstrip("/")

        fallback = FALLBACK_SERVERS.get(tld)
        if fallback:
            return fallback

        raise NoServerFoundError(tld)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "RDAPBootstrap", message, data)
