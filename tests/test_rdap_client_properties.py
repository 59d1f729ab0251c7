"""
Property-based tests for the RDAP bootstrap and RDAP client modules.

HTTP is faked with httpx.MockTransport; no test touches the network.
"""

import asyncio
import json

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.bootstrap import FALLBACK_SERVERS, RDAPBootstrap, parse_bootstrap_document
from domain_watcher.config import RateLimitConfig
from domain_watcher.enums import RDAPErrorCode, RDAPStatus
from domain_watcher.exceptions import NoServerFoundError
from domain_watcher.rate_limiter import RateLimiter
from domain_watcher.rdap_client import (
    RDAPClient,
    extract_expiry,
    extract_registrar,
    parse_domain_object,
)

BOOTSTRAP_URL = "https://bootstrap.example/dns.json"

BOOTSTRAP_DOCUMENT = {
    "version": "1.0",
    "services": [
        [["de"], ["https://rdap.denic.de/"]],
        [["io", "sh"], ["https://rdap.nic.io/", "https://rdap.backup.example/"]],
    ],
}

REGISTERED_DOMAIN = {
    "objectClassName": "domain",
    "ldhName": "example.de",
    "status": ["active"],
    "events": [
        {"eventAction": "registration", "eventDate": "2001-01-01T00:00:00Z"},
        {"eventAction": "expiration", "eventDate": "2030-06-01T00:00:00Z"},
    ],
    "nameservers": [{"ldhName": "ns1.example.de"}, {"ldhName": "ns2.example.de"}],
    "entities": [
        {"roles": ["registrant"], "handle": "REG-1"},
        {
            "roles": ["registrar"],
            "handle": "1234",
            "vcardArray": ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", "Example Registrar GmbH"]]],
        },
    ],
}


def make_factory(handler):
    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def bootstrap_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=BOOTSTRAP_DOCUMENT)


def make_client(rdap_handler) -> RDAPClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == BOOTSTRAP_URL:
            return bootstrap_handler(request)
        return rdap_handler(request)

    factory = make_factory(handler)
    bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, client_factory=factory)
    limiter = RateLimiter(RateLimitConfig(max_concurrent=2, min_interval_seconds=0.0))
    return RDAPClient(bootstrap, limiter, client_factory=factory)


async def query(client: RDAPClient, name: str, tld: str, timeout_ms=None):
    async with client:
        return await client.query_domain(name, tld, timeout_ms=timeout_ms)


class TestBootstrapParsing:
    def test_flattens_services(self) -> None:
        mapping = parse_bootstrap_document(BOOTSTRAP_DOCUMENT)

        assert mapping["de"] == ["https://rdap.denic.de/"]
        assert mapping["io"] == mapping["sh"]
        assert mapping["io"][0] == "https://rdap.nic.io/"

    def test_skips_malformed_services(self) -> None:
        mapping = parse_bootstrap_document({"services": [["de"], "junk", [["dev"], ["https://x/"]]]})
        assert mapping == {"dev": ["https://x/"]}

    @given(tld=st.sampled_from(["DE", "De", ".de", "de"]))
    @settings(max_examples=10)
    def test_resolve_normalizes_and_strips_slash(self, tld: str) -> None:
        bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, client_factory=make_factory(bootstrap_handler))
        assert asyncio.run(bootstrap.resolve(tld)) == "https://rdap.denic.de"


class TestBootstrapCache:
    def test_fetched_once_within_ttl(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=BOOTSTRAP_DOCUMENT)

        bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, client_factory=make_factory(handler))

        async def scenario() -> None:
            await asyncio.gather(*(bootstrap.resolve("de") for _ in range(5)))
            await bootstrap.resolve("io")

        asyncio.run(scenario())
        assert calls == 1

    def test_refresh_failure_serves_stale_mapping(self) -> None:
        fail = False

        def handler(request: httpx.Request) -> httpx.Response:
            if fail:
                return httpx.Response(503)
            return httpx.Response(200, json=BOOTSTRAP_DOCUMENT)

        bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, ttl_seconds=0, client_factory=make_factory(handler))

        async def scenario() -> str:
            nonlocal fail
            await bootstrap.get_mapping()
            fail = True
            return await bootstrap.resolve("de")

        assert asyncio.run(scenario()) == "https://rdap.denic.de"

    def test_readers_use_previous_mapping_during_refresh(self) -> None:
        release = asyncio.Event()
        calls = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls > 1:
                await release.wait()
                return httpx.Response(200, json={"services": [[["de"], ["https://rdap.new.example/"]]]})
            return httpx.Response(200, json=BOOTSTRAP_DOCUMENT)

        bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, ttl_seconds=0, client_factory=make_factory(handler))

        async def scenario():
            await bootstrap.get_mapping()
            refresh = asyncio.create_task(bootstrap.get_mapping())
            while calls < 2:
                await asyncio.sleep(0)
            during = await asyncio.wait_for(bootstrap.resolve("de"), timeout=0.5)
            release.set()
            await refresh
            return during, await asyncio.wait_for(bootstrap.resolve("de"), timeout=0.5)

        during, after = asyncio.run(scenario())

        assert during == "https://rdap.denic.de"
        assert after == "https://rdap.new.example"

    def test_cold_start_failure_uses_fallback_table(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        bootstrap = RDAPBootstrap(url=BOOTSTRAP_URL, client_factory=make_factory(handler))

        assert asyncio.run(bootstrap.get_mapping()) == {}
        assert asyncio.run(bootstrap.resolve("com")) == FALLBACK_SERVERS["com"]
        with pytest.raises(NoServerFoundError):
            asyncio.run(bootstrap.resolve("zz"))


class TestParsing:
    def test_parse_domain_object(self) -> None:
        parsed = parse_domain_object(REGISTERED_DOMAIN)

        assert parsed.domain_name == "example.de"
        assert parsed.status == ["active"]
        assert parsed.nameservers == ["ns1.example.de", "ns2.example.de"]
        assert extract_expiry(parsed) == "2030-06-01T00:00:00Z"
        assert extract_registrar(parsed) == "Example Registrar GmbH"

    def test_registrar_falls_back_to_handle(self) -> None:
        parsed = parse_domain_object({"entities": [{"roles": ["registrar"], "handle": "292"}]})
        assert extract_registrar(parsed) == "292"

    def test_missing_fields_are_none(self) -> None:
        parsed = parse_domain_object({})
        assert extract_registrar(parsed) is None
        assert extract_expiry(parsed) is None
        assert extract_registrar(None) is None


class TestQueryOutcomes:
    def test_found(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REGISTERED_DOMAIN)

        response = asyncio.run(query(make_client(handler), "example.de", "de"))

        assert response.status is RDAPStatus.FOUND
        assert response.http_status_code == 200
        assert response.parsed_fields.domain_name == "example.de"
        assert json.loads(response.raw_json) == REGISTERED_DOMAIN
        assert str(seen[0].url) == "https://rdap.denic.de/domain/example.de"
        assert seen[0].headers["accept"] == "application/rdap+json"

    def test_404_is_not_found_not_error(self) -> None:
        response = asyncio.run(query(make_client(lambda r: httpx.Response(404)), "free.de", "de"))

        assert response.status is RDAPStatus.NOT_FOUND
        assert response.http_status_code == 404
        assert response.error is None

    @given(code=st.sampled_from([400, 403, 429, 500, 502, 503]))
    @settings(max_examples=10, deadline=None)
    def test_other_statuses_are_errors(self, code: int) -> None:
        response = asyncio.run(query(make_client(lambda r: httpx.Response(code)), "x.de", "de"))

        assert response.status is RDAPStatus.ERROR
        assert response.error.message == f"RDAP returned HTTP {code}"
        expected = RDAPErrorCode.RATE_LIMITED if code == 429 else RDAPErrorCode.SERVER_ERROR
        assert response.error.code is expected

    def test_invalid_json_is_parse_error(self) -> None:
        handler = lambda r: httpx.Response(200, content=b"<html>nope</html>")
        response = asyncio.run(query(make_client(handler), "x.de", "de"))

        assert response.status is RDAPStatus.ERROR
        assert response.error.code is RDAPErrorCode.PARSE_ERROR

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        response = asyncio.run(query(make_client(handler), "x.de", "de", timeout_ms=2500))

        assert response.error.code is RDAPErrorCode.TIMEOUT
        assert "2.5s" in response.error.message

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        response = asyncio.run(query(make_client(handler), "x.de", "de"))
        assert response.error.code is RDAPErrorCode.NETWORK_ERROR

    def test_malformed_server_url_is_network_error(self) -> None:
        document = {"services": [[["de"], ["https://rdap.example:notaport/"]]]}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=document)

        factory = make_factory(handler)
        client = RDAPClient(
            RDAPBootstrap(url=BOOTSTRAP_URL, client_factory=factory),
            RateLimiter(RateLimitConfig(max_concurrent=2, min_interval_seconds=0.0)),
            client_factory=factory,
        )
        response = asyncio.run(query(client, "x.de", "de"))

        assert response.status is RDAPStatus.ERROR
        assert response.error.code is RDAPErrorCode.NETWORK_ERROR

    def test_no_server(self) -> None:
        response = asyncio.run(query(make_client(lambda r: httpx.Response(200)), "x.zz", "zz"))

        assert response.status is RDAPStatus.ERROR
        assert response.error.code is RDAPErrorCode.NO_SERVER
        assert response.error.message == "No RDAP server found for TLD: .zz"
