"""Dynadot API3 adapter (query-string requests, JSON replies)."""

from typing import Any

from ..exceptions import RegistrarError
from .base import (
    AvailabilityResult,
    BalanceResult,
    RegistrarAdapter,
    RegistrationResult,
    parse_float,
)


class DynadotAdapter(RegistrarAdapter):
    name = "dynadot"
    display_name = "Dynadot"
    config_schema = []
    sandbox_url = "https://api-sandbox.dynadot.com/api3.json"
    production_url = "https://api.dynadot.com/api3.json"

    async def _command(self, command: str, **params: str) -> dict[str, Any]:
        response = await self._request(
            "GET",
            self.base_url,
            params={"key": self._api_key, "command": command, **params},
        )
        if not response.is_success:
            self._raise_http_error(response)
        try:
            data = response.json()
        except ValueError:
            raise RegistrarError(
                code="parse_error",
                message="Dynadot returned a non-JSON reply",
                details={"command": command},
            )
        return data if isinstance(data, dict) else {}

    async def check_availability(self, domain: str) -> AvailabilityResult:
        data = await self._command("search", domain0=domain)
        results = (data.get("SearchResponse") or {}).get("SearchResults") or []
        result = results[0] if results else {}
        return AvailabilityResult(
            available=result.get("Available") == "yes",
            price=parse_float(result.get("Price")),
            currency=result.get("Currency") or "USD",
        )

    async def register_domain(self, domain: str, years: int = 1) -> RegistrationResult:
        data = await self._command("register", domain=domain, duration=str(years))
        reply = data.get("RegisterResponse") or {}
        if reply.get("Status") == "success":
            return RegistrationResult(
                success=True,
                order_id=reply.get("DomainName"),
                cost=parse_float(reply.get("Price")),
                currency="USD",
            )
        return RegistrationResult(
            success=False,
            error=reply.get("Error") or "Registration failed",
        )

    async def get_balance(self) -> BalanceResult:
        data = await self._command("get_account_balance")
        reply = data.get("GetAccountBalanceResponse") or {}
        return BalanceResult(
            balance=parse_float(reply.get("Balance")) or 0.0,
            currency=reply.get("Currency") or "USD",
        )
