"""Gandi v5 REST adapter (bearer personal access token)."""

from typing import Any, Optional

from ..exceptions import RegistrarError
from .base import (
    AvailabilityResult,
    BalanceResult,
    ConfigField,
    ConnectionTestResult,
    RegistrarAdapter,
    RegistrationResult,
    json_or_none,
    parse_float,
)


class GandiAdapter(RegistrarAdapter):
    name = "gandi"
    display_name = "Gandi.net"
    config_schema = [
        ConfigField(
            key="organizationId",
            label="Organization ID",
            required=False,
            description=(
                "Gandi organization/reseller ID (found in account settings). "
                "Required for registration."
            ),
        ),
    ]
    sandbox_url = "https://api.sandbox.gandi.net/v5"
    production_url = "https://api.gandi.net/v5"

    async def _call(
        self, method: str, path: str, body: Optional[dict] = None, **kwargs: Any
    ) -> tuple[int, Any]:
        response = await self._request(
            method,
            f"{self.base_url}{path}",
            headers={"Authorization": f"Bearer {self._api_key}"},
            json=body,
            **kwargs,
        )
        if response.status_code in (401, 403):
            raise RegistrarError(
                code="auth_failed",
                message="Gandi: authentication failed, check your API key (Personal Access Token)",
                details={"status_code": response.status_code},
            )
        return response.status_code, json_or_none(response)

    async def check_availability(self, domain: str) -> AvailabilityResult:
        _, data = await self._call("GET", "/domain/check", params={"name": domain})
        products = (data or {}).get("products") or []
        if not products:
            return AvailabilityResult(available=False)

        product = products[0]
        prices = product.get("prices") or []
        price_entry = next(
            (p for p in prices if p.get("duration_unit") == "y"),
            prices[0] if prices else {},
        )
        return AvailabilityResult(
            available=product.get("status") == "available",
            price=parse_float(price_entry.get("price_after_taxes")),
            currency=data.get("currency") or "EUR",
        )

    async def register_domain(self, domain: str, years: int = 1) -> RegistrationResult:
        body: dict[str, Any] = {"fqdn": domain, "duration": years}
        organization_id = self.extra("organizationId")
        if organization_id:
            body["sharing_id"] = organization_id

        status, data = await self._call("POST", "/domain/domains", body)
        data = data or {}
        if status in (200, 202):
            return RegistrationResult(success=True, order_id=data.get("id"))

        errors = data.get("errors") or [{}]
        message = (
            errors[0].get("description")
            or data.get("message")
            or f"Registration failed (HTTP {status})"
        )
        return RegistrationResult(success=False, error=f"Gandi: {message}")

    async def get_balance(self) -> BalanceResult:
        organization_id = self.extra("organizationId")
        if organization_id:
            _, data = await self._call("GET", f"/billing/info/{organization_id}")
            prepaid = (data or {}).get("prepaid")
            if prepaid:
                return BalanceResult(
                    balance=parse_float(prepaid.get("amount")) or 0.0,
                    currency=prepaid.get("currency") or "EUR",
                )
        return BalanceResult(balance=0.0, currency="EUR")

    async def test_connection(self) -> ConnectionTestResult:
        try:
            status, _ = await self._call("GET", "/domain/check", params={"name": "example.com"})
        except RegistrarError as e:
            return ConnectionTestResult(success=False, error=e.message)
        if 200 <= status < 300:
            return ConnectionTestResult(success=True)
        return ConnectionTestResult(success=False, error=f"Gandi API returned HTTP {status}")

