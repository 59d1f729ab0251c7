"""GoDaddy v1 REST adapter (``sso-key`` key/secret authentication)."""

from datetime import datetime, timezone
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

# Prices are returned in micro-units of the currency
PRICE_DIVISOR = 1_000_000


class GoDaddyAdapter(RegistrarAdapter):
    name = "godaddy"
    display_name = "GoDaddy"
    config_schema = [
        ConfigField(
            key="customerId",
            label="Customer ID",
            required=False,
            description="GoDaddy customer/shopper ID (optional, for reseller accounts)",
        ),
    ]
    sandbox_url = "https://api.ote-godaddy.com/v1"
    production_url = "https://api.godaddy.com/v1"

    def _headers(self) -> dict[str, str]:
        headers = {"Authorization": f"sso-key {self._api_key}:{self._api_secret}"}
        customer_id = self.extra("customerId")
        if customer_id:
            headers["X-Shopper-Id"] = customer_id
        return headers

    async def _call(
        self, method: str, path: str, body: Optional[Any] = None, **kwargs: Any
    ) -> tuple[int, Any]:
        response = await self._request(
            method, f"{self.base_url}{path}", headers=self._headers(), json=body, **kwargs
        )
        if response.status_code in (401, 403):
            raise RegistrarError(
                code="auth_failed",
                message="GoDaddy: authentication failed, check your API key and secret",
                details={"status_code": response.status_code},
            )
        return response.status_code, json_or_none(response)

    async def check_availability(self, domain: str) -> AvailabilityResult:
        _, data = await self._call("GET", "/domains/available", params={"domain": domain})
        if not data:
            return AvailabilityResult(available=False)
        price = parse_float(data.get("price"))
        return AvailabilityResult(
            available=bool(data.get("available", False)),
            price=price / PRICE_DIVISOR if price else None,
            currency=data.get("currency") or "USD",
        )

    async def register_domain(self, domain: str, years: int = 1) -> RegistrationResult:
        body = [{
            "domain": domain,
            "period": years,
            "consent": {
                "agreedBy": "DomainWatcher",
                "agreedAt": datetime.now(timezone.utc).isoformat(),
                "agreementKeys": ["DNRA"],
            },
        }]
        status, data = await self._call("POST", "/domains/purchase", body)
        data = data or {}
        if status in (200, 202):
            order_id = data.get("orderId")
            return RegistrationResult(
                success=True,
                order_id=str(order_id) if order_id else None,
            )

        fields = data.get("fields") or [{}]
        message = (
            data.get("message")
            or fields[0].get("message")
            or f"Registration failed (HTTP {status})"
        )
        return RegistrationResult(success=False, error=f"GoDaddy: {message}")

    async def get_balance(self) -> BalanceResult:
        customer_id = self.extra("customerId")
        if customer_id:
            _, data = await self._call("GET", f"/shoppers/{customer_id}")
            credit = (data or {}).get("storeCredit")
            if credit:
                return BalanceResult(
                    balance=parse_float(credit.get("amount")) or 0.0,
                    currency=credit.get("currency") or "USD",
                )
        return BalanceResult(balance=0.0, currency="USD")

    async def test_connection(self) -> ConnectionTestResult:
        try:
            status, _ = await self._call(
                "GET", "/domains/available", params={"domain": "example.com"}
            )
        except RegistrarError as e:
            return ConnectionTestResult(success=False, error=e.message)
        if 200 <= status < 300:
            return ConnectionTestResult(success=True)
        return ConnectionTestResult(success=False, error=f"GoDaddy API returned HTTP {status}")
