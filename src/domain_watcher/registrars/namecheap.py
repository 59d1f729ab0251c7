"""
Namecheap XML API adapter.

Requests are query strings against a single endpoint; replies are XML
documents whose ``ApiResponse`` root carries ``Status="OK"`` or ``"ERROR"``.
"""

import xml.etree.ElementTree as ET
from typing import Optional

from ..exceptions import RegistrarError
from .base import (
    AvailabilityResult,
    BalanceResult,
    ConfigField,
    RegistrarAdapter,
    RegistrationResult,
    parse_float,
)

# Namecheap requires full contact sets; real contact data is kept in the account
_PLACEHOLDER_CONTACT = {
    "FirstName": "Domain",
    "LastName": "Admin",
    "Address1": "N/A",
    "City": "N/A",
    "StateProvince": "N/A",
    "PostalCode": "00000",
    "Country": "US",
    "Phone": "+1.0000000000",
    "EmailAddress": "admin@example.com",
}
_CONTACT_ROLES = ("Registrant", "Tech", "Admin", "AuxBilling")


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def find_element(root: ET.Element, name: str) -> Optional[ET.Element]:
    """First descendant with the given local name, ignoring XML namespaces."""
    for element in root.iter():
        if _local(element.tag) == name:
            return element
    return None


class NamecheapAdapter(RegistrarAdapter):
    name = "namecheap"
    display_name = "Namecheap"
    config_schema = [
        ConfigField(
            key="apiUser",
            label="API User",
            required=True,
            description="Namecheap API username (usually same as your account username)",
        ),
        ConfigField(
            key="clientIp",
            label="Client IP",
            required=True,
            description="Your server IP (must be whitelisted in Namecheap panel)",
        ),
    ]
    sandbox_url = "https://api.sandbox.namecheap.com/xml.response"
    production_url = "https://api.namecheap.com/xml.response"

    async def _command(self, command: str, **params: str) -> ET.Element:
        api_user = self.extra("apiUser")
        query = {
            "ApiUser": api_user,
            "ApiKey": self._api_key,
            "UserName": api_user,
            "ClientIp": self.extra("clientIp"),
            "Command": command,
            **params,
        }
        response = await self._request("GET", self.base_url, params=query)
        if not response.is_success:
            self._raise_http_error(response)
        try:
            return ET.fromstring(response.text)
        except ET.ParseError as e:
            raise RegistrarError(
                code="parse_error",
                message=f"Namecheap returned malformed XML: {e}",
                details={"command": command},
            )

    @staticmethod
    def api_error(root: ET.Element) -> Optional[str]:
        """Error text when the reply status is ERROR, else None."""
        if root.get("Status", "").upper() != "ERROR":
            return None
        err = find_element(root, "Err")
        text = err.text.strip() if err is not None and err.text else ""
        return f"Namecheap: {text or 'Unknown API error'}"

    def _raise_api_error(self, root: ET.Element) -> None:
        message = self.api_error(root)
        if message:
            raise RegistrarError(code="api_error", message=message)

    async def check_availability(self, domain: str) -> AvailabilityResult:
        root = await self._command("namecheap.domains.check", DomainList=domain)
        self._raise_api_error(root)
        result = find_element(root, "DomainCheckResult")
        available = result is not None and result.get("Available", "").lower() == "true"
        return AvailabilityResult(available=available)

    async def register_domain(self, domain: str, years: int = 1) -> RegistrationResult:
        params = {"DomainName": domain, "Years": str(years)}
        for role in _CONTACT_ROLES:
            for field_name, value in _PLACEHOLDER_CONTACT.items():
                params[f"{role}{field_name}"] = value

        root = await self._command("namecheap.domains.create", **params)
        error = self.api_error(root)
        if error:
            return RegistrationResult(success=False, error=error)

        result = find_element(root, "DomainCreateResult")
        if result is not None and result.get("Registered", "").lower() == "true":
            return RegistrationResult(
                success=True,
                order_id=result.get("OrderID"),
                cost=parse_float(result.get("ChargedAmount")),
                currency="USD",
            )
        return RegistrationResult(success=False, error="Registration was not confirmed")

    async def get_balance(self) -> BalanceResult:
        root = await self._command("namecheap.users.getBalances")
        self._raise_api_error(root)
        result = find_element(root, "UserGetBalancesResult")
        if result is None:
            return BalanceResult(balance=0.0, currency="USD")
        return BalanceResult(
            balance=parse_float(result.get("AvailableBalance")) or 0.0,
            currency=result.get("Currency") or "USD",
        )
