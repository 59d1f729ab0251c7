"""
Registrar adapter interface.

Every adapter exposes the same four capabilities (availability, registration,
balance, connection test). Ordinary business failures such as an already
taken name are returned as results; only transport-level faults raise.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable, ClassVar, Optional

import httpx

from ..config import DEFAULT_USER_AGENT
from ..exceptions import RegistrarError


@dataclass
class ConfigField:
    """Descriptor of one adapter-specific configuration value."""

    key: str
    label: str
    type: str = "text"  # 'text', 'password', 'boolean', 'number'
    required: bool = False
    description: str = ""
    default: Any = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AvailabilityResult:
    available: bool
    price: Optional[float] = None
    currency: Optional[str] = None


@dataclass
class RegistrationResult:
    success: bool
    order_id: Optional[str] = None
    cost: Optional[float] = None
    currency: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BalanceResult:
    balance: float
    currency: str


@dataclass
class ConnectionTestResult:
    success: bool
    error: Optional[str] = None


class RegistrarAdapter(ABC):
    """
    Base class for registrar integrations.

    Subclasses set ``name``, ``display_name``, ``config_schema`` and the two
    endpoint URLs, and implement the async capabilities. ``initialize`` only
    stores configuration; it never performs I/O.
    """

    name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    config_schema: ClassVar[list[ConfigField]] = []
    sandbox_url: ClassVar[str] = ""
    production_url: ClassVar[str] = ""

    def __init__(
        self,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        )
        self._user_agent = user_agent
        self._api_key = ""
        self._api_secret = ""
        self._sandbox_mode = True
        self._extra_config: dict[str, Any] = {}
        self._initialized = False

    def initialize(
        self,
        api_key: str,
        api_secret: Optional[str] = None,
        sandbox_mode: bool = True,
        extra_config: Optional[dict[str, Any]] = None,
    ) -> None:
        """Store credentials and settings."""
        self._api_key = api_key
        self._api_secret = api_secret or ""
        self._sandbox_mode = sandbox_mode
        self._extra_config = dict(extra_config or {})
        self._initialized = True

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def sandbox_mode(self) -> bool:
        return self._sandbox_mode

    @property
    def base_url(self) -> str:
        return self.sandbox_url if self._sandbox_mode else self.production_url

    def extra(self, key: str) -> str:
        """String value of an extra config key, empty when unset."""
        value = self._extra_config.get(key)
        return str(value) if value else ""

    @classmethod
    def describe(cls) -> dict:
        """Name, display name and config schema for settings UIs."""
        return {
            "name": cls.name,
            "display_name": cls.display_name,
            "config_schema": [f.to_dict() for f in cls.config_schema],
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Issue one HTTP request.

        Raises:
            RegistrarError: If the adapter is not initialized or the request fails in transport
        """
        if not self._initialized:
            raise RegistrarError(
                code="not_initialized",
                message=f"{self.display_name} adapter used before initialize()",
            )
        headers = {"User-Agent": self._user_agent}
        headers.update(kwargs.pop("headers", None) or {})
        try:
            async with self._client_factory() as client:
                return await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise RegistrarError(
                code="transport_error",
                message=f"{self.display_name} request failed: {e}",
                details={"adapter": self.name},
            )

    def _raise_http_error(self, response: httpx.Response) -> None:
        raise RegistrarError(
            code="http_error",
            message=f"{self.display_name} API returned {response.status_code}",
            details={"adapter": self.name, "status_code": response.status_code},
        )

    @abstractmethod
    async def check_availability(self, domain: str) -> AvailabilityResult:
        ...

    @abstractmethod
    async def register_domain(self, domain: str, years: int = 1) -> RegistrationResult:
        ...

    @abstractmethod
    async def get_balance(self) -> BalanceResult:
        ...

    async def test_connection(self) -> ConnectionTestResult:
        """Cheap read-only check; the default fetches the balance."""
        try:
            await self.get_balance()
        except RegistrarError as e:
            return ConnectionTestResult(success=False, error=e.message)
        return ConnectionTestResult(success=True)


def parse_float(value: Any) -> Optional[float]:
    """Float from an API value, or None when absent or unparsable."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def json_or_none(response: httpx.Response) -> Any:
    """Decoded JSON object body, or None when the body is not a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
