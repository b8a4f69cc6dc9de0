"""Shared plumbing for the market data collaborators.

Defines the collaborator contracts the purchase workflow depends on and a
small ``httpx`` based JSON client the concrete data sources build on.
"""

import logging
import os
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """Raised when a market data request fails."""

    pass


class MissingCredentialError(DataSourceError):
    """Raised when a data source needs an API key that is not configured."""

    pass


class QuoteProvider(Protocol):
    """Current prices for stocks and coins."""

    async def stock_price(self, ticker: str) -> Optional[float]:
        ...

    async def coin_price(self, coin_id: str, vs_currency: str) -> Optional[float]:
        ...


class TickerResolver(Protocol):
    """Maps a company name to its ticker symbol."""

    async def resolve_ticker(self, company_name: str) -> str:
        ...


def read_credential(env_var: str) -> Optional[str]:
    """Read an API key from the environment, treating blanks as missing."""
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return None
    return value.strip()


class HttpDataSource:
    """Base class for JSON-over-HTTP data sources."""

    name = "http"

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the data source.

        Args:
            timeout: Request timeout in seconds
            transport: Optional custom transport (used by tests)
        """
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and decode the JSON body.

        Raises:
            DataSourceError: On transport errors, non-2xx responses, or bodies
                that are not JSON
        """
        request_headers = {"accept": "application/json", **(headers or {})}
        try:
            async with self._client() as client:
                response = await client.request(
                    method, url, params=params, headers=request_headers, json=json
                )
        except httpx.HTTPError as e:
            raise DataSourceError(f"{self.name} request to {url} failed: {e}") from e

        if response.is_error:
            raise DataSourceError(
                f"Failed to fetch data from {self.name} ({response.status_code}).\n"
                f"Response: {response.text or response.reason_phrase}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise DataSourceError(f"{self.name} returned a non-JSON body") from e
