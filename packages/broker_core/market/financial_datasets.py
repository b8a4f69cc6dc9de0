"""Financial Datasets stock price client."""

import logging
from typing import Any, Dict, Optional

import httpx

from .base import HttpDataSource, MissingCredentialError, read_credential

logger = logging.getLogger(__name__)

BASE_URL = "https://api.financialdatasets.ai"


class FinancialDatasetsClient(HttpDataSource):
    """Client for the Financial Datasets price snapshot API."""

    name = "financial_datasets"

    def __init__(
        self,
        api_key_env_var: str = "FINANCIAL_DATASETS_API_KEY",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key_env_var = api_key_env_var

    async def price_snapshot(self, ticker: str) -> Dict[str, Any]:
        """Fetch the latest price snapshot for a ticker.

        Returns:
            Decoded response, e.g. ``{"snapshot": {"price": 187.3, ...}}``
        """
        api_key = read_credential(self.api_key_env_var)
        if not api_key:
            raise MissingCredentialError(f"Environment variable {self.api_key_env_var} is not set")

        data = await self._request_json(
            "GET",
            f"{BASE_URL}/prices/snapshot/",
            params={"ticker": ticker.upper()},
            headers={"X-API-KEY": api_key},
        )
        return data if isinstance(data, dict) else {}

    async def stock_price(self, ticker: str) -> Optional[float]:
        """Current price of a stock, or None if the snapshot has none."""
        snapshot = await self.price_snapshot(ticker)
        price = (snapshot.get("snapshot") or {}).get("price")
        if price is None:
            logger.warning("Price snapshot for %s carried no price", ticker)
            return None
        return float(price)
