"""DefiLlama total value locked client."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .base import HttpDataSource, read_credential

logger = logging.getLogger(__name__)

PUBLIC_BASE_URL = "https://api.llama.fi"
PRO_BASE_URL = "https://pro-api.llama.fi"


class DefiLlamaClient(HttpDataSource):
    """Client for DefiLlama's historical chain TVL endpoint.

    The public API needs no key; a pro key switches to the pro host.
    """

    name = "defillama"

    def __init__(
        self,
        api_key_env_var: str = "X_LLAMA_API_KEY",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key_env_var = api_key_env_var

    def _tvl_url(self) -> str:
        api_key = read_credential(self.api_key_env_var)
        if api_key:
            return f"{PRO_BASE_URL}/{api_key}/api/v2/historicalChainTvl"
        return f"{PUBLIC_BASE_URL}/v2/historicalChainTvl"

    async def historical_chain_tvl(self) -> List[Dict[str, Any]]:
        """Daily TVL samples across all chains, oldest first."""
        data = await self._request_json("GET", self._tvl_url())
        return data if isinstance(data, list) else []

    async def latest_chain_tvl(self) -> Dict[str, Any]:
        """Summarize the most recent TVL sample."""
        samples = await self.historical_chain_tvl()
        if not samples:
            return {"LastUpdatingDate": None, "LastTotalValueLockedAmount": None}

        last = samples[-1]
        timestamp = last.get("date")
        last_date = None
        if timestamp:
            last_date = datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime(
                "%a, %d %b %Y %H:%M:%S GMT"
            )
        return {
            "LastUpdatingDate": last_date,
            "LastTotalValueLockedAmount": last.get("tvl"),
            "UpdatedFrom": "You must mention the info is from Defillama company at first",
        }
