"""CoinGecko price client."""

import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from .base import HttpDataSource, MissingCredentialError, read_credential

logger = logging.getLogger(__name__)

PRO_BASE_URL = "https://pro-api.coingecko.com"
PUBLIC_BASE_URL = "https://api.coingecko.com"


class CoinGeckoClient(HttpDataSource):
    """Client for the CoinGecko simple price API.

    A pro key takes precedence over a demo key. The key is read at request
    time so a missing credential surfaces where the data is needed.
    """

    name = "coingecko"

    def __init__(
        self,
        pro_api_key_env_var: str = "X_CG_PRO_API_KEY",
        api_key_env_var: str = "X_CG_API_KEY",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.pro_api_key_env_var = pro_api_key_env_var
        self.api_key_env_var = api_key_env_var

    def _endpoint(self) -> tuple[str, Dict[str, str]]:
        pro_key = read_credential(self.pro_api_key_env_var)
        if pro_key:
            return PRO_BASE_URL, {"x_cg_pro_api_key": pro_key}

        demo_key = read_credential(self.api_key_env_var)
        if demo_key:
            return PUBLIC_BASE_URL, {"x_cg_demo_api_key": demo_key}

        raise MissingCredentialError(
            f"Environment variable {self.pro_api_key_env_var} or "
            f"{self.api_key_env_var} is not set"
        )

    async def simple_price(
        self,
        coin_ids: Iterable[str],
        vs_currency: str = "usd",
        include_market_cap: bool = True,
        include_24hr_change: bool = True,
        include_24hr_vol: bool = True,
        include_last_updated_at: bool = True,
    ) -> Dict[str, Any]:
        """Fetch prices for several coins against one reference currency.

        Returns:
            Mapping of coin ID to its price record, e.g.
            ``{"bitcoin": {"usd": 67000.0, "usd_market_cap": ...}}``
        """
        base_url, auth_params = self._endpoint()
        params = {
            "ids": ",".join(coin_ids),
            "vs_currencies": vs_currency,
            "include_market_cap": str(include_market_cap).lower(),
            "include_24hr_change": str(include_24hr_change).lower(),
            "include_24hr_vol": str(include_24hr_vol).lower(),
            "include_last_updated_at": str(include_last_updated_at).lower(),
            **auth_params,
        }
        data = await self._request_json("GET", f"{base_url}/api/v3/simple/price", params=params)
        return data if isinstance(data, dict) else {}

    async def coin_price(self, coin_id: str, vs_currency: str = "usd") -> Optional[float]:
        """Current price of one coin, or None if CoinGecko has no quote."""
        data = await self.simple_price(
            [coin_id],
            vs_currency,
            include_market_cap=False,
            include_24hr_change=False,
            include_24hr_vol=False,
            include_last_updated_at=False,
        )
        price = (data.get(coin_id) or {}).get(vs_currency)
        if price is None:
            logger.warning("No %s quote for coin %s", vs_currency, coin_id)
            return None
        return float(price)
