"""Market data collaborators: quotes, asset registry, ticker resolution."""

from typing import Optional

from broker_config import DataSourceConfig

from .assets import AssetInfo, SupportedAssets
from .base import (
    DataSourceError,
    HttpDataSource,
    MissingCredentialError,
    QuoteProvider,
    TickerResolver,
)
from .coingecko import CoinGeckoClient
from .defillama import DefiLlamaClient
from .financial_datasets import FinancialDatasetsClient
from .ticker import TickerExtraction, WebSearchTickerResolver
from .web_search import TavilySearchClient


class MarketData:
    """Quote provider backed by Financial Datasets (stocks) and CoinGecko (coins)."""

    def __init__(
        self,
        stocks: FinancialDatasetsClient,
        coins: CoinGeckoClient,
    ):
        self.stocks = stocks
        self.coins = coins

    async def stock_price(self, ticker: str) -> Optional[float]:
        return await self.stocks.stock_price(ticker)

    async def coin_price(self, coin_id: str, vs_currency: str) -> Optional[float]:
        return await self.coins.coin_price(coin_id, vs_currency)

    @classmethod
    def from_config(cls, config: DataSourceConfig) -> "MarketData":
        """Build the quote provider from data source settings."""
        return cls(
            stocks=FinancialDatasetsClient(
                api_key_env_var=config.financial_datasets_api_key_env_var,
                timeout=config.request_timeout,
            ),
            coins=CoinGeckoClient(
                pro_api_key_env_var=config.coingecko_pro_api_key_env_var,
                api_key_env_var=config.coingecko_api_key_env_var,
                timeout=config.request_timeout,
            ),
        )


def load_supported_assets(config: DataSourceConfig) -> SupportedAssets:
    """Load the configured asset table, or the bundled one."""
    if config.supported_coins_path is not None:
        return SupportedAssets.from_json(config.supported_coins_path)
    return SupportedAssets.bundled()


__all__ = [
    "AssetInfo",
    "CoinGeckoClient",
    "DataSourceError",
    "DefiLlamaClient",
    "FinancialDatasetsClient",
    "HttpDataSource",
    "MarketData",
    "MissingCredentialError",
    "QuoteProvider",
    "SupportedAssets",
    "TavilySearchClient",
    "TickerExtraction",
    "TickerResolver",
    "WebSearchTickerResolver",
    "load_supported_assets",
]
