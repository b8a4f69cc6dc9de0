"""Tools the model can request, and the registry that dispatches them."""

from broker_config import DataSourceConfig

from ..market import (
    CoinGeckoClient,
    DefiLlamaClient,
    FinancialDatasetsClient,
    SupportedAssets,
    TavilySearchClient,
)
from .market_tools import (
    coin_price_tool,
    historical_chain_tvl_tool,
    price_snapshot_tool,
    web_search_tool,
)
from .purchase import (
    EXECUTE_PURCHASE,
    PURCHASE_COIN,
    PURCHASE_STOCK,
    PURCHASE_TOOL_NAMES,
    CoinPurchaseInput,
    StockPurchaseInput,
    purchase_coin_tool,
    purchase_stock_tool,
)
from .registry import ERROR_KEY, ToolRegistry, error_payload


def create_default_registry(config: DataSourceConfig, assets: SupportedAssets) -> ToolRegistry:
    """Build the registry of data tools dispatched by the tools node."""
    timeout = config.request_timeout
    return ToolRegistry(
        [
            price_snapshot_tool(
                FinancialDatasetsClient(config.financial_datasets_api_key_env_var, timeout=timeout)
            ),
            coin_price_tool(
                CoinGeckoClient(
                    config.coingecko_pro_api_key_env_var,
                    config.coingecko_api_key_env_var,
                    timeout=timeout,
                ),
                assets,
            ),
            historical_chain_tvl_tool(
                DefiLlamaClient(config.defillama_api_key_env_var, timeout=timeout)
            ),
            web_search_tool(TavilySearchClient(config.tavily_api_key_env_var, timeout=timeout)),
        ]
    )


__all__ = [
    "ERROR_KEY",
    "EXECUTE_PURCHASE",
    "PURCHASE_COIN",
    "PURCHASE_STOCK",
    "PURCHASE_TOOL_NAMES",
    "CoinPurchaseInput",
    "StockPurchaseInput",
    "ToolRegistry",
    "coin_price_tool",
    "create_default_registry",
    "error_payload",
    "historical_chain_tvl_tool",
    "price_snapshot_tool",
    "purchase_coin_tool",
    "purchase_stock_tool",
    "web_search_tool",
]
