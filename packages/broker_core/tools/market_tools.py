"""Market data tools exposed to the model."""

import json
import logging
from typing import Literal

from langchain_core.tools import BaseTool, StructuredTool  # type: ignore[import-not-found]
from pydantic import BaseModel, Field

from ..market import (
    CoinGeckoClient,
    DataSourceError,
    DefiLlamaClient,
    FinancialDatasetsClient,
    SupportedAssets,
    TavilySearchClient,
)
from .registry import error_payload

logger = logging.getLogger(__name__)


class CoinPriceInput(BaseModel):
    """Arguments of the coin_price tool."""

    symbols: str = Field(
        ..., description="Crypto currency symbols to be queried. Example: 'bitcoin,eth'"
    )
    vs_currencies: Literal["usd", "eur", "btc", "eth"] = Field(
        default="usd", description="The currency used to measure the symbols' price."
    )
    include_market_cap: bool = Field(default=True, description="Include market cap values")
    include_24hr_change: bool = Field(default=True, description="Include 24 hour price change")
    include_24hr_vol: bool = Field(default=True, description="Include 24 hour traded volume")
    include_last_updated_at: bool = Field(
        default=True, description="Include the time the price was last updated"
    )


class PriceSnapshotInput(BaseModel):
    """Arguments of the price_snapshot tool."""

    ticker: str = Field(..., description="The ticker of the company. Example: 'AAPL'")


class WebSearchInput(BaseModel):
    """Arguments of the web_search tool."""

    query: str = Field(..., description="The search query")


class EmptyInput(BaseModel):
    """No arguments."""


def coin_price_tool(client: CoinGeckoClient, assets: SupportedAssets) -> BaseTool:
    """Build the coin_price tool over a CoinGecko client and the asset registry."""

    async def coin_price(
        symbols: str,
        vs_currencies: str = "usd",
        include_market_cap: bool = True,
        include_24hr_change: bool = True,
        include_24hr_vol: bool = True,
        include_last_updated_at: bool = True,
    ) -> str:
        supported = {}
        unsupported = []
        for raw in symbols.split(","):
            symbol = raw.strip().lower()
            if not symbol:
                continue
            asset = assets.resolve(symbol)
            if asset is None:
                unsupported.append(symbol)
            else:
                supported[asset.id] = asset

        if not supported:
            return json.dumps({"unsupported_coins": ",".join(unsupported)})

        try:
            data = await client.simple_price(
                supported.keys(),
                vs_currencies,
                include_market_cap=include_market_cap,
                include_24hr_change=include_24hr_change,
                include_24hr_vol=include_24hr_vol,
                include_last_updated_at=include_last_updated_at,
            )
        except DataSourceError as e:
            logger.warning("Error fetching coin price for %s: %s", symbols, e)
            return error_payload(f"An error occurred while fetching coin price: {e}")

        for coin_id, record in data.items():
            if isinstance(record, dict):
                record["vs_currencies"] = vs_currencies
                if coin_id in supported:
                    record["name"] = supported[coin_id].name
        if unsupported:
            data["unsupported_coins"] = ",".join(unsupported)
        return json.dumps(data)

    return StructuredTool.from_function(
        coroutine=coin_price,
        name="coin_price",
        description=(
            "Retrieves prices for the specified crypto currency symbols against the specified "
            "currency, together with market caps, 24 hour changes and 24 hour traded volume. "
            "Multiple symbols are separated by commas."
        ),
        args_schema=CoinPriceInput,
    )


def price_snapshot_tool(client: FinancialDatasetsClient) -> BaseTool:
    """Build the price_snapshot tool over a Financial Datasets client."""

    async def price_snapshot(ticker: str) -> str:
        try:
            data = await client.price_snapshot(ticker)
        except DataSourceError as e:
            logger.warning("Error fetching price snapshot for %s: %s", ticker, e)
            return error_payload(f"An error occurred while fetching the price snapshot: {e}")
        return json.dumps(data)

    return StructuredTool.from_function(
        coroutine=price_snapshot,
        name="price_snapshot",
        description="Retrieves the current stock price and related market data for a company.",
        args_schema=PriceSnapshotInput,
    )


def historical_chain_tvl_tool(client: DefiLlamaClient) -> BaseTool:
    """Build the historical_chain_tvl tool over a DefiLlama client."""

    async def historical_chain_tvl() -> str:
        try:
            summary = await client.latest_chain_tvl()
        except DataSourceError as e:
            logger.warning("Error fetching chain TVL: %s", e)
            return error_payload(f"An error occurred while fetching TVL: {e}")
        return json.dumps(summary)

    return StructuredTool.from_function(
        coroutine=historical_chain_tvl,
        name="historical_chain_tvl",
        description=(
            "Get the latest TVL (Total Value Locked) of DeFi (Decentralized Finance) across all "
            "chains from DefiLlama. Excludes liquid staking and double counted TVL. Data is "
            "updated daily."
        ),
        args_schema=EmptyInput,
    )


def web_search_tool(client: TavilySearchClient) -> BaseTool:
    """Build the web_search tool over a Tavily client."""

    async def web_search(query: str) -> str:
        try:
            results = await client.search(query)
        except DataSourceError as e:
            logger.warning("Web search for %r failed: %s", query, e)
            return error_payload(f"An error occurred while searching the web: {e}")
        return json.dumps(results)

    return StructuredTool.from_function(
        coroutine=web_search,
        name="web_search",
        description="A search engine. Useful for finding tickers and recent financial news.",
        args_schema=WebSearchInput,
    )
