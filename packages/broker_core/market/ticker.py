"""Company name to ticker resolution."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .base import DataSourceError
from .web_search import TavilySearchClient

if TYPE_CHECKING:
    from broker_core.llm_provider import LLMProvider

logger = logging.getLogger(__name__)


class TickerExtraction(BaseModel):
    """Extract the ticker symbol of a company from the provided context."""

    ticker: str = Field(..., description="The ticker symbol of the company")


class WebSearchTickerResolver:
    """Resolves tickers by searching the web and extracting with the LLM."""

    def __init__(self, search: TavilySearchClient, llm_provider: LLMProvider):
        self.search = search
        self.llm_provider = llm_provider

    async def resolve_ticker(self, company_name: str) -> str:
        """Find the ticker symbol for a company.

        Args:
            company_name: Company name as given by the user

        Returns:
            Upper-cased ticker symbol

        Raises:
            DataSourceError: If the search fails or yields no ticker
        """
        results = await self.search.search(f"What is the ticker symbol for {company_name}?")
        prompt = (
            f"Given the following search results, extract the ticker symbol for "
            f"{company_name}:\n{json.dumps(results)}"
        )
        extraction = await self.llm_provider.aextract(TickerExtraction, prompt)

        ticker = extraction.ticker.strip().upper()
        if not ticker:
            raise DataSourceError(f"Could not find a ticker symbol for {company_name}")
        logger.info("Resolved %r to ticker %s", company_name, ticker)
        return ticker
