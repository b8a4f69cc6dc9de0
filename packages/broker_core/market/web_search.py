"""Tavily web search client."""

from typing import Any, Dict, List, Optional

import httpx

from .base import HttpDataSource, MissingCredentialError, read_credential

SEARCH_URL = "https://api.tavily.com/search"


class TavilySearchClient(HttpDataSource):
    """Client for the Tavily search API."""

    name = "tavily"

    def __init__(
        self,
        api_key_env_var: str = "TAVILY_API_KEY",
        max_results: int = 5,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.api_key_env_var = api_key_env_var
        self.max_results = max_results

    async def search(self, query: str) -> List[Dict[str, Any]]:
        """Run a web search.

        Returns:
            Result records with ``title``, ``url`` and ``content`` keys
        """
        api_key = read_credential(self.api_key_env_var)
        if not api_key:
            raise MissingCredentialError(f"Environment variable {self.api_key_env_var} is not set")

        data = await self._request_json(
            "POST",
            SEARCH_URL,
            json={"api_key": api_key, "query": query, "max_results": self.max_results},
        )
        results = data.get("results") if isinstance(data, dict) else None
        return [
            {"title": r.get("title"), "url": r.get("url"), "content": r.get("content")}
            for r in results or []
        ]
