"""Supported crypto asset registry.

The registry is loaded once at startup from a JSON table and injected into
the components that need it. Lookups accept a coin symbol, its canonical
identifier, or its display name, case-insensitively.

Table format, keyed by symbol::

    {"btc": {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"}}

A JSON list of ``{"id", "symbol", "name"}`` objects is accepted too.
"""

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

BUNDLED_TABLE = "supported_coins.json"


class AssetInfo(BaseModel):
    """A supported coin."""

    id: str
    symbol: str
    name: str


class SupportedAssets:
    """In-memory lookup table of supported coins."""

    def __init__(self, assets: Iterable[AssetInfo]):
        """Index the given assets by symbol, identifier and name.

        When two assets share a key the first one wins.
        """
        self._assets: List[AssetInfo] = list(assets)
        self._index: Dict[str, AssetInfo] = {}
        for asset in self._assets:
            for key in (asset.symbol, asset.id, asset.name):
                self._index.setdefault(key.strip().lower(), asset)

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.resolve(key) is not None

    def resolve(self, key: str) -> Optional[AssetInfo]:
        """Find a supported coin by symbol, identifier or name.

        Args:
            key: Symbol ("btc"), identifier ("bitcoin") or name ("Bitcoin")

        Returns:
            AssetInfo if supported, None otherwise
        """
        if not key:
            return None
        return self._index.get(key.strip().lower())

    @classmethod
    def from_data(cls, data: Union[Dict[str, Any], List[Any]]) -> "SupportedAssets":
        """Build a registry from decoded JSON.

        Raises:
            ValueError: If an entry is malformed
        """
        entries: List[Dict[str, Any]] = []
        if isinstance(data, dict):
            for symbol, entry in data.items():
                if not isinstance(entry, dict):
                    raise ValueError(f"Asset entry for '{symbol}' must be an object")
                entries.append({"symbol": symbol, **entry})
        elif isinstance(data, list):
            entries = list(data)
        else:
            raise ValueError("Asset table must be a JSON object or list")

        try:
            return cls(AssetInfo(**entry) for entry in entries)
        except (TypeError, ValidationError) as e:
            raise ValueError(f"Invalid asset table entry: {e}") from e

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "SupportedAssets":
        """Load a registry from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assets = cls.from_data(data)
        logger.info("Loaded %d supported assets from %s", len(assets), path)
        return assets

    @classmethod
    def bundled(cls) -> "SupportedAssets":
        """Load the table shipped with the package."""
        table = resources.files(__package__).joinpath("data").joinpath(BUNDLED_TABLE)
        text = table.read_text(encoding="utf-8")
        return cls.from_data(json.loads(text))
