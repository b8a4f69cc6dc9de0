"""Tests for the supported asset registry."""

import json

import pytest
from broker_config import DataSourceConfig
from broker_core.market import SupportedAssets, load_supported_assets


class TestSupportedAssets:
    """Tests for SupportedAssets class."""

    @pytest.fixture
    def assets(self):
        """Load the bundled coin table."""
        return SupportedAssets.bundled()

    @pytest.mark.parametrize("key", ["btc", "BTC", "bitcoin", "Bitcoin", " btc "])
    def test_resolve_by_symbol_id_or_name(self, assets, key):
        """Test every lookup key reaches the same coin."""
        asset = assets.resolve(key)

        assert asset is not None
        assert asset.id == "bitcoin"
        assert asset.name == "Bitcoin"

    def test_unknown_coin(self, assets):
        """Test unsupported coins resolve to None."""
        assert assets.resolve("wif") is None
        assert assets.resolve("") is None
        assert "wif" not in assets
        assert "eth" in assets

    def test_from_list(self):
        """Test the list table format."""
        assets = SupportedAssets.from_data(
            [{"id": "pepe", "symbol": "pepe", "name": "Pepe"}]
        )

        assert len(assets) == 1
        assert assets.resolve("PEPE").id == "pepe"

    def test_first_entry_wins(self):
        """Test key collisions keep the first asset."""
        assets = SupportedAssets.from_data(
            [
                {"id": "a-coin", "symbol": "dup", "name": "A"},
                {"id": "b-coin", "symbol": "dup", "name": "B"},
            ]
        )

        assert assets.resolve("dup").id == "a-coin"
        assert assets.resolve("b-coin").name == "B"

    def test_malformed_entry(self):
        """Test entries missing fields are rejected."""
        with pytest.raises(ValueError):
            SupportedAssets.from_data({"btc": {"id": "bitcoin"}})

    def test_malformed_table(self):
        """Test tables that are neither objects nor lists."""
        with pytest.raises(ValueError):
            SupportedAssets.from_data("btc")


class TestLoadSupportedAssets:
    """Tests for load_supported_assets function."""

    def test_bundled_by_default(self):
        """Test the default table."""
        assets = load_supported_assets(DataSourceConfig())

        assert assets.resolve("sol").id == "solana"

    def test_configured_path(self, tmp_path):
        """Test loading a custom table."""
        table = tmp_path / "coins.json"
        table.write_text(json.dumps({"wif": {"id": "dogwifcoin", "name": "dogwifhat"}}))

        assets = load_supported_assets(DataSourceConfig(supported_coins_path=table))

        assert len(assets) == 1
        assert assets.resolve("dogwifhat").id == "dogwifcoin"
