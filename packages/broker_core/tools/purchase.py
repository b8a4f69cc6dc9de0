"""Purchase tool schemas.

These tools are bound to the model so it can request a purchase. They are
never dispatched: routing sends purchase requests to the purchase workflow,
which stages them for confirmation.
"""

from typing import Literal, Optional

from langchain_core.tools import BaseTool, StructuredTool  # type: ignore[import-not-found]
from pydantic import BaseModel, Field

PURCHASE_STOCK = "purchase_stock"
PURCHASE_COIN = "purchase_coin"
EXECUTE_PURCHASE = "execute_purchase"
PURCHASE_TOOL_NAMES = frozenset({PURCHASE_STOCK, PURCHASE_COIN})


class StockPurchaseInput(BaseModel):
    """Arguments of the purchase_stock tool."""

    ticker: Optional[str] = Field(
        default=None,
        description="The ticker of the stock to purchase. Either 'ticker' or 'company_name' "
        "must be provided.",
    )
    company_name: Optional[str] = Field(
        default=None,
        description="The name of the company to purchase. Either 'ticker' or 'company_name' "
        "must be provided.",
    )
    quantity: int = Field(default=1, gt=0, description="The quantity of stock to purchase.")
    max_purchase_price: Optional[float] = Field(
        default=None,
        gt=0,
        description="The max price at which to purchase the stock. Defaults to the current price.",
    )


class CoinPurchaseInput(BaseModel):
    """Arguments of the purchase_coin tool."""

    symbol: str = Field(..., description="The symbol of the crypto coin. Example: 'bitcoin'")
    coin_name: Optional[str] = Field(
        default=None,
        description="The name of the crypto coin. Usually the same as the symbol but not "
        "always. Example: 'Bitcoin'",
    )
    quantity: int = Field(default=1, gt=0, description="The quantity of coins to purchase.")
    max_purchase_price: Optional[float] = Field(
        default=None,
        gt=0,
        description="The max price at which to purchase the coin. Defaults to the current price.",
    )
    vs_currency: Literal["usd", "eur", "btc", "eth"] = Field(
        default="usd", description="The currency the price is expressed in."
    )


def _describe_price(max_purchase_price: Optional[float]) -> str:
    if max_purchase_price:
        return f"${max_purchase_price} per share"
    return "the current price"


def purchase_stock_tool() -> BaseTool:
    """Schema-only tool the model calls to buy a stock."""

    def purchase_stock(
        ticker: Optional[str] = None,
        company_name: Optional[str] = None,
        quantity: int = 1,
        max_purchase_price: Optional[float] = None,
    ) -> str:
        return (
            f"Please confirm that you want to purchase {quantity} shares of "
            f"{ticker or company_name} at {_describe_price(max_purchase_price)}."
        )

    return StructuredTool.from_function(
        func=purchase_stock,
        name=PURCHASE_STOCK,
        description="This tool should be called when a user wants to purchase a stock.",
        args_schema=StockPurchaseInput,
    )


def purchase_coin_tool() -> BaseTool:
    """Schema-only tool the model calls to buy a crypto coin."""

    def purchase_coin(
        symbol: str,
        coin_name: Optional[str] = None,
        quantity: int = 1,
        max_purchase_price: Optional[float] = None,
        vs_currency: str = "usd",
    ) -> str:
        return (
            f"Please confirm that you want to purchase {quantity} shares of {symbol} at "
            f"{_describe_price(max_purchase_price)}."
        )

    return StructuredTool.from_function(
        func=purchase_coin,
        name=PURCHASE_COIN,
        description="This tool should be called when a user wants to purchase a crypto "
        "currency coin.",
        args_schema=CoinPurchaseInput,
    )
