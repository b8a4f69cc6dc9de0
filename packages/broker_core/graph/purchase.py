"""Purchase workflow nodes: prepare, approve, execute.

A purchase request from the model is staged by the prepare node, held by
the approval gate until the user answers, and then either executed or
dropped. The user's answer arrives as a tool message correlated with the
original purchase call, carrying ``{"approve": true|false}``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from broker_runtime import (
    CoinPurchase,
    ConversationState,
    Message,
    MessageRole,
    PriceSource,
    StateUpdate,
    StockPurchase,
    ToolCall,
)
from pydantic import ValidationError

from ..engine import InvariantViolation, NodeResult
from ..llm_provider import LLMProviderError
from ..market import DataSourceError
from ..metrics import PURCHASES
from ..tools import (
    EXECUTE_PURCHASE,
    PURCHASE_STOCK,
    PURCHASE_TOOL_NAMES,
    CoinPurchaseInput,
    StockPurchaseInput,
    error_payload,
)

if TYPE_CHECKING:
    from broker_core.agent import BrokerAgent

logger = logging.getLogger(__name__)

CONFIRMATION_REQUIRED = "confirmation required"
STOCK_CLARIFICATION = (
    "Please provide either the company ticker or the company name to purchase stock. "
    "If you're trying to buy crypto coins, please provide crypto symbol name"
)
PREPARE_FAILED = "I couldn't prepare that purchase: {error}"
MISSING_INFORMATION = "Please provide the missing information for the {tool} tool."
ONE_PURCHASE_AT_A_TIME = "Only one purchase can be handled at a time; this one was not prepared."


def format_price(price: float) -> str:
    """Render a price without a trailing ``.0`` for whole amounts."""
    if float(price).is_integer():
        return str(int(price))
    return str(price)


def pending_purchase_call(state: ConversationState) -> Optional[ToolCall]:
    """Find the purchase call still waiting for a confirmation.

    Returns:
        The first unanswered purchase call of the newest assistant message
        that requested one, or None
    """
    answered = {m.tool_call_id for m in state.messages if m.role == MessageRole.TOOL}
    for message in reversed(state.messages):
        if not message.claims_tool_calls:
            continue
        purchase_calls = [c for c in message.tool_calls or [] if c.name in PURCHASE_TOOL_NAMES]
        if purchase_calls:
            for call in purchase_calls:
                if call.id not in answered:
                    return call
            return None
    return None


def confirmation_message(state: ConversationState, approve: bool) -> Message:
    """Build the tool message answering the pending purchase call.

    Args:
        state: State of the suspended thread
        approve: Whether the user approved the purchase

    Returns:
        Tool message carrying ``{"approve": approve}``

    Raises:
        InvariantViolation: If no purchase call is waiting for an answer
    """
    call = pending_purchase_call(state)
    if call is None:
        raise InvariantViolation("No purchase call is waiting for a confirmation")
    return Message.tool(json.dumps({"approve": approve}), call.id, call.name)


def read_approval(message: Message) -> bool:
    """Decode the approval flag of a confirmation message.

    Anything that is not a JSON object with ``approve`` set to true counts
    as a rejection.
    """
    try:
        payload = json.loads(message.content)
    except (TypeError, ValueError):
        logger.warning("Confirmation is not valid JSON, treating it as a rejection")
        return False

    if not isinstance(payload, dict):
        logger.warning("Confirmation is not a JSON object, treating it as a rejection")
        return False

    return payload.get("approve") is True


def _confirmation(state: ConversationState) -> Optional[Message]:
    """The newest message, if it is a tool message answering the staged purchase.

    Answers to the other calls of the assistant message that requested the
    purchase (data tools, extra purchases) do not count.
    """
    last_message = state.last_message
    if last_message is None or last_message.role != MessageRole.TOOL:
        return None

    for message in reversed(state.messages):
        if not message.claims_tool_calls:
            continue
        purchase_calls = [c for c in message.tool_calls or [] if c.name in PURCHASE_TOOL_NAMES]
        if not purchase_calls:
            continue
        sibling_ids = {c.id for c in message.tool_calls or [] if c.id != purchase_calls[0].id}
        if last_message.tool_call_id in sibling_ids:
            return None
        break
    return last_message


def _purchase_calls(state: ConversationState) -> Tuple[ToolCall, List[ToolCall]]:
    """Split the newest purchase request into the call to prepare and the rest."""
    last_message = state.last_message
    if last_message is None or not last_message.claims_tool_calls:
        raise InvariantViolation("Expected the last message to request a purchase")

    purchase_calls = [c for c in last_message.tool_calls or [] if c.name in PURCHASE_TOOL_NAMES]
    if not purchase_calls:
        raise InvariantViolation("Expected the last message to have a purchase tool call")
    if len(purchase_calls) > 1:
        logger.warning(
            "Model requested %d purchases at once, preparing only the first",
            len(purchase_calls),
        )
    return purchase_calls[0], purchase_calls[1:]


def _clean_args(args: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in args.items() if value is not None and value != ""}


def _requested_quantity(args: Any, agent: BrokerAgent) -> int:
    if "quantity" in args.model_fields_set:
        return int(args.quantity)
    return agent.config.default_quantity


async def _quote(
    lookup: Awaitable[Optional[float]],
    asset: str,
) -> Tuple[float, PriceSource]:
    """Await a price lookup, falling back to zero when it is unavailable."""
    try:
        price = await lookup
    except DataSourceError as e:
        logger.warning("Price lookup for %s failed, defaulting to 0: %s", asset, e)
        return 0.0, PriceSource.UNAVAILABLE

    if price is None:
        logger.warning("No price available for %s, defaulting to 0", asset)
        return 0.0, PriceSource.UNAVAILABLE
    return float(price), PriceSource.QUOTED


async def _prepare_stock(
    call: ToolCall,
    agent: BrokerAgent,
) -> Optional[StockPurchase]:
    """Build the stock purchase, or None when neither ticker nor company is known."""
    args = StockPurchaseInput(**_clean_args(call.args))

    ticker = args.ticker
    if not ticker:
        if not args.company_name:
            return None
        ticker = await agent.ticker_resolver.resolve_ticker(args.company_name)

    if args.max_purchase_price is not None:
        max_price, source = args.max_purchase_price, PriceSource.REQUESTED
    else:
        max_price, source = await _quote(agent.quotes.stock_price(ticker), ticker)

    quantity = _requested_quantity(args, agent)
    return StockPurchase(ticker=ticker, quantity=quantity, max_price=max_price, price_source=source)


async def _prepare_coin(
    call: ToolCall,
    agent: BrokerAgent,
) -> CoinPurchase:
    args = CoinPurchaseInput(**_clean_args(call.args))

    asset = agent.assets.resolve(args.symbol)
    if asset is None and args.coin_name:
        asset = agent.assets.resolve(args.coin_name)

    if asset is not None:
        coin_id: Optional[str] = asset.id
        display_name: Optional[str] = asset.name
    else:
        logger.info("Coin %r is not in the supported asset table", args.symbol)
        coin_id = None
        display_name = args.coin_name or args.symbol

    if "vs_currency" in args.model_fields_set:
        vs_currency = args.vs_currency
    else:
        vs_currency = agent.config.data_sources.default_vs_currency

    if args.max_purchase_price is not None:
        max_price, source = args.max_purchase_price, PriceSource.REQUESTED
    else:
        lookup_id = coin_id or args.symbol.lower()
        max_price, source = await _quote(
            agent.quotes.coin_price(lookup_id, vs_currency), args.symbol
        )

    quantity = _requested_quantity(args, agent)
    return CoinPurchase(
        symbol=args.symbol,
        display_name=display_name,
        coin_id=coin_id,
        quantity=quantity,
        max_price=max_price,
        vs_currency=vs_currency,
        price_source=source,
    )


async def prepare_purchase_node(
    state: ConversationState,
    agent: BrokerAgent,
) -> NodeResult:
    """Stage the purchase requested by the newest assistant message.

    Equity requests without a ticker are resolved from the company name;
    requests with neither end the turn with a clarification. Coin requests
    are resolved against the supported asset table. A missing maximum price
    defaults to the current quote, or zero when no quote is available.

    Args:
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Proceed with the staged purchase, or end the turn with a
        clarification or an error report

    Raises:
        InvariantViolation: If the newest message requests no purchase
    """
    call, extra_calls = _purchase_calls(state)
    kind = "stock" if call.name == PURCHASE_STOCK else "coin"
    skipped = [
        Message.tool(error_payload(ONE_PURCHASE_AT_A_TIME), extra.id, extra.name)
        for extra in extra_calls
    ]

    prepared: Optional[Union[StockPurchase, CoinPurchase]]
    try:
        if call.name == PURCHASE_STOCK:
            prepared = await _prepare_stock(call, agent)
        else:
            prepared = await _prepare_coin(call, agent)
    except (DataSourceError, LLMProviderError, ValidationError) as e:
        logger.warning("Could not prepare %s for call %s: %s", call.name, call.id, e)
        PURCHASES.labels(kind=kind, outcome="failed").inc()
        return NodeResult.end(
            StateUpdate(
                messages=[
                    Message.tool(error_payload(str(e)), call.id, call.name),
                    *skipped,
                    Message.assistant(PREPARE_FAILED.format(error=e)),
                ]
            )
        )

    if prepared is None:
        PURCHASES.labels(kind=kind, outcome="clarification").inc()
        return NodeResult.end(
            StateUpdate(
                messages=[
                    Message.tool(MISSING_INFORMATION.format(tool=call.name), call.id, call.name),
                    *skipped,
                    Message.assistant(STOCK_CLARIFICATION),
                ]
            )
        )

    PURCHASES.labels(kind=kind, outcome="staged").inc()
    logger.info(
        "Staged %s purchase of %d %s at %s",
        kind,
        prepared.quantity,
        prepared.asset,
        format_price(prepared.max_price),
    )
    return NodeResult.proceed(StateUpdate(messages=skipped, staged_purchase=prepared))


async def purchase_approval_node(
    state: ConversationState,
    agent: BrokerAgent,
) -> NodeResult:
    """Hold the run until the user answers the staged purchase.

    The run suspends unless the newest message is a tool message. Answers
    to the calls that accompanied the purchase request, such as data tool
    results of the same step, are not confirmations. A rejection clears
    the staged purchase.

    Args:
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Suspend without a confirmation, proceed otherwise

    Raises:
        InvariantViolation: If a confirmation arrives with nothing staged
    """
    confirmation = _confirmation(state)
    if confirmation is None:
        return NodeResult.suspend(CONFIRMATION_REQUIRED)

    staged = state.staged_purchase
    if staged is None:
        raise InvariantViolation("Confirmation received but no purchase is staged")

    if read_approval(confirmation):
        PURCHASES.labels(kind=staged.kind, outcome="approved").inc()
        logger.info("Purchase of %s approved", staged.asset)
        return NodeResult.proceed()

    PURCHASES.labels(kind=staged.kind, outcome="rejected").inc()
    logger.info("Purchase of %s rejected", staged.asset)
    return NodeResult.proceed(StateUpdate(staged_purchase=None))


async def execute_purchase_node(
    state: ConversationState,
    agent: BrokerAgent,
) -> StateUpdate:
    """Execute the staged purchase and report it.

    Args:
        state: Current conversation state
        agent: The broker agent instance

    Returns:
        Update appending the execution call, its result and the confirmation,
        and clearing the staged purchase

    Raises:
        InvariantViolation: If nothing is staged
    """
    staged = state.staged_purchase
    if staged is None:
        logger.error("Execute reached without a staged purchase")
        raise InvariantViolation("No purchase is staged")

    asset_key = "ticker" if isinstance(staged, StockPurchase) else "symbol"
    call = ToolCall(
        id=f"tool_{uuid4().hex}",
        name=EXECUTE_PURCHASE,
        args={
            asset_key: staged.asset,
            "quantity": staged.quantity,
            "max_purchase_price": staged.max_price,
        },
    )

    PURCHASES.labels(kind=staged.kind, outcome="executed").inc()
    logger.info("Executed purchase of %d %s", staged.quantity, staged.asset)

    return StateUpdate(
        messages=[
            Message.assistant(tool_calls=[call]),
            Message.tool(json.dumps({"success": True}), call.id, EXECUTE_PURCHASE),
            Message.assistant(
                f"Successfully purchased {staged.quantity} share(s) of {staged.asset} "
                f"at ${format_price(staged.max_price)}/share."
            ),
        ],
        staged_purchase=None,
    )
