"""Order gateway interface and paper implementation."""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from loguru import logger

from .order import OrderHandle, OrderIntent, OrderSide, OrderStatus


class OrderSubmissionError(RuntimeError):
    """The gateway could not accept an order."""


class OrderGateway(ABC):
    """Accepts order intents and acknowledges them.

    Submission is fire-and-forget from the strategy's point of view; callers
    wanting retries wrap the gateway.
    """

    @abstractmethod
    def submit(self, intent: OrderIntent) -> OrderHandle:
        """Submit an order intent.

        Raises:
            OrderSubmissionError: If the order was not accepted.
        """
        pass


@dataclass(frozen=True)
class BracketLeg:
    """One order of a bracket as sent to the book."""

    order_id: int
    parent_id: Optional[int]
    symbol: str
    side: OrderSide
    order_type: str  # MKT, LMT, STP
    quantity: int
    price: Optional[float]
    transmit: bool


class PaperOrderGateway(OrderGateway):
    """In-memory gateway that books each intent as a bracket.

    The parent entry is followed by a stop-loss child and a take-profit child
    on the opposite side. Only the last leg transmits the bracket.
    """

    def __init__(self, first_order_id: int = 100, reject_symbols: Optional[List[str]] = None) -> None:
        """Initialize paper gateway.

        Args:
            first_order_id: First order id handed out.
            reject_symbols: Symbols whose orders are rejected (for drills).
        """
        self._ids = itertools.count(first_order_id)
        self._lock = threading.Lock()
        self._reject = {s.upper() for s in (reject_symbols or [])}
        self.handles: Dict[int, OrderHandle] = {}
        self.legs: Dict[int, BracketLeg] = {}

    def submit(self, intent: OrderIntent) -> OrderHandle:
        """Book an intent as a bracket order."""
        if intent.symbol.upper() in self._reject:
            raise OrderSubmissionError(f"Orders for {intent.symbol} are rejected")

        with self._lock:
            legs = self._build_bracket(intent)
            for leg in legs:
                self.legs[leg.order_id] = leg

            handle = OrderHandle(
                order_id=legs[0].order_id,
                intent=intent,
                status=OrderStatus.SUBMITTED,
                child_order_ids=[leg.order_id for leg in legs[1:]],
            )
            self.handles[handle.order_id] = handle

        logger.info(
            f"[{intent.symbol}] Paper {intent.side.value.upper()} {intent.quantity} "
            f"{'MKT' if intent.is_market else f'LMT {intent.limit_price}'} "
            f"booked as #{handle.order_id} with children {handle.child_order_ids}"
        )

        return handle

    def orders_for(self, symbol: str) -> List[OrderHandle]:
        """Handles submitted for a symbol."""
        with self._lock:
            return [h for h in self.handles.values() if h.intent.symbol == symbol]

    def _build_bracket(self, intent: OrderIntent) -> List[BracketLeg]:
        parent_id = next(self._ids)
        legs = [
            BracketLeg(
                order_id=parent_id,
                parent_id=None,
                symbol=intent.symbol,
                side=intent.side,
                order_type="MKT" if intent.is_market else "LMT",
                quantity=intent.quantity,
                price=intent.limit_price,
                transmit=False,
            )
        ]

        if intent.stop_price is not None:
            legs.append(
                BracketLeg(
                    order_id=next(self._ids),
                    parent_id=parent_id,
                    symbol=intent.symbol,
                    side=intent.side.opposite,
                    order_type="STP",
                    quantity=intent.quantity,
                    price=intent.stop_price,
                    transmit=False,
                )
            )

        if intent.take_profit_price is not None:
            legs.append(
                BracketLeg(
                    order_id=next(self._ids),
                    parent_id=parent_id,
                    symbol=intent.symbol,
                    side=intent.side.opposite,
                    order_type="LMT",
                    quantity=intent.quantity,
                    price=intent.take_profit_price,
                    transmit=False,
                )
            )

        # Last leg transmits the whole bracket
        legs[-1] = replace(legs[-1], transmit=True)

        return legs
