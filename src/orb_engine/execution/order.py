"""Order intents and submission records."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class OrderSide(str, Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        """Side that closes a position opened on this side."""
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderStatus(str, Enum):
    """Acknowledged order status."""

    SUBMITTED = "submitted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OrderIntent:
    """Entry order produced by the strategy, consumed once by a gateway.

    A ``limit_price`` of None means a market order.
    """

    symbol: str
    side: OrderSide
    quantity: int
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    reason: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Order quantity must be positive, got {self.quantity}")

    @property
    def is_market(self) -> bool:
        """Check if this is a market order."""
        return self.limit_price is None

    def to_dict(self) -> dict:
        """Convert intent to dict for serialization."""
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "order_type": "market" if self.is_market else "limit",
            "limit_price": self.limit_price,
            "stop_price": self.stop_price,
            "take_profit_price": self.take_profit_price,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class OrderHandle:
    """Gateway acknowledgement for a submitted intent."""

    order_id: int
    intent: OrderIntent
    status: OrderStatus = OrderStatus.SUBMITTED
    child_order_ids: List[int] = field(default_factory=list)
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of handing one intent to the gateway."""

    intent: OrderIntent
    handle: Optional[OrderHandle] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        """Check if the gateway accepted the intent."""
        return self.handle is not None and self.error is None
