"""Order intents and gateways."""

from .order import OrderHandle, OrderIntent, OrderSide, OrderStatus, SubmissionResult
from .gateway import BracketLeg, OrderGateway, OrderSubmissionError, PaperOrderGateway

__all__ = [
    "OrderHandle",
    "OrderIntent",
    "OrderSide",
    "OrderStatus",
    "SubmissionResult",
    "BracketLeg",
    "OrderGateway",
    "OrderSubmissionError",
    "PaperOrderGateway",
]
