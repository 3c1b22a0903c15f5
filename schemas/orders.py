"""
Order Submission Models

Request/response models for the simulator's single-shot order endpoint.
The order status is passed through to callers as-is.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from schemas.market_data import OrderKind, Side


class OrderStatus(str, Enum):
    OPEN = "Open"
    FILLED = "Filled"
    PARTIALLY_FILLED = "PartiallyFilled"
    NOT_FILLED = "NotFilled"


class OrderRequest(BaseModel):
    """Order submitted to the simulator"""
    side: Side
    order_type: OrderKind
    price: Optional[float] = None
    quantity: float = Field(gt=0)


class FillModel(BaseModel):
    """Trade produced by an order submission"""
    price: float
    quantity: float
    side: Side
    timestamp: datetime


class OrderResponse(BaseModel):
    """Simulator response to an order submission"""
    id: str
    status: OrderStatus
    trades: List[FillModel] = Field(default_factory=list)
