"""
Schemas package
"""
from shopcore.schemas.order import (
    OrderItemCreate,
    OrderCreate,
    PaymentStatusUpdate,
    OrderItemResponse,
    OrderStatusHistoryResponse,
    OrderResponse,
    OrderListResponse
)
from shopcore.schemas.refund import (
    RefundItemCreate,
    RefundCreate,
    RefundItemResponse,
    RefundResponse
)

__all__ = [
    "OrderItemCreate",
    "OrderCreate",
    "PaymentStatusUpdate",
    "OrderItemResponse",
    "OrderStatusHistoryResponse",
    "OrderResponse",
    "OrderListResponse",
    "RefundItemCreate",
    "RefundCreate",
    "RefundItemResponse",
    "RefundResponse"
]
