"""
Closed status types and the state graphs that govern them
"""
from enum import Enum
from typing import Dict, FrozenSet, Type


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    ONLINE = "online"
    COD = "cod"


class StockChangeType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class RefundType(str, Enum):
    REFUND = "refund"
    RETURN = "return"
    EXCHANGE = "exchange"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CouponScope(str, Enum):
    ALL = "all"
    CATEGORY = "category"
    PRODUCT = "product"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_ORDER_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)

REFUND_TRANSITIONS: Dict[RefundStatus, FrozenSet[RefundStatus]] = {
    RefundStatus.PENDING: frozenset({RefundStatus.APPROVED, RefundStatus.REJECTED, RefundStatus.CANCELLED}),
    RefundStatus.APPROVED: frozenset({RefundStatus.PROCESSING, RefundStatus.REJECTED, RefundStatus.CANCELLED}),
    RefundStatus.PROCESSING: frozenset({RefundStatus.COMPLETED}),
    RefundStatus.COMPLETED: frozenset(),
    RefundStatus.REJECTED: frozenset(),
    RefundStatus.CANCELLED: frozenset(),
}

# Entering one of these credits the refunded quantities back to stock
RESTOCK_REFUND_STATUSES = frozenset({RefundStatus.APPROVED, RefundStatus.COMPLETED})
# Stock has already been credited once a refund sits in one of these
RESTOCKED_REFUND_STATUSES = frozenset(
    {RefundStatus.APPROVED, RefundStatus.PROCESSING, RefundStatus.COMPLETED}
)
# Transitions into these stamp processed_by / processed_at
RESOLVED_REFUND_STATUSES = frozenset(
    {RefundStatus.APPROVED, RefundStatus.REJECTED, RefundStatus.COMPLETED, RefundStatus.CANCELLED}
)
# Refund items under these statuses no longer count against the refundable balance
VOID_REFUND_STATUSES = frozenset({RefundStatus.REJECTED, RefundStatus.CANCELLED})

ORDER_REFUNDABLE_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def values(enum_cls: Type[Enum]) -> list:
    return [member.value for member in enum_cls]


def check_in(column: str, enum_cls: Type[Enum]) -> str:
    """SQL CHECK expression restricting a column to the enum's values"""
    allowed = ", ".join(f"'{value}'" for value in values(enum_cls))
    return f"{column} IN ({allowed})"


def _validate_graph(graph: Dict, enum_cls: Type[Enum]) -> None:
    missing = set(enum_cls) - set(graph)
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} graph has no entry for {sorted(m.value for m in missing)}")


_validate_graph(ORDER_TRANSITIONS, OrderStatus)
_validate_graph(REFUND_TRANSITIONS, RefundStatus)
