"""Domain exceptions raised by the shopcore services."""
from typing import Optional


class ShopCoreError(Exception):
    """Base exception for all shopcore errors."""

    pass


class NotFoundError(ShopCoreError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id={entity_id} not found")


class InsufficientStockError(ShopCoreError):
    """Raised when a reservation asks for more than the current snapshot."""

    def __init__(self, product_id: int, variant_id: Optional[int], requested: int, available: int):
        self.product_id = product_id
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        target = f"product {product_id}"
        if variant_id is not None:
            target = f"{target} (variant {variant_id})"
        super().__init__(
            f"Insufficient stock for {target}. Requested: {requested}, Available: {available}"
        )


class InvalidTransitionError(ShopCoreError):
    """Raised when a status change is not an edge of the state graph."""

    def __init__(self, entity: str, current: str, requested: str):
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move {entity} from '{current}' to '{requested}'")


class CouponError(ShopCoreError):
    """Base exception for coupon guard violations."""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Coupon {code}: {reason}")


class AlreadyUsedError(CouponError):
    """Raised when the coupon was already applied to this order by this user."""

    def __init__(self, code: str, order_id: int):
        self.order_id = order_id
        super().__init__(code, f"already applied to order {order_id}")


class LimitExceededError(CouponError):
    """Raised when the coupon's total or per-user usage limit is exhausted."""

    pass


class CouponNotApplicableError(CouponError):
    """Raised when the coupon is inactive, expired, out of scope or below minimum."""

    pass


class OverRefundError(ShopCoreError):
    """Raised when a refund asks for more than the remaining refundable quantity."""

    def __init__(self, order_item_id: int, requested: int, refundable: int):
        self.order_item_id = order_item_id
        self.requested = requested
        self.refundable = refundable
        super().__init__(
            f"Cannot refund {requested} of order item {order_item_id}; "
            f"only {refundable} remaining"
        )


class RefundNotAllowedError(ShopCoreError):
    """Raised when the order is not in a refundable state or window."""

    def __init__(self, order_id: int, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Refund not allowed for order {order_id}: {reason}")


class ConstraintViolationError(ShopCoreError):
    """Raised when the store rejects a write on a uniqueness or referential constraint."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Constraint violation: {detail}")


class TransientConflictError(ShopCoreError):
    """Raised when a transaction keeps failing on deadlocks or serialization conflicts."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Transaction conflict: {detail}")
