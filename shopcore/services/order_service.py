"""
Order Service - Business Logic Layer
"""
import logging
import secrets
import time
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session

from shopcore.config import settings
from shopcore.errors import InvalidTransitionError, NotFoundError
from shopcore.models.enums import (
    CANCELLABLE_ORDER_STATUSES,
    ORDER_TRANSITIONS,
    OrderStatus,
    PaymentStatus
)
from shopcore.models.order import Order
from shopcore.publishers.event_publisher import EventPublisher
from shopcore.repositories.order_repository import OrderRepository
from shopcore.repositories.product_repository import ProductRepository
from shopcore.repositories.user_repository import UserRepository
from shopcore.schemas.order import (
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusHistoryResponse
)
from shopcore.services.audit import AuditLogWriter
from shopcore.services.coupon_guard import CouponGuard
from shopcore.services.inventory_ledger import InventoryLedger, StockTarget
from shopcore.services.stock_alert_monitor import StockAlertMonitor
from shopcore.services.transaction import atomic, retry_on_conflict
from shopcore.utils import money, utcnow

logger = logging.getLogger(__name__)


def generate_order_number(user_id: int) -> str:
    """ORD-<epoch ms>-<user id>-<4 hex chars>"""
    return f"ORD-{int(time.time() * 1000)}-{user_id}-{secrets.token_hex(2).upper()}"


class OrderService:
    """Service layer for order business logic"""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None, audit: Optional[AuditLogWriter] = None):
        self.db = db
        self.repository = OrderRepository(db)
        self.products = ProductRepository(db)
        self.users = UserRepository(db)
        self.monitor = StockAlertMonitor(db)
        self.ledger = InventoryLedger(db, self.monitor)
        self.coupons = CouponGuard(db)
        self.audit = audit or AuditLogWriter(db)
        self.event_publisher = publisher or EventPublisher()

    def get_all_orders(self, skip: int = 0, limit: int = 100) -> OrderListResponse:
        """Get all orders with pagination"""
        orders = self.repository.get_all(skip=skip, limit=limit)
        total = self.repository.count()

        return OrderListResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            total=total
        )

    def get_order_by_id(self, order_id: int) -> Optional[OrderResponse]:
        """Get order by ID"""
        order = self.repository.get_by_id(order_id)
        if not order:
            return None
        return OrderResponse.model_validate(order)

    def get_orders_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> List[OrderResponse]:
        """Get orders of a user, newest first"""
        orders = self.repository.get_by_user(user_id, status=OrderStatus(status).value if status else None)
        return [OrderResponse.model_validate(o) for o in orders]

    def get_status_history(self, order_id: int) -> List[OrderStatusHistoryResponse]:
        if not self.repository.get_by_id(order_id):
            raise NotFoundError("Order", order_id)
        return [OrderStatusHistoryResponse.model_validate(h) for h in self.repository.get_history(order_id)]

    @retry_on_conflict
    def place_order(self, order_data: OrderCreate) -> OrderResponse:
        """
        Place a new order

        Steps:
        1. Validate user, products and variants; price lines from live prices
        2. Quote the coupon, if any
        3. Reserve stock for every line in lock order
        4. Save order, items and the initial history row
        5. Record the coupon usage and an audit row, then commit
        6. Publish OrderCreated (and StockLow for new alerts)

        Raises:
            NotFoundError: unknown user, product, variant or coupon
            InsufficientStockError: any line exceeds its stock
            CouponError: the coupon cannot be used on this order
        """
        self.monitor.reset()
        with atomic(self.db):
            order = self._create_order(order_data)
            event = self._order_event(order)

        logger.info("Order %s placed by user %s", event["order_number"], order_data.user_id)
        self.event_publisher.publish_order_created(event)
        self.monitor.publish_triggered(self.event_publisher)
        return OrderResponse.model_validate(order)

    def _create_order(self, order_data: OrderCreate) -> Order:
        if not self.users.get_by_id(order_data.user_id):
            raise NotFoundError("User", order_data.user_id)

        lines = []
        for item in order_data.items:
            product = self.products.get_by_id(item.product_id)
            if not product or not product.is_active:
                raise NotFoundError("Product", item.product_id)

            unit_price = Decimal(product.price)
            if item.variant_id is not None:
                variant = self.products.get_variant(item.variant_id)
                if not variant or variant.product_id != product.id or not variant.is_active:
                    raise NotFoundError("ProductVariant", item.variant_id)
                unit_price += Decimal(variant.price_adjustment)

            lines.append((item, product, money(unit_price)))

        subtotal = money(sum((price * item.quantity for item, _, price in lines), Decimal(0)))

        coupon = None
        discount = Decimal("0.00")
        if order_data.coupon_code:
            coupon = self.coupons.get_by_code(order_data.coupon_code, lock=True)
            discount = self.coupons.quote(
                coupon,
                order_data.user_id,
                subtotal,
                product_ids=[product.id for _, product, _ in lines],
                category_ids=[product.category_id for _, product, _ in lines]
            )

        shipping_fee = money(settings.SHIPPING_FEE)
        order_number = generate_order_number(order_data.user_id)

        # Fixed lock order across all checkouts
        for item, _, _ in sorted(lines, key=lambda line: StockTarget(line[0].product_id, line[0].variant_id).sort_key()):
            self.ledger.reserve(
                StockTarget(item.product_id, item.variant_id),
                item.quantity,
                reason=f"Order {order_number}",
                actor=order_data.user_id
            )

        order = self.repository.create(
            {
                "user_id": order_data.user_id,
                "order_number": order_number,
                "subtotal": subtotal,
                "discount_amount": discount,
                "shipping_fee": shipping_fee,
                "total_amount": money(subtotal - discount + shipping_fee),
                "shipping_address": order_data.shipping_address,
                "payment_method": order_data.payment_method.value,
                "payment_status": PaymentStatus.PENDING.value,
                "order_status": OrderStatus.PENDING.value,
                "notes": order_data.notes
            },
            [
                {
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "product_name": product.name,
                    "quantity": item.quantity,
                    "price": price
                }
                for item, product, price in lines
            ]
        )
        self.repository.add_history(order, OrderStatus.PENDING.value, order_data.user_id, "Order placed")

        if coupon:
            self.coupons.apply(coupon.id, order_data.user_id, order.id, discount)

        self.audit.record(
            "order.placed", "orders", order.id,
            user_id=order_data.user_id,
            new_data={
                "order_number": order_number,
                "total_amount": str(order.total_amount),
                "coupon_code": coupon.code if coupon else None
            }
        )
        return order

    def transition(self, order_id: int, new_status: OrderStatus, actor: Optional[int], notes: Optional[str] = None) -> OrderResponse:
        """
        Move an order along its status graph

        Raises:
            NotFoundError: unknown order
            InvalidTransitionError: the edge is not in the graph
        """
        new_status = OrderStatus(new_status)
        if new_status is OrderStatus.CANCELLED:
            return self.cancel(order_id, actor, notes)

        with atomic(self.db):
            order = self._lock(order_id)
            current = OrderStatus(order.order_status)
            if new_status not in ORDER_TRANSITIONS[current]:
                raise InvalidTransitionError("order", current.value, new_status.value)

            order.order_status = new_status.value
            self.repository.add_history(order, new_status.value, actor, notes)
            self.audit.record(
                "order.status_changed", "orders", order.id,
                user_id=actor,
                old_data={"order_status": current.value},
                new_data={"order_status": new_status.value}
            )
            event = self._status_event(order, current, new_status)

        logger.info("Order %s: %s -> %s", order_id, current.value, new_status.value)
        self.event_publisher.publish_order_status_changed(event)
        return OrderResponse.model_validate(order)

    def cancel(self, order_id: int, actor: Optional[int], notes: Optional[str] = None) -> OrderResponse:
        """
        Cancel an order and return its reserved stock

        Coupon usage stays recorded.

        Raises:
            NotFoundError: unknown order
            InvalidTransitionError: order already shipping, delivered or cancelled
        """
        self.monitor.reset()
        with atomic(self.db):
            order = self._lock(order_id)
            current = OrderStatus(order.order_status)
            if current not in CANCELLABLE_ORDER_STATUSES:
                raise InvalidTransitionError("order", current.value, OrderStatus.CANCELLED.value)

            for item in sorted(order.items, key=lambda i: StockTarget(i.product_id, i.variant_id).sort_key()):
                self.ledger.release(
                    StockTarget(item.product_id, item.variant_id),
                    item.quantity,
                    reason=f"Order {order.order_number} cancelled",
                    actor=actor
                )

            order.order_status = OrderStatus.CANCELLED.value
            order.cancelled_at = utcnow()
            order.cancelled_by = actor
            order.cancellation_reason = notes
            self.repository.add_history(order, OrderStatus.CANCELLED.value, actor, notes)
            self.audit.record(
                "order.cancelled", "orders", order.id,
                user_id=actor,
                old_data={"order_status": current.value},
                new_data={"order_status": OrderStatus.CANCELLED.value, "reason": notes}
            )
            event = self._status_event(order, current, OrderStatus.CANCELLED)

        logger.info("Order %s cancelled from %s", order_id, current.value)
        self.event_publisher.publish_order_status_changed(event)
        self.monitor.publish_triggered(self.event_publisher)
        return OrderResponse.model_validate(order)

    def mark_payment_status(self, order_id: int, status: PaymentStatus) -> OrderResponse:
        """Record the payment collaborator's verdict; order_status is untouched"""
        status = PaymentStatus(status)
        with atomic(self.db):
            order = self._lock(order_id)
            previous = order.payment_status
            order.payment_status = status.value
            self.audit.record(
                "order.payment_status_changed", "orders", order.id,
                old_data={"payment_status": previous},
                new_data={"payment_status": status.value}
            )

        logger.info("Order %s payment status: %s -> %s", order_id, previous, status.value)
        return OrderResponse.model_validate(order)

    def _lock(self, order_id: int) -> Order:
        order = self.repository.lock(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def _order_event(order: Order) -> dict:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "total_amount": str(order.total_amount),
            "payment_method": order.payment_method,
            "items": [
                {
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "quantity": item.quantity,
                    "price": str(item.price)
                }
                for item in order.items
            ]
        }

    @staticmethod
    def _status_event(order: Order, old_status: OrderStatus, new_status: OrderStatus) -> dict:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "old_status": old_status.value,
            "new_status": new_status.value
        }
