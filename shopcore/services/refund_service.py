"""
Refund Service - refund, return and exchange workflow
"""
import logging
import secrets
import time
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from shopcore.config import settings
from shopcore.errors import (
    InvalidTransitionError,
    NotFoundError,
    OverRefundError,
    RefundNotAllowedError
)
from shopcore.models.enums import (
    ORDER_REFUNDABLE_STATUSES,
    REFUND_TRANSITIONS,
    RESOLVED_REFUND_STATUSES,
    RESTOCK_REFUND_STATUSES,
    RESTOCKED_REFUND_STATUSES,
    VOID_REFUND_STATUSES,
    OrderStatus,
    RefundStatus
)
from shopcore.models.order import Order
from shopcore.models.refund import Refund
from shopcore.publishers.event_publisher import EventPublisher
from shopcore.repositories.order_repository import OrderRepository
from shopcore.repositories.refund_repository import RefundRepository
from shopcore.schemas.refund import RefundCreate, RefundResponse
from shopcore.services.audit import AuditLogWriter
from shopcore.services.inventory_ledger import InventoryLedger, StockTarget
from shopcore.services.stock_alert_monitor import StockAlertMonitor
from shopcore.services.transaction import atomic, retry_on_conflict
from shopcore.utils import as_utc, money, utcnow

logger = logging.getLogger(__name__)


def discount_ratio(order: Order) -> Decimal:
    """Share of the item price the customer actually paid"""
    subtotal = Decimal(order.subtotal)
    if subtotal <= 0:
        return Decimal(1)
    return Decimal(1) - Decimal(order.discount_amount) / subtotal


class RefundService:
    """Service layer for the refund workflow"""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None, audit: Optional[AuditLogWriter] = None):
        self.db = db
        self.repository = RefundRepository(db)
        self.orders = OrderRepository(db)
        self.monitor = StockAlertMonitor(db)
        self.ledger = InventoryLedger(db, self.monitor)
        self.audit = audit or AuditLogWriter(db)
        self.event_publisher = publisher or EventPublisher()

    def get_refund_by_id(self, refund_id: int) -> Optional[RefundResponse]:
        refund = self.repository.get_by_id(refund_id)
        if not refund:
            return None
        return RefundResponse.model_validate(refund)

    def get_refunds_by_order(self, order_id: int) -> List[RefundResponse]:
        return [RefundResponse.model_validate(r) for r in self.repository.get_by_order(order_id)]

    def refundable_quantity(self, order_item_id: int) -> int:
        """Ordered quantity minus what live refunds already claim"""
        item = self.orders.get_item(order_item_id)
        if not item:
            raise NotFoundError("OrderItem", order_item_id)
        return max(item.quantity - self.repository.refunded_quantity(order_item_id), 0)

    def request_refund(self, refund_data: RefundCreate) -> RefundResponse:
        """
        Open a pending refund for items of a delivered or cancelled order

        The order row is locked so concurrent requests see each other's
        claimed quantities.

        Raises:
            NotFoundError: order missing or not owned by the user, or an item
                outside the order
            RefundNotAllowedError: order status or refund window
            OverRefundError: quantity above the remaining refundable balance
        """
        with atomic(self.db):
            order = self.orders.lock(refund_data.order_id)
            if not order or order.user_id != refund_data.user_id:
                raise NotFoundError("Order", refund_data.order_id)

            status = OrderStatus(order.order_status)
            if status not in ORDER_REFUNDABLE_STATUSES:
                raise RefundNotAllowedError(order.id, f"order is {status.value}")
            if utcnow() - as_utc(order.created_at) > timedelta(days=settings.REFUND_WINDOW_DAYS):
                raise RefundNotAllowedError(
                    order.id, f"refund window of {settings.REFUND_WINDOW_DAYS} days has passed"
                )

            order_items = {item.id: item for item in order.items}
            requested: Dict[int, int] = {}
            for line in refund_data.items:
                if line.order_item_id not in order_items:
                    raise NotFoundError("OrderItem", line.order_item_id)
                requested[line.order_item_id] = requested.get(line.order_item_id, 0) + line.quantity

            for order_item_id, quantity in requested.items():
                refundable = order_items[order_item_id].quantity - self.repository.refunded_quantity(order_item_id)
                if quantity > refundable:
                    raise OverRefundError(order_item_id, quantity, max(refundable, 0))

            ratio = discount_ratio(order)
            items = [
                {
                    "order_item_id": line.order_item_id,
                    "quantity": line.quantity,
                    "refund_amount": money(Decimal(order_items[line.order_item_id].price) * line.quantity * ratio),
                    "reason": line.reason
                }
                for line in refund_data.items
            ]

            refund = self.repository.create(
                {
                    "refund_number": self._new_refund_number(),
                    "order_id": order.id,
                    "user_id": refund_data.user_id,
                    "type": refund_data.type.value,
                    "reason": refund_data.reason,
                    "status": RefundStatus.PENDING.value,
                    "refund_amount": money(sum((item["refund_amount"] for item in items), Decimal(0)))
                },
                items
            )
            self.audit.record(
                "refund.requested", "refunds", refund.id,
                user_id=refund_data.user_id,
                new_data={
                    "refund_number": refund.refund_number,
                    "order_id": order.id,
                    "refund_amount": str(refund.refund_amount)
                }
            )
            event = self._status_event(refund, None, RefundStatus.PENDING)

        logger.info("Refund %s requested for order %s", event["refund_number"], refund_data.order_id)
        self.event_publisher.publish_refund_status_changed(event)
        return RefundResponse.model_validate(refund)

    @retry_on_conflict
    def resolve(
        self,
        refund_id: int,
        new_status: RefundStatus,
        actor: Optional[int],
        refund_amount: Optional[Decimal] = None,
        admin_notes: Optional[str] = None
    ) -> RefundResponse:
        """
        Move a refund along its workflow

        Entering approved or completed credits the items back to stock once;
        voiding an approved refund takes that stock back. Stock of a
        cancelled order was already returned at cancellation and is not
        credited again. Resolving into the current status changes nothing.

        Raises:
            NotFoundError: unknown refund
            InvalidTransitionError: the edge is not in the graph
            InsufficientStockError: credited stock was sold before a void
            ValueError: refund_amount below zero or above the order total
        """
        new_status = RefundStatus(new_status)
        if refund_amount is not None:
            refund_amount = money(refund_amount)
            if refund_amount < 0:
                raise ValueError(f"Refund amount cannot be negative: {refund_amount}")
        self.monitor.reset()
        event = None
        with atomic(self.db):
            refund = self.repository.lock(refund_id)
            if not refund:
                raise NotFoundError("Refund", refund_id)

            current = RefundStatus(refund.status)
            if new_status is current:
                logger.info("Refund %s already %s", refund.refund_number, current.value)
            else:
                if new_status not in REFUND_TRANSITIONS[current]:
                    raise InvalidTransitionError("refund", current.value, new_status.value)

                order = self.orders.get_by_id(refund.order_id)
                if refund_amount is not None and refund_amount > order.total_amount:
                    raise ValueError(
                        f"Refund amount {refund_amount} exceeds order total {money(order.total_amount)}"
                    )

                self._move_stock(refund, order, current, new_status, actor)

                if refund_amount is not None:
                    refund.refund_amount = refund_amount
                if admin_notes is not None:
                    refund.admin_notes = admin_notes
                refund.status = new_status.value
                if new_status in RESOLVED_REFUND_STATUSES:
                    refund.processed_by = actor
                    refund.processed_at = utcnow()

                self.audit.record(
                    "refund.status_changed", "refunds", refund.id,
                    user_id=actor,
                    old_data={"status": current.value},
                    new_data={
                        "status": new_status.value,
                        "refund_amount": str(refund.refund_amount) if refund.refund_amount is not None else None
                    }
                )
                event = self._status_event(refund, current, new_status)

        if event:
            logger.info("Refund %s: %s -> %s", refund_id, event["old_status"], event["new_status"])
            self.event_publisher.publish_refund_status_changed(event)
        self.monitor.publish_triggered(self.event_publisher)
        return RefundResponse.model_validate(refund)

    def _move_stock(
        self, refund: Refund, order: Order, current: RefundStatus, new_status: RefundStatus, actor: Optional[int]
    ) -> None:
        if OrderStatus(order.order_status) is OrderStatus.CANCELLED:
            return

        items = sorted(
            refund.items,
            key=lambda i: StockTarget(i.order_item.product_id, i.order_item.variant_id).sort_key()
        )
        if new_status in RESTOCK_REFUND_STATUSES and current not in RESTOCKED_REFUND_STATUSES:
            for item in items:
                self.ledger.release(
                    StockTarget(item.order_item.product_id, item.order_item.variant_id),
                    item.quantity,
                    reason=f"Refund {refund.refund_number} {new_status.value}",
                    actor=actor
                )
        elif new_status in VOID_REFUND_STATUSES and current in RESTOCKED_REFUND_STATUSES:
            for item in items:
                self.ledger.reserve(
                    StockTarget(item.order_item.product_id, item.order_item.variant_id),
                    item.quantity,
                    reason=f"Refund {refund.refund_number} {new_status.value}",
                    actor=actor
                )

    def _new_refund_number(self) -> str:
        """RF-<epoch ms>-<3 digits>, unique among existing refunds"""
        while True:
            number = f"RF-{int(time.time() * 1000)}-{secrets.randbelow(1000):03d}"
            if not self.repository.exists_number(number):
                return number

    @staticmethod
    def _status_event(refund: Refund, old_status: Optional[RefundStatus], new_status: RefundStatus) -> dict:
        return {
            "refund_id": refund.id,
            "refund_number": refund.refund_number,
            "order_id": refund.order_id,
            "user_id": refund.user_id,
            "old_status": old_status.value if old_status else None,
            "new_status": new_status.value,
            "refund_amount": str(refund.refund_amount) if refund.refund_amount is not None else None
        }
