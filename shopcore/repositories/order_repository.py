"""
Order Repository - Data Access Layer
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from shopcore.models.order import Order, OrderItem, OrderStatusHistory


class OrderRepository:
    """Repository for Order aggregate reads and writes (flush only, never commit)"""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, skip: int = 0, limit: int = 100) -> List[Order]:
        """Get all orders with pagination"""
        return self.db.query(Order).order_by(
            desc(Order.created_at), desc(Order.id)
        ).offset(skip).limit(limit).all()

    def get_by_id(self, order_id: int) -> Optional[Order]:
        """Get order by ID"""
        return self.db.query(Order).filter(Order.id == order_id).first()

    def lock(self, order_id: int) -> Optional[Order]:
        """Get order by ID holding a row lock until the transaction ends"""
        return (
            self.db.query(Order)
            .filter(Order.id == order_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_by_user(self, user_id: int, status: Optional[str] = None) -> List[Order]:
        """Get orders of a user, optionally by status"""
        query = self.db.query(Order).filter(Order.user_id == user_id)
        if status is not None:
            query = query.filter(Order.order_status == status)
        return query.order_by(desc(Order.created_at), desc(Order.id)).all()

    def get_item(self, order_item_id: int) -> Optional[OrderItem]:
        return self.db.query(OrderItem).filter(OrderItem.id == order_item_id).first()

    def create(self, order_data: dict, items: List[dict]) -> Order:
        """
        Create order with its items

        Args:
            order_data: Dictionary with order fields
            items: Dictionaries with order item fields

        Returns:
            Flushed order (id assigned)
        """
        order = Order(**order_data)
        order.items = [OrderItem(**item) for item in items]
        self.db.add(order)
        self.db.flush()
        return order

    def add_history(self, order: Order, status: str, updated_by: Optional[int], notes: Optional[str] = None) -> OrderStatusHistory:
        """Append one status history row"""
        entry = OrderStatusHistory(status=status, updated_by=updated_by, notes=notes)
        order.status_history.append(entry)
        self.db.flush()
        return entry

    def get_history(self, order_id: int) -> List[OrderStatusHistory]:
        """Status history oldest first"""
        return self.db.query(OrderStatusHistory).filter(
            OrderStatusHistory.order_id == order_id
        ).order_by(OrderStatusHistory.id).all()

    def count(self) -> int:
        """Get total count of orders"""
        return self.db.query(Order).count()
