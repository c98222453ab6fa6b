"""
SQLAlchemy Order, OrderItem and OrderStatusHistory models
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import OrderStatus, PaymentStatus, PaymentMethod, check_in


class Order(Base):
    """Order database model"""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    shipping_address = Column(Text, nullable=False)  # Snapshot at placement time
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id"
    )

    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='check_total_non_negative'),
        CheckConstraint(check_in("order_status", OrderStatus), name='check_order_status_valid'),
        CheckConstraint(check_in("payment_status", PaymentStatus), name='check_payment_status_valid'),
        CheckConstraint(check_in("payment_method", PaymentMethod), name='check_payment_method_valid'),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.order_status}')>"


class OrderItem(Base):
    """Order line; price is captured at order time and never edited"""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(String(255), nullable=False)  # Denormalized for history
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
    )

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"


class OrderStatusHistory(Base):
    """Append-only trail of order status transitions"""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_history")

    __table_args__ = (
        CheckConstraint(check_in("status", OrderStatus), name='check_history_status_valid'),
    )

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, status='{self.status}')>"
