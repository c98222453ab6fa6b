"""
SQLAlchemy Refund and RefundItem models
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import RefundStatus, RefundType, check_in


class Refund(Base):
    """Refund / return / exchange request against one order"""

    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    refund_number = Column(String(50), unique=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=RefundStatus.PENDING.value, index=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "RefundItem", back_populates="refund", cascade="all, delete-orphan", order_by="RefundItem.id"
    )

    __table_args__ = (
        CheckConstraint(check_in("type", RefundType), name='check_refund_type_valid'),
        CheckConstraint(check_in("status", RefundStatus), name='check_refund_status_valid'),
        CheckConstraint('refund_amount >= 0', name='check_refund_amount_non_negative'),
    )

    def __repr__(self):
        return f"<Refund(id={self.id}, number='{self.refund_number}', status='{self.status}')>"


class RefundItem(Base):
    """Quantity of one order item covered by a refund"""

    __tablename__ = "refund_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    refund_id = Column(Integer, ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    refund_amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    refund = relationship("Refund", back_populates="items")
    order_item = relationship("OrderItem")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_refund_quantity_positive'),
        CheckConstraint('refund_amount >= 0', name='check_refund_item_amount_non_negative'),
    )

    def __repr__(self):
        return f"<RefundItem(refund_id={self.refund_id}, order_item_id={self.order_item_id}, quantity={self.quantity})>"
