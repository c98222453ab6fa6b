"""
SQLAlchemy Coupon and CouponUsage models
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, Text, ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import DiscountType, CouponScope, check_in


class Coupon(Base):
    """Coupon database model"""

    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_amount = Column(Numeric(10, 2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)  # None means unlimited
    used_count = Column(Integer, nullable=False, default=0)
    user_limit = Column(Integer, nullable=False, default=1)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    applicable_to = Column(String(20), nullable=False, default=CouponScope.ALL.value)
    category_id = Column(Integer, nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(check_in("discount_type", DiscountType), name='check_discount_type_valid'),
        CheckConstraint(check_in("applicable_to", CouponScope), name='check_coupon_scope_valid'),
        CheckConstraint('used_count >= 0', name='check_used_count_non_negative'),
    )

    def __repr__(self):
        return f"<Coupon(id={self.id}, code='{self.code}', used={self.used_count}/{self.usage_limit})>"


class CouponUsage(Base):
    """Permanent record that a coupon was applied to an order"""

    __tablename__ = "coupon_usage"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('coupon_id', 'user_id', 'order_id', name='uq_coupon_usage_coupon_user_order'),
    )

    def __repr__(self):
        return f"<CouponUsage(coupon_id={self.coupon_id}, user_id={self.user_id}, order_id={self.order_id})>"
