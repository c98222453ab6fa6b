"""
Coupon Repository - Data Access Layer
"""
from typing import Optional
from sqlalchemy.orm import Session

from shopcore.models.coupon import Coupon, CouponUsage


class CouponRepository:
    """Repository for coupons and their usage records"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str, lock: bool = False) -> Optional[Coupon]:
        """Get coupon by code (codes are stored upper-case)"""
        query = self.db.query(Coupon).filter(Coupon.code == code.upper())
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def lock(self, coupon_id: int) -> Optional[Coupon]:
        """Get coupon by ID holding a row lock"""
        return (
            self.db.query(Coupon)
            .filter(Coupon.id == coupon_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_usage(self, coupon_id: int, user_id: int, order_id: int) -> Optional[CouponUsage]:
        return self.db.query(CouponUsage).filter(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
            CouponUsage.order_id == order_id
        ).first()

    def count_user_usage(self, coupon_id: int, user_id: int) -> int:
        """How many orders this user has applied the coupon to"""
        return self.db.query(CouponUsage).filter(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id
        ).count()

    def add_usage(self, usage_data: dict) -> CouponUsage:
        """Insert usage record; flushed, not committed"""
        usage = CouponUsage(**usage_data)
        self.db.add(usage)
        self.db.flush()
        return usage
