"""
Coupon Usage Guard - applicability checks and permanent usage records
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopcore.errors import (
    AlreadyUsedError,
    CouponNotApplicableError,
    LimitExceededError,
    NotFoundError
)
from shopcore.models.coupon import Coupon, CouponUsage
from shopcore.models.enums import CouponScope, DiscountType
from shopcore.repositories.coupon_repository import CouponRepository
from shopcore.utils import as_utc, money, utcnow

logger = logging.getLogger(__name__)


class CouponGuard:
    """
    Enforces coupon rules inside the caller's transaction

    Usage records are only ever inserted. Cancelling an order does not free
    its usage.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = CouponRepository(db)

    def get_by_code(self, code: str, lock: bool = False) -> Coupon:
        coupon = self.repository.get_by_code(code, lock=lock)
        if not coupon:
            raise NotFoundError("Coupon", code.upper())
        return coupon

    def quote(
        self,
        coupon: Coupon,
        user_id: int,
        order_amount: Decimal,
        product_ids: Iterable[int] = (),
        category_ids: Iterable[Optional[int]] = ()
    ) -> Decimal:
        """
        Check the coupon can be used on this basket and compute the discount

        Raises:
            CouponNotApplicableError: inactive, outside its dates, below the
                minimum amount or out of scope
            LimitExceededError: total or per-user usage exhausted
        """
        now = utcnow()
        if not coupon.is_active:
            raise CouponNotApplicableError(coupon.code, "coupon is disabled")
        if now < as_utc(coupon.start_date):
            raise CouponNotApplicableError(coupon.code, "coupon is not active yet")
        if now > as_utc(coupon.end_date):
            raise CouponNotApplicableError(coupon.code, "coupon has expired")

        self._check_limits(coupon, user_id)

        if order_amount < coupon.min_order_amount:
            raise CouponNotApplicableError(
                coupon.code, f"order amount below minimum {money(coupon.min_order_amount)}"
            )

        scope = CouponScope(coupon.applicable_to)
        if scope is CouponScope.CATEGORY and coupon.category_id not in set(category_ids):
            raise CouponNotApplicableError(coupon.code, "not applicable to these categories")
        if scope is CouponScope.PRODUCT and coupon.product_id not in set(product_ids):
            raise CouponNotApplicableError(coupon.code, "not applicable to these products")

        if DiscountType(coupon.discount_type) is DiscountType.PERCENTAGE:
            discount = order_amount * Decimal(coupon.discount_value) / Decimal(100)
            if coupon.max_discount_amount is not None and discount > coupon.max_discount_amount:
                discount = Decimal(coupon.max_discount_amount)
        else:
            discount = Decimal(coupon.discount_value)

        return money(min(discount, order_amount))

    def apply(self, coupon_id: int, user_id: int, order_id: int, discount_amount: Decimal) -> CouponUsage:
        """
        Record that the coupon was applied to the order

        The coupon row is locked so concurrent applications see each
        other's used_count.

        Raises:
            AlreadyUsedError: this (coupon, user, order) already has a usage
            LimitExceededError: total or per-user usage exhausted
        """
        coupon = self.repository.lock(coupon_id)
        if not coupon:
            raise NotFoundError("Coupon", coupon_id)

        if self.repository.get_usage(coupon_id, user_id, order_id):
            raise AlreadyUsedError(coupon.code, order_id)
        self._check_limits(coupon, user_id)

        try:
            with self.db.begin_nested():
                usage = self.repository.add_usage({
                    "coupon_id": coupon_id,
                    "user_id": user_id,
                    "order_id": order_id,
                    "discount_amount": money(discount_amount)
                })
        except IntegrityError as e:
            # Unique constraint caught a concurrent duplicate
            raise AlreadyUsedError(coupon.code, order_id) from e

        coupon.used_count = coupon.used_count + 1
        self.db.flush()
        logger.info("Coupon %s applied to order %s by user %s", coupon.code, order_id, user_id)
        return usage

    def _check_limits(self, coupon: Coupon, user_id: int) -> None:
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise LimitExceededError(coupon.code, "usage limit reached")
        if self.repository.count_user_usage(coupon.id, user_id) >= coupon.user_limit:
            raise LimitExceededError(coupon.code, "per-user limit reached")
