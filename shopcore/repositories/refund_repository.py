"""
Refund Repository - Data Access Layer
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc, func

from shopcore.models.enums import VOID_REFUND_STATUSES
from shopcore.models.refund import Refund, RefundItem


class RefundRepository:
    """Repository for Refund aggregate reads and writes (flush only)"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, refund_id: int) -> Optional[Refund]:
        """Get refund by ID"""
        return self.db.query(Refund).filter(Refund.id == refund_id).first()

    def lock(self, refund_id: int) -> Optional[Refund]:
        """Get refund by ID holding a row lock"""
        return (
            self.db.query(Refund)
            .filter(Refund.id == refund_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_by_order(self, order_id: int) -> List[Refund]:
        return self.db.query(Refund).filter(
            Refund.order_id == order_id
        ).order_by(desc(Refund.created_at), desc(Refund.id)).all()

    def exists_number(self, refund_number: str) -> bool:
        return self.db.query(Refund.id).filter(Refund.refund_number == refund_number).first() is not None

    def refunded_quantity(self, order_item_id: int) -> int:
        """
        Quantity of an order item already claimed by refunds

        Items of rejected or cancelled refunds do not count.
        """
        total = self.db.query(func.coalesce(func.sum(RefundItem.quantity), 0)).join(
            Refund, RefundItem.refund_id == Refund.id
        ).filter(
            RefundItem.order_item_id == order_item_id,
            Refund.status.notin_([status.value for status in VOID_REFUND_STATUSES])
        ).scalar()
        return int(total or 0)

    def create(self, refund_data: dict, items: List[dict]) -> Refund:
        """Create refund with its items"""
        refund = Refund(**refund_data)
        refund.items = [RefundItem(**item) for item in items]
        self.db.add(refund)
        self.db.flush()
        return refund
