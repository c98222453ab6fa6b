"""
SQLAlchemy StockHistory and StockAlert models
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import StockChangeType, check_in


class StockHistory(Base):
    """Immutable ledger entry for one stock mutation"""

    __tablename__ = "stock_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(check_in("type", StockChangeType), name='check_stock_change_type_valid'),
        CheckConstraint('quantity >= 0', name='check_stock_change_quantity'),
    )

    @property
    def signed_quantity(self) -> int:
        """Delta this entry applied to the snapshot"""
        return self.new_stock - self.previous_stock

    def __repr__(self):
        return (
            f"<StockHistory(id={self.id}, product_id={self.product_id}, variant_id={self.variant_id}, "
            f"type='{self.type}', {self.previous_stock} -> {self.new_stock})>"
        )


class StockAlert(Base):
    """Low-stock read model maintained by the stock alert monitor"""

    __tablename__ = "stock_alerts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True)
    threshold = Column(Integer, nullable=False, default=10)
    current_stock = Column(Integer, nullable=False)
    is_notified = Column(Boolean, nullable=False, default=False, index=True)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<StockAlert(product_id={self.product_id}, variant_id={self.variant_id}, "
            f"current_stock={self.current_stock}, is_notified={self.is_notified})>"
        )
