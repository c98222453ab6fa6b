"""
Inventory Repository - ledger entries and stock alerts
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from shopcore.models.inventory import StockHistory, StockAlert


class InventoryRepository:
    """Repository for StockHistory (append-only) and StockAlert rows"""

    def __init__(self, db: Session):
        self.db = db

    def add_entry(self, entry_data: dict) -> StockHistory:
        """Append a ledger entry; flushed, not committed"""
        entry = StockHistory(**entry_data)
        self.db.add(entry)
        self.db.flush()
        return entry

    def _filter_target(self, query, model, product_id: Optional[int], variant_id: Optional[int]):
        if variant_id is not None:
            return query.filter(model.variant_id == variant_id)
        return query.filter(model.product_id == product_id, model.variant_id.is_(None))

    def entries_for(self, product_id: int, variant_id: Optional[int] = None) -> List[StockHistory]:
        """All ledger entries of one target, oldest first"""
        query = self.db.query(StockHistory)
        query = self._filter_target(query, StockHistory, product_id, variant_id)
        return query.order_by(StockHistory.id).all()

    def search(
        self,
        product_id: Optional[int] = None,
        variant_id: Optional[int] = None,
        change_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[StockHistory]:
        """Ledger entries newest first, optionally filtered"""
        query = self.db.query(StockHistory)
        if product_id is not None:
            query = query.filter(StockHistory.product_id == product_id)
        if variant_id is not None:
            query = query.filter(StockHistory.variant_id == variant_id)
        if change_type is not None:
            query = query.filter(StockHistory.type == change_type)
        return query.order_by(desc(StockHistory.id)).offset(skip).limit(limit).all()

    def get_alert(self, product_id: int, variant_id: Optional[int] = None) -> Optional[StockAlert]:
        """Get the alert row for a product or variant"""
        query = self._filter_target(self.db.query(StockAlert), StockAlert, product_id, variant_id)
        return query.first()

    def add_alert(self, alert_data: dict) -> StockAlert:
        alert = StockAlert(**alert_data)
        self.db.add(alert)
        self.db.flush()
        return alert

    def get_alerts(self, is_notified: Optional[bool] = None, skip: int = 0, limit: int = 50) -> List[StockAlert]:
        """Alerts newest first, optionally by notified flag"""
        query = self.db.query(StockAlert)
        if is_notified is not None:
            query = query.filter(StockAlert.is_notified.is_(is_notified))
        return query.order_by(desc(StockAlert.updated_at), desc(StockAlert.id)).offset(skip).limit(limit).all()
