"""
Stock Alert Monitor - low-stock read model driven by the inventory ledger
"""
import logging
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from shopcore.config import settings
from shopcore.models.inventory import StockAlert
from shopcore.repositories.inventory_repository import InventoryRepository
from shopcore.utils import utcnow

logger = logging.getLogger(__name__)


class StockAlertMonitor:
    """Keeps one StockAlert row per product/variant in step with its snapshot"""

    def __init__(self, db: Session, threshold: Optional[int] = None):
        self.repository = InventoryRepository(db)
        self.threshold = settings.STOCK_ALERT_THRESHOLD if threshold is None else threshold
        # Payloads of alerts that crossed into low stock during this unit of work
        self.triggered: List[Dict] = []

    def evaluate(self, product_id: int, variant_id: Optional[int], current_stock: int) -> StockAlert:
        """
        Re-evaluate the alert after a ledger mutation

        is_notified flips to True only on the crossing to at-or-below the
        threshold; further decrements leave notified_at untouched. Rising
        above the threshold clears the flag but keeps notified_at.
        """
        alert = self.repository.get_alert(product_id, variant_id)
        if alert is None:
            alert = self.repository.add_alert({
                "product_id": product_id,
                "variant_id": variant_id,
                "threshold": self.threshold,
                "current_stock": current_stock,
                "is_notified": False
            })

        alert.current_stock = current_stock
        low = current_stock <= alert.threshold

        if low and not alert.is_notified:
            alert.is_notified = True
            alert.notified_at = utcnow()
            self.triggered.append({
                "product_id": product_id,
                "variant_id": variant_id,
                "current_stock": current_stock,
                "threshold": alert.threshold
            })
            logger.info(
                "Low stock: product %s variant %s at %s (threshold %s)",
                product_id, variant_id, current_stock, alert.threshold
            )
        elif not low and alert.is_notified:
            alert.is_notified = False

        return alert

    def reset(self) -> None:
        self.triggered.clear()

    def publish_triggered(self, publisher) -> None:
        """Send StockLow events for alerts raised by a committed transaction"""
        for payload in self.triggered:
            publisher.publish_stock_low(payload)
        self.triggered.clear()
