"""
Inventory Ledger - the only writer of stock snapshots

Every mutation locks the snapshot row, changes it and appends one
stock_history entry in the same flush. Methods join the caller's
transaction; committing is the caller's job.
"""
import logging
from typing import List, NamedTuple, Optional
from sqlalchemy.orm import Session

from shopcore.errors import InsufficientStockError, NotFoundError
from shopcore.models.enums import StockChangeType
from shopcore.models.inventory import StockHistory, StockAlert
from shopcore.repositories.inventory_repository import InventoryRepository
from shopcore.repositories.product_repository import ProductRepository
from shopcore.services.stock_alert_monitor import StockAlertMonitor

logger = logging.getLogger(__name__)


class StockTarget(NamedTuple):
    """A product, or one variant of it when variant_id is set"""
    product_id: int
    variant_id: Optional[int] = None

    def sort_key(self):
        return (self.product_id, self.variant_id or 0)


class InventoryLedger:
    """Reserve, release and adjust stock with a matching ledger entry"""

    def __init__(self, db: Session, monitor: Optional[StockAlertMonitor] = None):
        self.db = db
        self.products = ProductRepository(db)
        self.repository = InventoryRepository(db)
        self.monitor = monitor or StockAlertMonitor(db)

    def _lock(self, target: StockTarget):
        """Lock and return the row holding the target's snapshot"""
        if target.variant_id is not None:
            variant = self.products.lock_variant(target.variant_id)
            if not variant or variant.product_id != target.product_id:
                raise NotFoundError("ProductVariant", target.variant_id)
            return variant

        product = self.products.lock_product(target.product_id)
        if not product:
            raise NotFoundError("Product", target.product_id)
        return product

    def _record(
        self,
        target: StockTarget,
        row,
        change_type: StockChangeType,
        new_stock: int,
        reason: Optional[str],
        actor: Optional[int]
    ) -> StockHistory:
        previous_stock = row.stock_quantity
        row.stock_quantity = new_stock
        entry = self.repository.add_entry({
            "product_id": target.product_id,
            "variant_id": target.variant_id,
            "type": change_type.value,
            "quantity": abs(new_stock - previous_stock),
            "previous_stock": previous_stock,
            "new_stock": new_stock,
            "reason": reason,
            "created_by": actor
        })
        self.monitor.evaluate(target.product_id, target.variant_id, new_stock)
        logger.debug(
            "Stock %s for %s: %s -> %s (%s)",
            change_type.value, target, previous_stock, new_stock, reason
        )
        return entry

    def reserve(self, target: StockTarget, quantity: int, reason: Optional[str] = None, actor: Optional[int] = None) -> StockHistory:
        """
        Decrement stock for an order

        Raises:
            InsufficientStockError: quantity exceeds the current snapshot
            NotFoundError: unknown product or variant
        """
        _require_positive(quantity)
        row = self._lock(target)
        if quantity > row.stock_quantity:
            raise InsufficientStockError(target.product_id, target.variant_id, quantity, row.stock_quantity)
        return self._record(target, row, StockChangeType.OUT, row.stock_quantity - quantity, reason, actor)

    def release(self, target: StockTarget, quantity: int, reason: Optional[str] = None, actor: Optional[int] = None) -> StockHistory:
        """Return stock (cancellation, approved refund); never rejected for quantity"""
        _require_positive(quantity)
        row = self._lock(target)
        return self._record(target, row, StockChangeType.IN, row.stock_quantity + quantity, reason, actor)

    def adjust(self, target: StockTarget, new_quantity: int, reason: Optional[str] = None, actor: Optional[int] = None) -> StockHistory:
        """
        Set the snapshot to an absolute count (stocktake correction)

        A stocktake that confirms the current count is still recorded, as an
        adjustment entry with quantity 0.
        """
        if new_quantity < 0:
            raise ValueError(f"Stock cannot be negative: {new_quantity}")
        row = self._lock(target)
        return self._record(target, row, StockChangeType.ADJUSTMENT, new_quantity, reason, actor)

    # Queries for reporting collaborators

    def current_stock(self, target: StockTarget) -> int:
        if target.variant_id is not None:
            variant = self.products.get_variant(target.variant_id)
            if not variant or variant.product_id != target.product_id:
                raise NotFoundError("ProductVariant", target.variant_id)
            return variant.stock_quantity
        product = self.products.get_by_id(target.product_id)
        if not product:
            raise NotFoundError("Product", target.product_id)
        return product.stock_quantity

    def history(
        self,
        target: Optional[StockTarget] = None,
        change_type: Optional[StockChangeType] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[StockHistory]:
        """Ledger entries newest first"""
        return self.repository.search(
            product_id=target.product_id if target else None,
            variant_id=target.variant_id if target else None,
            change_type=change_type.value if change_type else None,
            skip=skip,
            limit=limit
        )

    def replay(self, target: StockTarget) -> int:
        """Stock implied by the ledger alone"""
        entries = self.repository.entries_for(target.product_id, target.variant_id)
        if not entries:
            return self.current_stock(target)
        return entries[0].previous_stock + sum(entry.signed_quantity for entry in entries)

    def is_consistent(self, target: StockTarget) -> bool:
        """Snapshot matches the ledger and the ledger has no gaps"""
        entries = self.repository.entries_for(target.product_id, target.variant_id)
        for before, after in zip(entries, entries[1:]):
            if after.previous_stock != before.new_stock:
                return False
        return self.replay(target) == self.current_stock(target)

    def alerts(self, is_notified: Optional[bool] = None, skip: int = 0, limit: int = 50) -> List[StockAlert]:
        return self.repository.get_alerts(is_notified=is_notified, skip=skip, limit=limit)


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValueError(f"Quantity must be positive: {quantity}")
