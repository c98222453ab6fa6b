"""Tests for InventoryLedger."""

import pytest

from shopcore.errors import InsufficientStockError, NotFoundError
from shopcore.models.enums import StockChangeType
from shopcore.services.inventory_ledger import InventoryLedger, StockTarget
from shopcore.services.transaction import atomic


class TestInventoryLedger:
    """Tests for reserve, release and adjust."""

    def test_reserve_decrements_and_records_entry(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            entry = ledger.reserve(target, 3, reason="Order ORD-1")

        assert ledger.current_stock(target) == 7
        assert entry.type == StockChangeType.OUT.value
        assert entry.quantity == 3
        assert entry.previous_stock == 10
        assert entry.new_stock == 7
        assert entry.reason == "Order ORD-1"

    def test_reserve_more_than_available_raises(self, db, make_product):
        product = make_product(stock=2)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with pytest.raises(InsufficientStockError) as exc_info:
            with atomic(db):
                ledger.reserve(target, 5)

        assert exc_info.value.requested == 5
        assert exc_info.value.available == 2
        assert ledger.current_stock(target) == 2
        assert ledger.history(target) == []

    def test_release_increments(self, db, make_product):
        product = make_product(stock=0)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            entry = ledger.release(target, 4, reason="Order cancelled")

        assert ledger.current_stock(target) == 4
        assert entry.type == StockChangeType.IN.value

    def test_adjust_sets_absolute_value(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            entry = ledger.adjust(target, 6, reason="Stocktake")

        assert ledger.current_stock(target) == 6
        assert entry.type == StockChangeType.ADJUSTMENT.value
        assert entry.quantity == 4
        assert entry.signed_quantity == -4

    def test_adjust_to_same_count_is_recorded(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            entry = ledger.adjust(target, 10, reason="Stocktake confirmed")

        assert ledger.current_stock(target) == 10
        assert entry.type == StockChangeType.ADJUSTMENT.value
        assert entry.quantity == 0
        assert len(ledger.history(target)) == 1
        assert ledger.is_consistent(target)

    def test_adjust_negative_rejected(self, db, make_product):
        product = make_product(stock=10)

        with pytest.raises(ValueError):
            InventoryLedger(db).adjust(StockTarget(product.id), -1)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_rejected(self, db, make_product, quantity):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)

        with pytest.raises(ValueError):
            ledger.reserve(StockTarget(product.id), quantity)
        with pytest.raises(ValueError):
            ledger.release(StockTarget(product.id), quantity)

    def test_variant_stock_is_separate_from_product(self, db, make_product, make_variant):
        product = make_product(stock=10)
        variant = make_variant(product, stock=5)
        ledger = InventoryLedger(db)

        with atomic(db):
            ledger.reserve(StockTarget(product.id, variant.id), 2)

        assert ledger.current_stock(StockTarget(product.id, variant.id)) == 3
        assert ledger.current_stock(StockTarget(product.id)) == 10

    def test_variant_of_other_product_not_found(self, db, make_product, make_variant):
        product = make_product()
        other = make_product()
        variant = make_variant(other)

        with pytest.raises(NotFoundError):
            InventoryLedger(db).reserve(StockTarget(product.id, variant.id), 1)

    def test_unknown_product_not_found(self, db):
        with pytest.raises(NotFoundError):
            InventoryLedger(db).reserve(StockTarget(9999), 1)

    def test_ledger_matches_snapshot_after_mixed_operations(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            ledger.reserve(target, 3)
            ledger.release(target, 1)
            ledger.adjust(target, 15)
            ledger.reserve(target, 15)

        assert ledger.current_stock(target) == 0
        assert ledger.replay(target) == 0
        assert ledger.is_consistent(target)

    def test_history_filters_by_type_newest_first(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with atomic(db):
            ledger.reserve(target, 1)
            ledger.release(target, 2)
            ledger.reserve(target, 3)

        outs = ledger.history(target, change_type=StockChangeType.OUT)
        assert [entry.quantity for entry in outs] == [3, 1]
        assert len(ledger.history(target)) == 3

    def test_rollback_discards_snapshot_and_entry(self, db, make_product):
        product = make_product(stock=10)
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        with pytest.raises(InsufficientStockError):
            with atomic(db):
                ledger.reserve(target, 4)
                ledger.reserve(target, 7)

        assert ledger.current_stock(target) == 10
        assert ledger.history(target) == []
        assert ledger.is_consistent(target)


class TestStockTarget:

    def test_sort_key_orders_product_before_variants(self):
        targets = [StockTarget(2, 5), StockTarget(1), StockTarget(2), StockTarget(1, 3)]

        ordered = sorted(targets, key=StockTarget.sort_key)

        assert ordered == [StockTarget(1), StockTarget(1, 3), StockTarget(2), StockTarget(2, 5)]
