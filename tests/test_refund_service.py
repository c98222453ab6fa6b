"""Tests for RefundService."""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from shopcore.errors import (
    ConstraintViolationError,
    InvalidTransitionError,
    NotFoundError,
    OverRefundError,
    RefundNotAllowedError
)
from shopcore.models import Order, Refund
from shopcore.models.enums import OrderStatus, PaymentMethod, RefundStatus, RefundType, StockChangeType, UserRole
from shopcore.schemas.order import OrderCreate, OrderItemCreate
from shopcore.schemas.refund import RefundCreate, RefundItemCreate
from shopcore.services.inventory_ledger import InventoryLedger, StockTarget
from shopcore.services.order_service import OrderService
from shopcore.services.refund_service import RefundService
from shopcore.services.transaction import atomic
from shopcore.utils import utcnow


@pytest.fixture
def place(db, publisher):
    """Place an order and walk it to the requested status."""

    def _place(user, lines, status=OrderStatus.DELIVERED, coupon_code=None):
        orders = OrderService(db, publisher=publisher)
        order = orders.place_order(OrderCreate(
            user_id=user.id,
            items=[OrderItemCreate(**line) for line in lines],
            shipping_address="1 Main St",
            payment_method=PaymentMethod.ONLINE,
            coupon_code=coupon_code
        ))
        if status is OrderStatus.CANCELLED:
            return orders.cancel(order.id, user.id)
        path = [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPING, OrderStatus.DELIVERED]
        for step in path[:path.index(status) + 1] if status in path else []:
            order = orders.transition(order.id, step, None)
        return order

    return _place


@pytest.fixture
def service(db, publisher):
    return RefundService(db, publisher=publisher)


def refund_request(order, user, quantities, refund_type=RefundType.RETURN):
    return RefundCreate(
        order_id=order.id,
        user_id=user.id,
        type=refund_type,
        reason="Did not fit",
        items=[RefundItemCreate(order_item_id=item_id, quantity=qty) for item_id, qty in quantities]
    )


class TestRequestRefund:

    def test_request_creates_pending_refund(self, service, publisher, place, make_user, make_product):
        user = make_user()
        product = make_product(price="40.00", stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 3}])

        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))

        assert refund.status == RefundStatus.PENDING
        assert refund.refund_number.startswith("RF-")
        assert refund.refund_amount == Decimal("80.00")
        assert refund.items[0].refund_amount == Decimal("80.00")
        assert publisher.of_type("RefundStatusChanged")[-1]["new_status"] == "pending"

    def test_amount_is_net_of_order_discount(self, service, place, make_user, make_product, make_coupon):
        user = make_user()
        product = make_product(price="50.00", stock=10)
        make_coupon(code="TENOFF", discount_value="10")
        order = place(user, [{"product_id": product.id, "quantity": 2}], coupon_code="TENOFF")

        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

        assert refund.refund_amount == Decimal("45.00")

    def test_over_refund_rejected(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 5}])
        item_id = order.items[0].id
        first = service.request_refund(refund_request(order, user, [(item_id, 2)]))
        service.resolve(first.id, RefundStatus.APPROVED, None)

        with pytest.raises(OverRefundError) as exc_info:
            service.request_refund(refund_request(order, user, [(item_id, 5)]))

        assert exc_info.value.requested == 5
        assert exc_info.value.refundable == 3
        assert service.refundable_quantity(item_id) == 3
        assert InventoryLedger(db).current_stock(StockTarget(product.id)) == 7

    def test_duplicate_lines_are_summed(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 3}])
        item_id = order.items[0].id

        with pytest.raises(OverRefundError):
            service.request_refund(refund_request(order, user, [(item_id, 2), (item_id, 2)]))

    def test_rejected_refund_frees_quantity(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        item_id = order.items[0].id
        refund = service.request_refund(refund_request(order, user, [(item_id, 2)]))

        service.resolve(refund.id, RefundStatus.REJECTED, None)

        assert service.refundable_quantity(item_id) == 2

    def test_order_must_be_delivered_or_cancelled(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}], status=OrderStatus.SHIPPING)

        with pytest.raises(RefundNotAllowedError):
            service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

    def test_refund_window(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}])
        row = db.query(Order).filter(Order.id == order.id).one()
        row.created_at = utcnow() - timedelta(days=45)
        db.commit()

        with pytest.raises(RefundNotAllowedError, match="window"):
            service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

    def test_order_of_another_user_not_found(self, service, place, make_user, make_product):
        owner, stranger = make_user(), make_user()
        product = make_product(stock=10)
        order = place(owner, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(NotFoundError):
            service.request_refund(refund_request(order, stranger, [(order.items[0].id, 1)]))

    def test_item_outside_order_not_found(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}])
        other = place(user, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(NotFoundError):
            service.request_refund(refund_request(order, user, [(other.items[0].id, 1)]))


class TestResolve:

    def test_completed_twice_credits_stock_once(self, db, service, place, make_user, make_product):
        user = make_user()
        admin = make_user(role=UserRole.ADMIN)
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 4}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 3)]))

        for status in (RefundStatus.APPROVED, RefundStatus.PROCESSING, RefundStatus.COMPLETED, RefundStatus.COMPLETED):
            resolved = service.resolve(refund.id, status, admin.id)

        assert resolved.status == RefundStatus.COMPLETED
        assert resolved.processed_by == admin.id
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)
        assert ledger.current_stock(target) == 9
        assert len(ledger.history(target, change_type=StockChangeType.IN)) == 1
        assert ledger.is_consistent(target)

    def test_approve_sets_processed_and_override_amount(self, service, place, make_user, make_product):
        user = make_user()
        admin = make_user(role=UserRole.ADMIN)
        product = make_product(price="30.00", stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))

        approved = service.resolve(
            refund.id, RefundStatus.APPROVED, admin.id,
            refund_amount=Decimal("50"), admin_notes="Partial, item worn"
        )

        assert approved.refund_amount == Decimal("50.00")
        assert approved.admin_notes == "Partial, item worn"
        assert approved.processed_by == admin.id
        assert approved.processed_at is not None

    def test_void_after_approval_takes_stock_back(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))
        ledger = InventoryLedger(db)
        target = StockTarget(product.id)

        service.resolve(refund.id, RefundStatus.APPROVED, None)
        assert ledger.current_stock(target) == 10
        service.resolve(refund.id, RefundStatus.CANCELLED, None)

        assert ledger.current_stock(target) == 8
        assert ledger.is_consistent(target)

    def test_invalid_edge(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

        with pytest.raises(InvalidTransitionError):
            service.resolve(refund.id, RefundStatus.COMPLETED, None)

    def test_processing_cannot_be_rejected(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))
        service.resolve(refund.id, RefundStatus.APPROVED, None)
        service.resolve(refund.id, RefundStatus.PROCESSING, None)

        with pytest.raises(InvalidTransitionError):
            service.resolve(refund.id, RefundStatus.REJECTED, None)

    def test_cancelled_order_is_not_restocked_again(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}], status=OrderStatus.CANCELLED)
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)], RefundType.REFUND))

        service.resolve(refund.id, RefundStatus.APPROVED, None)

        assert InventoryLedger(db).current_stock(StockTarget(product.id)) == 10

    def test_unknown_refund(self, service):
        with pytest.raises(NotFoundError):
            service.resolve(12345, RefundStatus.APPROVED, None)

    def test_reads(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

        assert service.get_refund_by_id(refund.id).refund_number == refund.refund_number
        assert service.get_refund_by_id(999) is None
        assert [r.id for r in service.get_refunds_by_order(order.id)] == [refund.id]
        with pytest.raises(NotFoundError):
            service.refundable_quantity(999)


class TestRefundAmountOverride:

    def test_negative_amount_rejected(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(price="30.00", stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))

        with pytest.raises(ValueError, match="negative"):
            service.resolve(refund.id, RefundStatus.APPROVED, None, refund_amount=Decimal("-500"))

        stored = service.get_refund_by_id(refund.id)
        assert stored.status == RefundStatus.PENDING
        assert stored.refund_amount == Decimal("60.00")

    def test_amount_above_order_total_rejected(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(price="30.00", stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))

        with pytest.raises(ValueError, match="exceeds order total"):
            service.resolve(refund.id, RefundStatus.APPROVED, None, refund_amount=order.total_amount + Decimal("0.01"))

        assert service.get_refund_by_id(refund.id).status == RefundStatus.PENDING
        assert InventoryLedger(db).current_stock(StockTarget(product.id)) == 8

    def test_amount_equal_to_order_total_accepted(self, service, place, make_user, make_product):
        user = make_user()
        product = make_product(price="30.00", stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 2)]))

        approved = service.resolve(refund.id, RefundStatus.APPROVED, None, refund_amount=order.total_amount)

        assert approved.refund_amount == order.total_amount

    def test_store_rejects_negative_amount(self, db, service, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 1}])
        refund = service.request_refund(refund_request(order, user, [(order.items[0].id, 1)]))

        with pytest.raises(ConstraintViolationError):
            with atomic(db):
                row = db.query(Refund).filter(Refund.id == refund.id).one()
                row.refund_amount = Decimal("-1.00")
                db.flush()


class TestConcurrentRefunds:

    def run_concurrently(self, count, work):
        """Run work(index) on count threads released together; collect outcomes."""
        barrier = threading.Barrier(count)
        results = []

        def runner(index):
            barrier.wait()
            results.append(work(index))

        threads = [threading.Thread(target=runner, args=(index,)) for index in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def test_concurrent_approvals_credit_stock_once(self, db, session_factory, publisher, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 2}])
        refund_id = RefundService(db, publisher=publisher).request_refund(
            refund_request(order, user, [(order.items[0].id, 2)])
        ).id
        product_id = product.id
        db.close()

        def approve(index):
            session = session_factory()
            try:
                RefundService(session, publisher=publisher).resolve(refund_id, RefundStatus.APPROVED, None)
                return "ok"
            except Exception as e:
                return repr(e)
            finally:
                session.close()

        results = self.run_concurrently(4, approve)

        assert results == ["ok"] * 4
        ledger = InventoryLedger(db)
        target = StockTarget(product_id)
        assert ledger.current_stock(target) == 10
        assert len(ledger.history(target, change_type=StockChangeType.IN)) == 1
        assert ledger.is_consistent(target)
        assert len([e for e in publisher.of_type("RefundStatusChanged") if e["new_status"] == "approved"]) == 1

    def test_concurrent_requests_cannot_over_refund(self, db, session_factory, publisher, place, make_user, make_product):
        user = make_user()
        product = make_product(stock=10)
        order = place(user, [{"product_id": product.id, "quantity": 3}])
        request = refund_request(order, user, [(order.items[0].id, 2)])
        order_id = order.id
        item_id = order.items[0].id
        db.close()

        def ask(index):
            session = session_factory()
            try:
                RefundService(session, publisher=publisher).request_refund(request)
                return "ok"
            except OverRefundError:
                return "over"
            except Exception as e:
                return repr(e)
            finally:
                session.close()

        results = self.run_concurrently(3, ask)

        assert sorted(results) == ["ok", "over", "over"]
        service = RefundService(db, publisher=publisher)
        assert len(service.get_refunds_by_order(order_id)) == 1
        assert service.refundable_quantity(item_id) == 1
