"""
Services package
"""
from shopcore.services.audit import AuditLogWriter
from shopcore.services.coupon_guard import CouponGuard
from shopcore.services.inventory_ledger import InventoryLedger, StockTarget
from shopcore.services.order_service import OrderService
from shopcore.services.refund_service import RefundService
from shopcore.services.stock_alert_monitor import StockAlertMonitor

__all__ = [
    "AuditLogWriter",
    "CouponGuard",
    "InventoryLedger",
    "StockTarget",
    "OrderService",
    "RefundService",
    "StockAlertMonitor"
]
