"""
Models package
"""
from shopcore.models.user import User
from shopcore.models.product import Product, ProductVariant
from shopcore.models.order import Order, OrderItem, OrderStatusHistory
from shopcore.models.inventory import StockHistory, StockAlert
from shopcore.models.coupon import Coupon, CouponUsage
from shopcore.models.refund import Refund, RefundItem
from shopcore.models.audit import AuditLog
from shopcore.models.support import (
    Review,
    Notification,
    Faq,
    SupportTicket,
    TicketMessage,
    WishlistItem,
    DailyStatistics
)

__all__ = [
    "User",
    "Product",
    "ProductVariant",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "StockHistory",
    "StockAlert",
    "Coupon",
    "CouponUsage",
    "Refund",
    "RefundItem",
    "AuditLog",
    "Review",
    "Notification",
    "Faq",
    "SupportTicket",
    "TicketMessage",
    "WishlistItem",
    "DailyStatistics"
]
