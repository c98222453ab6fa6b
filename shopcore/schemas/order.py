"""
Pydantic schemas for order placement and order state responses
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from shopcore.models.enums import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemCreate(BaseModel):
    """One requested line of a checkout"""
    product_id: int = Field(..., gt=0, description="Product ID")
    variant_id: Optional[int] = Field(None, gt=0, description="Variant ID")
    quantity: int = Field(..., gt=0, description="Quantity to order")


class OrderCreate(BaseModel):
    """Schema for placing a new order"""
    user_id: int = Field(..., gt=0, description="Owning user ID")
    items: List[OrderItemCreate] = Field(..., min_length=1, description="Order lines")
    shipping_address: str = Field(..., min_length=1, description="Shipping address snapshot")
    payment_method: PaymentMethod = Field(..., description="online or cod")
    coupon_code: Optional[str] = Field(None, min_length=1, max_length=50, description="Coupon code")
    notes: Optional[str] = Field(None, description="Customer notes")


class PaymentStatusUpdate(BaseModel):
    """Schema for the payment collaborator's status message"""
    order_id: int = Field(..., gt=0)
    status: PaymentStatus


class OrderItemResponse(BaseModel):
    """Schema for order item response"""
    id: int
    product_id: int
    variant_id: Optional[int]
    product_name: str
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderStatusHistoryResponse(BaseModel):
    """Schema for one status history row"""
    id: int
    status: OrderStatus
    notes: Optional[str]
    updated_by: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: int
    user_id: Optional[int]
    order_number: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_fee: Decimal
    total_amount: Decimal
    shipping_address: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    notes: Optional[str]
    cancelled_at: Optional[datetime]
    cancelled_by: Optional[int]
    cancellation_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []
    status_history: List[OrderStatusHistoryResponse] = []

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    """Schema for list of orders response"""
    orders: list[OrderResponse]
    total: int
