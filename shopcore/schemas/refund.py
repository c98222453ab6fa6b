"""
Pydantic schemas for refund requests and resolutions
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from shopcore.models.enums import RefundStatus, RefundType


class RefundItemCreate(BaseModel):
    """One order item covered by a refund request"""
    order_item_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0, description="Quantity to refund")
    reason: Optional[str] = None


class RefundCreate(BaseModel):
    """Schema for requesting a refund, return or exchange"""
    order_id: int = Field(..., gt=0)
    user_id: int = Field(..., gt=0)
    type: RefundType
    reason: str = Field(..., min_length=1)
    items: List[RefundItemCreate] = Field(..., min_length=1)


class RefundItemResponse(BaseModel):
    id: int
    order_item_id: int
    quantity: int
    refund_amount: Decimal
    reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class RefundResponse(BaseModel):
    """Schema for refund response"""
    id: int
    refund_number: str
    order_id: int
    user_id: int
    type: RefundType
    reason: str
    status: RefundStatus
    refund_amount: Optional[Decimal]
    admin_notes: Optional[str]
    processed_by: Optional[int]
    processed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    items: List[RefundItemResponse] = []

    model_config = ConfigDict(from_attributes=True)
