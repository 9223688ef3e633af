import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from workshop_inventory.models.adjustment import AdjustmentStatus


class StockAdjustRequest(BaseModel):
    """Schema for a manual stock correction on a product total."""
    product_id: uuid.UUID
    quantity: int = Field(..., description="Units to add or remove; the sign is taken from type.")
    type: Literal["in", "out"] = Field(..., description="'in' adds stock, 'out' removes it.")
    reason: Optional[str] = None


class ProductStockResponse(BaseModel):
    id: uuid.UUID
    name: str
    stock_quantity: int
    stock_status: str


class MovementResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: Optional[str] = None
    batch_id: Optional[uuid.UUID] = None
    movement_type: str
    quantity_before: int
    quantity_change: int
    quantity_after: int
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: Optional[datetime] = None


class BatchResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    batch_number: Optional[str] = None
    received_date: datetime
    initial_quantity: int
    current_quantity: int
    sold_quantity: int
    unit_cost_price: Decimal
    status: str


class AdjustmentItemRequest(BaseModel):
    product_id: uuid.UUID
    batch_id: Optional[uuid.UUID] = None
    actual_quantity: int = Field(..., ge=0, description="Physically counted quantity.")
    reason: Optional[str] = None


class AdjustmentCreateRequest(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None
    items: List[AdjustmentItemRequest]


class AdjustmentDecisionRequest(BaseModel):
    adjustment_id: uuid.UUID
    status: AdjustmentStatus
    reason: Optional[str] = None


class AdjustmentItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: Optional[str] = None
    batch_id: Optional[uuid.UUID] = None
    system_quantity: int
    actual_quantity: int
    difference: int
    reason: Optional[str] = None


class AdjustmentResponse(BaseModel):
    id: uuid.UUID
    adjustment_number: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: str
    total_items: int
    performed_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[AdjustmentItemResponse] = []
