import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from workshop_inventory.models.requisition import RequisitionStatus


class RequisitionItemRequest(BaseModel):
    """Schema for a single line of a technician's parts cart."""
    product_id: uuid.UUID
    quantity: int = Field(1, gt=0)
    notes: Optional[str] = None


class RequisitionCreateRequest(BaseModel):
    """Schema for submitting a requisition cart against a job card."""
    job_card_id: uuid.UUID
    items: List[RequisitionItemRequest]


class RequisitionStatusUpdate(BaseModel):
    """Schema for approving or rejecting a requisition."""
    status: RequisitionStatus
    reason: Optional[str] = None


class RequisitionGroupResponse(BaseModel):
    group_id: uuid.UUID
    count: int


class RequisitionResponse(BaseModel):
    id: uuid.UUID
    job_card_id: uuid.UUID
    job_no: Optional[str] = None
    product_id: uuid.UUID
    product_name: Optional[str] = None
    staff_id: Optional[str] = None
    requisition_group_id: Optional[uuid.UUID] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    status: RequisitionStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, requisition, product=None, job_card=None) -> "RequisitionResponse":
        return cls(
            id=requisition.id,
            job_card_id=requisition.job_card_id,
            job_no=getattr(job_card, "service_number", None),
            product_id=requisition.product_id,
            product_name=getattr(product, "name", None),
            staff_id=requisition.staff_id,
            requisition_group_id=requisition.requisition_group_id,
            quantity=requisition.quantity,
            unit_price=requisition.unit_price,
            total_price=requisition.total_price,
            status=requisition.status,
            approved_by=requisition.approved_by,
            approved_at=requisition.approved_at,
            notes=requisition.notes,
            created_at=requisition.created_at,
        )
