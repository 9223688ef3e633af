import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from workshop_inventory.core.auth import CurrentUser, get_current_user
from workshop_inventory.core.errors import WorkshopError
from workshop_inventory.models.requisition import RequisitionStatus
from workshop_inventory.schemas.requisition import (
    RequisitionCreateRequest,
    RequisitionGroupResponse,
    RequisitionResponse,
    RequisitionStatusUpdate,
)
from workshop_inventory.schemas.response import SuccessResponse
from workshop_inventory.services.requisition_service import (
    create_requisitions,
    list_requisitions,
    return_requisition,
    update_requisition_status,
)

router = APIRouter()
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


@router.get("", response_model=SuccessResponse)
async def list_requisitions_endpoint(
    status_filter: Optional[RequisitionStatus] = Query(None, alias="status"),
    job_id: Optional[UUID] = Query(None, alias="jobId"),
    user: CurrentUser = Depends(get_current_user),
):
    """Admins get the dealer's requisitions (filterable), technicians their own."""
    requisitions = await list_requisitions(user, status=status_filter, job_card_id=job_id)
    data = [
        RequisitionResponse.from_model(r, product=r.product, job_card=r.job_card).model_dump(mode="json")
        for r in requisitions
    ]
    return SuccessResponse(data=data)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_requisitions_endpoint(payload: RequisitionCreateRequest, user: CurrentUser = Depends(get_current_user)):
    """
    Submits a technician's parts cart. All lines share one requisition group.
    """
    try:
        items = [
            {"product_id": item.product_id, "quantity": item.quantity, "notes": item.notes}
            for item in payload.items
        ]
        group_id, created = await create_requisitions(user, payload.job_card_id, items)
        log.info(f"Requisition group {group_id} submitted by {user.user_id}.")
        data = RequisitionGroupResponse(group_id=group_id, count=len(created)).model_dump(mode="json")
        return SuccessResponse(data=data)
    except WorkshopError as e:
        log.error(f"Error creating requisitions for job {payload.job_card_id}: {e.message}")
        raise


@router.patch("/{requisition_id}", response_model=SuccessResponse)
async def update_requisition_endpoint(
    requisition_id: UUID,
    payload: RequisitionStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
):
    """
    Approves or rejects a pending requisition. Approval draws the stock from
    the product's batches oldest-first in the same transaction.
    """
    try:
        requisition = await update_requisition_status(user, requisition_id, payload.status, payload.reason)
        data = RequisitionResponse.from_model(requisition).model_dump(mode="json")
        return SuccessResponse(data=data)
    except WorkshopError as e:
        log.error(f"Requisition {requisition_id} update rejected: {e.message}")
        raise


@router.post("/{requisition_id}/return", response_model=SuccessResponse)
async def return_requisition_endpoint(requisition_id: UUID, user: CurrentUser = Depends(get_current_user)):
    """Returns the parts of an approved requisition to the batches they came from."""
    try:
        requisition = await return_requisition(user, requisition_id)
        data = RequisitionResponse.from_model(requisition).model_dump(mode="json")
        return SuccessResponse(data=data)
    except WorkshopError as e:
        log.error(f"Requisition {requisition_id} return rejected: {e.message}")
        raise
