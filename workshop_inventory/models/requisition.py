from enum import Enum
from tortoise import fields, models
import uuid


class RequisitionStatus(str, Enum):
    PENDING = "pending"   # Waiting for a service admin
    APPROVED = "approved" # Stock drawn from batches
    REJECTED = "rejected"
    RETURNED = "returned" # Approved parts put back on the shelf


class ServiceRequisition(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    job_card = fields.ForeignKeyField("models.JobCard", related_name="requisitions")
    product = fields.ForeignKeyField("models.Product", related_name="requisitions")
    staff_id = fields.CharField(max_length=64, null=True) # Requesting technician
    requisition_group_id = fields.UUIDField(null=True) # Items submitted together share a group
    quantity = fields.IntField()
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_price = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = fields.CharEnumField(RequisitionStatus, default=RequisitionStatus.PENDING)
    approved_by = fields.CharField(max_length=64, null=True)
    approved_at = fields.DatetimeField(null=True)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "service_requisitions"
        indexes = [
            ("job_card_id",),
            ("status",),
            ("staff_id",),
            ("requisition_group_id",),
        ]
