from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid

def _rid():
    return uuid.uuid4().hex

class SuccessResponse(BaseModel):
    """Simple success response wrapper with just data, success, and request_id"""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None

class ErrorDetail(BaseModel):
    code: str
    message: Any
    details: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Uniform error envelope returned for every failed request"""
    success: bool = False
    request_id: str = Field(default_factory=_rid)
    error: ErrorDetail
