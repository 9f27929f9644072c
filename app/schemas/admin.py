from pydantic import BaseModel, Field
from typing import List, Optional
from app.schemas.property import PropertyReviewResponse

class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)

class StatusChangeRequest(BaseModel):
    status: str = Field(min_length=1, max_length=20)
    reason: Optional[str] = Field(default=None, max_length=2000)

class AdminPropertyListResponse(BaseModel):
    total: int
    items: List[PropertyReviewResponse]

class PropertyStatusCountsResponse(BaseModel):
    total_properties: int
    properties_by_status: dict[str, int]
