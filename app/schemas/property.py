from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal
from datetime import datetime

PriceUnit = Literal["night", "week", "month"]

class PropertyCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    price: float = Field(gt=0)
    price_unit: PriceUnit = "night"
    location: str = Field(min_length=1, max_length=255)
    bedrooms: int = Field(default=1, ge=0)
    bathrooms: int = Field(default=1, ge=0)
    capacity: int = Field(default=1, ge=1)
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    featured: bool = False

class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    price_unit: Optional[PriceUnit] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=1)
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None
    featured: Optional[bool] = None

class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    status: str
    is_active: bool
    is_visible: bool
    approved_at: Optional[datetime] = None
    title: str
    description: str
    price: float
    price_unit: str
    location: str
    bedrooms: int
    bathrooms: int
    capacity: int
    amenities: List[str]
    images: List[str]
    featured: bool
    rating: float
    review_count: int
    created_at: datetime
    updated_at: datetime

class PropertyReviewResponse(PropertyResponse):
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    rejection_reason: Optional[str] = None

class PropertyListResponse(BaseModel):
    total: int
    items: List[PropertyResponse]
