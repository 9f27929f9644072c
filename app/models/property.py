from sqlalchemy import Column, Integer, String, Text, Float, Boolean, JSON, DateTime, Index, CheckConstraint
from app.models.base import Base
from datetime import datetime, timezone
import enum

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class PropertyStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_properties_status"),
        # Flags are a cache of status and must agree with it
        CheckConstraint(
            "is_active = (status = 'approved') AND is_visible = (status = 'approved')",
            name="ck_properties_visibility_matches_status",
        ),
        Index("idx_properties_owner_created", "owner_id", "created_at"),
        Index("idx_properties_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False)

    # Review state. is_active/is_visible mirror status == approved and are
    # only ever written together with it.
    status = Column(String(20), nullable=False, default=PropertyStatus.PENDING.value)
    is_active = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Integer, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    price_unit = Column(String(20), nullable=False, default="night")
    location = Column(String(255), nullable=False)
    bedrooms = Column(Integer, nullable=False, default=1)
    bathrooms = Column(Integer, nullable=False, default=1)
    capacity = Column(Integer, nullable=False, default=1)
    amenities = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)
    featured = Column(Boolean, nullable=False, default=False)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
