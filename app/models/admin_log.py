from sqlalchemy import Column, Integer, String, JSON, DateTime
from app.models.base import Base
from datetime import datetime, timezone

class AdminLog(Base):
    """Append-only trail of privileged actions on properties."""
    __tablename__ = "AdminLogs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_id = Column(Integer, nullable=False, index=True)
    action = Column(String(255), nullable=False, index=True)
    entity_id = Column(Integer)
    details = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
