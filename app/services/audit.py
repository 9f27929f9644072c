from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.admin_log import AdminLog

PROPERTY_APPROVED = "property_approved"
PROPERTY_REJECTED = "property_rejected"
PROPERTY_AUTO_APPROVED = "property_auto_approved"
PROPERTY_UPDATED = "property_updated"
PROPERTY_DELETED = "property_deleted"

async def log_admin_action(session: AsyncSession, admin_id: int, action: str, entity_id: int | None = None, details: dict | None = None):
    """Queue an AdminLog row in the caller's transaction; never committed here."""
    stmt = insert(AdminLog).values(
        admin_id=admin_id, action=action, entity_id=entity_id, details=details or {}
    )
    await session.execute(stmt)
