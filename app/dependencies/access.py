from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_session
from app.services.access import PropertyAccessControl
from app.services.notifications import Notifier, get_notifier
from app.services.property_store import PropertyStore

def get_access_control(
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
) -> PropertyAccessControl:
    return PropertyAccessControl(PropertyStore(session), notifier=notifier)
