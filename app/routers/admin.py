from fastapi import APIRouter, Depends, Query
from typing import Optional
from app.config import settings
from app.dependencies.access import get_access_control
from app.dependencies.auth import get_caller_context
from app.schemas.admin import AdminPropertyListResponse, PropertyStatusCountsResponse, RejectRequest, StatusChangeRequest
from app.schemas.property import PropertyReviewResponse
from app.services.access import CallerContext, PropertyAccessControl, PropertyPage
from app.models.property import PropertyStatus
from structlog import get_logger

logger = get_logger()
router = APIRouter(prefix="/api/v1/admin/properties", tags=["admin"])

def _page(page: PropertyPage) -> dict:
    return {"total": page.total, "items": [PropertyReviewResponse.model_validate(p) for p in page.items]}

@router.get("", response_model=AdminPropertyListResponse)
async def list_properties(
    status: Optional[str] = None,
    owner_id: Optional[int] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    page = await access.list_all(caller, owner_id=owner_id, status=status, offset=offset, limit=limit)
    logger.info("Fetched properties", admin_id=caller.user_id, total=page.total)
    return _page(page)

@router.get("/pending", response_model=AdminPropertyListResponse)
async def list_pending_properties(
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    page = await access.list_pending_for_review(caller, offset=offset, limit=limit)
    logger.info("Fetched pending properties", admin_id=caller.user_id, total=page.total)
    return _page(page)

@router.get("/metrics", response_model=PropertyStatusCountsResponse)
async def properties_metrics(
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    counts = await access.status_counts(caller)
    logger.info("Fetched property metrics", admin_id=caller.user_id)
    return {"total_properties": sum(counts.values()), "properties_by_status": counts}

@router.post("/{property_id}/approve", response_model=PropertyReviewResponse)
async def approve_property_endpoint(
    property_id: int,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    prop = await access.transition(caller, property_id, PropertyStatus.APPROVED)
    logger.info("Approved property", property_id=property_id, admin_id=caller.user_id)
    return PropertyReviewResponse.model_validate(prop)

@router.post("/{property_id}/reject", response_model=PropertyReviewResponse)
async def reject_property_endpoint(
    property_id: int,
    data: Optional[RejectRequest] = None,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    reason = data.reason if data else None
    prop = await access.transition(caller, property_id, PropertyStatus.REJECTED, reason=reason)
    logger.info("Rejected property", property_id=property_id, admin_id=caller.user_id)
    return PropertyReviewResponse.model_validate(prop)

@router.patch("/{property_id}/status", response_model=PropertyReviewResponse)
async def change_property_status(
    property_id: int,
    data: StatusChangeRequest,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    prop = await access.transition(caller, property_id, data.status, reason=data.reason)
    logger.info("Changed property status", property_id=property_id, admin_id=caller.user_id, status=prop.status)
    return PropertyReviewResponse.model_validate(prop)
