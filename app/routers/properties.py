from fastapi import APIRouter, Depends, Query, Response, status
from typing import List, Optional
from app.config import settings
from app.dependencies.access import get_access_control
from app.dependencies.auth import get_caller_context
from app.dependencies.rate_limit import write_limiter
from app.schemas.property import PropertyCreate, PropertyListResponse, PropertyResponse, PropertyUpdate
from app.services.access import CallerContext, PropertyAccessControl, PropertyPage
from app.services.property_store import PropertyFilter
from structlog import get_logger

logger = get_logger()
router = APIRouter(prefix="/api/v1/properties", tags=["properties"])

def _page(page: PropertyPage) -> dict:
    return {"total": page.total, "items": [PropertyResponse.model_validate(p) for p in page.items]}

@router.get("/public", response_model=PropertyListResponse)
async def get_all_properties_public(
    location: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    bedrooms: Optional[int] = None,
    bathrooms: Optional[int] = None,
    featured: bool = False,
    search: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    access: PropertyAccessControl = Depends(get_access_control),
):
    """
    Public list endpoint: approved properties only, with filtering and pagination.
    """
    query = PropertyFilter(
        location=location,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        featured=featured,
        search=search,
    )
    page = await access.list_for_public(query, offset=offset, limit=limit, featured_first=featured)
    logger.info("Fetched public properties", total_properties=page.total)
    return _page(page)

@router.get("/public/{property_id}", response_model=PropertyResponse)
async def get_property_public(property_id: int, access: PropertyAccessControl = Depends(get_access_control)):
    """
    Public endpoint for a single approved property; anything else is a 404.
    """
    prop = await access.get_public(property_id)
    logger.info("Fetched public property details", property_id=property_id)
    return PropertyResponse.model_validate(prop)

@router.get("", response_model=PropertyListResponse)
async def list_my_properties(
    status: Optional[str] = None,
    owner_id: Optional[int] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    page = await access.list_for_caller(caller, requested_owner_id=owner_id, status=status, offset=offset, limit=limit)
    logger.info("Fetched caller properties", caller_id=caller.user_id, role=caller.role.value, total=page.total)
    return _page(page)

# Kept for dashboard clients that put the owner in the path. The path id can
# only narrow an admin/staff listing; owners always get their own properties.
@router.get("/owner/{owner_id}", response_model=PropertyListResponse)
async def list_owner_properties(
    owner_id: int,
    status: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    page = await access.list_for_caller(caller, requested_owner_id=owner_id, status=status, offset=offset, limit=limit)
    logger.info("Fetched owner properties", caller_id=caller.user_id, requested_owner_id=owner_id, total=page.total)
    return _page(page)

@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(write_limiter)])
async def create_property(
    data: PropertyCreate,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    prop = await access.create(caller, data.model_dump())
    return PropertyResponse.model_validate(prop)

@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: int,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    prop = await access.get_for_caller(caller, property_id)
    return PropertyResponse.model_validate(prop)

@router.put("/{property_id}", response_model=PropertyResponse, dependencies=[Depends(write_limiter)])
async def update_property(
    property_id: int,
    data: PropertyUpdate,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    prop = await access.update(caller, property_id, data.model_dump(exclude_unset=True))
    return PropertyResponse.model_validate(prop)

@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: int,
    caller: CallerContext = Depends(get_caller_context),
    access: PropertyAccessControl = Depends(get_access_control),
):
    await access.delete(caller, property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
