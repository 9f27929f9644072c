from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.property import Property

NEWEST_FIRST = (Property.created_at.desc(), Property.id.desc())
OLDEST_FIRST = (Property.created_at.asc(), Property.id.asc())
RECENTLY_APPROVED_FIRST = (Property.approved_at.desc(), Property.created_at.desc(), Property.id.desc())
FEATURED_FIRST = (Property.featured.desc(), *RECENTLY_APPROVED_FIRST)


@dataclass(frozen=True)
class PropertyFilter:
    """Conjunction of optional predicates over the properties table."""
    owner_id: int | None = None
    statuses: tuple[str, ...] | None = None
    search: str | None = None
    location: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    featured: bool | None = None

    def clauses(self) -> list[Any]:
        clauses: list[Any] = []
        if self.owner_id is not None:
            clauses.append(Property.owner_id == self.owner_id)
        if self.statuses is not None:
            clauses.append(Property.status.in_(self.statuses))
        if self.search:
            pattern = f"%{self.search}%"
            clauses.append(or_(
                Property.title.ilike(pattern),
                Property.description.ilike(pattern),
                Property.location.ilike(pattern),
            ))
        if self.location:
            clauses.append(Property.location.ilike(f"%{self.location}%"))
        if self.min_price is not None:
            clauses.append(Property.price >= self.min_price)
        if self.max_price is not None:
            clauses.append(Property.price <= self.max_price)
        if self.bedrooms is not None:
            clauses.append(Property.bedrooms == self.bedrooms)
        if self.bathrooms is not None:
            clauses.append(Property.bathrooms == self.bathrooms)
        if self.featured:
            clauses.append(Property.featured.is_(True))
        return clauses


class PropertyStore:
    """Persistence for the properties table over a single AsyncSession.

    Writes are flushed but not committed; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(
        self,
        filter: PropertyFilter,
        *,
        offset: int = 0,
        limit: int | None = None,
        order_by: Sequence[Any] = NEWEST_FIRST,
    ) -> list[Property]:
        stmt = select(Property).where(*filter.clauses()).order_by(*order_by).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, filter: PropertyFilter) -> int:
        stmt = select(func.count()).select_from(Property).where(*filter.clauses())
        return (await self.session.execute(stmt)).scalar_one()

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(Property.status, func.count()).group_by(Property.status)
        rows = (await self.session.execute(stmt)).all()
        return {status: total for status, total in rows}

    async def get(self, property_id: int) -> Property | None:
        # populate_existing so a row changed by a bulk UPDATE is not served stale
        stmt = select(Property).where(Property.id == property_id).execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def insert(self, values: dict[str, Any]) -> Property:
        prop = Property(**values)
        self.session.add(prop)
        await self.session.flush()
        return prop

    async def update(self, property_id: int, patch: dict[str, Any], *, expected_status: str | None = None) -> bool:
        """Apply patch in one UPDATE statement.

        With expected_status the row only changes if it is still in that
        status, so two racing writers cannot both succeed.
        """
        stmt = update(Property).where(Property.id == property_id)
        if expected_status is not None:
            stmt = stmt.where(Property.status == expected_status)
        stmt = stmt.values(**patch).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, property_id: int) -> bool:
        stmt = delete(Property).where(Property.id == property_id).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
