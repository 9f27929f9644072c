import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.admin_log import AdminLog
from app.models.base import Base
from app.models.property import Property, PropertyStatus, utcnow
from app.services.access import PropertyAccessControl, status_fields
from app.services.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTransitionError,
    PropertyNotFoundError,
    ValidationError,
)
from app.services.property_store import PropertyFilter, PropertyStore

DRAFT = {"title": "Beach house", "price": 180.0, "location": "Algarve", "bedrooms": 3}


async def _count(db_session, model):
    return (await db_session.execute(select(func.count()).select_from(model))).scalar_one()


async def _all_properties(db_session):
    return (await db_session.execute(select(Property).execution_options(populate_existing=True))).scalars().all()


@pytest.mark.asyncio
async def test_owner_creation_is_pending_and_hidden_from_public(access, callers):
    prop = await access.create(callers.owner_a, DRAFT)
    assert prop.status == "pending"
    assert prop.owner_id == 1
    assert prop.is_active is False and prop.is_visible is False
    assert prop.approved_at is None

    public = await access.list_for_public()
    assert public.total == 0
    mine = await access.list_for_caller(callers.owner_a)
    assert [p.id for p in mine.items] == [prop.id]
    theirs = await access.list_for_caller(callers.owner_b)
    assert theirs.items == []


@pytest.mark.asyncio
async def test_admin_creation_is_auto_approved_and_public(access, callers, db_session):
    prop = await access.create(callers.admin, DRAFT)
    assert prop.status == "approved"
    assert prop.is_active is True and prop.is_visible is True
    assert prop.approved_at is not None
    assert prop.reviewed_by == callers.admin.user_id

    public = await access.list_for_public()
    assert [p.id for p in public.items] == [prop.id]
    log = (await db_session.execute(select(AdminLog))).scalar_one()
    assert log.action == "property_auto_approved"
    assert log.entity_id == prop.id


@pytest.mark.asyncio
async def test_staff_creation_is_auto_approved(access, callers):
    prop = await access.create(callers.staff, DRAFT)
    assert prop.status == "approved"


@pytest.mark.asyncio
async def test_create_ignores_client_supplied_owner_and_status(access, callers):
    draft = dict(DRAFT, owner_id=2, status="approved", is_visible=True, approved_at=None)
    prop = await access.create(callers.owner_a, draft)
    assert prop.owner_id == 1
    assert prop.status == "pending"
    assert prop.is_visible is False


@pytest.mark.asyncio
async def test_anonymous_create_fails_without_writing(access, callers, db_session):
    with pytest.raises(AuthenticationError):
        await access.create(callers.anonymous, DRAFT)
    assert await _count(db_session, Property) == 0


@pytest.mark.asyncio
async def test_list_for_caller_requires_identity(access, callers):
    with pytest.raises(AuthenticationError):
        await access.list_for_caller(callers.anonymous)


@pytest.mark.asyncio
async def test_owner_cannot_widen_listing_with_owner_parameter(access, callers, seed):
    own = [await seed(1), await seed(1, PropertyStatus.APPROVED)]
    await seed(2)
    await seed(2, PropertyStatus.APPROVED)

    page = await access.list_for_caller(callers.owner_a, requested_owner_id=2)
    assert {p.id for p in page.items} == {p.id for p in own}
    assert all(p.owner_id == 1 for p in page.items)
    assert page.total == 2


@pytest.mark.asyncio
async def test_privileged_listing_returns_every_row(access, callers, seed, db_session):
    for owner_id, status in [(1, PropertyStatus.PENDING), (2, PropertyStatus.APPROVED), (3, PropertyStatus.REJECTED)]:
        await seed(owner_id, status)
    total_rows = await _count(db_session, Property)
    for caller in (callers.admin, callers.staff):
        page = await access.list_for_caller(caller)
        assert page.total == total_rows == len(page.items)


@pytest.mark.asyncio
async def test_privileged_listing_can_narrow_by_owner_and_status(access, callers, seed):
    await seed(1)
    target = await seed(2, PropertyStatus.APPROVED)
    await seed(2)
    page = await access.list_for_caller(callers.admin, requested_owner_id=2, status="approved")
    assert [p.id for p in page.items] == [target.id]


@pytest.mark.asyncio
async def test_list_for_caller_rejects_unknown_status(access, callers):
    with pytest.raises(ValidationError):
        await access.list_for_caller(callers.owner_a, status="archived")


@pytest.mark.asyncio
async def test_list_for_caller_is_newest_first(access, callers):
    first = await access.create(callers.owner_a, dict(DRAFT, title="first"))
    second = await access.create(callers.owner_a, dict(DRAFT, title="second"))
    third = await access.create(callers.owner_a, dict(DRAFT, title="third"))
    page = await access.list_for_caller(callers.owner_a)
    assert [p.id for p in page.items] == [third.id, second.id, first.id]

    limited = await access.list_for_caller(callers.owner_a, offset=1, limit=1)
    assert [p.id for p in limited.items] == [second.id]
    assert limited.total == 3


@pytest.mark.asyncio
async def test_public_listing_is_exactly_the_approved_set(access, seed):
    approved = await seed(1, PropertyStatus.APPROVED)
    featured_pending = await seed(1, PropertyStatus.PENDING, featured=True)
    rejected = await seed(2, PropertyStatus.REJECTED, featured=True)
    page = await access.list_for_public(PropertyFilter(featured=True, statuses=("pending", "rejected")))
    assert page.items == []

    page = await access.list_for_public(featured_first=True)
    ids = {p.id for p in page.items}
    assert ids == {approved.id}
    assert featured_pending.id not in ids and rejected.id not in ids


@pytest.mark.asyncio
async def test_public_listing_filters(access, seed):
    cheap = await seed(1, PropertyStatus.APPROVED, price=80.0, location="Porto", bedrooms=1)
    await seed(1, PropertyStatus.APPROVED, price=300.0, location="Porto", bedrooms=4)
    await seed(2, PropertyStatus.APPROVED, price=90.0, location="Faro", title="Sea view loft")

    page = await access.list_for_public(PropertyFilter(location="porto", max_price=100))
    assert [p.id for p in page.items] == [cheap.id]

    page = await access.list_for_public(PropertyFilter(search="SEA VIEW"))
    assert page.total == 1


@pytest.mark.asyncio
async def test_public_listing_zero_room_filters_narrow(access, seed):
    studio = await seed(1, PropertyStatus.APPROVED, bedrooms=0, bathrooms=1)
    await seed(1, PropertyStatus.APPROVED, bedrooms=3, bathrooms=2)
    shared_bath = await seed(2, PropertyStatus.APPROVED, bedrooms=2, bathrooms=0)

    page = await access.list_for_public(PropertyFilter(bedrooms=0))
    assert [p.id for p in page.items] == [studio.id]
    assert page.total == 1

    page = await access.list_for_public(PropertyFilter(bathrooms=0))
    assert [p.id for p in page.items] == [shared_bath.id]


@pytest.mark.asyncio
async def test_get_public_hides_unapproved(access, seed):
    rejected = await seed(1, PropertyStatus.REJECTED)
    pending = await seed(1)
    approved = await seed(1, PropertyStatus.APPROVED)
    for prop_id in (rejected.id, pending.id, 9999):
        with pytest.raises(PropertyNotFoundError):
            await access.get_public(prop_id)
    assert (await access.get_public(approved.id)).id == approved.id


@pytest.mark.asyncio
async def test_owner_probe_for_other_records_gets_one_answer(access, callers, seed):
    other = await seed(2)
    with pytest.raises(AuthorizationError) as existing:
        await access.get_for_caller(callers.owner_a, other.id)
    with pytest.raises(AuthorizationError) as missing:
        await access.get_for_caller(callers.owner_a, 9999)
    assert existing.value.message == missing.value.message


@pytest.mark.asyncio
async def test_admin_gets_not_found_for_missing_record(access, callers):
    with pytest.raises(PropertyNotFoundError):
        await access.get_for_caller(callers.admin, 9999)


@pytest.mark.asyncio
async def test_approve_sets_flags_and_notifies_owner(access, callers, seed, notifier, db_session):
    prop = await seed(1)
    approved = await access.transition(callers.admin, prop.id, "approved")
    assert approved.status == "approved"
    assert approved.is_active is True and approved.is_visible is True
    assert approved.approved_at is not None
    assert approved.reviewed_by == callers.admin.user_id

    public = await access.list_for_public()
    assert [p.id for p in public.items] == [prop.id]

    assert len(notifier.events) == 1
    event = notifier.events[0]
    assert (event.property_id, event.new_status, event.owner_id) == (prop.id, "approved", 1)

    log = (await db_session.execute(select(AdminLog))).scalar_one()
    assert log.action == "property_approved"
    assert log.admin_id == callers.admin.user_id


@pytest.mark.asyncio
async def test_staff_reject_records_reason(access, callers, seed):
    prop = await seed(1)
    rejected = await access.transition(callers.staff, prop.id, PropertyStatus.REJECTED, reason="Blurry photos")
    assert rejected.status == "rejected"
    assert rejected.is_active is False and rejected.is_visible is False
    assert rejected.approved_at is None
    assert rejected.rejection_reason == "Blurry photos"


@pytest.mark.asyncio
async def test_owner_cannot_review(access, callers, seed, notifier):
    prop = await seed(1)
    with pytest.raises(AuthorizationError):
        await access.transition(callers.owner_a, prop.id, "approved")
    with pytest.raises(AuthenticationError):
        await access.transition(callers.anonymous, prop.id, "approved")
    assert (await access.get_for_caller(callers.admin, prop.id)).status == "pending"
    assert notifier.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start,target",
    [
        (PropertyStatus.APPROVED, "pending"),
        (PropertyStatus.REJECTED, "approved"),
        (PropertyStatus.APPROVED, "rejected"),
        (PropertyStatus.PENDING, "pending"),
    ],
)
async def test_transitions_outside_single_review_pass_fail(access, callers, seed, start, target):
    prop = await seed(1, start)
    with pytest.raises(InvalidTransitionError) as exc:
        await access.transition(callers.admin, prop.id, target)
    assert exc.value.current == start.value
    assert exc.value.requested == target


@pytest.mark.asyncio
async def test_transition_unknown_status_and_missing_property(access, callers, seed):
    prop = await seed(1)
    with pytest.raises(ValidationError):
        await access.transition(callers.admin, prop.id, "archived")
    with pytest.raises(PropertyNotFoundError):
        await access.transition(callers.admin, 9999, "approved")


@pytest.mark.asyncio
async def test_second_review_loses_after_first_commits(access, callers, seed, notifier):
    prop = await seed(1)
    await access.transition(callers.admin, prop.id, "approved")
    with pytest.raises(InvalidTransitionError):
        await access.transition(callers.staff, prop.id, "rejected")
    assert (await access.get_public(prop.id)).status == "approved"
    assert [e.new_status for e in notifier.events] == ["approved"]


@pytest.mark.asyncio
async def test_reviewer_with_stale_read_loses_race(access, callers, seed, notifier, db_session, monkeypatch):
    prop = await seed(1)
    # The other reviewer approves between our read and our write.
    await access.transition(callers.admin, prop.id, "approved")

    stale = Property(id=prop.id, owner_id=1, status="pending")
    real_get = access.store.get
    calls = []

    async def stale_then_real(property_id):
        calls.append(property_id)
        if len(calls) == 1:
            return stale
        return await real_get(property_id)

    monkeypatch.setattr(access.store, "get", stale_then_real)
    with pytest.raises(InvalidTransitionError) as exc:
        await access.transition(callers.staff, prop.id, "rejected")
    assert exc.value.current == "approved"

    rows = await _all_properties(db_session)
    assert [(p.status, p.is_active, p.is_visible) for p in rows] == [("approved", True, True)]
    assert await _count(db_session, AdminLog) == 1
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_concurrent_reviews_only_one_lands(tmp_path, callers, notifier):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reviews.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)

    async with factory() as session:
        values = {"owner_id": 1, "title": "Race house", "price": 99.0, "location": "Lisbon"}
        values.update(status_fields(PropertyStatus.PENDING, utcnow()))
        prop = await PropertyStore(session).insert(values)
        await session.commit()

    async def review(caller, target):
        async with factory() as session:
            access = PropertyAccessControl(PropertyStore(session), notifier=notifier)
            try:
                return (await access.transition(caller, prop.id, target)).status
            except InvalidTransitionError:
                return "conflict"

    try:
        outcomes = await asyncio.gather(
            review(callers.admin, "approved"),
            review(callers.staff, "rejected"),
        )
        assert sorted(outcomes) in (["approved", "conflict"], ["conflict", "rejected"])
        winner = next(o for o in outcomes if o != "conflict")

        async with factory() as session:
            rows = (await session.execute(select(Property))).scalars().all()
            assert [(p.status, p.is_active, p.is_visible) for p in rows] == [
                (winner, winner == "approved", winner == "approved")
            ]
            assert await _count(session, AdminLog) == 1
        assert [e.new_status for e in notifier.events] == [winner]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_flags_always_match_status(access, callers, seed, db_session):
    a = await access.create(callers.owner_a, DRAFT)
    b = await access.create(callers.owner_b, DRAFT)
    await access.create(callers.admin, DRAFT)
    await access.transition(callers.admin, a.id, "approved")
    await access.transition(callers.staff, b.id, "rejected")
    await access.update(callers.owner_a, a.id, {"price": 99.0, "is_active": False, "status": "pending"})
    for p in await _all_properties(db_session):
        assert p.is_active == p.is_visible == (p.status == "approved")


@pytest.mark.asyncio
async def test_owner_edits_own_but_not_others(access, callers, seed):
    mine = await seed(1)
    theirs = await seed(2)
    updated = await access.update(callers.owner_a, mine.id, {"title": "Renovated", "owner_id": 2})
    assert updated.title == "Renovated"
    assert updated.owner_id == 1
    assert updated.status == "pending"
    with pytest.raises(AuthorizationError):
        await access.update(callers.owner_a, theirs.id, {"title": "Mine now"})


@pytest.mark.asyncio
async def test_staff_edit_of_someone_elses_listing_is_logged(access, callers, seed, db_session):
    prop = await seed(1)
    await access.update(callers.staff, prop.id, {"price": 150.0})
    log = (await db_session.execute(select(AdminLog))).scalar_one()
    assert log.action == "property_updated"
    assert log.details == {"fields": ["price"]}


@pytest.mark.asyncio
async def test_staff_cannot_delete_others_but_admin_can(access, callers, seed, db_session):
    prop = await seed(1)
    with pytest.raises(AuthorizationError):
        await access.delete(callers.staff, prop.id)
    await access.delete(callers.admin, prop.id)
    assert await _count(db_session, Property) == 0
    log = (await db_session.execute(select(AdminLog))).scalar_one()
    assert log.action == "property_deleted"


@pytest.mark.asyncio
async def test_owner_delete_rules(access, callers, seed, db_session):
    mine = await seed(1)
    theirs = await seed(2)
    with pytest.raises(AuthorizationError):
        await access.delete(callers.owner_a, theirs.id)
    with pytest.raises(AuthenticationError):
        await access.delete(callers.anonymous, mine.id)
    await access.delete(callers.owner_a, mine.id)
    remaining = await _all_properties(db_session)
    assert [p.id for p in remaining] == [theirs.id]


@pytest.mark.asyncio
async def test_review_queue_and_counts(access, callers, seed):
    older = await seed(1)
    newer = await seed(2)
    await seed(3, PropertyStatus.APPROVED)
    page = await access.list_pending_for_review(callers.staff)
    assert [p.id for p in page.items] == [older.id, newer.id]
    assert await access.status_counts(callers.admin) == {"pending": 2, "approved": 1, "rejected": 0}
    with pytest.raises(AuthorizationError):
        await access.list_pending_for_review(callers.owner_a)
    with pytest.raises(AuthorizationError):
        await access.list_all(callers.owner_a)
