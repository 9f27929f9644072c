"""Property access control.

Decides which slice of the properties table a caller may see and which
single-record operations they may perform, and owns the pending ->
approved/rejected review state machine.

Callers fall into four capability classes (see ``Role``). The allow/deny
rules for reading, editing and deleting a single record live in one table,
``PERMISSIONS``; listing uses the READ row of the same table to build its
query filter. Identity always comes from the ``CallerContext`` produced by
the authentication layer, never from request parameters.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable

from structlog import get_logger

from app.models.property import Property, PropertyStatus, utcnow
from app.services import audit
from app.services.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTransitionError,
    PropertyNotFoundError,
    ValidationError,
)
from app.services.notifications import Notifier, NullNotifier, PropertyStatusEvent
from app.services.property_store import (
    FEATURED_FIRST,
    NEWEST_FIRST,
    OLDEST_FIRST,
    RECENTLY_APPROVED_FIRST,
    PropertyFilter,
    PropertyStore,
)

logger = get_logger()


class Role(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    OWNER = "user"
    ANONYMOUS = "anonymous"

    @property
    def is_privileged(self) -> bool:
        return self in (Role.ADMIN, Role.STAFF)


# "owner" and "user" are both used for listing owners; they get the same rights.
_ROLE_NAMES = {
    "admin": Role.ADMIN,
    "staff": Role.STAFF,
    "user": Role.OWNER,
    "owner": Role.OWNER,
    "anonymous": Role.ANONYMOUS,
}


class Action(str, enum.Enum):
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"


class Scope(enum.Enum):
    ANY = "any"
    OWN = "own"
    APPROVED = "approved"
    NONE = "none"


PERMISSIONS: dict[Role, dict[Action, Scope]] = {
    Role.ADMIN: {Action.READ: Scope.ANY, Action.EDIT: Scope.ANY, Action.DELETE: Scope.ANY},
    Role.STAFF: {Action.READ: Scope.ANY, Action.EDIT: Scope.ANY, Action.DELETE: Scope.OWN},
    Role.OWNER: {Action.READ: Scope.OWN, Action.EDIT: Scope.OWN, Action.DELETE: Scope.OWN},
    Role.ANONYMOUS: {Action.READ: Scope.APPROVED, Action.EDIT: Scope.NONE, Action.DELETE: Scope.NONE},
}

# Single review pass: nothing leaves approved or rejected.
TRANSITIONS: dict[PropertyStatus, frozenset[PropertyStatus]] = {
    PropertyStatus.PENDING: frozenset({PropertyStatus.APPROVED, PropertyStatus.REJECTED}),
}

EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "price",
    "price_unit",
    "location",
    "bedrooms",
    "bathrooms",
    "capacity",
    "amenities",
    "images",
    "featured",
})


@dataclass(frozen=True)
class CallerContext:
    user_id: int | None
    role: Role

    @classmethod
    def anonymous(cls) -> CallerContext:
        return cls(user_id=None, role=Role.ANONYMOUS)

    @classmethod
    def from_claims(cls, user_id: Any, role: Any) -> CallerContext:
        """Build a context from the identity claims of a verified request."""
        role_name = str(role or "").strip().lower()
        if user_id is None or (isinstance(user_id, str) and not user_id.strip()):
            if role_name in ("", Role.ANONYMOUS.value):
                return cls.anonymous()
            raise AuthenticationError()
        if role_name not in _ROLE_NAMES:
            raise ValidationError("Unknown role")
        parsed_role = _ROLE_NAMES[role_name]
        if parsed_role is Role.ANONYMOUS:
            return cls.anonymous()
        return cls(user_id=_parse_user_id(user_id), role=parsed_role)

    @property
    def is_authenticated(self) -> bool:
        return self.role is not Role.ANONYMOUS and self.user_id is not None


def _parse_user_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("Invalid user id")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise ValidationError("Invalid user id")
    if parsed <= 0:
        raise ValidationError("Invalid user id")
    return parsed


def parse_status(value: PropertyStatus | str) -> PropertyStatus:
    try:
        return PropertyStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown property status '{value}'") from None


def status_fields(status: PropertyStatus, now: datetime) -> dict[str, Any]:
    """Status plus the flags derived from it, always written together."""
    approved = status is PropertyStatus.APPROVED
    return {
        "status": status.value,
        "is_active": approved,
        "is_visible": approved,
        "approved_at": now if approved else None,
    }


def is_permitted(caller: CallerContext, action: Action, prop: Property) -> bool:
    scope = PERMISSIONS[caller.role][action]
    if scope is Scope.ANY:
        return True
    if scope is Scope.OWN:
        return caller.user_id is not None and prop.owner_id == caller.user_id
    if scope is Scope.APPROVED:
        return prop.status == PropertyStatus.APPROVED.value
    return False


def visibility_filter(caller: CallerContext) -> PropertyFilter:
    """Filter selecting exactly the rows the caller may read."""
    scope = PERMISSIONS[caller.role][Action.READ]
    if scope is Scope.ANY:
        return PropertyFilter()
    if scope is Scope.OWN:
        return PropertyFilter(owner_id=caller.user_id)
    if scope is Scope.APPROVED:
        return PropertyFilter(statuses=(PropertyStatus.APPROVED.value,))
    # Matches nothing.
    return PropertyFilter(statuses=())


@dataclass
class PropertyPage:
    total: int
    items: list[Property] = field(default_factory=list)


class PropertyAccessControl:
    """Role-scoped reads and writes over properties.

    One instance per request; it shares the request's session through
    ``store`` and commits each write operation as one transaction.
    """

    def __init__(
        self,
        store: PropertyStore,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.clock = clock

    # -- single-record decisions -------------------------------------------

    def can_read(self, caller: CallerContext, prop: Property) -> bool:
        return is_permitted(caller, Action.READ, prop)

    def can_edit(self, caller: CallerContext, prop: Property) -> bool:
        return is_permitted(caller, Action.EDIT, prop)

    def can_delete(self, caller: CallerContext, prop: Property) -> bool:
        return is_permitted(caller, Action.DELETE, prop)

    # -- listing -------------------------------------------------------------

    async def list_for_public(
        self,
        filter: PropertyFilter | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
        featured_first: bool = False,
    ) -> PropertyPage:
        """Approved properties only; filters can narrow but never widen."""
        scoped = replace(filter or PropertyFilter(), owner_id=None, statuses=(PropertyStatus.APPROVED.value,))
        order_by = FEATURED_FIRST if featured_first else RECENTLY_APPROVED_FIRST
        items = await self.store.find(scoped, offset=offset, limit=limit, order_by=order_by)
        total = await self.store.count(scoped)
        return PropertyPage(total=total, items=items)

    async def list_for_caller(
        self,
        caller: CallerContext,
        *,
        requested_owner_id: int | None = None,
        status: PropertyStatus | str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> PropertyPage:
        """Properties visible to an authenticated caller, newest first.

        Admin and staff may narrow by ``requested_owner_id``. For owners the
        scope is always their own id and ``requested_owner_id`` is ignored.
        """
        self._require_identity(caller)
        scoped = visibility_filter(caller)
        if requested_owner_id is not None:
            if caller.role.is_privileged:
                scoped = replace(scoped, owner_id=requested_owner_id)
            elif requested_owner_id != caller.user_id:
                logger.warning(
                    "Ignoring requested owner id",
                    caller_id=caller.user_id,
                    role=caller.role.value,
                    requested_owner_id=requested_owner_id,
                )
        if status is not None:
            scoped = replace(scoped, statuses=(parse_status(status).value,))
        items = await self.store.find(scoped, offset=offset, limit=limit, order_by=NEWEST_FIRST)
        total = await self.store.count(scoped)
        return PropertyPage(total=total, items=items)

    async def list_all(
        self,
        caller: CallerContext,
        *,
        owner_id: int | None = None,
        status: PropertyStatus | str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> PropertyPage:
        """Admin/staff listing; refuses owners instead of scoping them."""
        self._require_privileged(caller, "list_all")
        return await self.list_for_caller(
            caller, requested_owner_id=owner_id, status=status, offset=offset, limit=limit
        )

    async def list_pending_for_review(
        self, caller: CallerContext, *, offset: int = 0, limit: int | None = None
    ) -> PropertyPage:
        """Review queue, oldest submission first."""
        self._require_privileged(caller, "list_pending")
        scoped = PropertyFilter(statuses=(PropertyStatus.PENDING.value,))
        items = await self.store.find(scoped, offset=offset, limit=limit, order_by=OLDEST_FIRST)
        total = await self.store.count(scoped)
        return PropertyPage(total=total, items=items)

    async def status_counts(self, caller: CallerContext) -> dict[str, int]:
        self._require_privileged(caller, "status_counts")
        counts = await self.store.count_by_status()
        return {s.value: counts.get(s.value, 0) for s in PropertyStatus}

    # -- single-record reads -------------------------------------------------

    async def get_public(self, property_id: int) -> Property:
        return await self._load_for(CallerContext.anonymous(), Action.READ, property_id)

    async def get_for_caller(self, caller: CallerContext, property_id: int) -> Property:
        return await self._load_for(caller, Action.READ, property_id)

    # -- writes --------------------------------------------------------------

    async def create(self, caller: CallerContext, draft: dict[str, Any]) -> Property:
        self._require_identity(caller)
        values = self._editable(caller, draft)
        initial = PropertyStatus.APPROVED if caller.role.is_privileged else PropertyStatus.PENDING
        now = self.clock()
        values.update(status_fields(initial, now))
        values["owner_id"] = caller.user_id
        if initial is PropertyStatus.APPROVED:
            values["reviewed_at"] = now
            values["reviewed_by"] = caller.user_id

        prop = await self.store.insert(values)
        if initial is PropertyStatus.APPROVED:
            await audit.log_admin_action(
                self.store.session, caller.user_id, audit.PROPERTY_AUTO_APPROVED, prop.id, {"role": caller.role.value}
            )
        await self.store.commit()
        logger.info("Created property", property_id=prop.id, owner_id=caller.user_id, status=initial.value)
        return prop

    async def update(self, caller: CallerContext, property_id: int, changes: dict[str, Any]) -> Property:
        self._require_identity(caller)
        prop = await self._load_for(caller, Action.EDIT, property_id)
        patch = self._editable(caller, changes)
        if not patch:
            return prop
        if not await self.store.update(property_id, patch):
            raise PropertyNotFoundError()
        if caller.role.is_privileged and prop.owner_id != caller.user_id:
            await audit.log_admin_action(
                self.store.session, caller.user_id, audit.PROPERTY_UPDATED, property_id, {"fields": sorted(patch)}
            )
        await self.store.commit()
        logger.info("Updated property", property_id=property_id, caller_id=caller.user_id, fields=sorted(patch))
        return await self.store.get(property_id)

    async def delete(self, caller: CallerContext, property_id: int) -> None:
        self._require_identity(caller)
        prop = await self._load_for(caller, Action.DELETE, property_id)
        if not await self.store.delete(property_id):
            raise PropertyNotFoundError()
        if caller.role.is_privileged and prop.owner_id != caller.user_id:
            await audit.log_admin_action(
                self.store.session, caller.user_id, audit.PROPERTY_DELETED, property_id, {"title": prop.title}
            )
        await self.store.commit()
        logger.info("Deleted property", property_id=property_id, caller_id=caller.user_id)

    async def transition(
        self,
        caller: CallerContext,
        property_id: int,
        target: PropertyStatus | str,
        reason: str | None = None,
    ) -> Property:
        """Move a pending property to approved or rejected.

        The status check is repeated inside the UPDATE, so when two reviewers
        race only one write lands and the other gets InvalidTransitionError.
        """
        self._require_privileged(caller, "transition")
        target = parse_status(target)
        prop = await self.store.get(property_id)
        if prop is None:
            raise PropertyNotFoundError()
        current = PropertyStatus(prop.status)
        if target not in TRANSITIONS.get(current, frozenset()):
            raise InvalidTransitionError(current.value, target.value)

        now = self.clock()
        patch = status_fields(target, now)
        patch.update(
            reviewed_at=now,
            reviewed_by=caller.user_id,
            rejection_reason=reason if target is PropertyStatus.REJECTED else None,
        )
        if not await self.store.update(property_id, patch, expected_status=current.value):
            await self.store.rollback()
            latest = await self.store.get(property_id)
            if latest is None:
                raise PropertyNotFoundError()
            logger.warning(
                "Lost property review race",
                property_id=property_id,
                admin_id=caller.user_id,
                current=latest.status,
                requested=target.value,
            )
            raise InvalidTransitionError(latest.status, target.value)

        action = audit.PROPERTY_APPROVED if target is PropertyStatus.APPROVED else audit.PROPERTY_REJECTED
        details = {"from": current.value, "to": target.value}
        if reason and target is PropertyStatus.REJECTED:
            details["reason"] = reason
        await audit.log_admin_action(self.store.session, caller.user_id, action, property_id, details)
        await self.store.commit()

        updated = await self.store.get(property_id)
        logger.info(
            "Reviewed property",
            property_id=property_id,
            admin_id=caller.user_id,
            status=target.value,
        )
        await self.notifier.publish(
            PropertyStatusEvent(property_id=property_id, new_status=target.value, owner_id=updated.owner_id)
        )
        return updated

    # -- helpers -------------------------------------------------------------

    def _require_identity(self, caller: CallerContext) -> None:
        if not caller.is_authenticated:
            raise AuthenticationError()

    def _require_privileged(self, caller: CallerContext, operation: str) -> None:
        self._require_identity(caller)
        if not caller.role.is_privileged:
            logger.warning("Privileged operation denied", operation=operation, caller_id=caller.user_id, role=caller.role.value)
            raise AuthorizationError()

    def _editable(self, caller: CallerContext, payload: dict[str, Any]) -> dict[str, Any]:
        ignored = sorted(k for k in payload if k not in EDITABLE_FIELDS)
        if ignored:
            logger.warning("Ignoring protected property fields", caller_id=caller.user_id, fields=ignored)
        return {k: v for k, v in payload.items() if k in EDITABLE_FIELDS}

    async def _load_for(self, caller: CallerContext, action: Action, property_id: int) -> Property:
        prop = await self.store.get(property_id)
        if prop is not None and is_permitted(caller, action, prop):
            return prop
        if prop is not None:
            logger.warning(
                "Property access denied",
                property_id=property_id,
                caller_id=caller.user_id,
                role=caller.role.value,
                action=action.value,
            )
        # Non-privileged callers get the same answer whether or not the row exists.
        if caller.role is Role.ANONYMOUS:
            raise PropertyNotFoundError()
        if prop is None and caller.role.is_privileged:
            raise PropertyNotFoundError()
        raise AuthorizationError()
