"""Claims cache invalidation.

Each rule is a pure function of one committed entity event and answers
"whose cached claims does this change affect?" with either:

* a set of user ids,
* a ``Select`` of user ids, run after commit in a fresh session, or
* ``None`` when the change cannot affect anyone's claims.

Rules look at which properties changed, so e.g. renaming a Role evicts
nobody while flipping its ``all_permissions`` flag evicts all its users.
"""
from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Callable

from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from player.events import EntityCreated, EntityDeleted, EntityEvent, EntityUpdated, EventDispatcher
from player.models import (
    Permission,
    Role,
    RolePermission,
    Team,
    TeamMembership,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRole,
    TeamRolePermission,
    User,
    UserPermission,
    ViewMembership,
)
from player.services.claims_cache import ClaimsCache

logger = logging.getLogger(__name__)

Affected = set[uuid.UUID] | Select | None
InvalidationRule = Callable[[EntityEvent], Affected]


def _changed(evt: EntityEvent, prop: str) -> bool:
    return isinstance(evt, EntityUpdated) and prop in evt.modified_properties


# ---------------------------------------------------------------------------
# Affected-user queries
# ---------------------------------------------------------------------------


def users_with_role(role_id: uuid.UUID) -> Select:
    return select(User.id).where(User.role_id == role_id)


def members_of_team(team_id: uuid.UUID) -> Select:
    return select(TeamMembership.user_id).where(TeamMembership.team_id == team_id)


def members_with_team_role(role_id: uuid.UUID) -> Select:
    """Members overriding to *role_id* plus members of Teams that use it."""
    teams_with_role = select(Team.id).where(Team.role_id == role_id)
    return select(TeamMembership.user_id).where(
        or_(
            TeamMembership.role_id == role_id,
            TeamMembership.team_id.in_(teams_with_role),
        )
    )


def users_with_wildcard_role() -> Select:
    return (
        select(User.id)
        .join(Role, User.role_id == Role.id)
        .where(Role.all_permissions.is_(True))
    )


def members_with_wildcard_team_role() -> Select:
    """Members whose Team Role or override has all_permissions set."""
    wildcard_roles = select(TeamRole.id).where(TeamRole.all_permissions.is_(True))
    teams_with_wildcard = select(Team.id).where(Team.role_id.in_(wildcard_roles))
    return select(TeamMembership.user_id).where(
        or_(
            TeamMembership.role_id.in_(wildcard_roles),
            TeamMembership.team_id.in_(teams_with_wildcard),
        )
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def role_changed(evt: EntityEvent) -> Affected:
    if isinstance(evt, EntityDeleted) or _changed(evt, "all_permissions"):
        return users_with_role(evt.entity.id)
    return None


def role_permission_changed(evt: EntityEvent) -> Affected:
    return users_with_role(evt.entity.role_id)


def team_role_changed(evt: EntityEvent) -> Affected:
    if isinstance(evt, EntityDeleted) or _changed(evt, "all_permissions"):
        return members_with_team_role(evt.entity.id)
    return None


def team_role_permission_changed(evt: EntityEvent) -> Affected:
    return members_with_team_role(evt.entity.role_id)


def team_changed(evt: EntityEvent) -> Affected:
    if _changed(evt, "role_id"):
        return members_of_team(evt.entity.id)
    return None


def team_permission_assignment_changed(evt: EntityEvent) -> Affected:
    return members_of_team(evt.entity.team_id)


def team_membership_changed(evt: EntityEvent) -> Affected:
    return {evt.entity.user_id}


def user_changed(evt: EntityEvent) -> Affected:
    if isinstance(evt, EntityDeleted) or _changed(evt, "role_id"):
        return {evt.entity.id}
    return None


def user_permission_changed(evt: EntityEvent) -> Affected:
    return {evt.entity.user_id}


def view_membership_changed(evt: EntityEvent) -> Affected:
    if _changed(evt, "primary_team_membership_id"):
        return {evt.entity.user_id}
    return None


def catalog_entry_renamed(evt: EntityEvent) -> Affected:
    # claims carry names, so a rename reaches everyone who might hold it
    if _changed(evt, "name"):
        return select(User.id)
    return None


def permission_added_or_removed(evt: EntityEvent) -> Affected:
    # all_permissions Roles expand to the live catalog
    return users_with_wildcard_role()


def team_permission_added_or_removed(evt: EntityEvent) -> Affected:
    return members_with_wildcard_team_role()


_CREATE_DELETE = (EntityCreated, EntityDeleted)
_UPDATE_DELETE = (EntityUpdated, EntityDeleted)
_ALL = (EntityCreated, EntityUpdated, EntityDeleted)

INVALIDATION_RULES: list[tuple[tuple[type, ...], type, InvalidationRule]] = [
    (_UPDATE_DELETE, Role, role_changed),
    (_CREATE_DELETE, RolePermission, role_permission_changed),
    (_UPDATE_DELETE, TeamRole, team_role_changed),
    (_CREATE_DELETE, TeamRolePermission, team_role_permission_changed),
    ((EntityUpdated,), Team, team_changed),
    (_CREATE_DELETE, TeamPermissionAssignment, team_permission_assignment_changed),
    (_ALL, TeamMembership, team_membership_changed),
    (_UPDATE_DELETE, User, user_changed),
    (_CREATE_DELETE, UserPermission, user_permission_changed),
    ((EntityUpdated,), ViewMembership, view_membership_changed),
    ((EntityUpdated,), Permission, catalog_entry_renamed),
    ((EntityUpdated,), TeamPermission, catalog_entry_renamed),
    (_CREATE_DELETE, Permission, permission_added_or_removed),
    (_CREATE_DELETE, TeamPermission, team_permission_added_or_removed),
]


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class ClaimsCacheInvalidator:
    """Runs rules against committed events and evicts the affected users."""

    def __init__(self, cache: ClaimsCache, session_factory: async_sessionmaker) -> None:
        self.cache = cache
        self.session_factory = session_factory

    async def affected_users(self, affected: Affected) -> set[uuid.UUID]:
        if affected is None:
            return set()
        if isinstance(affected, Select):
            async with self.session_factory() as session:
                return set((await session.execute(affected)).scalars())
        return set(affected)

    async def handle(self, rule: InvalidationRule, evt: EntityEvent) -> None:
        user_ids = await self.affected_users(rule(evt))
        if user_ids:
            removed = self.cache.evict(user_ids)
            logger.debug(
                "%s<%s> invalidated %d user(s), %d cached",
                type(evt).__name__, type(evt.entity).__name__, len(user_ids), removed,
            )


def register_cache_invalidation(
    event_dispatcher: EventDispatcher,
    cache: ClaimsCache,
    session_factory: async_sessionmaker,
) -> ClaimsCacheInvalidator:
    invalidator = ClaimsCacheInvalidator(cache, session_factory)
    for event_types, entity_type, rule in INVALIDATION_RULES:
        for event_type in event_types:
            event_dispatcher.subscribe(
                event_type, entity_type, functools.partial(invalidator.handle, rule)
            )
    return invalidator
