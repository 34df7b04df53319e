"""Resolve a resource reference to the View (and Team) that scopes it.

Each ``ResourceKind`` maps to a query builder returning ``(view_id, team_id)``
for one id.  A kind without an entry is a programming error and raises
``NotImplementedError``; a resource that does not exist resolves to ``None``.
"""
from __future__ import annotations

import dataclasses
import enum
import uuid
from collections.abc import Callable

from sqlalchemy import Select, null, select
from sqlalchemy.ext.asyncio import AsyncSession

from player.models import (
    Application,
    ApplicationInstance,
    Team,
    TeamMembership,
    View,
    ViewMembership,
)


class ResourceKind(str, enum.Enum):
    VIEW = "View"
    TEAM = "Team"
    APPLICATION = "Application"
    APPLICATION_INSTANCE = "ApplicationInstance"
    TEAM_MEMBERSHIP = "TeamMembership"
    VIEW_MEMBERSHIP = "ViewMembership"


@dataclasses.dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: uuid.UUID


@dataclasses.dataclass(frozen=True)
class ResourceScope:
    view_id: uuid.UUID
    team_id: uuid.UUID | None = None


_NO_TEAM = null()


def _view_scope(resource_id: uuid.UUID) -> Select:
    return select(View.id, _NO_TEAM).where(View.id == resource_id)


def _team_scope(resource_id: uuid.UUID) -> Select:
    return select(Team.view_id, Team.id).where(Team.id == resource_id)


def _application_scope(resource_id: uuid.UUID) -> Select:
    return select(Application.view_id, _NO_TEAM).where(Application.id == resource_id)


def _application_instance_scope(resource_id: uuid.UUID) -> Select:
    return (
        select(Team.view_id, Team.id)
        .join(ApplicationInstance, ApplicationInstance.team_id == Team.id)
        .where(ApplicationInstance.id == resource_id)
    )


def _team_membership_scope(resource_id: uuid.UUID) -> Select:
    return (
        select(Team.view_id, Team.id)
        .join(TeamMembership, TeamMembership.team_id == Team.id)
        .where(TeamMembership.id == resource_id)
    )


def _view_membership_scope(resource_id: uuid.UUID) -> Select:
    return select(ViewMembership.view_id, _NO_TEAM).where(ViewMembership.id == resource_id)


SCOPE_QUERIES: dict[ResourceKind, Callable[[uuid.UUID], Select]] = {
    ResourceKind.VIEW: _view_scope,
    ResourceKind.TEAM: _team_scope,
    ResourceKind.APPLICATION: _application_scope,
    ResourceKind.APPLICATION_INSTANCE: _application_instance_scope,
    ResourceKind.TEAM_MEMBERSHIP: _team_membership_scope,
    ResourceKind.VIEW_MEMBERSHIP: _view_membership_scope,
}


async def resolve_scope(db: AsyncSession, resource: ResourceRef) -> ResourceScope | None:
    try:
        build_query = SCOPE_QUERIES[resource.kind]
    except KeyError:
        raise NotImplementedError(
            f"No scope resolver for resource kind {resource.kind!r}"
        ) from None

    row = (await db.execute(build_query(resource.id))).first()
    if row is None:
        return None
    view_id, team_id = row
    return ResourceScope(view_id=view_id, team_id=team_id)
