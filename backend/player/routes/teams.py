"""Team routes --- Teams in a View, their members, memberships, primary team."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.exceptions import ForbiddenError
from player.middleware.auth import get_authorization_service
from player.models import Team, TeamMembership, ViewMembership
from player.rbac import SystemPermission, TeamPermission, ViewPermission
from player.services import memberships, teams
from player.services.authorization import AuthorizationService
from player.services.resource_resolver import ResourceKind, ResourceRef

router = APIRouter(prefix="/api", tags=["teams"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    name: str
    role_id: uuid.UUID | None = None


class TeamUpdate(BaseModel):
    name: str | None = None
    role_id: uuid.UUID | None = None


class TeamMembershipUpdate(BaseModel):
    role_id: uuid.UUID | None = None


def team_to_dict(t: Team) -> dict:
    return {
        "id": str(t.id),
        "view_id": str(t.view_id),
        "name": t.name,
        "role_id": str(t.role_id) if t.role_id else None,
    }


def team_membership_to_dict(m: TeamMembership) -> dict:
    return {
        "id": str(m.id),
        "team_id": str(m.team_id),
        "user_id": str(m.user_id),
        "view_membership_id": str(m.view_membership_id),
        "role_id": str(m.role_id) if m.role_id else None,
    }


def view_membership_to_dict(m: ViewMembership) -> dict:
    return {
        "id": str(m.id),
        "view_id": str(m.view_id),
        "user_id": str(m.user_id),
        "primary_team_membership_id": (
            str(m.primary_team_membership_id) if m.primary_team_membership_id else None
        ),
    }


async def _can_read_team(auth: AuthorizationService, team_id: uuid.UUID) -> None:
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermission.VIEW_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )


async def _can_manage_team(auth: AuthorizationService, team_id: uuid.UUID) -> None:
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )


# ---------------------------------------------------------------------------
# TEAMS
# ---------------------------------------------------------------------------


@router.get("/views/{view_id}/teams")
async def list_teams(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        resource=ResourceRef(ResourceKind.VIEW, view_id),
    )
    items = [team_to_dict(t) for t in await teams.list_teams(db, view_id)]
    return {"items": items, "total": len(items)}


@router.post("/views/{view_id}/teams", status_code=201)
async def create_team(
    view_id: uuid.UUID,
    body: TeamCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=ResourceRef(ResourceKind.VIEW, view_id),
    )
    team = await teams.create_team(db, view_id, body.name, body.role_id, actor_id=auth.user_id)
    return team_to_dict(team)


@router.get("/teams/{team_id}")
async def get_team(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_read_team(auth, team_id)
    return team_to_dict(await teams.get_team(db, team_id))


@router.put("/teams/{team_id}")
async def edit_team(
    team_id: uuid.UUID,
    body: TeamUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_manage_team(auth, team_id)
    changes = body.dict(exclude_unset=True)
    if "role_id" in changes:
        team = await teams.edit_team(
            db, team_id, body.name, role_id=changes["role_id"], actor_id=auth.user_id
        )
    else:
        team = await teams.edit_team(db, team_id, body.name, actor_id=auth.user_id)
    return team_to_dict(team)


@router.delete("/teams/{team_id}", status_code=204)
async def delete_team(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_manage_team(auth, team_id)
    await teams.delete_team(db, team_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# MEMBERS
# ---------------------------------------------------------------------------


@router.get("/teams/{team_id}/memberships")
async def list_team_memberships(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_read_team(auth, team_id)
    items = [
        team_membership_to_dict(m) for m in await memberships.list_team_memberships(db, team_id)
    ]
    return {"items": items, "total": len(items)}


@router.post("/teams/{team_id}/users/{user_id}", status_code=201)
async def add_user_to_team(
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        [TeamPermission.MANAGE_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    membership = await memberships.add_user_to_team(db, team_id, user_id, actor_id=auth.user_id)
    return team_membership_to_dict(membership)


@router.delete("/teams/{team_id}/users/{user_id}", status_code=204)
async def remove_user_from_team(
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        [TeamPermission.MANAGE_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    await memberships.remove_user_from_team(db, team_id, user_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/teams/{team_id}/users/{user_id}/primary")
async def set_primary_team(
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    if user_id != auth.user_id:
        raise ForbiddenError("You can only change your own Primary Team.")
    view_membership = await memberships.set_primary_team(db, user_id, team_id)
    return view_membership_to_dict(view_membership)


# ---------------------------------------------------------------------------
# MEMBERSHIPS
# ---------------------------------------------------------------------------


@router.put("/team-memberships/{membership_id}")
async def edit_team_membership(
    membership_id: uuid.UUID,
    body: TeamMembershipUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.MANAGE_VIEWS],
        [ViewPermission.MANAGE_VIEW],
        resource=ResourceRef(ResourceKind.TEAM_MEMBERSHIP, membership_id),
    )
    membership = await memberships.set_membership_role(
        db, membership_id, body.role_id, actor_id=auth.user_id
    )
    return team_membership_to_dict(membership)


@router.get("/views/{view_id}/memberships")
async def list_view_memberships(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        resource=ResourceRef(ResourceKind.VIEW, view_id),
    )
    items = [
        view_membership_to_dict(m) for m in await memberships.list_view_memberships(db, view_id)
    ]
    return {"items": items, "total": len(items)}


@router.get("/view-memberships/{membership_id}")
async def get_view_membership(
    membership_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    if not await auth.authorize(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        resource=ResourceRef(ResourceKind.VIEW_MEMBERSHIP, membership_id),
    ):
        # Members may read their own ViewMembership; anything else stays opaque.
        own = await memberships.find_own_view_membership(db, membership_id, auth.user_id)
        if own is None:
            raise ForbiddenError("You do not have access to this View Membership.")
        return view_membership_to_dict(own)
    membership = await memberships.get_view_membership(db, membership_id)
    return view_membership_to_dict(membership)
