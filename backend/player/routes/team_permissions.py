"""Team permission routes --- catalog, Team Role grants, Team assignments, my team permissions."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.middleware.auth import get_authorization_service, require_system_permission
from player.models import TeamPermission
from player.rbac import SystemPermission, TeamPermission as TeamPermissionName, ViewPermission
from player.services import catalog, grants
from player.services.authorization import AuthorizationService
from player.services.resource_resolver import ResourceKind, ResourceRef

router = APIRouter(prefix="/api", tags=["team-permissions"])

manage_roles = require_system_permission(SystemPermission.MANAGE_ROLES)


class TeamPermissionCreate(BaseModel):
    name: str
    description: str | None = None


class TeamPermissionUpdate(BaseModel):
    name: str | None = None
    description: str | None = None


def team_permission_to_dict(p: TeamPermission) -> dict:
    return {
        "id": str(p.id),
        "name": p.name,
        "description": p.description,
        "immutable": p.immutable,
    }


async def _can_view_catalog(auth: AuthorizationService) -> None:
    await auth.require(
        [SystemPermission.VIEW_ROLES, SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermissionName.MANAGE_TEAM],
    )


async def _can_assign_to_team(auth: AuthorizationService, team_id: uuid.UUID) -> None:
    await auth.require(
        [SystemPermission.MANAGE_ROLES],
        [ViewPermission.MANAGE_VIEW],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )


# ---------------------------------------------------------------------------
# CATALOG
# ---------------------------------------------------------------------------


@router.get("/team-permissions")
async def list_team_permissions(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    items = [team_permission_to_dict(p) for p in await catalog.list_team_permissions(db)]
    return {"items": items, "total": len(items)}


@router.get("/team-permissions/{permission_id}")
async def get_team_permission(
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    return team_permission_to_dict(await catalog.get_team_permission(db, permission_id))


@router.post("/team-permissions", status_code=201)
async def create_team_permission(
    body: TeamPermissionCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    permission = await catalog.create_team_permission(
        db, body.name, body.description, actor_id=auth.user_id
    )
    return team_permission_to_dict(permission)


@router.put("/team-permissions/{permission_id}")
async def edit_team_permission(
    permission_id: uuid.UUID,
    body: TeamPermissionUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    permission = await catalog.edit_team_permission(
        db, permission_id, body.name, body.description, actor_id=auth.user_id
    )
    return team_permission_to_dict(permission)


@router.delete("/team-permissions/{permission_id}", status_code=204)
async def delete_team_permission(
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await catalog.delete_team_permission(db, permission_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# TEAM ROLE GRANTS
# ---------------------------------------------------------------------------


@router.get("/team-roles/{role_id}/permissions")
async def list_team_role_permissions(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    items = [
        team_permission_to_dict(p) for p in await grants.get_team_role_permissions(db, role_id)
    ]
    return {"items": items, "total": len(items)}


@router.post("/team-roles/{role_id}/permissions/{permission_id}", status_code=201)
async def add_team_permission_to_team_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    grant = await grants.add_team_permission_to_team_role(
        db, role_id, permission_id, actor_id=auth.user_id
    )
    return {"id": str(grant.id), "role_id": str(role_id), "permission_id": str(permission_id)}


@router.delete("/team-roles/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_team_permission_from_team_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await grants.remove_team_permission_from_team_role(
        db, role_id, permission_id, actor_id=auth.user_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# TEAM ASSIGNMENTS
# ---------------------------------------------------------------------------


@router.get("/teams/{team_id}/permissions")
async def list_team_assigned_permissions(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermissionName.VIEW_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    items = [
        team_permission_to_dict(p) for p in await grants.get_team_assigned_permissions(db, team_id)
    ]
    return {"items": items, "total": len(items)}


@router.post("/teams/{team_id}/permissions/{permission_id}", status_code=201)
async def add_team_permission_to_team(
    team_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_assign_to_team(auth, team_id)
    grant = await grants.add_team_permission_to_team(
        db, team_id, permission_id, actor_id=auth.user_id
    )
    return {"id": str(grant.id), "team_id": str(team_id), "permission_id": str(permission_id)}


@router.delete("/teams/{team_id}/permissions/{permission_id}", status_code=204)
async def remove_team_permission_from_team(
    team_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_assign_to_team(auth, team_id)
    await grants.remove_team_permission_from_team(
        db, team_id, permission_id, actor_id=auth.user_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# MINE
# ---------------------------------------------------------------------------


@router.get("/me/team-permissions")
async def get_my_team_permissions(
    view_id: uuid.UUID | None = None,
    team_id: uuid.UUID | None = None,
    auth: AuthorizationService = Depends(get_authorization_service),
):
    """The caller's team claims, optionally narrowed to one View or Team."""
    claims = auth.get_team_permissions(view_id=view_id, team_id=team_id)
    return {"items": [c.to_dict() for c in claims]}
