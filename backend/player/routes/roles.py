"""Role and Team Role routes."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.middleware.auth import require_system_permission
from player.models import Role, TeamRole
from player.rbac import SystemPermission
from player.services import roles
from player.services.authorization import AuthorizationService

router = APIRouter(prefix="/api", tags=["roles"])

view_roles = require_system_permission(SystemPermission.VIEW_ROLES)
manage_roles = require_system_permission(SystemPermission.MANAGE_ROLES)


class RoleCreate(BaseModel):
    name: str
    all_permissions: bool = False


class RoleUpdate(BaseModel):
    name: str | None = None
    all_permissions: bool | None = None


def role_to_dict(r: Role | TeamRole) -> dict:
    return {
        "id": str(r.id),
        "name": r.name,
        "all_permissions": r.all_permissions,
        "immutable": r.immutable,
    }


# ---------------------------------------------------------------------------
# ROLES
# ---------------------------------------------------------------------------


@router.get("/roles")
async def list_roles(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(view_roles),
):
    items = [role_to_dict(r) for r in await roles.list_roles(db)]
    return {"items": items, "total": len(items)}


@router.get("/roles/{role_id}")
async def get_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(view_roles),
):
    return role_to_dict(await roles.get_role(db, role_id))


@router.post("/roles", status_code=201)
async def create_role(
    body: RoleCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    role = await roles.create_role(db, body.name, body.all_permissions, actor_id=auth.user_id)
    return role_to_dict(role)


@router.put("/roles/{role_id}")
async def edit_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    role = await roles.edit_role(
        db, role_id, body.name, body.all_permissions, actor_id=auth.user_id
    )
    return role_to_dict(role)


@router.delete("/roles/{role_id}", status_code=204)
async def delete_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await roles.delete_role(db, role_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# TEAM ROLES
# ---------------------------------------------------------------------------


@router.get("/team-roles")
async def list_team_roles(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(view_roles),
):
    items = [role_to_dict(r) for r in await roles.list_team_roles(db)]
    return {"items": items, "total": len(items)}


@router.get("/team-roles/{role_id}")
async def get_team_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(view_roles),
):
    return role_to_dict(await roles.get_team_role(db, role_id))


@router.post("/team-roles", status_code=201)
async def create_team_role(
    body: RoleCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    role = await roles.create_team_role(
        db, body.name, body.all_permissions, actor_id=auth.user_id
    )
    return role_to_dict(role)


@router.put("/team-roles/{role_id}")
async def edit_team_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    role = await roles.edit_team_role(
        db, role_id, body.name, body.all_permissions, actor_id=auth.user_id
    )
    return role_to_dict(role)


@router.delete("/team-roles/{role_id}", status_code=204)
async def delete_team_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await roles.delete_team_role(db, role_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
