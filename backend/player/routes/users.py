"""User routes --- CRUD, Role assignment, Team and View rosters, current user."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.middleware.auth import get_authorization_service, require_system_permission
from player.models import User
from player.rbac import SystemPermission, TeamPermission, ViewPermission
from player.services import roles, users
from player.services.authorization import AuthorizationService
from player.services.resource_resolver import ResourceKind, ResourceRef

router = APIRouter(prefix="/api", tags=["users"])

manage_users = require_system_permission(SystemPermission.MANAGE_USERS)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    id: uuid.UUID
    name: str | None = None
    role_id: uuid.UUID | None = None


class UserUpdate(BaseModel):
    name: str | None = None
    role_id: uuid.UUID | None = None


class UserRoleUpdate(BaseModel):
    role_id: uuid.UUID | None = None


def user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "key": u.key,
        "name": u.name,
        "role_id": str(u.role_id) if u.role_id else None,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


@router.get("/users")
async def list_users(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_USERS],
        [ViewPermission.MANAGE_VIEW],
        [TeamPermission.MANAGE_TEAM],
    )
    items = [user_to_dict(u) for u in await users.list_users(db)]
    return {"items": items, "total": len(items)}


@router.get("/users/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    if user_id != auth.user_id:
        await auth.require([SystemPermission.VIEW_USERS])
    return user_to_dict(await users.get_user(db, user_id))


@router.post("/users", status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    user = await users.create_user(db, body.id, body.name, body.role_id, actor_id=auth.user_id)
    return user_to_dict(user)


@router.put("/users/{user_id}")
async def edit_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    changes = body.dict(exclude_unset=True)
    if "role_id" in changes:
        user = await users.edit_user(
            db, user_id, body.name, role_id=changes["role_id"], actor_id=auth.user_id
        )
    else:
        user = await users.edit_user(db, user_id, body.name, actor_id=auth.user_id)
    return user_to_dict(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    await users.delete_user(db, user_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/users/{user_id}/role")
async def set_user_role(
    user_id: uuid.UUID,
    body: UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    user = await roles.set_user_role(db, user_id, body.role_id, actor_id=auth.user_id)
    return user_to_dict(user)


# ---------------------------------------------------------------------------
# ROSTERS
# ---------------------------------------------------------------------------


@router.get("/teams/{team_id}/users")
async def list_team_users(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_VIEWS],
        [ViewPermission.VIEW_VIEW],
        [TeamPermission.VIEW_TEAM],
        resource=ResourceRef(ResourceKind.TEAM, team_id),
    )
    items = [user_to_dict(u) for u in await users.list_team_users(db, team_id)]
    return {"items": items, "total": len(items)}


@router.get("/views/{view_id}/users")
async def list_view_users(
    view_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await auth.require(
        [SystemPermission.VIEW_USERS],
        [ViewPermission.VIEW_VIEW],
        resource=ResourceRef(ResourceKind.VIEW, view_id),
    )
    items = [user_to_dict(u) for u in await users.list_view_users(db, view_id)]
    return {"items": items, "total": len(items)}


# ---------------------------------------------------------------------------
# CURRENT USER
# ---------------------------------------------------------------------------


@router.get("/me")
async def get_me(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    """The caller's User record with its effective claims."""
    user = await users.get_user(db, auth.user_id)
    return {**user_to_dict(user), "claims": auth.claims.to_dict()}
