"""System permission routes --- catalog, Role grants, User grants, my permissions."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_db
from player.middleware.auth import get_authorization_service, require_system_permission
from player.models import Permission
from player.rbac import SystemPermission, ViewPermission
from player.services import catalog, grants
from player.services.authorization import AuthorizationService

router = APIRouter(prefix="/api", tags=["permissions"])

manage_roles = require_system_permission(SystemPermission.MANAGE_ROLES)
manage_users = require_system_permission(SystemPermission.MANAGE_USERS)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class PermissionCreate(BaseModel):
    name: str
    description: str | None = None


class PermissionUpdate(BaseModel):
    name: str | None = None
    description: str | None = None


def permission_to_dict(p: Permission) -> dict:
    return {
        "id": str(p.id),
        "name": p.name,
        "description": p.description,
        "immutable": p.immutable,
    }


async def _can_view_catalog(auth: AuthorizationService) -> None:
    await auth.require([SystemPermission.VIEW_ROLES], [ViewPermission.VIEW_VIEW])


# ---------------------------------------------------------------------------
# CATALOG
# ---------------------------------------------------------------------------


@router.get("/permissions")
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    items = [permission_to_dict(p) for p in await catalog.list_permissions(db)]
    return {"items": items, "total": len(items)}


@router.get("/permissions/{permission_id}")
async def get_permission(
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    return permission_to_dict(await catalog.get_permission(db, permission_id))


@router.post("/permissions", status_code=201)
async def create_permission(
    body: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    permission = await catalog.create_permission(
        db, body.name, body.description, actor_id=auth.user_id
    )
    return permission_to_dict(permission)


@router.put("/permissions/{permission_id}")
async def edit_permission(
    permission_id: uuid.UUID,
    body: PermissionUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    permission = await catalog.edit_permission(
        db, permission_id, body.name, body.description, actor_id=auth.user_id
    )
    return permission_to_dict(permission)


@router.delete("/permissions/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await catalog.delete_permission(db, permission_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# ROLE GRANTS
# ---------------------------------------------------------------------------


@router.get("/roles/{role_id}/permissions")
async def list_role_permissions(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    await _can_view_catalog(auth)
    items = [permission_to_dict(p) for p in await grants.get_role_permissions(db, role_id)]
    return {"items": items, "total": len(items)}


@router.post("/roles/{role_id}/permissions/{permission_id}", status_code=201)
async def add_permission_to_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    grant = await grants.add_permission_to_role(db, role_id, permission_id, actor_id=auth.user_id)
    return {"id": str(grant.id), "role_id": str(role_id), "permission_id": str(permission_id)}


@router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_roles),
):
    await grants.remove_permission_from_role(db, role_id, permission_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# USER GRANTS
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/permissions")
async def list_user_permissions(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(get_authorization_service),
):
    if user_id != auth.user_id:
        await auth.require([SystemPermission.VIEW_USERS])
    items = [permission_to_dict(p) for p in await grants.get_user_permissions(db, user_id)]
    return {"items": items, "total": len(items)}


@router.post("/users/{user_id}/permissions/{permission_id}", status_code=201)
async def add_permission_to_user(
    user_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    grant = await grants.add_permission_to_user(db, user_id, permission_id, actor_id=auth.user_id)
    return {"id": str(grant.id), "user_id": str(user_id), "permission_id": str(permission_id)}


@router.delete("/users/{user_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_user(
    user_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationService = Depends(manage_users),
):
    await grants.remove_permission_from_user(db, user_id, permission_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# MINE
# ---------------------------------------------------------------------------


@router.get("/me/permissions")
async def get_my_permissions(
    auth: AuthorizationService = Depends(get_authorization_service),
):
    """System permission names held by the caller."""
    return {"items": auth.get_system_permissions()}
