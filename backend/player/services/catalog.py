"""Permission catalog service: CRUD for System and Team permissions.

Immutable entries (the ones the API checks in code) can be listed and
granted but never edited or deleted.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import commit_or_conflict, get_or_404
from player.exceptions import ConflictError, ForbiddenError
from player.models import (
    Permission,
    RolePermission,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRolePermission,
    UserPermission,
)

logger = logging.getLogger(__name__)

CatalogModel = type[Permission] | type[TeamPermission]


# ---------------------------------------------------------------------------
# Shared implementation
# ---------------------------------------------------------------------------


async def _ensure_unique_name(
    db: AsyncSession, model: CatalogModel, name: str, exclude_id: uuid.UUID | None = None
) -> None:
    stmt = select(model.id).where(model.name == name)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if await db.scalar(stmt) is not None:
        raise ConflictError(f"A {model.__name__} named {name!r} already exists")


async def _create(
    db: AsyncSession,
    model: CatalogModel,
    name: str,
    description: str | None,
    actor_id: uuid.UUID | None,
):
    await _ensure_unique_name(db, model, name)
    entry = model(name=name, description=description, immutable=False)
    db.add(entry)
    await commit_or_conflict(db, f"A {model.__name__} named {name!r} already exists")
    logger.warning("%s %s (%s) created by %s", model.__name__, entry.name, entry.id, actor_id)
    return entry


async def _edit(
    db: AsyncSession,
    model: CatalogModel,
    entry_id: uuid.UUID,
    name: str | None,
    description: str | None,
    actor_id: uuid.UUID | None,
):
    entry = await get_or_404(db, model, entry_id)
    if entry.immutable:
        raise ForbiddenError(f"Cannot edit an immutable {model.__name__}")

    if name is not None and name != entry.name:
        await _ensure_unique_name(db, model, name, exclude_id=entry.id)
        entry.name = name
    if description is not None:
        entry.description = description
    await commit_or_conflict(db, f"A {model.__name__} named {entry.name!r} already exists")
    logger.warning("%s %s (%s) edited by %s", model.__name__, entry.name, entry.id, actor_id)
    return entry


async def _delete(
    db: AsyncSession,
    model: CatalogModel,
    entry_id: uuid.UUID,
    grant_models: list[type],
    actor_id: uuid.UUID | None,
) -> None:
    entry = await get_or_404(db, model, entry_id)
    if entry.immutable:
        raise ForbiddenError(f"Cannot delete an immutable {model.__name__}")

    # grants go through the ORM so each removal is published
    for grant_model in grant_models:
        grants = (await db.execute(
            select(grant_model).where(grant_model.permission_id == entry.id)
        )).scalars().all()
        for grant in grants:
            await db.delete(grant)
    await db.flush()
    await db.delete(entry)
    await db.commit()
    logger.warning("%s %s (%s) deleted by %s", model.__name__, entry.name, entry.id, actor_id)


# ---------------------------------------------------------------------------
# System permissions
# ---------------------------------------------------------------------------


async def list_permissions(db: AsyncSession) -> list[Permission]:
    result = await db.execute(select(Permission).order_by(Permission.name))
    return list(result.scalars().all())


async def get_permission(db: AsyncSession, permission_id: uuid.UUID) -> Permission:
    return await get_or_404(db, Permission, permission_id)


async def create_permission(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> Permission:
    return await _create(db, Permission, name, description, actor_id)


async def edit_permission(
    db: AsyncSession,
    permission_id: uuid.UUID,
    name: str | None = None,
    description: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> Permission:
    return await _edit(db, Permission, permission_id, name, description, actor_id)


async def delete_permission(
    db: AsyncSession, permission_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    await _delete(db, Permission, permission_id, [RolePermission, UserPermission], actor_id)


# ---------------------------------------------------------------------------
# Team permissions
# ---------------------------------------------------------------------------


async def list_team_permissions(db: AsyncSession) -> list[TeamPermission]:
    result = await db.execute(select(TeamPermission).order_by(TeamPermission.name))
    return list(result.scalars().all())


async def get_team_permission(db: AsyncSession, permission_id: uuid.UUID) -> TeamPermission:
    return await get_or_404(db, TeamPermission, permission_id)


async def create_team_permission(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> TeamPermission:
    return await _create(db, TeamPermission, name, description, actor_id)


async def edit_team_permission(
    db: AsyncSession,
    permission_id: uuid.UUID,
    name: str | None = None,
    description: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> TeamPermission:
    return await _edit(db, TeamPermission, permission_id, name, description, actor_id)


async def delete_team_permission(
    db: AsyncSession, permission_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    await _delete(
        db,
        TeamPermission,
        permission_id,
        [TeamRolePermission, TeamPermissionAssignment],
        actor_id,
    )
