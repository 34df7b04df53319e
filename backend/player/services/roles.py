"""Role and Team Role management.

Protection rules:

* The configured default Team Roles (``DEFAULT_TEAM_ROLE`` and
  ``DEFAULT_VIEW_CREATOR_ROLE``) can never be deleted or renamed
  (``ConflictError``).  This check runs first.
* Immutable Roles and Team Roles can never be deleted, renamed or have
  their ``all_permissions`` flag changed (``ForbiddenError``).
* A Team Role still used by a Team cannot be deleted (``ConflictError``).
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.config import settings
from player.database import commit_or_conflict, get_or_404
from player.exceptions import ConflictError, EntityNotFoundError, ForbiddenError
from player.models import (
    Role,
    RolePermission,
    Team,
    TeamMembership,
    TeamRole,
    TeamRolePermission,
    User,
)

logger = logging.getLogger(__name__)


def default_team_role_names() -> set[str]:
    return {settings.DEFAULT_TEAM_ROLE, settings.DEFAULT_VIEW_CREATOR_ROLE}


async def _ensure_unique_name(
    db: AsyncSession, model: type, name: str, exclude_id: uuid.UUID | None = None
) -> None:
    stmt = select(model.id).where(model.name == name)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if await db.scalar(stmt) is not None:
        raise ConflictError("A role with that name already exists.")


def _check_immutable_edit(role: Role | TeamRole, name: str | None, all_permissions: bool | None) -> None:
    if not role.immutable:
        return
    renaming = name is not None and name != role.name
    reflagging = all_permissions is not None and all_permissions != role.all_permissions
    if renaming or reflagging:
        raise ForbiddenError(f"{role.name} is immutable and cannot be edited")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def get_role(db: AsyncSession, role_id: uuid.UUID) -> Role:
    return await get_or_404(db, Role, role_id)


async def get_role_by_name(db: AsyncSession, name: str) -> Role:
    role = await db.scalar(select(Role).where(Role.name == name))
    if role is None:
        raise EntityNotFoundError("Role", name)
    return role


async def create_role(
    db: AsyncSession,
    name: str,
    all_permissions: bool = False,
    actor_id: uuid.UUID | None = None,
) -> Role:
    await _ensure_unique_name(db, Role, name)
    role = Role(name=name, all_permissions=all_permissions, immutable=False)
    db.add(role)
    await commit_or_conflict(db, "A role with that name already exists.")
    logger.warning("Role %s (%s) created by %s", role.name, role.id, actor_id)
    return role


async def edit_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    name: str | None = None,
    all_permissions: bool | None = None,
    actor_id: uuid.UUID | None = None,
) -> Role:
    role = await get_or_404(db, Role, role_id)
    _check_immutable_edit(role, name, all_permissions)

    if name is not None and name != role.name:
        await _ensure_unique_name(db, Role, name, exclude_id=role.id)
        role.name = name
    if all_permissions is not None:
        role.all_permissions = all_permissions
    await commit_or_conflict(db, "A role with that name already exists.")
    logger.warning("Role %s (%s) edited by %s", role.name, role.id, actor_id)
    return role


async def delete_role(
    db: AsyncSession, role_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    role = await get_or_404(db, Role, role_id)
    if role.immutable:
        raise ForbiddenError(f"{role.name} is immutable and cannot be deleted")

    users = (await db.execute(select(User).where(User.role_id == role.id))).scalars().all()
    for user in users:
        user.role_id = None
    grants = (await db.execute(
        select(RolePermission).where(RolePermission.role_id == role.id)
    )).scalars().all()
    for grant in grants:
        await db.delete(grant)
    await db.flush()

    await db.delete(role)
    await db.commit()
    logger.warning(
        "Role %s (%s) deleted by %s, unassigned from %d user(s)",
        role.name, role.id, actor_id, len(users),
    )


async def set_user_role(
    db: AsyncSession,
    user_id: uuid.UUID,
    role_id: uuid.UUID | None,
    actor_id: uuid.UUID | None = None,
) -> User:
    user = await get_or_404(db, User, user_id)
    if role_id is not None:
        await get_or_404(db, Role, role_id)
    user.role_id = role_id
    await db.commit()
    logger.warning("User %s assigned role %s by %s", user.id, role_id, actor_id)
    return user


# ---------------------------------------------------------------------------
# Team Roles
# ---------------------------------------------------------------------------


async def list_team_roles(db: AsyncSession) -> list[TeamRole]:
    result = await db.execute(select(TeamRole).order_by(TeamRole.name))
    return list(result.scalars().all())


async def get_team_role(db: AsyncSession, role_id: uuid.UUID) -> TeamRole:
    return await get_or_404(db, TeamRole, role_id, "TeamRole")


async def get_team_role_by_name(db: AsyncSession, name: str) -> TeamRole | None:
    return await db.scalar(select(TeamRole).where(TeamRole.name == name))


async def create_team_role(
    db: AsyncSession,
    name: str,
    all_permissions: bool = False,
    actor_id: uuid.UUID | None = None,
) -> TeamRole:
    await _ensure_unique_name(db, TeamRole, name)
    role = TeamRole(name=name, all_permissions=all_permissions, immutable=False)
    db.add(role)
    await commit_or_conflict(db, "A role with that name already exists.")
    logger.warning("TeamRole %s (%s) created by %s", role.name, role.id, actor_id)
    return role


async def edit_team_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    name: str | None = None,
    all_permissions: bool | None = None,
    actor_id: uuid.UUID | None = None,
) -> TeamRole:
    role = await get_or_404(db, TeamRole, role_id, "TeamRole")

    renaming = name is not None and name != role.name
    if renaming and role.name in default_team_role_names():
        raise ConflictError(
            f"Cannot change the Name of DefaultTeamRole ({settings.DEFAULT_TEAM_ROLE}) "
            f"or DefaultViewCreatorRole ({settings.DEFAULT_VIEW_CREATOR_ROLE})"
        )
    _check_immutable_edit(role, name, all_permissions)

    if renaming:
        await _ensure_unique_name(db, TeamRole, name, exclude_id=role.id)
        role.name = name
    if all_permissions is not None:
        role.all_permissions = all_permissions
    await commit_or_conflict(db, "A role with that name already exists.")
    logger.warning("TeamRole %s (%s) edited by %s", role.name, role.id, actor_id)
    return role


async def delete_team_role(
    db: AsyncSession, role_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    role = await get_or_404(db, TeamRole, role_id, "TeamRole")
    if role.name in default_team_role_names():
        raise ConflictError(
            f"Cannot delete the DefaultTeamRole or {settings.DEFAULT_VIEW_CREATOR_ROLE}"
        )
    if role.immutable:
        raise ForbiddenError(f"{role.name} is immutable and cannot be deleted")

    teams_using = await db.scalar(select(Team.id).where(Team.role_id == role.id).limit(1))
    if teams_using is not None:
        raise ConflictError(f"TeamRole {role.name} is still assigned to one or more Teams")

    overrides = (await db.execute(
        select(TeamMembership).where(TeamMembership.role_id == role.id)
    )).scalars().all()
    for membership in overrides:
        membership.role_id = None
    grants = (await db.execute(
        select(TeamRolePermission).where(TeamRolePermission.role_id == role.id)
    )).scalars().all()
    for grant in grants:
        await db.delete(grant)
    await db.flush()

    await db.delete(role)
    await db.commit()
    logger.warning("TeamRole %s (%s) deleted by %s", role.name, role.id, actor_id)
