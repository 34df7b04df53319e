"""Grant model: attaching catalog permissions to Roles, Team Roles, Teams and Users.

Every add checks that both ends exist and never creates a second row for
the same pair.  Adding an existing grant returns it unchanged; a duplicate
that slips past that check and hits the unique index is a ``ConflictError``.
Removing a grant that does not exist is a no-op.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import commit_or_conflict, get_or_404
from player.models import (
    Permission,
    Role,
    RolePermission,
    Team,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRole,
    TeamRolePermission,
    User,
    UserPermission,
)

logger = logging.getLogger(__name__)


async def _find_grant(db: AsyncSession, grant_model: type, owner_column, owner_id, permission_id):
    return await db.scalar(
        select(grant_model).where(
            owner_column == owner_id,
            grant_model.permission_id == permission_id,
        )
    )


async def _add_grant(
    db: AsyncSession,
    *,
    grant_model: type,
    owner_field: str,
    owner_model: type,
    owner_id: uuid.UUID,
    permission_model: type,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None,
):
    owner = await get_or_404(db, owner_model, owner_id)
    permission = await get_or_404(db, permission_model, permission_id)

    owner_column = getattr(grant_model, owner_field)
    existing = await _find_grant(db, grant_model, owner_column, owner_id, permission_id)
    if existing is not None:
        return existing

    grant = grant_model(**{owner_field: owner_id, "permission_id": permission_id})
    db.add(grant)
    await commit_or_conflict(
        db, f"{permission_model.__name__} {permission.name} is already granted to this {owner_model.__name__}"
    )
    logger.warning(
        "%s %s added to %s %s by %s",
        permission_model.__name__, permission.name, owner_model.__name__,
        getattr(owner, "name", owner_id), actor_id,
    )
    return grant


async def _remove_grant(
    db: AsyncSession,
    *,
    grant_model: type,
    owner_field: str,
    owner_model: type,
    owner_id: uuid.UUID,
    permission_model: type,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None,
) -> bool:
    await get_or_404(db, owner_model, owner_id)
    await get_or_404(db, permission_model, permission_id)

    owner_column = getattr(grant_model, owner_field)
    grant = await _find_grant(db, grant_model, owner_column, owner_id, permission_id)
    if grant is None:
        return False

    await db.delete(grant)
    await db.commit()
    logger.warning(
        "%s %s removed from %s %s by %s",
        permission_model.__name__, permission_id, owner_model.__name__, owner_id, actor_id,
    )
    return True


# ---------------------------------------------------------------------------
# Role <-> Permission
# ---------------------------------------------------------------------------


async def add_permission_to_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> RolePermission:
    return await _add_grant(
        db, grant_model=RolePermission, owner_field="role_id", owner_model=Role,
        owner_id=role_id, permission_model=Permission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def remove_permission_from_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> bool:
    return await _remove_grant(
        db, grant_model=RolePermission, owner_field="role_id", owner_model=Role,
        owner_id=role_id, permission_model=Permission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def get_role_permissions(db: AsyncSession, role_id: uuid.UUID) -> list[Permission]:
    await get_or_404(db, Role, role_id)
    result = await db.execute(
        select(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role_id)
        .order_by(Permission.name)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# TeamRole <-> TeamPermission
# ---------------------------------------------------------------------------


async def add_team_permission_to_team_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> TeamRolePermission:
    return await _add_grant(
        db, grant_model=TeamRolePermission, owner_field="role_id", owner_model=TeamRole,
        owner_id=role_id, permission_model=TeamPermission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def remove_team_permission_from_team_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> bool:
    return await _remove_grant(
        db, grant_model=TeamRolePermission, owner_field="role_id", owner_model=TeamRole,
        owner_id=role_id, permission_model=TeamPermission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def get_team_role_permissions(db: AsyncSession, role_id: uuid.UUID) -> list[TeamPermission]:
    await get_or_404(db, TeamRole, role_id)
    result = await db.execute(
        select(TeamPermission)
        .join(TeamRolePermission, TeamRolePermission.permission_id == TeamPermission.id)
        .where(TeamRolePermission.role_id == role_id)
        .order_by(TeamPermission.name)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Team <-> TeamPermission
# ---------------------------------------------------------------------------


async def add_team_permission_to_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> TeamPermissionAssignment:
    return await _add_grant(
        db, grant_model=TeamPermissionAssignment, owner_field="team_id", owner_model=Team,
        owner_id=team_id, permission_model=TeamPermission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def remove_team_permission_from_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> bool:
    return await _remove_grant(
        db, grant_model=TeamPermissionAssignment, owner_field="team_id", owner_model=Team,
        owner_id=team_id, permission_model=TeamPermission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def get_team_assigned_permissions(db: AsyncSession, team_id: uuid.UUID) -> list[TeamPermission]:
    await get_or_404(db, Team, team_id)
    result = await db.execute(
        select(TeamPermission)
        .join(TeamPermissionAssignment, TeamPermissionAssignment.permission_id == TeamPermission.id)
        .where(TeamPermissionAssignment.team_id == team_id)
        .order_by(TeamPermission.name)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# User <-> Permission
# ---------------------------------------------------------------------------


async def add_permission_to_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> UserPermission:
    return await _add_grant(
        db, grant_model=UserPermission, owner_field="user_id", owner_model=User,
        owner_id=user_id, permission_model=Permission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def remove_permission_from_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    permission_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> bool:
    return await _remove_grant(
        db, grant_model=UserPermission, owner_field="user_id", owner_model=User,
        owner_id=user_id, permission_model=Permission, permission_id=permission_id,
        actor_id=actor_id,
    )


async def get_user_permissions(db: AsyncSession, user_id: uuid.UUID) -> list[Permission]:
    await get_or_404(db, User, user_id)
    result = await db.execute(
        select(Permission)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .where(UserPermission.user_id == user_id)
        .order_by(Permission.name)
    )
    return list(result.scalars().all())
