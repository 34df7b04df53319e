"""User records.  Identities come from the token issuer; this is the local mirror."""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import commit_or_conflict, get_or_404
from player.exceptions import ConflictError, EntityNotFoundError
from player.models import Role, TeamMembership, User, UserPermission, ViewMembership
from player.services.memberships import detach_membership

logger = logging.getLogger(__name__)

_UNSET = object()


async def next_user_key(db: AsyncSession) -> int:
    return (await db.scalar(select(func.coalesce(func.max(User.key), 0)))) + 1


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.key))
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    return await get_or_404(db, User, user_id)


async def list_team_users(db: AsyncSession, team_id: uuid.UUID) -> list[User]:
    result = await db.execute(
        select(User)
        .join(TeamMembership, TeamMembership.user_id == User.id)
        .where(TeamMembership.team_id == team_id)
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def list_view_users(db: AsyncSession, view_id: uuid.UUID) -> list[User]:
    result = await db.execute(
        select(User)
        .join(ViewMembership, ViewMembership.user_id == User.id)
        .where(ViewMembership.view_id == view_id)
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def create_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    name: str | None = None,
    role_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
) -> User:
    if await db.get(User, user_id) is not None:
        raise ConflictError(f"User {user_id} already exists")
    if role_id is not None and await db.get(Role, role_id) is None:
        raise EntityNotFoundError("Role", role_id)

    user = User(id=user_id, name=name, role_id=role_id, key=await next_user_key(db))
    db.add(user)
    await commit_or_conflict(db, f"User {user_id} already exists")
    logger.warning("User %s (%s) created by %s", user.name, user.id, actor_id)
    return user


async def edit_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    name: str | None = None,
    role_id=_UNSET,
    actor_id: uuid.UUID | None = None,
) -> User:
    user = await get_or_404(db, User, user_id)
    if name is not None:
        user.name = name
    if role_id is not _UNSET:
        if role_id is not None and await db.get(Role, role_id) is None:
            raise EntityNotFoundError("Role", role_id)
        user.role_id = role_id
    await db.commit()
    logger.warning("User %s (%s) edited by %s", user.name, user.id, actor_id)
    return user


async def delete_user(
    db: AsyncSession, user_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> None:
    user = await get_or_404(db, User, user_id)
    if user.id == actor_id:
        raise ConflictError("You cannot delete yourself")

    memberships = (await db.execute(
        select(TeamMembership).where(TeamMembership.user_id == user.id)
    )).scalars().all()
    for membership in memberships:
        await detach_membership(db, membership)
    grants = (await db.execute(
        select(UserPermission).where(UserPermission.user_id == user.id)
    )).scalars().all()
    for grant in grants:
        await db.delete(grant)
    await db.flush()

    await db.delete(user)
    await db.commit()
    logger.warning("User %s (%s) deleted by %s", user.name, user.id, actor_id)
