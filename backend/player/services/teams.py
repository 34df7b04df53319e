"""Team management within a View."""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.config import settings
from player.database import get_or_404
from player.exceptions import EntityNotFoundError
from player.models import ApplicationInstance, Team, TeamPermissionAssignment, TeamRole, View
from player.services.memberships import remove_memberships_of_team

logger = logging.getLogger(__name__)

_UNSET = object()


async def _default_team_role_id(db: AsyncSession) -> uuid.UUID | None:
    return await db.scalar(
        select(TeamRole.id).where(TeamRole.name == settings.DEFAULT_TEAM_ROLE)
    )


async def list_teams(db: AsyncSession, view_id: uuid.UUID) -> list[Team]:
    await get_or_404(db, View, view_id)
    result = await db.execute(
        select(Team).where(Team.view_id == view_id).order_by(Team.name)
    )
    return list(result.scalars().all())


async def get_team(db: AsyncSession, team_id: uuid.UUID) -> Team:
    return await get_or_404(db, Team, team_id)


async def create_team(
    db: AsyncSession,
    view_id: uuid.UUID,
    name: str,
    role_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
) -> Team:
    """Create a Team.  Without *role_id* it gets the default Team Role."""
    await get_or_404(db, View, view_id)
    if role_id is None:
        role_id = await _default_team_role_id(db)
    elif await db.get(TeamRole, role_id) is None:
        raise EntityNotFoundError("TeamRole", role_id)

    team = Team(view_id=view_id, name=name, role_id=role_id)
    db.add(team)
    await db.commit()
    logger.warning(
        "Team %s (%s) in View %s created by %s", team.name, team.id, view_id, actor_id
    )
    return team


async def edit_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    name: str | None = None,
    role_id=_UNSET,
    actor_id: uuid.UUID | None = None,
) -> Team:
    team = await get_or_404(db, Team, team_id)
    if name is not None:
        team.name = name
    if role_id is not _UNSET:
        if role_id is not None and await db.get(TeamRole, role_id) is None:
            raise EntityNotFoundError("TeamRole", role_id)
        team.role_id = role_id
    await db.commit()
    logger.warning("Team %s (%s) edited by %s", team.name, team.id, actor_id)
    return team


async def delete_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    commit: bool = True,
) -> None:
    team = await get_or_404(db, Team, team_id)

    members = await remove_memberships_of_team(db, team.id)
    for model in (TeamPermissionAssignment, ApplicationInstance):
        rows = (await db.execute(
            select(model).where(model.team_id == team.id)
        )).scalars().all()
        for row in rows:
            await db.delete(row)
    await db.flush()

    await db.delete(team)
    if commit:
        await db.commit()
    else:
        await db.flush()
    logger.warning(
        "Team %s (%s) deleted by %s, %d member(s) removed", team.name, team.id, actor_id, members
    )
