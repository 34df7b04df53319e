"""View and Team membership lifecycle.

* The first TeamMembership a User gets in a View creates the View's
  ViewMembership and becomes its primary.
* Removing a User's last TeamMembership in a View removes the
  ViewMembership as well.  Removing the primary one while others remain
  promotes another membership in the same View.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.database import get_or_404
from player.exceptions import ConflictError, EntityNotFoundError
from player.models import Team, TeamMembership, TeamRole, User, ViewMembership

logger = logging.getLogger(__name__)


async def get_team_membership(db: AsyncSession, membership_id: uuid.UUID) -> TeamMembership:
    return await get_or_404(db, TeamMembership, membership_id, "TeamMembership")


async def get_view_membership(db: AsyncSession, membership_id: uuid.UUID) -> ViewMembership:
    return await get_or_404(db, ViewMembership, membership_id, "ViewMembership")


async def find_own_view_membership(
    db: AsyncSession, membership_id: uuid.UUID, user_id: uuid.UUID
) -> ViewMembership | None:
    """The ViewMembership with this id, only if it belongs to ``user_id``."""
    return await db.scalar(
        select(ViewMembership).where(
            ViewMembership.id == membership_id,
            ViewMembership.user_id == user_id,
        )
    )


async def find_view_membership(
    db: AsyncSession, view_id: uuid.UUID, user_id: uuid.UUID
) -> ViewMembership | None:
    return await db.scalar(
        select(ViewMembership).where(
            ViewMembership.view_id == view_id,
            ViewMembership.user_id == user_id,
        )
    )


async def list_team_memberships(db: AsyncSession, team_id: uuid.UUID) -> list[TeamMembership]:
    await get_or_404(db, Team, team_id)
    result = await db.execute(
        select(TeamMembership).where(TeamMembership.team_id == team_id)
    )
    return list(result.scalars().all())


async def list_view_memberships(db: AsyncSession, view_id: uuid.UUID) -> list[ViewMembership]:
    result = await db.execute(
        select(ViewMembership).where(ViewMembership.view_id == view_id)
    )
    return list(result.scalars().all())


async def add_user_to_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    commit: bool = True,
) -> TeamMembership:
    team = await get_or_404(db, Team, team_id)
    await get_or_404(db, User, user_id)

    existing = await db.scalar(
        select(TeamMembership.id).where(
            TeamMembership.team_id == team_id,
            TeamMembership.user_id == user_id,
        )
    )
    if existing is not None:
        raise ConflictError(f"User {user_id} is already a member of Team {team.name}")

    view_membership = await find_view_membership(db, team.view_id, user_id)
    set_primary = view_membership is None
    if view_membership is None:
        view_membership = ViewMembership(view_id=team.view_id, user_id=user_id)
        db.add(view_membership)
        await db.flush()

    membership = TeamMembership(
        team_id=team_id,
        user_id=user_id,
        view_membership_id=view_membership.id,
    )
    db.add(membership)
    await db.flush()

    if set_primary:
        view_membership.primary_team_membership_id = membership.id
    if commit:
        await db.commit()
    logger.warning("User %s added to team %s by %s", user_id, team_id, actor_id)
    return membership


async def detach_membership(db: AsyncSession, membership: TeamMembership) -> None:
    """Remove *membership*, fixing up its ViewMembership.  Does not commit."""
    view_membership = await db.get(ViewMembership, membership.view_membership_id)
    siblings = (await db.execute(
        select(TeamMembership).where(
            TeamMembership.view_membership_id == membership.view_membership_id,
            TeamMembership.id != membership.id,
        )
    )).scalars().all()

    if not siblings:
        if view_membership is not None:
            view_membership.primary_team_membership_id = None
            await db.flush()
        await db.delete(membership)
        await db.flush()
        if view_membership is not None:
            await db.delete(view_membership)
    else:
        if view_membership is not None and view_membership.primary_team_membership_id == membership.id:
            view_membership.primary_team_membership_id = siblings[0].id
            await db.flush()
        await db.delete(membership)
    await db.flush()


async def remove_user_from_team(
    db: AsyncSession,
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> bool:
    await get_or_404(db, Team, team_id)
    await get_or_404(db, User, user_id)

    membership = await db.scalar(
        select(TeamMembership).where(
            TeamMembership.team_id == team_id,
            TeamMembership.user_id == user_id,
        )
    )
    if membership is None:
        return False

    await detach_membership(db, membership)
    await db.commit()
    logger.warning("User %s removed from team %s by %s", user_id, team_id, actor_id)
    return True


async def remove_memberships_of_team(db: AsyncSession, team_id: uuid.UUID) -> int:
    """Detach every member of a Team without committing."""
    memberships = (await db.execute(
        select(TeamMembership).where(TeamMembership.team_id == team_id)
    )).scalars().all()
    for membership in memberships:
        await detach_membership(db, membership)
    return len(memberships)


async def set_primary_team(
    db: AsyncSession, user_id: uuid.UUID, team_id: uuid.UUID
) -> ViewMembership:
    team = await get_or_404(db, Team, team_id)
    view_membership = await find_view_membership(db, team.view_id, user_id)
    membership_id = None
    if view_membership is not None:
        membership_id = await db.scalar(
            select(TeamMembership.id).where(
                TeamMembership.view_membership_id == view_membership.id,
                TeamMembership.team_id == team_id,
            )
        )
    if membership_id is None:
        raise ConflictError(
            "You can only change your Primary Team to a Team that you are a member of"
        )

    view_membership.primary_team_membership_id = membership_id
    await db.commit()
    logger.info("User %s set primary team %s in view %s", user_id, team_id, team.view_id)
    return view_membership


async def set_membership_role(
    db: AsyncSession,
    membership_id: uuid.UUID,
    role_id: uuid.UUID | None,
    actor_id: uuid.UUID | None = None,
) -> TeamMembership:
    """Set or clear the TeamRole override of one TeamMembership."""
    membership = await get_or_404(db, TeamMembership, membership_id, "TeamMembership")
    if role_id is not None and await db.get(TeamRole, role_id) is None:
        raise EntityNotFoundError("TeamRole", role_id)

    membership.role_id = role_id
    await db.commit()
    logger.warning(
        "Team Membership updated by %s = User: %s, Role: %s, Team: %s, ViewMembership: %s",
        actor_id, membership.user_id, membership.role_id, membership.team_id,
        membership.view_membership_id,
    )
    return membership
