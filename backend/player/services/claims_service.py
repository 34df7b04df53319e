"""Claims materializer.

Computes a user's effective permissions from the database:

* System permissions: the Role's permissions (the whole catalog when the
  Role has ``all_permissions``) plus the user's direct grants.
* One team claim per TeamMembership: the union of the Team's TeamRole
  permissions, the membership's override TeamRole permissions and the
  Team's direct permission assignments.

Results are cached per user id until an invalidation rule evicts them.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from player.claims import TeamPermissionsClaim, UserClaims
from player.config import settings
from player.models import (
    Permission,
    Role,
    RolePermission,
    Team,
    TeamMembership,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRole,
    TeamRolePermission,
    User,
    UserPermission,
    ViewMembership,
)
from player.rbac import SYSTEM_PERMISSION_NAMES, TEAM_PERMISSION_NAMES, VIEW_PERMISSION_NAMES
from player.services.claims_cache import ClaimsCache, get_claims_cache
from player.services.users import next_user_key

logger = logging.getLogger(__name__)


class UserClaimsService:
    def __init__(
        self,
        db: AsyncSession,
        cache: ClaimsCache | None = None,
        cache_enabled: bool | None = None,
    ) -> None:
        self.db = db
        self.cache = cache if cache is not None else get_claims_cache()
        self.cache_enabled = (
            settings.CLAIMS_CACHE_ENABLED if cache_enabled is None else cache_enabled
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_claims(self, user_id: uuid.UUID) -> UserClaims:
        """Return cached claims for *user_id*, computing them on a miss."""
        if self.cache_enabled:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        claims = await self.compute_claims(user_id)
        if self.cache_enabled:
            self.cache.set(user_id, claims)
        return claims

    async def refresh_claims(self, user_id: uuid.UUID) -> UserClaims:
        self.cache.evict([user_id])
        return await self.get_claims(user_id)

    async def compute_claims(self, user_id: uuid.UUID) -> UserClaims:
        user = await self.db.get(User, user_id)
        if user is None:
            return UserClaims(user_id=user_id)

        return UserClaims(
            user_id=user_id,
            system_permissions=frozenset(await self._system_permissions(user)),
            team_claims=tuple(await self._team_claims(user_id)),
        )

    async def ensure_user(self, user_id: uuid.UUID, name: str | None = None) -> User:
        """Return the User for *user_id*, provisioning it on first sight.

        The first user of an empty system gets the administrator Role.
        """
        user = await self.db.get(User, user_id)
        if user is not None:
            if name and user.name != name:
                user.name = name
                await self.db.commit()
            return user

        user_count = await self.db.scalar(select(func.count()).select_from(User))
        user = User(id=user_id, name=name, key=await next_user_key(self.db))

        if user_count == 0:
            admin_role = await self.db.scalar(
                select(Role).where(Role.name == settings.ADMIN_ROLE)
            )
            if admin_role is not None:
                user.role_id = admin_role.id
                logger.warning(
                    "First user %s (%s) granted role %s", user_id, name, admin_role.name
                )

        self.db.add(user)
        await self.db.commit()
        logger.info("Provisioned user %s (%s)", user_id, name)
        return user

    # ------------------------------------------------------------------
    # System permissions
    # ------------------------------------------------------------------

    async def _system_permissions(self, user: User) -> set[str]:
        names: set[str] = set()

        role = await self.db.get(Role, user.role_id) if user.role_id else None
        if role is not None and role.all_permissions:
            names |= set((await self.db.execute(select(Permission.name))).scalars())
            names |= SYSTEM_PERMISSION_NAMES
        elif role is not None:
            names |= set((await self.db.execute(
                select(Permission.name)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .where(RolePermission.role_id == role.id)
            )).scalars())

        names |= set((await self.db.execute(
            select(Permission.name)
            .join(UserPermission, UserPermission.permission_id == Permission.id)
            .where(UserPermission.user_id == user.id)
        )).scalars())
        return names

    # ------------------------------------------------------------------
    # Team claims
    # ------------------------------------------------------------------

    async def _team_claims(self, user_id: uuid.UUID) -> list[TeamPermissionsClaim]:
        rows = (await self.db.execute(
            select(TeamMembership, Team, ViewMembership.primary_team_membership_id)
            .join(Team, Team.id == TeamMembership.team_id)
            .join(ViewMembership, ViewMembership.id == TeamMembership.view_membership_id)
            .where(TeamMembership.user_id == user_id)
        )).all()
        if not rows:
            return []

        role_ids = {team.role_id for _, team, _ in rows if team.role_id}
        role_ids |= {membership.role_id for membership, _, _ in rows if membership.role_id}
        role_permissions = await self._team_role_permissions(role_ids)
        assigned = await self._assigned_team_permissions({team.id for _, team, _ in rows})

        claims = []
        for membership, team, primary_id in rows:
            names: set[str] = set(assigned.get(team.id, ()))
            if team.role_id:
                names |= role_permissions.get(team.role_id, set())
            if membership.role_id:
                names |= role_permissions.get(membership.role_id, set())
            claims.append(TeamPermissionsClaim.from_names(
                view_id=team.view_id,
                team_id=team.id,
                is_primary=primary_id == membership.id,
                names=names,
            ))
        return claims

    async def _team_role_permissions(
        self, role_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, set[str]]:
        role_ids = set(role_ids)
        if not role_ids:
            return {}

        roles = (await self.db.execute(
            select(TeamRole).where(TeamRole.id.in_(role_ids))
        )).scalars().all()

        explicit: dict[uuid.UUID, set[str]] = defaultdict(set)
        for role_id, name in (await self.db.execute(
            select(TeamRolePermission.role_id, TeamPermission.name)
            .join(TeamPermission, TeamPermission.id == TeamRolePermission.permission_id)
            .where(TeamRolePermission.role_id.in_(role_ids))
        )).all():
            explicit[role_id].add(name)

        everything: set[str] | None = None
        result: dict[uuid.UUID, set[str]] = {}
        for role in roles:
            if role.all_permissions:
                # explicit rows are ignored for wildcard roles
                if everything is None:
                    everything = set((await self.db.execute(select(TeamPermission.name))).scalars())
                    everything |= VIEW_PERMISSION_NAMES | TEAM_PERMISSION_NAMES
                result[role.id] = everything
            else:
                result[role.id] = explicit.get(role.id, set())
        return result

    async def _assigned_team_permissions(
        self, team_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, set[str]]:
        assigned: dict[uuid.UUID, set[str]] = defaultdict(set)
        for team_id, name in (await self.db.execute(
            select(TeamPermissionAssignment.team_id, TeamPermission.name)
            .join(TeamPermission, TeamPermission.id == TeamPermissionAssignment.permission_id)
            .where(TeamPermissionAssignment.team_id.in_(set(team_ids)))
        )).all():
            assigned[team_id].add(name)
        return assigned
