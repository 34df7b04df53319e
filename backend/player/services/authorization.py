"""Authorization decision engine.

``authorize`` answers one question for the current principal: does it hold
any of the required System permissions, or, failing that, any of the
required View/Team permissions in the right scope?

Scope rules:

* resource given: resolve it to ``(view_id, team_id)``.  An unresolvable
  resource is a denial.  Team permissions are checked against the claim for
  that Team, View permissions against every claim in that View.
* no resource: holding a required permission in *any* Team or View is
  enough.

Denial is a ``False`` return.  Handlers that need an exception call
``require`` instead, which raises ``ForbiddenError``.
"""
from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from player.claims import TeamPermissionsClaim, UserClaims
from player.exceptions import ForbiddenError
from player.services.resource_resolver import (
    ResourceKind,
    ResourceRef,
    ResourceScope,
    resolve_scope,
)

logger = logging.getLogger(__name__)

# enum members of SystemPermission, ViewPermission and TeamPermission are str
PermissionNames = Iterable[str]


def permission_names(permissions: PermissionNames | None) -> frozenset[str]:
    """Normalize enum members and plain strings to a set of names."""
    if not permissions:
        return frozenset()
    return frozenset(
        p.value if isinstance(p, enum.Enum) else str(p) for p in permissions
    )


# ---------------------------------------------------------------------------
# Pure checks against materialized claims
# ---------------------------------------------------------------------------


def has_system_permission(claims: UserClaims, required: frozenset[str]) -> bool:
    return bool(claims.system_permissions & required)


def has_scoped_permission(
    claims: UserClaims,
    view_permissions: frozenset[str],
    team_permissions: frozenset[str],
    scope: ResourceScope | None,
) -> bool:
    """Evaluate a View/Team requirement.  ``scope=None`` means any scope."""
    if not claims.team_claims:
        return False

    if scope is None:
        held_view: set[str] = set()
        held_team: set[str] = set()
        for claim in claims.team_claims:
            held_view |= claim.view_permissions
            held_team |= claim.team_permissions
        return bool(held_view & view_permissions) or bool(held_team & team_permissions)

    if scope.team_id is not None:
        team_claim = claims.claim_for_team(scope.team_id)
        if team_claim is not None and team_claim.team_permissions & team_permissions:
            return True

    held_in_view: set[str] = set()
    for claim in claims.claims_for_view(scope.view_id):
        held_in_view |= claim.view_permissions
    return bool(held_in_view & view_permissions)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthorizationService:
    """Authorization checks for one principal within one unit of work."""

    def __init__(self, db: AsyncSession, claims: UserClaims) -> None:
        self.db = db
        self.claims = claims

    @property
    def user_id(self) -> uuid.UUID:
        return self.claims.user_id

    async def authorize(
        self,
        system_permissions: PermissionNames | None = None,
        view_permissions: PermissionNames | None = None,
        team_permissions: PermissionNames | None = None,
        resource: ResourceRef | None = None,
    ) -> bool:
        if has_system_permission(self.claims, permission_names(system_permissions)):
            return True

        scope: ResourceScope | None = None
        if resource is not None:
            scope = await resolve_scope(self.db, resource)
            if scope is None:
                logger.debug(
                    "Denied %s: %s %s not found",
                    self.user_id, ResourceKind(resource.kind).value, resource.id,
                )
                return False

        return has_scoped_permission(
            self.claims,
            permission_names(view_permissions),
            permission_names(team_permissions),
            scope,
        )

    async def require(
        self,
        system_permissions: PermissionNames | None = None,
        view_permissions: PermissionNames | None = None,
        team_permissions: PermissionNames | None = None,
        resource: ResourceRef | None = None,
    ) -> None:
        """Raise ``ForbiddenError`` unless ``authorize`` allows the request."""
        if not await self.authorize(
            system_permissions, view_permissions, team_permissions, resource
        ):
            raise ForbiddenError("Insufficient permissions")

    def get_authorized_view_ids(self) -> list[uuid.UUID]:
        seen: dict[uuid.UUID, None] = {}
        for claim in self.claims.team_claims:
            seen.setdefault(claim.view_id, None)
        return list(seen)

    def get_system_permissions(self) -> list[str]:
        return sorted(self.claims.system_permissions)

    def get_team_permissions(
        self,
        view_id: uuid.UUID | None = None,
        team_id: uuid.UUID | None = None,
    ) -> list[TeamPermissionsClaim]:
        claims = self.claims.team_claims
        if view_id is not None:
            claims = tuple(c for c in claims if c.view_id == view_id)
        if team_id is not None:
            claims = tuple(c for c in claims if c.team_id == team_id)
        return list(claims)
