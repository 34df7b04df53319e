"""Materialized claims: what a user may do, in a form that can be cached.

A user's claims are the System permission names they hold plus one
``TeamPermissionsClaim`` per TeamMembership.  Each permission inside a team
claim is tagged with the scope it applies to, so View and Team permission
names never have to be told apart by parsing.

JSON form of a team claim::

    {
        "viewId": "...",
        "teamId": "...",
        "isPrimary": true,
        "permissionValues": [{"scope": "Team", "value": "ViewTeam"}, ...]
    }
"""
from __future__ import annotations

import dataclasses
import enum
import json
import uuid
from collections.abc import Iterable

from player.rbac import is_view_permission


class PermissionScope(str, enum.Enum):
    VIEW = "View"
    TEAM = "Team"


@dataclasses.dataclass(frozen=True)
class PermissionClaim:
    scope: PermissionScope
    value: str

    @classmethod
    def for_name(cls, name: str) -> PermissionClaim:
        scope = PermissionScope.VIEW if is_view_permission(name) else PermissionScope.TEAM
        return cls(scope, name)

    def to_dict(self) -> dict:
        return {"scope": self.scope.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> PermissionClaim:
        return cls(PermissionScope(data["scope"]), data["value"])


@dataclasses.dataclass(frozen=True)
class TeamPermissionsClaim:
    view_id: uuid.UUID
    team_id: uuid.UUID
    is_primary: bool
    permission_values: frozenset[PermissionClaim] = frozenset()

    @classmethod
    def from_names(
        cls,
        view_id: uuid.UUID,
        team_id: uuid.UUID,
        is_primary: bool,
        names: Iterable[str],
    ) -> TeamPermissionsClaim:
        return cls(
            view_id=view_id,
            team_id=team_id,
            is_primary=is_primary,
            permission_values=frozenset(PermissionClaim.for_name(n) for n in names),
        )

    def values_in(self, scope: PermissionScope) -> frozenset[str]:
        return frozenset(c.value for c in self.permission_values if c.scope == scope)

    @property
    def view_permissions(self) -> frozenset[str]:
        return self.values_in(PermissionScope.VIEW)

    @property
    def team_permissions(self) -> frozenset[str]:
        return self.values_in(PermissionScope.TEAM)

    def to_dict(self) -> dict:
        return {
            "viewId": str(self.view_id),
            "teamId": str(self.team_id),
            "isPrimary": self.is_primary,
            "permissionValues": [
                c.to_dict()
                for c in sorted(self.permission_values, key=lambda c: (c.scope.value, c.value))
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> TeamPermissionsClaim:
        return cls(
            view_id=uuid.UUID(data["viewId"]),
            team_id=uuid.UUID(data["teamId"]),
            is_primary=bool(data["isPrimary"]),
            permission_values=frozenset(
                PermissionClaim.from_dict(v) for v in data.get("permissionValues", [])
            ),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> TeamPermissionsClaim:
        return cls.from_dict(json.loads(raw))


@dataclasses.dataclass(frozen=True)
class UserClaims:
    """Everything the authorization engine needs to know about one user."""

    user_id: uuid.UUID
    system_permissions: frozenset[str] = frozenset()
    team_claims: tuple[TeamPermissionsClaim, ...] = ()

    def claim_for_team(self, team_id: uuid.UUID) -> TeamPermissionsClaim | None:
        for claim in self.team_claims:
            if claim.team_id == team_id:
                return claim
        return None

    def claims_for_view(self, view_id: uuid.UUID) -> list[TeamPermissionsClaim]:
        return [c for c in self.team_claims if c.view_id == view_id]

    @property
    def view_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(c.view_id for c in self.team_claims)

    def to_dict(self) -> dict:
        return {
            "userId": str(self.user_id),
            "systemPermissions": sorted(self.system_permissions),
            "teamPermissions": [c.to_dict() for c in self.team_claims],
        }

    @classmethod
    def from_dict(cls, data: dict) -> UserClaims:
        return cls(
            user_id=uuid.UUID(data["userId"]),
            system_permissions=frozenset(data.get("systemPermissions", [])),
            team_claims=tuple(
                TeamPermissionsClaim.from_dict(c) for c in data.get("teamPermissions", [])
            ),
        )
