"""
Tests 101-140: Claims materializer, claim transport format and claims cache.
"""
import uuid

import pytest
from sqlalchemy import select

from conftest import join, make_team, make_user, make_view
from player.claims import PermissionClaim, PermissionScope, TeamPermissionsClaim, UserClaims
from player.models import Permission, TeamPermission, User
from player.rbac import (
    SYSTEM_PERMISSION_NAMES,
    TEAM_PERMISSION_NAMES,
    VIEW_PERMISSION_NAMES,
    SystemPermission,
)
from player.services import grants, memberships, roles, teams
from player.services.claims_cache import ClaimsCache
from player.services.claims_service import UserClaimsService


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSystemClaims:

    async def test_101_administrator_holds_whole_catalog(self, db, cache, admin):
        """all_permissions expands to every catalog entry and every known name."""
        claims = await UserClaimsService(db, cache).compute_claims(admin.id)
        catalog = set((await db.execute(select(Permission.name))).scalars())
        assert catalog <= claims.system_permissions
        assert SYSTEM_PERMISSION_NAMES <= claims.system_permissions

    async def test_102_explicit_role_permissions_only(self, db, cache):
        """Content Developer holds exactly CreateViews."""
        user = await make_user(db, "dev", "Content Developer")
        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        assert claims.system_permissions == {SystemPermission.CREATE_VIEWS.value}

    async def test_103_direct_grants_join_role_permissions(self, db, cache):
        """User grants are unioned with the Role's permissions."""
        user = await make_user(db, "dev", "Content Developer")
        view_users = await db.scalar(select(Permission).where(Permission.name == "ViewUsers"))
        await grants.add_permission_to_user(db, user.id, view_users.id)

        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        assert claims.system_permissions == {"CreateViews", "ViewUsers"}

    async def test_104_user_without_role_or_grants(self, db, cache):
        """No Role and no grants means no System permissions."""
        user = await make_user(db, "plain")
        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        assert claims.system_permissions == frozenset()
        assert claims.team_claims == ()

    async def test_105_unknown_user_gets_empty_claims(self, db, cache):
        """Claims for an id with no User row are empty, not an error."""
        user_id = uuid.uuid4()
        claims = await UserClaimsService(db, cache).compute_claims(user_id)
        assert claims == UserClaims(user_id=user_id)

    async def test_106_wildcard_wins_over_explicit_rows(self, db, cache):
        """Explicit rows on an all_permissions Role change nothing."""
        role = await roles.create_role(db, "Wildcard", all_permissions=True)
        view_users = await db.scalar(select(Permission).where(Permission.name == "ViewUsers"))
        await grants.add_permission_to_role(db, role.id, view_users.id)
        user = await make_user(db, "wild", "Wildcard")
        service = UserClaimsService(db, cache)
        with_row = await service.compute_claims(user.id)

        await grants.remove_permission_from_role(db, role.id, view_users.id)
        assert await service.compute_claims(user.id) == with_row
        assert SYSTEM_PERMISSION_NAMES <= with_row.system_permissions


class TestTeamClaims:

    @pytest.fixture
    async def member(self, db):
        creator = await make_user(db, "creator")
        user = await make_user(db, "member")
        view = await make_view(db, creator)
        team = await make_team(db, view, "Blue")
        membership = await join(db, team, user)
        return user, view, team, membership

    async def test_110_team_role_permissions(self, db, cache, member):
        """A View Member team claim carries the View Member permissions, tagged Team."""
        user, view, team, _ = member
        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        (claim,) = claims.team_claims
        assert claim.view_id == view.id
        assert claim.team_id == team.id
        assert claim.team_permissions == {"ViewTeam", "EditTeam", "UploadTeamIsos", "UploadVmFiles"}
        assert claim.view_permissions == frozenset()

    async def test_111_first_membership_is_primary(self, db, cache, member):
        """The first Team joined in a View is primary; the next one is not."""
        user, view, team, _ = member
        red = await make_team(db, view, "Red")
        await join(db, red, user)

        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        primary = {c.team_id: c.is_primary for c in claims.team_claims}
        assert primary == {team.id: True, red.id: False}

    async def test_112_direct_team_assignment_joins_union(self, db, cache, member):
        """A permission assigned to the Team shows up in its claim."""
        user, _, team, _ = member
        revert = await db.scalar(select(TeamPermission).where(TeamPermission.name == "RevertVms"))
        await grants.add_team_permission_to_team(db, team.id, revert.id)

        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        assert "RevertVms" in claims.claim_for_team(team.id).team_permissions

    async def test_113_membership_role_override_joins_union(self, db, cache, member):
        """An Observer override adds ViewView, tagged View, to the member's claim."""
        user, _, team, membership = member
        observer = await roles.get_team_role_by_name(db, "Observer")
        await memberships.set_membership_role(db, membership.id, observer.id)

        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        claim = claims.claim_for_team(team.id)
        assert claim.view_permissions == {"ViewView"}
        assert "EditTeam" in claim.team_permissions

    async def test_114_all_permissions_team_role(self, db, cache, member):
        """Flipping all_permissions on the Team's role grants the whole catalog."""
        user, _, team, _ = member
        role = await roles.create_team_role(db, "Everything")
        await teams.edit_team(db, team.id, role_id=role.id)
        await roles.edit_team_role(db, role.id, all_permissions=True)

        claims = await UserClaimsService(db, cache).compute_claims(user.id)
        claim = claims.claim_for_team(team.id)
        assert {"ManageView", "ViewView"} <= claim.view_permissions
        assert {"ManageTeam", "RevertVms"} <= claim.team_permissions


class TestProvisioning:

    async def test_120_first_user_becomes_administrator(self, db, cache):
        """The first identity seen in an empty system gets the admin Role."""
        service = UserClaimsService(db, cache)
        first = await service.ensure_user(uuid.uuid4(), "first")
        second = await service.ensure_user(uuid.uuid4(), "second")

        admin_role = await roles.get_role_by_name(db, "Administrator")
        assert first.role_id == admin_role.id
        assert second.role_id is None
        assert second.key == first.key + 1

    async def test_121_known_user_name_is_refreshed(self, db, cache):
        """A new name in the token updates the stored User."""
        user = await make_user(db, "old")
        await UserClaimsService(db, cache).ensure_user(user.id, "new")
        assert (await db.get(User, user.id)).name == "new"


class TestClaimsCaching:

    async def test_130_claims_are_cached(self, db, cache):
        """get_claims stores its result and returns the cached value next time."""
        user = await make_user(db, "cached")
        service = UserClaimsService(db, cache)
        first = await service.get_claims(user.id)
        assert user.id in cache
        assert await service.get_claims(user.id) is first

    async def test_131_cache_can_be_disabled(self, db, cache):
        """With caching off nothing is stored."""
        user = await make_user(db, "uncached")
        await UserClaimsService(db, cache, cache_enabled=False).get_claims(user.id)
        assert user.id not in cache

    async def test_132_refresh_recomputes(self, db, cache):
        """refresh_claims drops the cached value and computes a new one."""
        user = await make_user(db, "refreshed")
        service = UserClaimsService(db, cache)
        first = await service.get_claims(user.id)
        assert await service.refresh_claims(user.id) is not first

    def test_133_entries_expire(self):
        """Entries past their expiration are gone on read and on sweep."""
        clock = FakeClock()
        cache = ClaimsCache(expiration_seconds=60, clock=clock)
        a, b = uuid.uuid4(), uuid.uuid4()
        cache.set(a, UserClaims(user_id=a))
        cache.set(b, UserClaims(user_id=b))

        clock.now += 61
        assert cache.get(a) is None
        assert cache.purge_expired() == 1
        assert len(cache) == 0

    def test_134_evict_counts_cached_entries(self):
        """evict reports how many of the given users were actually cached."""
        cache = ClaimsCache()
        a = uuid.uuid4()
        cache.set(a, UserClaims(user_id=a))
        assert cache.evict([a, uuid.uuid4()]) == 1
        assert a not in cache


class TestClaimFormat:

    def test_140_permission_claims_are_tagged_by_scope(self):
        """View permission names are tagged View, everything else Team."""
        assert PermissionClaim.for_name("ManageView").scope == PermissionScope.VIEW
        assert PermissionClaim.for_name("ManageTeam").scope == PermissionScope.TEAM
        assert PermissionClaim.for_name("CustomThing").scope == PermissionScope.TEAM

    def test_142_view_and_team_names_do_not_overlap(self):
        """No seeded name is both a View and a Team permission."""
        assert not VIEW_PERMISSION_NAMES & TEAM_PERMISSION_NAMES

    def test_141_team_claim_json_shape(self):
        """Team claims serialize with viewId/teamId/isPrimary/permissionValues."""
        view_id, team_id = uuid.uuid4(), uuid.uuid4()
        claim = TeamPermissionsClaim.from_names(view_id, team_id, True, ["ViewView", "ViewTeam"])
        assert claim.to_dict() == {
            "viewId": str(view_id),
            "teamId": str(team_id),
            "isPrimary": True,
            "permissionValues": [
                {"scope": "Team", "value": "ViewTeam"},
                {"scope": "View", "value": "ViewView"},
            ],
        }
        assert TeamPermissionsClaim.from_json(claim.to_json()) == claim
