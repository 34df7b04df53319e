"""
Tests 201-240: Entity events and claims cache invalidation.

Every test primes the cache for the users involved, commits one change and
checks exactly whose cached claims were evicted.
"""
import logging
import uuid

import pytest
from sqlalchemy import Select, select

from conftest import join, make_team, make_user, make_view
from player.events import (
    PENDING_EVENTS_KEY,
    EntityCreated,
    EntityDeleted,
    EntityUpdated,
    EventDispatcher,
)
from player.models import Permission, Role, RolePermission, TeamMembership, TeamPermission, User
from player.services import catalog, grants, memberships, roles, teams, users
from player.services.cache_invalidation import (
    catalog_entry_renamed,
    permission_added_or_removed,
    role_changed,
    team_permission_added_or_removed,
    team_membership_changed,
    user_changed,
)
from player.services.claims_service import UserClaimsService


async def prime(db, cache, *people):
    service = UserClaimsService(db, cache)
    for person in people:
        await service.get_claims(person.id)
        assert person.id in cache


async def permission_id(db, name: str) -> uuid.UUID:
    return await db.scalar(select(Permission.id).where(Permission.name == name))


async def team_permission_id(db, name: str) -> uuid.UUID:
    return await db.scalar(select(TeamPermission.id).where(TeamPermission.name == name))


class TestRoleInvalidation:

    @pytest.fixture
    async def role_users(self, db):
        role = await roles.create_role(db, "Auditor")
        holder = await make_user(db, "holder", "Auditor")
        bystander = await make_user(db, "bystander")
        return role, holder, bystander

    async def test_201_role_rename_evicts_nobody(self, db, cache, role_users):
        """Changing only a Role's name leaves every cached claim in place."""
        role, holder, bystander = role_users
        await prime(db, cache, holder, bystander)
        await roles.edit_role(db, role.id, name="Inspector")
        assert holder.id in cache
        assert bystander.id in cache

    async def test_202_all_permissions_flag_evicts_role_users(self, db, cache, role_users):
        """Flipping all_permissions evicts every user with the Role, and only them."""
        role, holder, bystander = role_users
        await prime(db, cache, holder, bystander)
        await roles.edit_role(db, role.id, all_permissions=True)
        assert holder.id not in cache
        assert bystander.id in cache

    async def test_203_role_permission_grant_evicts_role_users(self, db, cache, role_users):
        """Adding a permission to a Role evicts its users."""
        role, holder, bystander = role_users
        await prime(db, cache, holder, bystander)
        await grants.add_permission_to_role(db, role.id, await permission_id(db, "ViewUsers"))
        assert holder.id not in cache
        assert bystander.id in cache

    async def test_204_role_permission_removal_evicts_role_users(self, db, cache, role_users):
        """Removing a permission from a Role evicts its users."""
        role, holder, _ = role_users
        pid = await permission_id(db, "ViewUsers")
        await grants.add_permission_to_role(db, role.id, pid)
        await prime(db, cache, holder)
        await grants.remove_permission_from_role(db, role.id, pid)
        assert holder.id not in cache

    async def test_205_role_change_on_user_evicts_user(self, db, cache, role_users):
        """Assigning a different Role evicts that user."""
        _, holder, bystander = role_users
        await prime(db, cache, holder, bystander)
        await users.edit_user(db, holder.id, role_id=None)
        assert holder.id not in cache
        assert bystander.id in cache

    async def test_206_user_rename_evicts_nobody(self, db, cache, role_users):
        """A User's name is not part of their claims."""
        _, holder, _ = role_users
        await prime(db, cache, holder)
        await users.edit_user(db, holder.id, name="renamed")
        assert holder.id in cache

    async def test_207_direct_grant_evicts_user(self, db, cache, role_users):
        """Granting a permission to a User evicts that User."""
        _, holder, bystander = role_users
        await prime(db, cache, holder, bystander)
        await grants.add_permission_to_user(db, bystander.id, await permission_id(db, "ViewRoles"))
        assert bystander.id not in cache
        assert holder.id in cache


class TestTeamInvalidation:

    @pytest.fixture
    async def team_users(self, db):
        creator = await make_user(db, "creator")
        member = await make_user(db, "member")
        outsider = await make_user(db, "outsider")
        view = await make_view(db, creator)
        team = await make_team(db, view, "Blue")
        await join(db, team, member)
        return view, team, member, outsider

    async def test_210_team_role_change_evicts_members(self, db, cache, team_users):
        """Changing a Team's Team Role evicts its members."""
        _, team, member, outsider = team_users
        observer = await roles.get_team_role_by_name(db, "Observer")
        await prime(db, cache, member, outsider)
        await teams.edit_team(db, team.id, role_id=observer.id)
        assert member.id not in cache
        assert outsider.id in cache

    async def test_211_team_rename_evicts_nobody(self, db, cache, team_users):
        """Renaming a Team does not touch claims."""
        _, team, member, _ = team_users
        await prime(db, cache, member)
        await teams.edit_team(db, team.id, name="Azure")
        assert member.id in cache

    async def test_212_team_role_permission_evicts_teams_using_it(self, db, cache, team_users):
        """A grant on a Team Role reaches members of Teams using that role."""
        _, _, member, outsider = team_users
        default = await roles.get_team_role_by_name(db, "View Member")
        await prime(db, cache, member, outsider)
        await grants.add_team_permission_to_team_role(
            db, default.id, await team_permission_id(db, "RevertVms")
        )
        assert member.id not in cache
        assert outsider.id in cache

    async def test_213_team_role_permission_evicts_overriding_members(self, db, cache, team_users):
        """A grant on a Team Role reaches members overriding to it."""
        _, team, member, outsider = team_users
        custom = await roles.create_team_role(db, "Custom")
        membership = await db.scalar(
            select(TeamMembership).where(TeamMembership.user_id == member.id)
        )
        await memberships.set_membership_role(db, membership.id, custom.id)
        await prime(db, cache, member, outsider)
        await grants.add_team_permission_to_team_role(
            db, custom.id, await team_permission_id(db, "RevertVms")
        )
        assert member.id not in cache
        assert outsider.id in cache

    async def test_214_team_assignment_evicts_members(self, db, cache, team_users):
        """Assigning a permission straight to a Team evicts its members."""
        _, team, member, outsider = team_users
        await prime(db, cache, member, outsider)
        await grants.add_team_permission_to_team(
            db, team.id, await team_permission_id(db, "DownloadVmFiles")
        )
        assert member.id not in cache
        assert outsider.id in cache

    async def test_215_joining_a_team_evicts_the_joiner(self, db, cache, team_users):
        """A new TeamMembership evicts only the User who joined."""
        _, team, member, outsider = team_users
        await prime(db, cache, member, outsider)
        await join(db, team, outsider)
        assert outsider.id not in cache
        assert member.id in cache

    async def test_216_leaving_a_team_evicts_the_leaver(self, db, cache, team_users):
        """Removing a TeamMembership evicts that User."""
        _, team, member, _ = team_users
        await prime(db, cache, member)
        await memberships.remove_user_from_team(db, team.id, member.id)
        assert member.id not in cache

    async def test_217_primary_team_change_evicts_user(self, db, cache, team_users):
        """Switching primary Team evicts the User."""
        view, _, member, outsider = team_users
        red = await make_team(db, view, "Red")
        await join(db, red, member)
        await prime(db, cache, member, outsider)
        await memberships.set_primary_team(db, member.id, red.id)
        assert member.id not in cache
        assert outsider.id in cache


class TestCatalogInvalidation:

    async def test_220_catalog_rename_evicts_everyone(self, db, cache):
        """Claims carry names, so renaming a catalog entry evicts all users."""
        a = await make_user(db, "a")
        b = await make_user(db, "b")
        entry = await catalog.create_team_permission(db, "Temporary")
        await prime(db, cache, a, b)
        await catalog.edit_team_permission(db, entry.id, name="Renamed")
        assert a.id not in cache
        assert b.id not in cache

    async def test_221_description_edit_evicts_nobody(self, db, cache):
        """Only the name matters to claims."""
        a = await make_user(db, "a")
        entry = await catalog.create_permission(db, "Temporary")
        await prime(db, cache, a)
        await catalog.edit_permission(db, entry.id, description="now documented")
        assert a.id in cache

    async def test_222_new_permission_evicts_wildcard_role_users(self, db, cache, admin):
        """all_permissions Roles pick up a new catalog entry on the next read."""
        plain = await make_user(db, "plain")
        await prime(db, cache, admin, plain)
        await catalog.create_permission(db, "ManageRanges")
        assert admin.id not in cache
        assert plain.id in cache

        claims = await UserClaimsService(db, cache).get_claims(admin.id)
        assert "ManageRanges" in claims.system_permissions

    async def test_223_removed_team_permission_evicts_wildcard_members(self, db, cache):
        """Deleting a Team permission reaches members holding it through a wildcard Team Role."""
        creator = await make_user(db, "creator")
        admin_member = await make_user(db, "admin member")
        overrider = await make_user(db, "overrider")
        plain_member = await make_user(db, "plain member")
        view = await make_view(db, creator)
        admins = await make_team(db, view, "Admins", "View Admin")
        blue = await make_team(db, view, "Blue")
        await join(db, admins, admin_member)
        override = await join(db, blue, overrider)
        await join(db, blue, plain_member)
        view_admin = await roles.get_team_role_by_name(db, "View Admin")
        await memberships.set_membership_role(db, override.id, view_admin.id)

        entry = await catalog.create_team_permission(db, "OperateRange")
        await prime(db, cache, admin_member, overrider, plain_member)
        await catalog.delete_team_permission(db, entry.id)

        assert admin_member.id not in cache
        assert overrider.id not in cache
        assert plain_member.id in cache
        claims = await UserClaimsService(db, cache).get_claims(admin_member.id)
        assert "OperateRange" not in claims.claim_for_team(admins.id).team_permissions


class TestEventPublication:

    async def test_230_rollback_publishes_nothing(self, db, cache, session_factory):
        """Flushed but rolled-back changes never reach the cache."""
        role = await roles.create_role(db, "Temp")
        holder = await make_user(db, "holder", "Temp")
        pid = await permission_id(db, "ViewUsers")
        await prime(db, cache, holder)

        async with session_factory() as session:
            session.add(RolePermission(role_id=role.id, permission_id=pid))
            await session.flush()
            assert session.info[PENDING_EVENTS_KEY]
            await session.rollback()
            assert PENDING_EVENTS_KEY not in session.info

        assert holder.id in cache

    async def test_231_updates_carry_modified_properties(self, db, event_dispatcher):
        """An EntityUpdated names the column attributes that changed."""
        seen = []

        async def record(evt):
            seen.append(evt)

        event_dispatcher.subscribe(EntityUpdated, Role, record)
        role = await roles.create_role(db, "Before")
        await roles.edit_role(db, role.id, name="After")

        assert [e.modified_properties for e in seen] == [frozenset({"name"})]
        assert seen[0].entity.id == role.id

    async def test_232_handler_failure_is_logged(self, caplog):
        """A failing handler is logged and later handlers still run."""
        dispatcher = EventDispatcher()
        calls = []

        async def boom(evt):
            raise RuntimeError("boom")

        async def ok(evt):
            calls.append(evt)

        dispatcher.subscribe(EntityCreated, Role, boom)
        dispatcher.subscribe(EntityCreated, Role, ok)
        with caplog.at_level(logging.ERROR, logger="player.events"):
            await dispatcher.publish(EntityCreated(Role(name="x")))

        assert len(calls) == 1
        assert "Event handler failed" in caplog.text


class TestRules:

    def test_240_rules_are_pure(self):
        """Rules answer from the event alone."""
        role = Role(id=uuid.uuid4(), name="r")
        user = User(id=uuid.uuid4(), key=1)
        membership = TeamMembership(user_id=user.id)

        assert role_changed(EntityUpdated(role, frozenset({"name"}))) is None
        assert isinstance(role_changed(EntityUpdated(role, frozenset({"all_permissions"}))), Select)
        assert isinstance(role_changed(EntityDeleted(role)), Select)
        assert team_membership_changed(EntityCreated(membership)) == {user.id}
        assert user_changed(EntityUpdated(user, frozenset({"name"}))) is None
        assert user_changed(EntityDeleted(user)) == {user.id}
        assert catalog_entry_renamed(EntityUpdated(Permission(name="p"), frozenset({"description"}))) is None
        assert isinstance(permission_added_or_removed(EntityCreated(Permission(name="p"))), Select)
        assert isinstance(team_permission_added_or_removed(EntityDeleted(TeamPermission(name="t"))), Select)
