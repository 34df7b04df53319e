"""
Tests 301-340: Permission catalog, Role model and Grant model rules.
"""
import uuid

import pytest
from sqlalchemy import func, inspect, select

from conftest import join, make_team, make_user, make_view
from player.database import commit_or_conflict
from player.exceptions import ConflictError, EntityNotFoundError, ForbiddenError
from player.models import (
    Permission,
    Role,
    RolePermission,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRole,
    TeamRolePermission,
    UserPermission,
)
from player.rbac import seed_catalog
from player.services import catalog, grants, memberships, roles


async def permission_named(db, name: str) -> Permission:
    return await db.scalar(select(Permission).where(Permission.name == name))


async def team_permission_named(db, name: str) -> TeamPermission:
    return await db.scalar(select(TeamPermission).where(TeamPermission.name == name))


class TestCatalog:

    async def test_301_seed_is_idempotent(self, db):
        """Seeding twice adds nothing the second time."""
        before = await db.scalar(select(func.count()).select_from(Permission))
        await seed_catalog(db)
        assert await db.scalar(select(func.count()).select_from(Permission)) == before
        assert await db.scalar(select(func.count()).select_from(TeamRole)) == 3

    async def test_302_duplicate_permission_name_conflicts(self, db):
        """Permission names are unique."""
        with pytest.raises(ConflictError):
            await catalog.create_permission(db, "ManageRoles")

    async def test_303_immutable_permission_cannot_be_edited(self, db):
        """Seeded System permissions are immutable."""
        entry = await permission_named(db, "ManageRoles")
        with pytest.raises(ForbiddenError):
            await catalog.edit_permission(db, entry.id, description="changed")

    async def test_304_immutable_team_permission_cannot_be_deleted(self, db):
        """Immutable Team permissions survive delete attempts."""
        entry = await team_permission_named(db, "ManageTeam")
        with pytest.raises(ForbiddenError):
            await catalog.delete_team_permission(db, entry.id)

    async def test_305_mutable_entry_delete_removes_its_grants(self, db):
        """Deleting a mutable Team permission also deletes the grants using it."""
        entry = await team_permission_named(db, "RevertVms")
        member = await roles.get_team_role_by_name(db, "View Member")
        await grants.add_team_permission_to_team_role(db, member.id, entry.id)

        await catalog.delete_team_permission(db, entry.id)
        assert await db.get(TeamPermission, entry.id) is None
        remaining = await db.scalar(
            select(func.count()).select_from(TeamRolePermission)
            .where(TeamRolePermission.permission_id == entry.id)
        )
        assert remaining == 0

    async def test_306_missing_entry_is_not_found(self, db):
        """Editing a permission that does not exist is a 404-class error."""
        with pytest.raises(EntityNotFoundError):
            await catalog.edit_permission(db, uuid.uuid4(), name="x")

    async def test_307_edit_conflict_names_the_entry(self, db, monkeypatch):
        """A commit-time conflict on a description-only edit names the entry."""
        entry = await catalog.create_permission(db, "Beta")

        async def refuse(session, message):
            raise ConflictError(message)

        monkeypatch.setattr(catalog, "commit_or_conflict", refuse)
        with pytest.raises(ConflictError, match="'Beta'"):
            await catalog.edit_permission(db, entry.id, description="x")

    def test_308_grant_rows_carry_no_relationships(self):
        """Grant rows are plain id pairs with nothing loaded alongside them."""
        for model in (RolePermission, TeamRolePermission, TeamPermissionAssignment, UserPermission):
            assert not inspect(model).relationships, model.__name__


class TestRoles:

    async def test_310_duplicate_role_name_conflicts(self, db):
        """Role names are unique."""
        with pytest.raises(ConflictError):
            await roles.create_role(db, "Administrator")

    async def test_311_immutable_role_cannot_be_deleted(self, db):
        """The Administrator role is immutable."""
        admin_role = await roles.get_role_by_name(db, "Administrator")
        with pytest.raises(ForbiddenError):
            await roles.delete_role(db, admin_role.id)

    async def test_312_immutable_role_cannot_be_renamed(self, db):
        """Renaming an immutable Role is forbidden; same-name edits pass."""
        admin_role = await roles.get_role_by_name(db, "Administrator")
        with pytest.raises(ForbiddenError):
            await roles.edit_role(db, admin_role.id, name="Root")
        await roles.edit_role(db, admin_role.id, name="Administrator")

    async def test_313_deleting_role_unassigns_users(self, db):
        """Users of a deleted Role are left without one."""
        role = await roles.create_role(db, "Temporary")
        user = await make_user(db, "temp", "Temporary")
        await roles.delete_role(db, role.id)
        await db.refresh(user)
        assert user.role_id is None
        assert await db.get(Role, role.id) is None


class TestDefaultTeamRoles:

    @pytest.mark.parametrize("name", ["View Member", "View Admin"])
    async def test_320_default_team_role_cannot_be_deleted(self, db, name):
        """Default Team Roles report Conflict on delete, even when immutable."""
        role = await roles.get_team_role_by_name(db, name)
        with pytest.raises(ConflictError):
            await roles.delete_team_role(db, role.id)
        assert await db.get(TeamRole, role.id) is not None

    @pytest.mark.parametrize("name", ["View Member", "View Admin"])
    async def test_321_default_team_role_cannot_be_renamed(self, db, name):
        """Default Team Roles report Conflict on rename and keep their name."""
        role = await roles.get_team_role_by_name(db, name)
        with pytest.raises(ConflictError):
            await roles.edit_team_role(db, role.id, name="Renamed")
        await db.refresh(role)
        assert role.name == name

    async def test_322_team_role_in_use_cannot_be_deleted(self, db):
        """A Team Role still assigned to a Team cannot be deleted."""
        creator = await make_user(db, "creator")
        view = await make_view(db, creator)
        await make_team(db, view, "Watchers", "Observer")
        observer = await roles.get_team_role_by_name(db, "Observer")
        with pytest.raises(ConflictError):
            await roles.delete_team_role(db, observer.id)

    async def test_323_deleting_team_role_clears_overrides(self, db):
        """Membership overrides pointing at a deleted Team Role are cleared."""
        custom = await roles.create_team_role(db, "Custom")
        creator = await make_user(db, "creator")
        view = await make_view(db, creator)
        team = await make_team(db, view)
        membership = await join(db, team, creator)
        await memberships.set_membership_role(db, membership.id, custom.id)

        await roles.delete_team_role(db, custom.id)
        await db.refresh(membership)
        assert membership.role_id is None


class TestGrants:

    async def test_330_repeated_grant_leaves_one_row(self, db):
        """Granting the same pair twice returns the existing row."""
        role = await roles.create_role(db, "Granted")
        perm = await permission_named(db, "ViewUsers")
        first = await grants.add_permission_to_role(db, role.id, perm.id)
        second = await grants.add_permission_to_role(db, role.id, perm.id)

        assert first.id == second.id
        count = await db.scalar(
            select(func.count()).select_from(RolePermission)
            .where(RolePermission.role_id == role.id, RolePermission.permission_id == perm.id)
        )
        assert count == 1

    async def test_331_duplicate_row_hits_unique_index(self, db):
        """A duplicate pair that bypasses the check is a ConflictError."""
        role = await roles.create_role(db, "Raced")
        perm = await permission_named(db, "ViewUsers")
        await grants.add_permission_to_role(db, role.id, perm.id)
        db.add(RolePermission(role_id=role.id, permission_id=perm.id))
        with pytest.raises(ConflictError):
            await commit_or_conflict(db, "duplicate")

    async def test_332_grant_checks_both_ends(self, db):
        """Unknown Role or Permission ids are not found."""
        perm = await permission_named(db, "ViewUsers")
        with pytest.raises(EntityNotFoundError):
            await grants.add_permission_to_role(db, uuid.uuid4(), perm.id)
        role = await roles.create_role(db, "Lonely")
        with pytest.raises(EntityNotFoundError):
            await grants.add_permission_to_role(db, role.id, uuid.uuid4())

    async def test_333_removing_missing_grant_is_noop(self, db):
        """Removing a grant that was never made returns False."""
        role = await roles.create_role(db, "Empty")
        perm = await permission_named(db, "ViewUsers")
        assert await grants.remove_permission_from_role(db, role.id, perm.id) is False

    async def test_334_team_assignment_roundtrip(self, db):
        """Assigning and unassigning a Team permission is reflected in reads."""
        creator = await make_user(db, "creator")
        view = await make_view(db, creator)
        team = await make_team(db, view)
        perm = await team_permission_named(db, "RevertVms")

        await grants.add_team_permission_to_team(db, team.id, perm.id)
        assert [p.name for p in await grants.get_team_assigned_permissions(db, team.id)] == ["RevertVms"]
        assert await grants.remove_team_permission_from_team(db, team.id, perm.id) is True
        assert await grants.get_team_assigned_permissions(db, team.id) == []

    async def test_335_user_grants_listed(self, db):
        """Direct User grants are listed by name."""
        user = await make_user(db, "granted")
        perm = await permission_named(db, "ViewRoles")
        await grants.add_permission_to_user(db, user.id, perm.id)
        assert [p.name for p in await grants.get_user_permissions(db, user.id)] == ["ViewRoles"]
