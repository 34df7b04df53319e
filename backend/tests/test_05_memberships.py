"""
Tests 401-430: View and Team membership lifecycle, Team and User deletion.
"""
import uuid

import pytest
from sqlalchemy import func, select

from conftest import join, make_team, make_user, make_view
from player.exceptions import ConflictError, EntityNotFoundError
from player.models import Team, TeamMembership, User, ViewMembership
from player.services import memberships, teams, users


async def view_membership_count(db, user_id) -> int:
    return await db.scalar(
        select(func.count()).select_from(ViewMembership).where(ViewMembership.user_id == user_id)
    )


class TestJoining:

    @pytest.fixture
    async def setup(self, db):
        creator = await make_user(db, "creator")
        user = await make_user(db, "player")
        view = await make_view(db, creator)
        blue = await make_team(db, view, "Blue")
        red = await make_team(db, view, "Red")
        return user, view, blue, red

    async def test_401_first_join_creates_primary_view_membership(self, db, setup):
        """The first Team in a View creates the ViewMembership and is its primary."""
        user, view, blue, _ = setup
        membership = await join(db, blue, user)

        view_membership = await memberships.find_view_membership(db, view.id, user.id)
        assert view_membership is not None
        assert membership.view_membership_id == view_membership.id
        assert view_membership.primary_team_membership_id == membership.id

    async def test_402_second_join_reuses_view_membership(self, db, setup):
        """A second Team in the same View hangs off the same ViewMembership."""
        user, view, blue, red = setup
        first = await join(db, blue, user)
        second = await join(db, red, user)

        assert second.view_membership_id == first.view_membership_id
        assert await view_membership_count(db, user.id) == 1
        view_membership = await memberships.find_view_membership(db, view.id, user.id)
        assert view_membership.primary_team_membership_id == first.id

    async def test_403_joining_twice_conflicts(self, db, setup):
        """A User is a member of a Team at most once."""
        user, _, blue, _ = setup
        await join(db, blue, user)
        with pytest.raises(ConflictError):
            await join(db, blue, user)

    async def test_404_unknown_user_not_found(self, db, setup):
        """Adding a User that does not exist is not found."""
        _, _, blue, _ = setup
        with pytest.raises(EntityNotFoundError):
            await memberships.add_user_to_team(db, blue.id, uuid.uuid4())


class TestLeaving:

    @pytest.fixture
    async def two_memberships(self, db):
        creator = await make_user(db, "creator")
        user = await make_user(db, "player")
        view = await make_view(db, creator)
        blue = await make_team(db, view, "Blue")
        red = await make_team(db, view, "Red")
        first = await join(db, blue, user)
        second = await join(db, red, user)
        return user, view, blue, red, first, second

    async def test_410_removing_primary_promotes_sibling(self, db, two_memberships):
        """Leaving the primary Team makes the remaining membership primary."""
        user, view, blue, _, _, second = two_memberships
        assert await memberships.remove_user_from_team(db, blue.id, user.id) is True

        view_membership = await memberships.find_view_membership(db, view.id, user.id)
        await db.refresh(view_membership)
        assert view_membership.primary_team_membership_id == second.id

    async def test_411_removing_last_membership_removes_view_membership(self, db, two_memberships):
        """Leaving every Team in a View removes the ViewMembership."""
        user, view, blue, red, _, _ = two_memberships
        await memberships.remove_user_from_team(db, blue.id, user.id)
        await memberships.remove_user_from_team(db, red.id, user.id)
        assert await memberships.find_view_membership(db, view.id, user.id) is None

    async def test_412_removing_non_member_is_noop(self, db, two_memberships):
        """Removing someone who is not in the Team returns False."""
        _, _, blue, _, _, _ = two_memberships
        outsider = await make_user(db, "outsider")
        assert await memberships.remove_user_from_team(db, blue.id, outsider.id) is False


class TestPrimaryTeam:

    async def test_420_set_primary_to_own_team(self, db):
        """A member can switch their primary Team within the View."""
        creator = await make_user(db, "creator")
        user = await make_user(db, "player")
        view = await make_view(db, creator)
        blue = await make_team(db, view, "Blue")
        red = await make_team(db, view, "Red")
        await join(db, blue, user)
        second = await join(db, red, user)

        view_membership = await memberships.set_primary_team(db, user.id, red.id)
        assert view_membership.primary_team_membership_id == second.id

    async def test_421_set_primary_to_foreign_team_conflicts(self, db):
        """The primary Team must be one the User belongs to."""
        creator = await make_user(db, "creator")
        user = await make_user(db, "player")
        view = await make_view(db, creator)
        blue = await make_team(db, view, "Blue")
        red = await make_team(db, view, "Red")
        await join(db, blue, user)
        with pytest.raises(ConflictError):
            await memberships.set_primary_team(db, user.id, red.id)


class TestDeletion:

    async def test_425_deleting_team_removes_memberships(self, db):
        """Deleting a Team drops its memberships and the emptied ViewMemberships."""
        creator = await make_user(db, "creator")
        user = await make_user(db, "player")
        view = await make_view(db, creator)
        blue = await make_team(db, view, "Blue")
        await join(db, blue, user)

        await teams.delete_team(db, blue.id)
        assert await db.get(Team, blue.id) is None
        assert await db.scalar(
            select(func.count()).select_from(TeamMembership).where(TeamMembership.team_id == blue.id)
        ) == 0
        assert await view_membership_count(db, user.id) == 0

    async def test_426_deleting_user_removes_memberships(self, db, admin):
        """Deleting a User also removes their memberships."""
        user = await make_user(db, "player")
        view = await make_view(db, admin)
        blue = await make_team(db, view, "Blue")
        await join(db, blue, user)

        await users.delete_user(db, user.id, actor_id=admin.id)
        assert await db.get(User, user.id) is None
        assert await view_membership_count(db, user.id) == 0

    async def test_427_users_cannot_delete_themselves(self, db, admin):
        """Self-deletion is a conflict."""
        with pytest.raises(ConflictError):
            await users.delete_user(db, admin.id, actor_id=admin.id)
