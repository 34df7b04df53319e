"""View and Team memberships.

A User belongs to a View through exactly one ``ViewMembership`` and to each
of that View's Teams through a ``TeamMembership`` hanging off it.  One of
those TeamMemberships is the ViewMembership's primary.
"""
from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from player.database import Base
from player.models.base import UUIDPrimaryKeyMixin


class ViewMembership(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "view_memberships"
    __table_args__ = (UniqueConstraint("view_id", "user_id"),)

    view_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("views.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # team_memberships references this table too
    primary_team_membership_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey(
            "team_memberships.id",
            use_alter=True,
            name="fk_view_memberships_primary_team_membership",
            ondelete="SET NULL",
        ),
    )

    def __repr__(self) -> str:
        return f"<ViewMembership view={self.view_id} user={self.user_id}>"


class TeamMembership(UUIDPrimaryKeyMixin, Base):
    """``role_id`` optionally overrides the Team's TeamRole for this member."""
    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("team_id", "user_id"),)

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    view_membership_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("view_memberships.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("team_roles.id", ondelete="SET NULL")
    )

    def __repr__(self) -> str:
        return f"<TeamMembership team={self.team_id} user={self.user_id}>"
