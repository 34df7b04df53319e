"""Teams and the Application instances shown to them."""
from __future__ import annotations

import uuid

from sqlalchemy import Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from player.database import Base
from player.models.base import UUIDPrimaryKeyMixin


class Team(UUIDPrimaryKeyMixin, Base):
    """A group of Users within one View.  ``role_id`` is the Team's TeamRole."""
    __tablename__ = "teams"

    view_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("views.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("team_roles.id")
    )

    def __repr__(self) -> str:
        return f"<Team {self.name!r} view={self.view_id}>"


class ApplicationInstance(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "application_instances"

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    display_order: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def __repr__(self) -> str:
        return f"<ApplicationInstance team={self.team_id} app={self.application_id}>"
