"""Roles (System permission bundles) and Team Roles (Team permission bundles)."""
from __future__ import annotations

from sqlalchemy import Boolean, String, false
from sqlalchemy.orm import Mapped, mapped_column

from player.database import Base
from player.models.base import UUIDPrimaryKeyMixin


class Role(UUIDPrimaryKeyMixin, Base):
    """A named bundle of System permissions assignable to a User.

    When ``all_permissions`` is set the Role grants the whole Permission
    catalog and its explicit ``RolePermission`` rows are ignored.
    """
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    all_permissions: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    def __repr__(self) -> str:
        return f"<Role {self.name!r} all={self.all_permissions}>"


class TeamRole(UUIDPrimaryKeyMixin, Base):
    """A named bundle of TeamPermissions assignable to a Team or a membership."""
    __tablename__ = "team_roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    all_permissions: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    def __repr__(self) -> str:
        return f"<TeamRole {self.name!r} all={self.all_permissions}>"
