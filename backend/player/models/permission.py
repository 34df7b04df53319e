"""Permission catalog entries and the grant rows that attach them.

``Permission`` is the System permission catalog, ``TeamPermission`` the
View/Team permission catalog.  Grants are plain association rows with a
unique ``(owner, permission)`` pair.
"""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from player.database import Base
from player.models.base import UUIDPrimaryKeyMixin


class Permission(UUIDPrimaryKeyMixin, Base):
    """A System permission (checked independent of any View or Team)."""
    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    def __repr__(self) -> str:
        return f"<Permission {self.name!r}>"


class TeamPermission(UUIDPrimaryKeyMixin, Base):
    """A View- or Team-scoped permission."""
    __tablename__ = "team_permissions"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    def __repr__(self) -> str:
        return f"<TeamPermission {self.name!r}>"


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


class RolePermission(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} permission={self.permission_id}>"


class TeamRolePermission(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "team_role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("team_roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("team_permissions.id", ondelete="CASCADE"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<TeamRolePermission role={self.role_id} permission={self.permission_id}>"


class TeamPermissionAssignment(UUIDPrimaryKeyMixin, Base):
    """A TeamPermission granted directly to one Team."""
    __tablename__ = "team_permission_assignments"
    __table_args__ = (UniqueConstraint("team_id", "permission_id"),)

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("team_permissions.id", ondelete="CASCADE"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<TeamPermissionAssignment team={self.team_id} permission={self.permission_id}>"


class UserPermission(UUIDPrimaryKeyMixin, Base):
    """A System permission granted directly to one User."""
    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserPermission user={self.user_id} permission={self.permission_id}>"
