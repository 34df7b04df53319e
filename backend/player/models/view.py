"""Views and the Applications defined in them."""
from __future__ import annotations

import datetime
import enum
import uuid

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from player.database import Base
from player.models.base import UUIDPrimaryKeyMixin


class ViewStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class View(UUIDPrimaryKeyMixin, Base):
    """Top-level scoping container.  ``parent_view_id`` records clone lineage."""
    __tablename__ = "views"
    __mapper_args__ = {"eager_defaults": True}

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ViewStatus.ACTIVE.value
    )
    parent_view_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("views.id", ondelete="SET NULL")
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<View {self.name!r} status={self.status!r}>"


class Application(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "applications"

    view_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("views.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(Text)
    embeddable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    load_in_background: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    application_template_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("application_templates.id", ondelete="SET NULL")
    )

    def __repr__(self) -> str:
        return f"<Application {self.name!r} view={self.view_id}>"


class ApplicationTemplate(UUIDPrimaryKeyMixin, Base):
    """System-wide defaults an Application can be created from."""
    __tablename__ = "application_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(Text)
    embeddable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    load_in_background: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    def __repr__(self) -> str:
        return f"<ApplicationTemplate {self.name!r}>"
