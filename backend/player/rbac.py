"""
Permission Catalog: Player

Defines the permission names the API checks in code and the catalog seeded
into a fresh database.  The database rows are the source of truth at
runtime; the enums below name the permissions handlers ask for.

Three families:

* System permissions: held through a User's Role or direct grants,
  checked independent of any View or Team.
* View permissions: held through a Team, apply to the Team's whole View.
* Team permissions: held through a Team, apply to that Team only.

View and Team permissions share the ``team_permissions`` catalog table.
"""
from __future__ import annotations

import enum
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from player.models import (
    Permission,
    Role,
    RolePermission,
    TeamPermission as TeamPermissionEntry,
    TeamRole,
    TeamRolePermission,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Permission names checked in code
# ---------------------------------------------------------------------------


class SystemPermission(str, enum.Enum):
    CREATE_VIEWS = "CreateViews"
    VIEW_VIEWS = "ViewViews"
    EDIT_VIEWS = "EditViews"
    MANAGE_VIEWS = "ManageViews"
    VIEW_APPLICATIONS = "ViewApplications"
    MANAGE_APPLICATIONS = "ManageApplications"
    VIEW_USERS = "ViewUsers"
    MANAGE_USERS = "ManageUsers"
    VIEW_ROLES = "ViewRoles"
    MANAGE_ROLES = "ManageRoles"
    VIEW_WEBHOOK_SUBSCRIPTIONS = "ViewWebhookSubscriptions"
    MANAGE_WEBHOOK_SUBSCRIPTIONS = "ManageWebhookSubscriptions"


class ViewPermission(str, enum.Enum):
    VIEW_VIEW = "ViewView"
    EDIT_VIEW = "EditView"
    MANAGE_VIEW = "ManageView"
    UPLOAD_VIEW_ISOS = "UploadViewIsos"


class TeamPermission(str, enum.Enum):
    VIEW_TEAM = "ViewTeam"
    EDIT_TEAM = "EditTeam"
    MANAGE_TEAM = "ManageTeam"
    UPLOAD_TEAM_ISOS = "UploadTeamIsos"
    UPLOAD_VM_FILES = "UploadVmFiles"
    DOWNLOAD_VM_FILES = "DownloadVmFiles"
    REVERT_VMS = "RevertVms"


VIEW_PERMISSION_NAMES: frozenset[str] = frozenset(p.value for p in ViewPermission)
TEAM_PERMISSION_NAMES: frozenset[str] = frozenset(p.value for p in TeamPermission)
SYSTEM_PERMISSION_NAMES: frozenset[str] = frozenset(p.value for p in SystemPermission)


# ---------------------------------------------------------------------------
# Seed catalog
# ---------------------------------------------------------------------------

# (name, description, immutable)
SEED_SYSTEM_PERMISSIONS: list[tuple[str, str, bool]] = [
    (p.value, "", True) for p in SystemPermission
]

SEED_TEAM_PERMISSIONS: list[tuple[str, str, bool]] = [
    ("ViewView", "Allows viewing all resources in the View", True),
    ("EditView", "Allows editing all basic resources in the View, including making "
                 "changes within Virtual Machines, if applicable.", True),
    ("ManageView", "Allows managing all resources for all Teams in the View", True),
    ("UploadViewIsos", "Allows uploading ISOs that can be used by any Teams in the View", False),
    ("ViewTeam", "Allows viewing Team resources", True),
    ("EditTeam", "Allows editing basic Team resources, including making changes "
                 "within Virtual Machines, if applicable.", True),
    ("ManageTeam", "Allows managing all Team resources, including adding and "
                   "removing Users.", True),
    ("UploadTeamIsos", "Allows uploading ISOs that can be used by members of the Team", False),
    ("UploadVmFiles", "Allows uploading files directly to Vms", False),
    ("DownloadVmFiles", "Allows downloading files directly from Vms", False),
    ("RevertVms", "Allows reverting a Vm to its current snapshot", False),
]

# name -> (all_permissions, immutable, explicit permission names)
SEED_ROLES: dict[str, tuple[bool, bool, set[str]]] = {
    # ── Administrator ────────────────────────────────────────────────────
    # Everything, now and for any permission added later.
    "Administrator": (True, True, set()),

    # ── Content Developer ────────────────────────────────────────────────
    # Builds new Views; gets View Admin on the Views it creates.
    "Content Developer": (False, False, {SystemPermission.CREATE_VIEWS.value}),
}

SEED_TEAM_ROLES: dict[str, tuple[bool, bool, set[str]]] = {
    # ── View Admin ───────────────────────────────────────────────────────
    # Given to the creator of a View.
    "View Admin": (True, True, set()),

    # ── View Member ──────────────────────────────────────────────────────
    # Default role for new Teams.
    "View Member": (False, False, {
        TeamPermission.VIEW_TEAM.value,
        TeamPermission.EDIT_TEAM.value,
        TeamPermission.UPLOAD_TEAM_ISOS.value,
        TeamPermission.UPLOAD_VM_FILES.value,
    }),

    # ── Observer ─────────────────────────────────────────────────────────
    # Read-only across the View.
    "Observer": (False, False, {
        ViewPermission.VIEW_VIEW.value,
        TeamPermission.VIEW_TEAM.value,
    }),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_view_permission(name: str) -> bool:
    """Return True if *name* is a View-scoped permission."""
    return name in VIEW_PERMISSION_NAMES


async def seed_catalog(db: AsyncSession) -> None:
    """Insert any missing seed permissions and roles.  Safe to run repeatedly."""
    permissions = {
        p.name: p for p in (await db.execute(select(Permission))).scalars()
    }
    for name, description, immutable in SEED_SYSTEM_PERMISSIONS:
        if name not in permissions:
            permissions[name] = Permission(
                name=name, description=description, immutable=immutable
            )
            db.add(permissions[name])

    team_permissions = {
        p.name: p for p in (await db.execute(select(TeamPermissionEntry))).scalars()
    }
    for name, description, immutable in SEED_TEAM_PERMISSIONS:
        if name not in team_permissions:
            team_permissions[name] = TeamPermissionEntry(
                name=name, description=description, immutable=immutable
            )
            db.add(team_permissions[name])
    await db.flush()

    existing_roles = set((await db.execute(select(Role.name))).scalars())
    for name, (all_permissions, immutable, granted) in SEED_ROLES.items():
        if name in existing_roles:
            continue
        role = Role(name=name, all_permissions=all_permissions, immutable=immutable)
        db.add(role)
        await db.flush()
        for perm_name in sorted(granted):
            db.add(RolePermission(role_id=role.id, permission_id=permissions[perm_name].id))
        logger.info("Seeded role %s", name)

    existing_team_roles = set((await db.execute(select(TeamRole.name))).scalars())
    for name, (all_permissions, immutable, granted) in SEED_TEAM_ROLES.items():
        if name in existing_team_roles:
            continue
        role = TeamRole(name=name, all_permissions=all_permissions, immutable=immutable)
        db.add(role)
        await db.flush()
        for perm_name in sorted(granted):
            db.add(TeamRolePermission(
                role_id=role.id, permission_id=team_permissions[perm_name].id
            ))
        logger.info("Seeded team role %s", name)

    await db.commit()
