from player.models.membership import TeamMembership, ViewMembership
from player.models.permission import (
    Permission,
    RolePermission,
    TeamPermission,
    TeamPermissionAssignment,
    TeamRolePermission,
    UserPermission,
)
from player.models.role import Role, TeamRole
from player.models.team import ApplicationInstance, Team
from player.models.user import User
from player.models.view import Application, ApplicationTemplate, View, ViewStatus

__all__ = [
    # Permission catalog
    "Permission",
    "TeamPermission",
    # Roles
    "Role",
    "TeamRole",
    # Grants
    "RolePermission",
    "TeamRolePermission",
    "TeamPermissionAssignment",
    "UserPermission",
    # Views and Teams
    "View",
    "ViewStatus",
    "Application",
    "ApplicationTemplate",
    "Team",
    "ApplicationInstance",
    # Memberships
    "ViewMembership",
    "TeamMembership",
    # Users
    "User",
]
