"""Family roles, permissions and members."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Role of a member inside a family."""
    ADMIN = "admin"
    ADULT = "adult"
    CHILD = "child"


class RolePermissions(BaseModel):
    """What a role is allowed to do."""

    can_approve_tasks: bool = False
    needs_approval: bool = False
    can_manage_family: bool = False
    can_delete_any_task: bool = False

    class Config:
        """Pydantic configuration."""
        frozen = True


ROLE_PERMISSIONS: Dict[UserRole, RolePermissions] = {
    UserRole.ADMIN: RolePermissions(
        can_approve_tasks=True,
        needs_approval=False,
        can_manage_family=True,
        can_delete_any_task=True,
    ),
    UserRole.ADULT: RolePermissions(
        can_approve_tasks=True,
        needs_approval=False,
        can_manage_family=False,
        can_delete_any_task=True,
    ),
    UserRole.CHILD: RolePermissions(
        can_approve_tasks=False,
        needs_approval=True,
        can_manage_family=False,
        can_delete_any_task=False,
    ),
}


def get_permissions(role: Optional[str]) -> RolePermissions:
    """Permissions for a role; unknown roles get the most restricted set."""
    try:
        return ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return ROLE_PERMISSIONS[UserRole.CHILD]


def is_elevated_role(role: Optional[str]) -> bool:
    """Admins and adults may approve or reject tasks."""
    return get_permissions(role).can_approve_tasks


class FamilyMember(BaseModel):
    """A user as seen by the approval workflow."""

    id: str = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    role: UserRole = Field(UserRole.CHILD, description="Role inside the family")
    family_id: Optional[str] = Field(None, description="Family the user belongs to (None if none)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
