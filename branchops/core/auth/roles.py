from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet


class UserRole(str, Enum):
    ADMIN = "admin"
    OPERATIONS_LEAD = "operations_lead"
    DISPATCHER = "dispatcher"
    CENTRAL_KITCHEN = "central_kitchen"
    BRANCH_MANAGER = "branch_manager"
    BRANCH_STAFF = "branch_staff"


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RoleInfo:
    display_name: str
    description: str
    landing_page: str


ROLE_INFO: Dict[UserRole, RoleInfo] = {
    UserRole.ADMIN: RoleInfo(
        "Administrator",
        "Full access to all features and user management",
        "/admin",
    ),
    UserRole.OPERATIONS_LEAD: RoleInfo(
        "Operations Lead",
        "Oversees all branch operations, dispatch and quality",
        "/operations",
    ),
    UserRole.DISPATCHER: RoleInfo(
        "Dispatcher",
        "Creates and manages dispatches to branches",
        "/dispatch",
    ),
    UserRole.CENTRAL_KITCHEN: RoleInfo(
        "Central Kitchen",
        "Production schedules, recipes and packing",
        "/kitchen",
    ),
    UserRole.BRANCH_MANAGER: RoleInfo(
        "Branch Manager",
        "Manages one or more branches: receiving, quality checks, staff",
        "/dashboard",
    ),
    UserRole.BRANCH_STAFF: RoleInfo(
        "Branch Staff",
        "Day to day branch operations for a single branch",
        "/branch",
    ),
}

ALL_ROLES: FrozenSet[str] = frozenset(r.value for r in UserRole)

# roles that see every branch
GLOBAL_BRANCH_ROLES: FrozenSet[str] = frozenset(
    {UserRole.ADMIN.value, UserRole.OPERATIONS_LEAD.value, UserRole.DISPATCHER.value}
)

# roles whose access is limited to assigned branches
BRANCH_SCOPED_ROLES: FrozenSet[str] = frozenset({UserRole.BRANCH_MANAGER.value, UserRole.BRANCH_STAFF.value})

# only admins may hand these out
PROTECTED_ROLES: FrozenSet[str] = frozenset({UserRole.ADMIN.value, UserRole.OPERATIONS_LEAD.value})

CENTRAL_KITCHEN_SLUG = "central-kitchen"


def is_valid_role(role: str | None) -> bool:
    return bool(role) and role in ALL_ROLES


def landing_page_for(role: str | None) -> str:
    try:
        return ROLE_INFO[UserRole(role)].landing_page
    except ValueError:
        return "/"
