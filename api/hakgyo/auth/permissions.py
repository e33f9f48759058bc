"""Role-based access control (RBAC) for Hakgyo.

Hierarchical permission system:
- ADMIN (level 3): Full system access
- GURU (level 2): Author kelas and materi, see learners of own kelas
- MURID (level 1): Enroll in kelas and learn
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels.

    Higher level = more permissions.
    ADMIN can do everything GURU can do, and more.
    """

    MURID = "murid"  # Level 1: Learner
    GURU = "guru"  # Level 2: Teacher, kelas author
    ADMIN = "admin"  # Level 3: System administrator


# Role hierarchy mapping (role -> permission level)
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.MURID: 1,
    UserRole.GURU: 2,
    UserRole.ADMIN: 3,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Args:
        role: UserRole enum or string representation

    Returns:
        Permission level (1-3), 0 for unknown roles
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.GURU)
        True
        >>> has_permission("murid", "guru")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.ADMIN]


def is_murid(role: UserRole | str) -> bool:
    """Check if role is MURID."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.MURID]


def is_at_least_guru(role: UserRole | str) -> bool:
    """Check if role is GURU or higher (ADMIN)."""
    return has_permission(role, UserRole.GURU)
