from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN_TEAM = "admin_team"
    REFERRER_ADMIN = "referrer_admin"
    REFERRER_TEAM = "referrer_team"


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN.value, UserRole.ADMIN_TEAM.value})
REFERRER_ROLES = frozenset({UserRole.REFERRER_ADMIN.value, UserRole.REFERRER_TEAM.value})


def is_admin_role(role: str | None) -> bool:
    return role in ADMIN_ROLES


def is_referrer_role(role: str | None) -> bool:
    return role in REFERRER_ROLES
