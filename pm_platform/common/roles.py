from enum import Enum


class RoleCode(str, Enum):
    """Role codes understood by every service."""
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ROLE_NAMES = {
    RoleCode.SUPER_ADMIN: "Super Administrator",
    RoleCode.ADMIN: "Administrator",
    RoleCode.USER: "User",
}

ADMIN_ROLES = (RoleCode.ADMIN, RoleCode.SUPER_ADMIN)

SUPER_ADMIN_USERNAME = "super_admin"
