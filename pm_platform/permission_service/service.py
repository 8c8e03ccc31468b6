"""
Role and role-binding operations of the permission service.
"""
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..common.errors import Conflict, InternalError, NotFound, PermissionDenied, ValidationError
from ..common.roles import ROLE_NAMES, RoleCode, SUPER_ADMIN_USERNAME
from .models import Role, UserRole

logger = logging.getLogger(__name__)


def seed_roles(db: Session) -> None:
    """Create any of the built-in roles that are missing."""
    existing = {code for (code,) in db.query(Role.role_code).all()}
    missing = [code for code in RoleCode if code.value not in existing]
    for code in missing:
        db.add(Role(role_code=code.value, role_name=ROLE_NAMES[code]))
        logger.info("Created role %s", code.value)
    if missing:
        db.commit()


def find_role(db: Session, code: RoleCode) -> Role:
    role = db.query(Role).filter(Role.role_code == code.value).first()
    if role is None:
        logger.error("Built-in role %s is missing", code.value)
        raise InternalError(f"Role {code.value} is not configured")
    return role


def get_user_role(db: Session, user_id: int) -> Optional[Role]:
    binding = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    if binding is None:
        logger.warning("No role bound to user_id=%s", user_id)
        return None
    return binding.role


def bind_default_role(db: Session, user_id: int) -> UserRole:
    """Bind the default role. Repeating the call for an already bound plain user is a no-op."""
    existing = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    if existing is not None:
        if existing.role.role_code == RoleCode.USER.value:
            logger.info("Default role already bound to user_id=%s", user_id)
            return existing
        raise Conflict(f"User {user_id} already has role {existing.role.role_code}")

    binding = UserRole(user_id=user_id, role_id=find_role(db, RoleCode.USER).role_id)
    db.add(binding)
    db.commit()
    db.refresh(binding)
    logger.info("Bound default role to user_id=%s", user_id)
    return binding


def bind_super_admin_role(db: Session, user_id: int, username: str) -> UserRole:
    """Bind (or rebind) the super admin role; only the reserved super admin account qualifies."""
    if username != SUPER_ADMIN_USERNAME:
        logger.warning("Refused super admin binding for user_id=%s username=%s", user_id, username)
        raise PermissionDenied("Only the super_admin account can hold the super admin role")

    role = find_role(db, RoleCode.SUPER_ADMIN)
    binding = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    if binding is None:
        binding = UserRole(user_id=user_id, role_id=role.role_id)
        db.add(binding)
    else:
        binding.role_id = role.role_id
    db.commit()
    db.refresh(binding)
    logger.info("Bound super admin role to user_id=%s", user_id)
    return binding


def parse_role_codes(raw: str) -> List[RoleCode]:
    codes = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            codes.append(RoleCode(part))
        except ValueError as exc:
            raise ValidationError(f"Unknown role code: {part}") from exc
    if not codes:
        raise ValidationError("roleCodes must name at least one role")
    return codes


def user_ids_by_role_codes(db: Session, codes: List[RoleCode]) -> List[int]:
    rows = (
        db.query(UserRole.user_id)
        .join(Role, Role.role_id == UserRole.role_id)
        .filter(Role.role_code.in_([code.value for code in codes]))
        .order_by(UserRole.user_id)
        .all()
    )
    return [user_id for (user_id,) in rows]


def change_role(db: Session, user_id: int, expected: RoleCode, target: RoleCode) -> UserRole:
    """Move a user from ``expected`` to ``target``; any other current role is rejected."""
    binding = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    if binding is None:
        raise NotFound(f"User {user_id} has no role")

    current = binding.role.role_code
    if current != expected.value:
        raise ValidationError(f"User {user_id} has role {current}, expected {expected.value}")

    binding.role_id = find_role(db, target).role_id
    db.commit()
    db.refresh(binding)
    logger.info("Changed role of user_id=%s from %s to %s", user_id, expected.value, target.value)
    return binding
