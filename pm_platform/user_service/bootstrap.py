"""
Startup bootstrap of the reserved super admin account.
"""
from sqlalchemy.orm import Session
import logging

from ..common.roles import SUPER_ADMIN_USERNAME
from ..common.security import hash_password
from .config import settings
from .models import User
from .permission_client import PermissionClient

logger = logging.getLogger(__name__)


def ensure_super_admin(db: Session, client: PermissionClient) -> User:
    """
    Make sure the ``super_admin`` user exists and holds the super admin role.

    Safe to run on every start: an existing account is left untouched apart
    from (re)binding its role.
    """
    user = db.query(User).filter(User.username == SUPER_ADMIN_USERNAME).first()
    if user is None:
        user = User(
            username=SUPER_ADMIN_USERNAME,
            password=hash_password(settings.SUPER_ADMIN_PASSWORD),
            email=settings.SUPER_ADMIN_EMAIL,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Created super admin account user_id=%s", user.user_id)
    else:
        logger.info("Super admin account already exists: user_id=%s", user.user_id)

    client.bind_super_admin_role(user.user_id, user.username)
    logger.info("Super admin role bound to user_id=%s", user.user_id)
    return user
