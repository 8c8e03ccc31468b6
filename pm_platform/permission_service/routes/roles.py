"""
Role management endpoints for the super administrator.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Path, Request
from sqlalchemy.orm import Session
import logging

from ...common.audit import OperationLogPublisher, build_log_message, get_operation_log_publisher
from ...common.errors import PermissionDenied
from ...common.responses import ApiResponse, success
from ...common.roles import RoleCode
from ...common.security import CurrentUser, get_current_user
from ..db import get_db
from ..schemas import RoleChangeResponse
from .. import service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permission", tags=["roles"])


def require_super_admin(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> CurrentUser:
    role = service.get_user_role(db, user.user_id)
    if role is None or role.role_code != RoleCode.SUPER_ADMIN.value:
        logger.warning("Role change refused for user_id=%s role=%s", user.user_id, role.role_code if role else None)
        raise PermissionDenied("Only the super administrator can change roles")
    return user


def _change_role(
    user_id: int,
    expected: RoleCode,
    target: RoleCode,
    action: str,
    operator: CurrentUser,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session,
    publisher: OperationLogPublisher
) -> dict:
    if user_id == operator.user_id:
        raise PermissionDenied("The super administrator cannot change their own role")

    service.change_role(db, user_id, expected, target)

    message = build_log_message(
        operator.user_id,
        action,
        request,
        {"targetUserId": user_id, "fromRole": expected.value, "toRole": target.value}
    )
    background_tasks.add_task(publisher.publish, message)

    return success(
        RoleChangeResponse(user_id=user_id, old_role=expected.value, new_role=target.value),
        "Role updated"
    )


@router.put("/user/{user_id}/upgrade-to-admin", response_model=ApiResponse[RoleChangeResponse])
def upgrade_to_admin(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: int = Path(..., gt=0),
    operator: CurrentUser = Depends(require_super_admin),
    db: Session = Depends(get_db),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    return _change_role(
        user_id, RoleCode.USER, RoleCode.ADMIN, "UPGRADE_ROLE",
        operator, request, background_tasks, db, publisher
    )


@router.put("/user/{user_id}/downgrade-to-user", response_model=ApiResponse[RoleChangeResponse])
def downgrade_to_user(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: int = Path(..., gt=0),
    operator: CurrentUser = Depends(require_super_admin),
    db: Session = Depends(get_db),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    return _change_role(
        user_id, RoleCode.ADMIN, RoleCode.USER, "DOWNGRADE_ROLE",
        operator, request, background_tasks, db, publisher
    )
