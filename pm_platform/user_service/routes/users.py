"""
User account endpoints: registration, login, profile and the admin listing.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import FrozenSet, Optional
import logging

from ...common.audit import OperationLogPublisher, build_log_message, get_operation_log_publisher
from ...common.errors import (
    AuthenticationError,
    DependencyError,
    NotFound,
    PermissionDenied,
    ServiceError,
    UserAlreadyExists,
    ValidationError,
)
from ...common.responses import ApiResponse, created, success
from ...common.security import (
    CurrentUser,
    create_access_token,
    get_current_user,
    hash_password,
    token_lifetime_seconds,
    verify_password,
)
from ..config import settings
from ..db import get_db
from ..listing import RawListingParams, build_exclusions, list_users, resolve_principal, to_user_info
from ..models import User
from ..permission_client import PermissionClient, get_permission_client
from ..schemas import (
    ChangePasswordRequest,
    ResetPasswordOut,
    UserInfoOut,
    UserLoginOut,
    UserLoginRequest,
    UserPageOut,
    UserRegisterOut,
    UserRegisterRequest,
    UserUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["users"])


def _load_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _commit(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to %s", operation, exc_info=True)
        raise DependencyError(f"Failed to {operation}") from e


def _hidden_from(caller: CurrentUser, client: PermissionClient) -> FrozenSet[int]:
    """Ids the caller may not view or manage; plain users are refused outright."""
    principal = resolve_principal(client, caller.user_id)
    return build_exclusions(principal, client)


@router.post("/register", response_model=ApiResponse[UserRegisterOut], status_code=status.HTTP_201_CREATED)
def register(
    payload: UserRegisterRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: PermissionClient = Depends(get_permission_client),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    if db.query(User).filter(User.username == payload.username).first():
        raise UserAlreadyExists(payload.username)

    user = User(
        username=payload.username,
        password=hash_password(payload.password),
        email=payload.email,
        phone=payload.phone,
    )
    try:
        db.add(user)
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise UserAlreadyExists(payload.username) from e

    # the user row only becomes visible once its default role is bound
    try:
        client.bind_default_role(user.user_id)
    except ServiceError as e:
        db.rollback()
        logger.error("Registration of %s rolled back: default role binding failed: %s", payload.username, e.message)
        raise DependencyError("Registration failed, please retry later") from e

    _commit(db, "register user")
    logger.info("Registered user_id=%s username=%s", user.user_id, user.username)

    message = build_log_message(
        user.user_id, "REGISTER", request,
        {"operation": "user_register", "username": user.username}
    )
    background_tasks.add_task(publisher.publish, message)

    return created(UserRegisterOut(user_id=user.user_id, username=user.username), "Registration successful")


@router.post("/login", response_model=ApiResponse[UserLoginOut])
def login(
    credentials: UserLoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    user = db.query(User).filter(User.username == credentials.username).first()
    if not user or not verify_password(credentials.password, user.password):
        logger.warning("Failed login for username=%s", credentials.username)
        raise AuthenticationError("Invalid username or password")

    token = create_access_token(user.user_id, user.username)
    logger.info("Successful login: user_id=%s username=%s", user.user_id, user.username)

    message = build_log_message(
        user.user_id, "LOGIN", request,
        {"operation": "user_login", "username": user.username}
    )
    background_tasks.add_task(publisher.publish, message)

    return success(
        UserLoginOut(
            token=token,
            expires_in=token_lifetime_seconds(),
            user_id=user.user_id,
            username=user.username
        ),
        "Login successful"
    )


@router.get("/users", response_model=ApiResponse[UserPageOut])
def list_visible_users(
    page: Optional[str] = Query(None, description="1-based page number"),
    size: Optional[str] = Query(None, description=f"Page size, 1 to {settings.MAX_PAGE_SIZE}"),
    sort: Optional[str] = Query(None, description="field,direction[;field,direction...]"),
    username: Optional[str] = Query(None, description="Username contains"),
    email: Optional[str] = Query(None, description="Email contains"),
    phone: Optional[str] = Query(None, description="Phone contains"),
    gmt_create_start: Optional[str] = Query(None, alias="gmtCreateStart", description="yyyy-MM-dd HH:mm:ss"),
    gmt_create_end: Optional[str] = Query(None, alias="gmtCreateEnd", description="yyyy-MM-dd HH:mm:ss"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: PermissionClient = Depends(get_permission_client)
):
    """
    Page through the users the caller is allowed to see.

    Admins see plain users only; the super admin sees everyone but itself.
    """
    raw = RawListingParams(
        page=page,
        size=size,
        sort=sort,
        username=username,
        email=email,
        phone=phone,
        gmt_create_start=gmt_create_start,
        gmt_create_end=gmt_create_end,
    )
    return success(list_users(db, client, current_user.user_id, raw))


@router.get("/info", response_model=ApiResponse[UserInfoOut])
def get_own_info(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return success(to_user_info(_load_user(db, current_user.user_id)))


@router.put("/info", response_model=ApiResponse[UserInfoOut])
def update_own_info(
    payload: UserUpdateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    fields = payload.update_fields()
    if not fields:
        raise ValidationError("Provide at least one of email or phone")

    user = _load_user(db, current_user.user_id)
    changes = {}
    for name in fields:
        old, new = getattr(user, name), getattr(payload, name)
        if old != new:
            changes[name] = {"old": old, "new": new}
            setattr(user, name, new)

    if changes:
        _commit(db, "update user profile")
        db.refresh(user)
        logger.info("Updated profile of user_id=%s fields=%s", user.user_id, sorted(changes))

        message = build_log_message(
            user.user_id, "UPDATE_PROFILE", request,
            {"operation": "update_profile", "changes": changes}
        )
        background_tasks.add_task(publisher.publish, message)

    return success(to_user_info(user), "Profile updated")


@router.put("/password", response_model=ApiResponse[None])
def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    user = _load_user(db, current_user.user_id)
    if not verify_password(payload.old_password, user.password):
        logger.warning("Password change refused for user_id=%s: wrong old password", user.user_id)
        raise ValidationError("Old password is incorrect")

    user.password = hash_password(payload.new_password)
    _commit(db, "change password")
    logger.info("Password changed for user_id=%s", user.user_id)

    message = build_log_message(
        user.user_id, "CHANGE_PASSWORD", request,
        {"operation": "change_password", "username": user.username}
    )
    background_tasks.add_task(publisher.publish, message)

    return success(message="Password changed")


@router.get("/{user_id}", response_model=ApiResponse[UserInfoOut])
def get_user(
    user_id: int = Path(..., gt=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: PermissionClient = Depends(get_permission_client)
):
    if user_id in _hidden_from(current_user, client):
        raise PermissionDenied("You are not allowed to view this user")
    return success(to_user_info(_load_user(db, user_id)))


@router.post("/{user_id}/reset-password", response_model=ApiResponse[ResetPasswordOut])
def reset_password(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: int = Path(..., gt=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: PermissionClient = Depends(get_permission_client),
    publisher: OperationLogPublisher = Depends(get_operation_log_publisher)
):
    if user_id in _hidden_from(current_user, client):
        raise PermissionDenied("You are not allowed to reset this user's password")

    user = _load_user(db, user_id)
    user.password = hash_password(settings.DEFAULT_RESET_PASSWORD)
    _commit(db, "reset password")
    logger.info("Password of user_id=%s reset by user_id=%s", user.user_id, current_user.user_id)

    message = build_log_message(
        current_user.user_id, "RESET_PASSWORD", request,
        {"operation": "reset_password", "targetUserId": user.user_id, "targetUsername": user.username}
    )
    background_tasks.add_task(publisher.publish, message)

    return success(
        ResetPasswordOut(
            user_id=user.user_id,
            username=user.username,
            new_password=settings.DEFAULT_RESET_PASSWORD,
            message="Password reset to the default, ask the user to change it after login"
        ),
        "Password reset"
    )
