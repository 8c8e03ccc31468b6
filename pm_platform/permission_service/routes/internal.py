"""
Service-to-service endpoints. These are reachable only on the internal network
and carry no user token.
"""
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ...common.errors import NotFound
from ...common.responses import ApiResponse, created, success
from ..db import get_db
from ..schemas import UserRoleResponse
from .. import service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permission/internal", tags=["internal"])


@router.post("/roles/bind-default", response_model=ApiResponse[None], status_code=status.HTTP_201_CREATED)
def bind_default_role(
    user_id: int = Query(..., alias="userId", gt=0),
    db: Session = Depends(get_db)
):
    service.bind_default_role(db, user_id)
    return created(message="Default role bound")


@router.get("/user/{user_id}/role", response_model=ApiResponse[UserRoleResponse])
def get_user_role(user_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    role = service.get_user_role(db, user_id)
    if role is None:
        raise NotFound(f"No role assigned to user {user_id}")
    return success(UserRoleResponse(role_code=role.role_code, role_name=role.role_name))


@router.post("/roles/bind-super-admin", response_model=ApiResponse[None])
def bind_super_admin_role(
    user_id: int = Query(..., alias="userId", gt=0),
    username: str = Query(...),
    db: Session = Depends(get_db)
):
    service.bind_super_admin_role(db, user_id, username)
    return success(message="Super admin role bound")


@router.get("/users/by-roles", response_model=ApiResponse[List[int]])
def get_user_ids_by_roles(
    role_codes: str = Query(..., alias="roleCodes", description="Comma separated role codes"),
    db: Session = Depends(get_db)
):
    codes = service.parse_role_codes(role_codes)
    user_ids = service.user_ids_by_role_codes(db, codes)
    logger.debug("Found %s users with roles %s", len(user_ids), role_codes)
    return success(user_ids)
