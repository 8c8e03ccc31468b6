"""
Role-aware paginated user listing.

A listing request flows through these steps, in this order:

1. ``validate_listing_params`` turns raw query-string values into a
   ``ListingQuery`` (page bounds, date formats, sort whitelist). Nothing
   touches the permission service or the database before this succeeds.
2. ``resolve_principal`` asks the permission service for the caller's role.
3. ``build_exclusions`` computes the user ids the caller must never see.
4. ``execute_listing`` pushes filters, exclusions, sort and paging into one
   SQL query (plus its count).
5. ``to_page`` computes the pagination metadata.

``list_users`` wires the steps together for the HTTP route.
"""
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, NamedTuple, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import math
import re

from ..common.errors import (
    DependencyError,
    InvalidDateFormat,
    InvalidPage,
    InvalidPageSize,
    InvalidSortDirection,
    InvalidSortField,
    PermissionDenied,
)
from ..common.roles import ADMIN_ROLES, RoleCode
from .config import settings
from .models import User
from .permission_client import PermissionClient
from .schemas import UserInfoOut, UserPageOut

logger = logging.getLogger(__name__)

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATETIME_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}:[0-9]{2}$")
INTEGER_PATTERN = re.compile(r"[0-9]+")


class SortField(str, Enum):
    USER_ID = "userId"
    USERNAME = "username"
    EMAIL = "email"
    PHONE = "phone"
    CREATED_AT = "createdAt"
    MODIFIED_AT = "modifiedAt"


# wire names used by the HTTP API for the timestamp columns
SORT_FIELD_ALIASES = {
    "gmtCreate": SortField.CREATED_AT,
    "gmtModified": SortField.MODIFIED_AT,
}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortClause(NamedTuple):
    field: SortField
    direction: SortDirection


DEFAULT_SORT = (SortClause(SortField.CREATED_AT, SortDirection.DESC),)

SORT_COLUMNS = {
    SortField.USER_ID: User.user_id,
    SortField.USERNAME: User.username,
    SortField.EMAIL: User.email,
    SortField.PHONE: User.phone,
    SortField.CREATED_AT: User.gmt_create,
    SortField.MODIFIED_AT: User.gmt_modified,
}


class Principal(BaseModel):
    user_id: int
    role_code: RoleCode


class ListingQuery(BaseModel):
    page: int = 1
    page_size: int = 10
    sort: Tuple[SortClause, ...] = DEFAULT_SORT
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class RawListingParams(BaseModel):
    """Query-string values exactly as received; all validation happens later."""
    page: Optional[str] = None
    size: Optional[str] = None
    sort: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    gmt_create_start: Optional[str] = None
    gmt_create_end: Optional[str] = None


def parse_sort(sort_str: Optional[str]) -> List[SortClause]:
    """
    Parse ``"field,direction;field,direction"`` into ordered sort clauses.

    The first clause is the primary key. Blank segments are skipped; an absent
    or blank expression yields the default ``createdAt desc``.

    Raises:
        InvalidSortField: malformed clause or field outside the whitelist
        InvalidSortDirection: direction other than asc/desc
    """
    clauses = []
    for segment in (sort_str or "").split(";"):
        if not segment.strip():
            continue

        parts = segment.split(",")
        if len(parts) != 2:
            raise InvalidSortField(
                segment.strip(),
                f"Sort clause must be 'field,direction': {segment.strip()}"
            )

        name, direction = parts[0].strip(), parts[1].strip()

        field = SORT_FIELD_ALIASES.get(name)
        if field is None:
            try:
                field = SortField(name)
            except ValueError as exc:
                raise InvalidSortField(name) from exc

        try:
            order = SortDirection(direction.lower())
        except ValueError as exc:
            raise InvalidSortDirection(direction) from exc

        clauses.append(SortClause(field, order))

    return clauses or list(DEFAULT_SORT)


def _parse_int(value: Optional[str], default: int, error) -> int:
    if value is None or not value.strip():
        return default
    # plain ASCII digits only
    if not INTEGER_PATTERN.fullmatch(value.strip()):
        raise error()
    return int(value.strip())


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if value is None or not value.strip():
        return None
    # strptime alone accepts unpadded fields, the pattern pins the literal shape
    if not DATETIME_PATTERN.match(value):
        raise InvalidDateFormat(field)
    try:
        return datetime.strptime(value, DATETIME_FORMAT)
    except ValueError as exc:
        raise InvalidDateFormat(field) from exc


def _text_filter(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def validate_listing_params(raw: RawListingParams) -> ListingQuery:
    page = _parse_int(raw.page, 1, InvalidPage)
    if page < 1:
        raise InvalidPage()

    size = _parse_int(raw.size, settings.DEFAULT_PAGE_SIZE, InvalidPageSize)
    if size < 1 or size > settings.MAX_PAGE_SIZE:
        raise InvalidPageSize(f"size must be an integer between 1 and {settings.MAX_PAGE_SIZE}")

    return ListingQuery(
        page=page,
        page_size=size,
        created_after=_parse_datetime(raw.gmt_create_start, "gmtCreateStart"),
        created_before=_parse_datetime(raw.gmt_create_end, "gmtCreateEnd"),
        sort=tuple(parse_sort(raw.sort)),
        username=_text_filter(raw.username),
        email=_text_filter(raw.email),
        phone=_text_filter(raw.phone),
    )


def resolve_principal(client: PermissionClient, user_id: int) -> Principal:
    """
    Look up the caller's role. Never falls back to a default role.

    Raises:
        DependencyError: the permission service could not answer
        PermissionDenied: the caller has no (known) role
    """
    role = client.get_user_role(user_id)
    if role is None:
        logger.warning("User %s has no role assigned", user_id)
        raise PermissionDenied("No role assigned to the current user")
    try:
        return Principal(user_id=user_id, role_code=RoleCode(role.role_code))
    except ValueError as exc:
        logger.warning("User %s has unknown role %s", user_id, role.role_code)
        raise PermissionDenied("Unknown role for the current user") from exc


def build_exclusions(principal: Principal, client: PermissionClient) -> FrozenSet[int]:
    """
    User ids hidden from ``principal`` in listings and admin operations.

    - super_admin: only itself
    - admin: itself and every admin / super_admin
    - user: may not list users at all

    If the admin id lookup fails the request fails with ``DependencyError``;
    an admin must never be shown a partial exclusion set.
    """
    if principal.role_code == RoleCode.SUPER_ADMIN:
        return frozenset({principal.user_id})

    if principal.role_code == RoleCode.ADMIN:
        admin_ids = client.get_user_ids_by_roles(ADMIN_ROLES)
        excluded = frozenset({principal.user_id, *admin_ids})
        logger.debug("Admin %s: excluding %s users", principal.user_id, len(excluded))
        return excluded

    logger.warning("User %s with role %s tried to list users", principal.user_id, principal.role_code.value)
    raise PermissionDenied("Administrator role required")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, value: str, case_sensitive: bool = False):
    pattern = f"%{_escape_like(value)}%"
    if case_sensitive:
        return column.like(pattern, escape="\\")
    return column.ilike(pattern, escape="\\")


def execute_listing(db: Session, query: ListingQuery, exclusions: FrozenSet[int]) -> Tuple[List[User], int]:
    """
    Run the filtered, sorted, paged query in the database.

    Returns the page of users and the total number of matching users.
    """
    filters = []
    if query.username:
        filters.append(_contains(User.username, query.username))
    if query.email:
        filters.append(_contains(User.email, query.email))
    if query.phone:
        filters.append(_contains(User.phone, query.phone, case_sensitive=True))
    if query.created_after is not None:
        filters.append(User.gmt_create >= query.created_after)
    if query.created_before is not None:
        filters.append(User.gmt_create <= query.created_before)
    if exclusions:
        filters.append(User.user_id.notin_(sorted(exclusions)))

    order_by = [
        SORT_COLUMNS[clause.field].desc() if clause.direction == SortDirection.DESC
        else SORT_COLUMNS[clause.field].asc()
        for clause in query.sort
    ]
    # primary key as final tie-breaker keeps the order total
    if SortField.USER_ID not in {clause.field for clause in query.sort}:
        order_by.append(User.user_id.asc())

    statement = db.query(User)
    if filters:
        statement = statement.filter(and_(*filters))

    offset = (query.page - 1) * query.page_size
    try:
        total = statement.count()
        if offset >= total:
            return [], total
        users = (
            statement.order_by(*order_by)
            .offset(offset)
            .limit(query.page_size)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error("User listing query failed", exc_info=True)
        raise DependencyError("User storage unavailable") from e

    return users, total


def to_user_info(user: User) -> UserInfoOut:
    return UserInfoOut(
        user_id=user.user_id,
        username=user.username,
        email=user.email,
        phone=user.phone,
        gmt_create=user.gmt_create.strftime(DATETIME_FORMAT),
        gmt_modified=user.gmt_modified.strftime(DATETIME_FORMAT),
    )


def to_page(users: List[User], total: int, query: ListingQuery) -> UserPageOut:
    total_pages = math.ceil(total / query.page_size)
    return UserPageOut(
        users=[to_user_info(user) for user in users],
        current_page=query.page,
        page_size=query.page_size,
        total_elements=total,
        total_pages=total_pages,
        is_first=query.page == 1,
        is_last=query.page >= total_pages,
        has_previous=query.page > 1,
        has_next=query.page < total_pages,
    )


def list_users(db: Session, client: PermissionClient, caller_id: int, raw: RawListingParams) -> UserPageOut:
    query = validate_listing_params(raw)
    principal = resolve_principal(client, caller_id)
    exclusions = build_exclusions(principal, client)
    users, total = execute_listing(db, query, exclusions)
    page = to_page(users, total, query)

    logger.info(
        "User listing for %s (%s): page=%s size=%s total=%s pages=%s",
        caller_id, principal.role_code.value, query.page, query.page_size, total, page.total_pages
    )
    return page
