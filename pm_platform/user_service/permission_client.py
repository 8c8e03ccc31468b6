"""
HTTP client for the permission service.

Every call has a bounded timeout. Transport failures, timeouts, 5xx answers and
malformed bodies surface as ``DependencyError`` so callers can tell "the
permission service is unavailable" apart from business outcomes such as
"this user has no role".
"""
from functools import lru_cache
from typing import Iterable, List, Optional
from pydantic import BaseModel
import httpx
import logging

from ..common.errors import DependencyError
from ..common.roles import RoleCode
from .config import settings

logger = logging.getLogger(__name__)


class RoleInfo(BaseModel):
    role_code: str
    role_name: str


class PermissionClient:
    """Port to the permission service's internal endpoints."""

    def __init__(
        self,
        base_url: str = settings.PERMISSION_SERVICE_URL,
        timeout: float = settings.RPC_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None
    ):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Permission service timed out: %s %s", method, path)
            raise DependencyError("Permission service timed out") from e
        except httpx.HTTPError as e:
            logger.error("Permission service unreachable: %s %s error=%s", method, path, e)
            raise DependencyError("Permission service unavailable") from e

    @staticmethod
    def _data(response: httpx.Response):
        if response.status_code >= 400:
            logger.error(
                "Permission service answered %s for %s %s",
                response.status_code, response.request.method, response.request.url.path
            )
            raise DependencyError("Permission service rejected the request")
        try:
            return response.json().get("data")
        except (ValueError, AttributeError) as e:
            raise DependencyError("Permission service returned a malformed response") from e

    def get_user_role(self, user_id: int) -> Optional[RoleInfo]:
        """Role of ``user_id``, or None when the user has no role bound."""
        response = self._request("GET", f"/permission/internal/user/{user_id}/role")
        if response.status_code == 404:
            return None
        data = self._data(response)
        if not data or not data.get("roleCode"):
            return None
        return RoleInfo(role_code=data["roleCode"], role_name=data.get("roleName", ""))

    def get_user_ids_by_roles(self, role_codes: Iterable[RoleCode]) -> List[int]:
        codes = ",".join(code.value for code in role_codes)
        response = self._request("GET", "/permission/internal/users/by-roles", params={"roleCodes": codes})
        data = self._data(response)
        if data is None:
            # an empty answer would under-exclude, treat it as a failure
            raise DependencyError("Permission service returned no user ids")
        return [int(user_id) for user_id in data]

    def bind_default_role(self, user_id: int) -> None:
        response = self._request("POST", "/permission/internal/roles/bind-default", params={"userId": user_id})
        self._data(response)

    def bind_super_admin_role(self, user_id: int, username: str) -> None:
        response = self._request(
            "POST",
            "/permission/internal/roles/bind-super-admin",
            params={"userId": user_id, "username": username}
        )
        self._data(response)


@lru_cache
def get_permission_client() -> PermissionClient:
    """FastAPI dependency returning the process-wide permission client."""
    return PermissionClient()
