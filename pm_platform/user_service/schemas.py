from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^[0-9]{11}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class UserRegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=6, max_length=20)
    email: Optional[str] = Field(None, max_length=100, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_means_unset(cls, v):
        return _blank_to_none(v)


class UserLoginRequest(CamelModel):
    username: str
    password: str


class UserUpdateRequest(CamelModel):
    email: Optional[str] = Field(None, max_length=100, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_means_unset(cls, v):
        return _blank_to_none(v)

    def update_fields(self) -> List[str]:
        return [name for name in ("email", "phone") if getattr(self, name) is not None]


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=20)


class UserRegisterOut(CamelModel):
    user_id: int
    username: str


class UserLoginOut(CamelModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: int
    username: str


class UserInfoOut(CamelModel):
    """Read-only projection of a user; credentials are never part of it."""
    user_id: int
    username: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gmt_create: str
    gmt_modified: str


class UserPageOut(CamelModel):
    users: List[UserInfoOut]
    current_page: int
    page_size: int
    total_elements: int
    total_pages: int
    is_first: bool
    is_last: bool
    has_previous: bool
    has_next: bool


class ResetPasswordOut(CamelModel):
    user_id: int
    username: str
    new_password: str
    message: str
