from passlib.context import CryptContext
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Header
from pydantic import BaseModel
import jwt

from .config import common_settings
from .errors import AuthenticationError

# Use pbkdf2_sha256 to avoid external bcrypt backend issues in some environments
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class CurrentUser(BaseModel):
    """Authenticated caller extracted from a validated bearer token."""
    user_id: int
    username: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, username: str) -> str:
    expire = datetime.utcnow() + timedelta(minutes=common_settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": str(user_id), "username": username, "exp": expire}
    return jwt.encode(payload, common_settings.JWT_SECRET_KEY, algorithm=common_settings.JWT_ALGORITHM)


def token_lifetime_seconds() -> int:
    return common_settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def decode_access_token(token: str) -> CurrentUser:
    try:
        data = jwt.decode(token, common_settings.JWT_SECRET_KEY, algorithms=[common_settings.JWT_ALGORITHM])
        return CurrentUser(user_id=int(data["sub"]), username=data.get("username", ""))
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        raise AuthenticationError("Invalid or expired token") from exc


def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Not authenticated")
    token = authorization.split(" ", 1)[1].strip()
    return decode_access_token(token)
