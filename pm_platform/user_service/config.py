"""
Configuration management for the user service
"""
from pydantic import Field

from ..common.config import CommonSettings


class Settings(CommonSettings):
    """User service configuration loaded from environment variables"""

    USER_SERVICE_PORT: int = 8001
    USER_DATABASE_URL: str = "sqlite:///./user.db"

    # Listing
    DEFAULT_PAGE_SIZE: int = Field(10, ge=1, le=100)
    MAX_PAGE_SIZE: int = Field(100, ge=1, le=100)

    # Password management
    DEFAULT_RESET_PASSWORD: str = "123456"

    # Super admin bootstrap
    INIT_SUPER_ADMIN: bool = True
    SUPER_ADMIN_PASSWORD: str = "super_admin"
    SUPER_ADMIN_EMAIL: str = "super_admin@system.local"


settings = Settings()
