"""
Configuration management for the permission service
"""
from ..common.config import CommonSettings


class Settings(CommonSettings):
    """Permission service configuration loaded from environment variables"""

    PERMISSION_SERVICE_PORT: int = 8002
    PERMISSION_DATABASE_URL: str = "sqlite:///./permission.db"


settings = Settings()
