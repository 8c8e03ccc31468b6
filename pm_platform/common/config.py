"""
Configuration shared by every service of the platform
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class CommonSettings(BaseSettings):
    """Settings every service reads from environment variables"""

    LOG_LEVEL: str = "INFO"

    # Token signing (the user service issues, every service validates)
    JWT_SECRET_KEY: str = "change-this-secret-in-prod"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Service-to-service calls
    PERMISSION_SERVICE_URL: str = "http://permission-service:8002"
    LOGGING_SERVICE_URL: str = "http://logging-service:8003"
    RPC_TIMEOUT_SECONDS: float = 3.0
    AUDIT_LOG_ENABLED: bool = True

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


common_settings = CommonSettings()
