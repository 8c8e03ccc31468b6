"""
Configuration management for the logging service
"""
from ..common.config import CommonSettings


class Settings(CommonSettings):
    """Logging service configuration loaded from environment variables"""

    LOGGING_SERVICE_PORT: int = 8003
    LOGGING_DATABASE_URL: str = "sqlite:///./logging.db"
    MAX_QUERY_LIMIT: int = 1000


settings = Settings()
