"""
User service - accounts, authentication and the role-aware user listing
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
import logging

from ..common.errors import DependencyError, ServiceError, register_exception_handlers
from .bootstrap import ensure_super_admin
from .config import settings
from .db import SessionLocal, init_db, check_db_connection
from .permission_client import get_permission_client
from .routes import users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create tables and bootstrap the super admin on startup"""
    init_db()
    if settings.INIT_SUPER_ADMIN:
        db = SessionLocal()
        try:
            ensure_super_admin(db, get_permission_client())
        except (ServiceError, SQLAlchemyError) as e:
            # the service still starts; the bootstrap runs again on the next start
            logger.error("Super admin bootstrap failed: %s", e)
        finally:
            db.close()
    yield


app = FastAPI(
    title="User Service",
    description="User accounts and role-aware user listing for the user/permission platform",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(users.router)


@app.get("/health")
def health_check():
    if not check_db_connection():
        raise DependencyError("Database unavailable")
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}
