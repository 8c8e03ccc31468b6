"""
Logging service - stores and serves operation (audit) logs
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime
import logging

from ..common.errors import DependencyError, register_exception_handlers
from .config import settings
from .db import init_db, check_db_connection
from .routes import operation_logs

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Initialize database on startup"""
    init_db()
    yield


app = FastAPI(
    title="Logging Service",
    description="Operation log storage for the user/permission platform",
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
app.include_router(operation_logs.router)


@app.get("/health")
def health_check():
    if not check_db_connection():
        raise DependencyError("Database unavailable")
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}
