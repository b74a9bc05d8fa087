"""Main FastAPI application for stockpass"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import auth, invitations, organizations, users
from src.config import settings
from src.database.database import Base, engine
from src.middleware.rate_limiting import init_redis
from src.monitoring.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    configure_logging()
    logger.info("stockpass_starting", app_env=settings.APP_ENV, credential_backend=settings.CREDENTIAL_BACKEND)
    # Initialize Redis for rate limiting
    init_redis()
    # Create database tables
    Base.metadata.create_all(bind=engine)

    yield

    logger.info("stockpass_shutting_down")


app = FastAPI(
    title="stockpass API",
    description="Tenant and identity provisioning for StockMaster",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["organizations"])
app.include_router(invitations.router, prefix="/api/v1/invitations", tags=["invitations"])
app.include_router(users.router, prefix="/api/v1/users", tags=["users"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "stockpass"}
