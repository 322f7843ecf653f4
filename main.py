"""
Main FastAPI Application
Entry point for the backend server
"""
import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from campus_leave.config import settings
from campus_leave.core.cache import build_cache
from campus_leave.core.database import build_mongo_services, connect
from campus_leave.core.exceptions import LeaveServiceError, leave_service_exception_handler
from campus_leave.core.logging import setup_logging

# Import routers
from campus_leave.api.routes import auth, leaves, notifications, sweeps

setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME}...")

    client = await connect(settings)
    cache = build_cache(settings)
    app.state.services = build_mongo_services(cache)

    logger.info(f"Server running on {settings.HOST}:{settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await cache.close()
    client.close()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Leave request lifecycle for the campus learning platform",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(LeaveServiceError, leave_service_exception_handler)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(leaves.router, prefix="/api/leaves", tags=["Leaves"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(sweeps.router, prefix="/api/sweeps", tags=["Sweeps"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Campus Leave Service API",
        "version": settings.APP_VERSION,
        "docs": "/api/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
