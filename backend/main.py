"""
StudyGuard - FastAPI Application Entry Point
Study-session engagement tracking and analytics API
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import init_db
from app.core.errors import register_exception_handlers
from app.services.summary_service import SummaryService
from app.utils.logger import setup_logging

VERSION = "1.0.0"

# Setup logging
setup_logging("DEBUG" if settings.DEBUG else "INFO")
logger = logging.getLogger("studyguard.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager"""
    logger.info("=" * 60)
    logger.info("  StudyGuard Engagement API - Starting")
    logger.info("=" * 60)

    init_db()
    logger.info("Database initialized")

    app.state.summary_service = SummaryService.from_settings(settings)

    logger.info(f"Environment: {settings.ENV}")
    logger.info(f"CORS Origins: {settings.cors_origins_list}")
    logger.info("StudyGuard is ready!")
    logger.info("=" * 60)

    yield

    logger.info("StudyGuard shutting down...")


# Create FastAPI app
app = FastAPI(
    title="StudyGuard - Study Engagement API",
    description="Engagement metrics, session tracking and study analytics",
    version=VERSION,
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

register_exception_handlers(app)

# Include routers
from app.routers import analytics, annotations, auth, highlights, interactions, metrics, sessions, websocket

app.include_router(auth.router)
app.include_router(sessions.router)
app.include_router(interactions.router)
app.include_router(metrics.router)
app.include_router(analytics.router)
app.include_router(highlights.router)
app.include_router(annotations.router)
app.include_router(websocket.router)


# Health check endpoint
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": VERSION,
    }


@app.get("/api/info")
def api_info():
    return {
        "name": "StudyGuard API",
        "version": VERSION,
        "description": "Study engagement tracking and analytics",
        "endpoints": {
            "auth": "/api/auth",
            "sessions": "/api/sessions",
            "interactions": "/api/interactions",
            "metrics": "/api/metrics",
            "analytics": "/api/analytics",
            "highlights": "/api/highlights",
            "annotations": "/api/annotations",
            "websocket_live": "/ws/live",
            "health": "/health",
        }
    }
