"""BugSage Core FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .. import __version__
from ..config import get_settings
from .routers import auth, bugs, dashboard, projects, users

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("bugsage-core")

settings = get_settings()
logger.info("Starting BugSage Core API")

# Create FastAPI app
app = FastAPI(
    title="BugSage Core API",
    description="Bug tracking - lifecycle, history, dashboards",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - credentials allowed so the session cookie is sent
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Signed session cookie carrying the logged-in user
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie="bugsage_session",
    max_age=settings.session_max_age_seconds,
    same_site="lax",
)

# Include all business logic routers with /api/v1 prefix
app.include_router(auth.router, prefix="/api/v1/auth")
app.include_router(bugs.router, prefix="/api/v1/bugs")
app.include_router(dashboard.router, prefix="/api/v1/dashboard")
app.include_router(users.router, prefix="/api/v1/users")
app.include_router(projects.router, prefix="/api/v1/projects")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "BugSage Core API",
        "version": __version__,
        "docs": "/docs",
        "description": "Bug tracking - lifecycle, history, dashboards"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
