from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from docshub.config import settings
from docshub.registry import RepoRegistry
from docshub.api import health, repos, reviews

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting docshub...")
    app.state.registry = RepoRegistry(config_path=settings.config_path)
    logger.info(f"docshub started with configuration {settings.config_path}")

    yield

    # Shutdown
    logger.info("Shutting down docshub...")
    app.state.registry.clear()
    logger.info("docshub shutdown complete")


app = FastAPI(
    title="docshub",
    description="Documentation hub with pull request reviews for GitHub, GitLab and Bitbucket",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware - allow the docs UI to call the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(repos.router, prefix="/api", tags=["repos"])
app.include_router(reviews.router, prefix="/api", tags=["reviews"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "docshub",
        "version": "0.1.0",
        "description": "Documentation hub with pull request reviews"
    }
