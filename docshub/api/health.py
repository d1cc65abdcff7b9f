from fastapi import APIRouter, Depends, status
from docshub.api.deps import get_registry
from docshub.registry import RepoRegistry
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(registry: RepoRegistry = Depends(get_registry)):
    """Health check endpoint."""
    # Loading the configuration verifies the repo file parses
    try:
        repos = len(registry.config.repos)
        config_status = "loaded"
    except Exception as e:
        logger.warning(f"Config health check failed: {e}")
        repos = 0
        config_status = "invalid"

    return {
        "status": "ok",
        "config": config_status,
        "repos": repos,
    }
