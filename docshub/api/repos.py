from fastapi import APIRouter, Depends
from fastapi.responses import Response
import logging

from docshub.api.deps import get_registry
from docshub.api.errors import error_response
from docshub.registry import RepoRegistry

logger = logging.getLogger(__name__)
router = APIRouter()

CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "ico": "image/x-icon",
}


@router.get("/repos")
async def list_repos(registry: RepoRegistry = Depends(get_registry)):
    """List configured repositories."""
    try:
        return {
            "repos": [
                {
                    "name": r.name,
                    "type": r.type,
                    "defaultBranch": r.default_branch,
                    "docsDir": r.docs_dir,
                    "authMode": r.auth_mode,
                }
                for r in registry.config.repos
            ]
        }
    except Exception as e:
        return error_response(e)


@router.get("/repos/{repo}/branches")
async def list_branches(repo: str, registry: RepoRegistry = Depends(get_registry)):
    try:
        service = registry.get_git_service(repo)
        branches = await service.list_branches()
        return {"branches": [b.model_dump(by_alias=True) for b in branches]}
    except Exception as e:
        return error_response(e)


@router.get("/repos/{repo}/tree")
async def get_tree(repo: str, branch: str = "main", registry: RepoRegistry = Depends(get_registry)):
    """Docs directory tree at a branch."""
    try:
        service = registry.get_git_service(repo)
        tree = await service.get_docs_tree(branch)
        return {"tree": [node.model_dump(exclude_none=True) for node in tree]}
    except Exception as e:
        return error_response(e)


@router.get("/repos/{repo}/file")
async def get_file(
    repo: str,
    path: str | None = None,
    branch: str = "main",
    registry: RepoRegistry = Depends(get_registry),
):
    if not path:
        return error_response(ValueError("Missing `path` parameter"), status_code=400)

    try:
        service = registry.get_git_service(repo)
        content = await service.read_file(branch, path)
        return {"content": content, "path": path, "branch": branch}
    except Exception as e:
        return error_response(e, status_code=404)


@router.post("/repos/{repo}/sync")
async def sync_repo(repo: str, registry: RepoRegistry = Depends(get_registry)):
    """Clone or fetch the repository mirror."""
    try:
        service = registry.get_git_service(repo)
        await service.sync()
        logger.info(f"Synced {repo}")
        return {"success": True, "message": "Repository synced"}
    except Exception as e:
        return error_response(e)


@router.get("/repos/{repo}/{branch}/assets/{path:path}")
async def get_asset(
    repo: str,
    branch: str,
    path: str,
    registry: RepoRegistry = Depends(get_registry),
):
    """Serve a binary file (images referenced by the docs) from a branch."""
    try:
        service = registry.get_git_service(repo)
        data = await service.read_file_buffer(branch, path)
    except Exception as e:
        return error_response(e, status_code=404)

    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return Response(
        content=data,
        media_type=CONTENT_TYPES.get(ext, "application/octet-stream"),
        headers={"Cache-Control": "public, max-age=3600"},
    )
