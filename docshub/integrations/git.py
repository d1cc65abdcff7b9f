import asyncio
import logging
from pathlib import Path

from docshub.errors import GitError
from docshub.models.repo import BranchInfo, FileTreeNode, RepoConfig

logger = logging.getLogger(__name__)


async def run_git(*args: str, cwd: str | Path | None = None) -> bytes:
    """Run a git command and return its raw stdout. Raises GitError on failure."""
    if cwd is not None and not Path(cwd).is_dir():
        raise GitError(f"Repository directory {cwd} does not exist - sync the repo first")
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise GitError("git executable not found - is git installed?") from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        raise GitError(f"git {args[0]} failed ({proc.returncode}): {message}")
    return stdout


def build_tree(files: list[str], base_path: str) -> list[FileTreeNode]:
    """Build a nested tree from the flat `git ls-tree -r --name-only` output."""
    prefix = f"{base_path}/"
    root: list[FileTreeNode] = []
    dirs: dict[str, FileTreeNode] = {}

    for file_path in files:
        relative = file_path[len(prefix):] if file_path.startswith(prefix) else file_path
        parts = relative.split("/")
        level = root
        for i, part in enumerate(parts):
            is_last = i == len(parts) - 1
            if is_last:
                level.append(FileTreeNode(name=part, path=file_path, type="file"))
                break

            dir_rel = "/".join(parts[: i + 1])
            dir_path = f"{prefix}{dir_rel}" if file_path.startswith(prefix) else dir_rel
            node = dirs.get(dir_path)
            if node is None:
                node = FileTreeNode(name=part, path=dir_path, type="directory", children=[])
                dirs[dir_path] = node
                level.append(node)
            level = node.children

    return sort_tree(root)


def sort_tree(nodes: list[FileTreeNode]) -> list[FileTreeNode]:
    """Directories first, then alphabetical."""
    ordered = sorted(nodes, key=lambda n: (n.type != "directory", n.name.lower()))
    for node in ordered:
        if node.children is not None:
            node.children = sort_tree(node.children)
    return ordered


class GitService:
    """Read access to one mirrored repository through the git CLI."""

    def __init__(self, repo_path: str | Path, config: RepoConfig):
        self.repo_path = Path(repo_path)
        self.config = config

    async def sync(self) -> None:
        """Clone the repository, or fetch all remotes when it already exists."""
        if self.config.type == "local":
            return

        if not self.config.url:
            raise GitError(f'Repo "{self.config.name}" has no URL configured')

        self.repo_path.parent.mkdir(parents=True, exist_ok=True)

        if (self.repo_path / ".git").exists():
            logger.info(f"Fetching {self.config.name} into {self.repo_path}")
            await run_git("fetch", "--all", "--prune", cwd=self.repo_path)
        else:
            logger.info(f"Cloning {self.config.name} into {self.repo_path}")
            await run_git("clone", self.config.url, str(self.repo_path), cwd=self.repo_path.parent)

    async def list_branches(self) -> list[BranchInfo]:
        output = (await run_git("branch", "-a", cwd=self.repo_path)).decode()
        branches: list[BranchInfo] = []
        seen: set[str] = set()

        for raw in output.splitlines():
            is_current = raw.startswith("*")
            name = raw[2:].strip()
            if not name or "HEAD" in name:
                continue

            is_remote = name.startswith("remotes/")
            if is_remote:
                # remotes/origin/feature/x -> feature/x
                name = name.split("/", 2)[2] if name.count("/") >= 2 else name

            if name in seen:
                continue
            seen.add(name)
            branches.append(BranchInfo(name=name, is_remote=is_remote, is_current=is_current))

        return branches

    async def get_docs_tree(self, branch: str) -> list[FileTreeNode]:
        docs_dir = self.config.docs_dir.strip("/") or "docs"
        try:
            output = await run_git(
                "ls-tree", "-r", "--name-only", branch, f"{docs_dir}/", cwd=self.repo_path
            )
        except GitError as e:
            logger.warning(f"Could not list {docs_dir} on {branch} in {self.config.name}: {e}")
            return []

        files = [line for line in output.decode().splitlines() if line.strip()]
        return build_tree(files, docs_dir)

    async def read_file(self, branch: str, file_path: str) -> str:
        return (await self.read_file_buffer(branch, file_path)).decode("utf-8", errors="replace")

    async def read_file_buffer(self, branch: str, file_path: str) -> bytes:
        try:
            return await run_git("show", f"{branch}:{file_path}", cwd=self.repo_path)
        except GitError as e:
            raise GitError(f'File "{file_path}" not found on branch "{branch}": {e}') from e

    async def is_available(self) -> bool:
        try:
            await run_git("status", "--short", cwd=self.repo_path)
            return True
        except (GitError, OSError):
            return False
