import logging
from pathlib import Path

from docshub.integrations.git import GitService
from docshub.loader import load_config
from docshub.models.repo import DocsHubConfig, RepoConfig

logger = logging.getLogger(__name__)


class RepoRegistry:
    """
    Holds the loaded repository configuration and one GitService per repo.

    Created once at startup and stored on `app.state.registry`; `clear()`
    drops everything so the next access reloads the configuration file.
    """

    def __init__(
        self,
        config_path: str | Path = ".docshub.yml",
        base_dir: str | Path | None = None,
        config: DocsHubConfig | None = None,
    ):
        self.config_path = Path(config_path)
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self._config = config
        self._services: dict[str, GitService] = {}

    @property
    def config(self) -> DocsHubConfig:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def get_repo(self, name: str) -> RepoConfig:
        return self.config.get_repo(name)

    def repo_path(self, repo: RepoConfig) -> Path:
        if repo.type == "local":
            return (self.base_dir / (repo.path or repo.name)).resolve()
        return (self.base_dir / self.config.cache_dir / repo.name).resolve()

    def get_git_service(self, name: str) -> GitService:
        service = self._services.get(name)
        if service is None:
            repo = self.get_repo(name)
            service = GitService(self.repo_path(repo), repo)
            self._services[name] = service
            logger.debug(f"Registered git service for {name} at {service.repo_path}")
        return service

    def clear(self) -> None:
        self._services.clear()
        self._config = None
        logger.info("Repository registry cleared")
