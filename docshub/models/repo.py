from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Literal, Optional

from docshub.errors import RepoNotFoundError


RepoPlatform = Literal["github", "gitlab", "bitbucket", "local"]
AuthMode = Literal["token", "oauth"]
BitbucketVariant = Literal["cloud", "server"]


class RepoConfig(BaseModel):
    """One entry of the `repos:` list in .docshub.yml."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str
    type: RepoPlatform
    url: Optional[str] = None
    path: Optional[str] = None
    docs_dir: str = "docs"
    default_branch: str = "main"
    token: Optional[str] = None
    auth_mode: AuthMode = "token"
    bitbucket_variant: BitbucketVariant = "cloud"
    api_url: Optional[str] = None
    username: Optional[str] = None
    login: Optional[str] = None


class DocsHubConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    repos: list[RepoConfig] = []
    cache_dir: str = ".docshub-cache"

    def get_repo(self, name: str) -> RepoConfig:
        for repo in self.repos:
            if repo.name == name:
                return repo
        raise RepoNotFoundError(name)


class BranchInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    is_remote: bool
    is_current: bool = False


class FileTreeNode(BaseModel):
    """A file or directory under the docs directory."""
    name: str
    path: str
    type: Literal["file", "directory"]
    children: Optional[list["FileTreeNode"]] = Field(default=None)
