"""Exception types shared by the docs hub."""


class DocsHubError(Exception):
    """Base exception for docs hub failures."""


class ConfigError(DocsHubError):
    """Raised when the repository configuration file is missing fields or invalid."""


class RepoNotFoundError(ConfigError):
    """Raised when a repository name is not present in the configuration."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Repo "{name}" not found in configuration')


class ProviderConfigError(DocsHubError):
    """Raised when a review provider cannot operate with the settings it was given."""


class PlatformAPIError(DocsHubError):
    """Raised when a hosting platform answers with a non-success status."""

    def __init__(self, platform: str, status_code: int, body: str, message: str | None = None):
        self.platform = platform
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"{platform} API error {status_code}: {body}")


class DiffAnchorError(PlatformAPIError):
    """Raised when an inline comment targets a line outside the pull request diff."""

    def __init__(self, platform: str, status_code: int, body: str, path: str, line: int):
        self.path = path
        self.line = line
        super().__init__(
            platform,
            status_code,
            body,
            message=(
                f"Cannot comment on {path}:{line}: the line is probably not part of "
                f"the pull request diff ({platform} API error {status_code}: {body})"
            ),
        )


class GitError(DocsHubError):
    """Raised when the local git client fails."""
