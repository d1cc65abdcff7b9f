from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Repository file
    config_path: str = Field(default=".docshub.yml", alias="DOCSHUB_CONFIG")
    cache_dir: str = Field(default=".docshub-cache", alias="DOCSHUB_CACHE_DIR")

    # Hosting platform APIs
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")
    gitlab_api_url: str = Field(default="https://gitlab.com/api/v4", alias="GITLAB_API_URL")
    bitbucket_api_url: str = Field(default="https://api.bitbucket.org", alias="BITBUCKET_API_URL")
    http_timeout: float = Field(default=30.0, alias="HTTP_TIMEOUT")

    # OAuth proxy in front of the app
    oauth_provider: str | None = Field(default=None, alias="OAUTH_PROVIDER")

    # App
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
