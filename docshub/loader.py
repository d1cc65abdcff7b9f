"""Loader for the .docshub.yml repository file.

The file lists the repositories served by the hub:

    cacheDir: .docshub-cache
    repos:
      - name: handbook
        type: github
        url: https://github.com/acme/handbook.git
        token: ${GITHUB_TOKEN}
        authMode: token
        login: docs-bot

Tokens may reference environment variables with `$VAR` or `${VAR}`; the
references are substituted once, here, so providers only ever see literal
tokens.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from docshub.config import settings
from docshub.errors import ConfigError
from docshub.models.repo import DocsHubConfig, RepoConfig

logger = logging.getLogger(__name__)


_ENV_REF_RE = re.compile(r"\$\{(\w+)\}|\$(\w+)")


def resolve_env_refs(value: Optional[str], environ: Mapping[str, str]) -> Optional[str]:
    """Substitute `$VAR` / `${VAR}` references in a configuration value.

    Args:
        value: The raw value from the configuration file.
        environ: Mapping to resolve variables from (usually os.environ).

    Returns:
        The substituted string, or None when the value is None or resolves
        to an empty string (for example a reference to an unset variable).
    """
    if value is None:
        return None

    missing: list[str] = []

    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name not in environ:
            missing.append(name)
            return ""
        return environ[name]

    resolved = _ENV_REF_RE.sub(_sub, value)
    if missing:
        logger.warning(f"Unset environment variable(s) in configuration: {', '.join(missing)}")
    return resolved if resolved.strip() else None


def parse_config(raw: dict | None, environ: Mapping[str, str] | None = None) -> DocsHubConfig:
    """Validate a parsed YAML document into a DocsHubConfig.

    Raises:
        ConfigError: If an entry is missing `name` or `type`, has an unknown
            type, or reuses a name.
    """
    environ = os.environ if environ is None else environ
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping")

    repos: list[RepoConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw.get("repos") or []):
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ConfigError(f"Repo #{index + 1} must have a `name` field")
        name = entry["name"]
        if not entry.get("type"):
            raise ConfigError(f'Repo "{name}" must have a `type` field')
        if name in seen:
            raise ConfigError(f'Repo "{name}" is defined more than once')
        seen.add(name)

        try:
            repo = RepoConfig.model_validate(entry)
        except ValidationError as e:
            raise ConfigError(f'Repo "{name}" is invalid: {e}') from e

        repo.token = resolve_env_refs(repo.token, environ)
        repos.append(repo)

    return DocsHubConfig(repos=repos, cache_dir=raw.get("cacheDir") or settings.cache_dir)


def load_config(path: str | Path, environ: Mapping[str, str] | None = None) -> DocsHubConfig:
    """Read and validate the repository file. A missing file means no repos."""
    config_path = Path(path)
    if not config_path.exists():
        logger.info(f"No configuration file at {config_path}, serving no repositories")
        return DocsHubConfig(repos=[], cache_dir=settings.cache_dir)

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e

    config = parse_config(raw, environ)
    logger.info(f"Loaded {len(config.repos)} repositories from {config_path}")
    return config
