"""Unified configuration loaded from .postdesk.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

from postdesk.integrations.git_host import DEFAULT_CONTENT_DIR, GitHostConfig
from postdesk.sync.reconciler import DEFAULT_MAX_CONCURRENCY

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".postdesk.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "postdesk" / "config.toml"


class ProviderSectionConfig(BaseModel):
    """[provider] section."""

    name: str = "github"
    api_url: str = ""
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    content_dir: str = DEFAULT_CONTENT_DIR
    timeout: float = 30.0


class DraftsSectionConfig(BaseModel):
    """[drafts] section."""

    directory: str = "."


class SyncSectionConfig(BaseModel):
    """[sync] section."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY


class AuthSectionConfig(BaseModel):
    """[auth] section.

    The token is a bearer credential obtained elsewhere (OAuth app or a
    personal access token); it is usually supplied via env var.
    """

    token: str = ""


class PostdeskConfig(BaseModel):
    """Top-level configuration model."""

    provider: ProviderSectionConfig = Field(default_factory=ProviderSectionConfig)
    drafts: DraftsSectionConfig = Field(default_factory=DraftsSectionConfig)
    sync: SyncSectionConfig = Field(default_factory=SyncSectionConfig)
    auth: AuthSectionConfig = Field(default_factory=AuthSectionConfig)

    def to_git_host_config(self) -> GitHostConfig:
        """Convert to GitHostConfig for the content gateway."""
        return GitHostConfig(
            provider=self.provider.name,
            api_url=self.provider.api_url,
            owner=self.provider.owner,
            repo=self.provider.repo,
            branch=self.provider.branch,
            content_dir=self.provider.content_dir,
            timeout=self.provider.timeout,
        )

    @property
    def drafts_dir(self) -> Path:
        return Path(self.drafts.directory).expanduser()


def load_config(path: str | Path | None = None) -> PostdeskConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .postdesk.toml in CWD
    3. ~/.config/postdesk/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged PostdeskConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = PostdeskConfig.model_validate(data) if data else PostdeskConfig()

    # Overlay environment variables
    config = _apply_env_vars(config)

    return config


def merge_cli_overrides(config: PostdeskConfig, **cli_kwargs: object) -> PostdeskConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "provider": ("provider", "name"),
        "owner": ("provider", "owner"),
        "repo": ("provider", "repo"),
        "branch": ("provider", "branch"),
        "content_dir": ("provider", "content_dir"),
        "api_url": ("provider", "api_url"),
        "drafts_dir": ("drafts", "directory"),
        "max_concurrency": ("sync", "max_concurrency"),
        "token": ("auth", "token"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return PostdeskConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: PostdeskConfig) -> PostdeskConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    provider = os.environ.get("GIT_PROVIDER")
    if provider:
        data["provider"]["name"] = provider.strip().lower()

    # Provider-specific variables only apply to the active provider.
    if data["provider"]["name"] == "gitea":
        env_mapping: dict[str, tuple[str, str]] = {
            "GITEA_API_URL": ("provider", "api_url"),
            "GITEA_OWNER": ("provider", "owner"),
            "GITEA_REPO": ("provider", "repo"),
            "GITEA_BRANCH": ("provider", "branch"),
            "GITEA_TOKEN": ("auth", "token"),
        }
        gitea_url = os.environ.get("GITEA_URL")
        if gitea_url and "GITEA_API_URL" not in os.environ:
            data["provider"]["api_url"] = f"{gitea_url.rstrip('/')}/api/v1"
    else:
        env_mapping = {
            "GITHUB_API_URL": ("provider", "api_url"),
            "GITHUB_OWNER": ("provider", "owner"),
            "GITHUB_REPO": ("provider", "repo"),
            "GITHUB_BRANCH": ("provider", "branch"),
            "GITHUB_TOKEN": ("auth", "token"),
        }

    env_mapping.update(
        {
            "POSTDESK_CONTENT_DIR": ("provider", "content_dir"),
            "POSTDESK_DRAFTS_DIR": ("drafts", "directory"),
            "POSTDESK_TOKEN": ("auth", "token"),
        }
    )

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    concurrency_raw = os.environ.get("POSTDESK_MAX_CONCURRENCY")
    if concurrency_raw is not None:
        try:
            data["sync"]["max_concurrency"] = int(concurrency_raw)
        except ValueError:
            logger.warning("Ignoring invalid POSTDESK_MAX_CONCURRENCY=%r", concurrency_raw)

    return PostdeskConfig.model_validate(data)
