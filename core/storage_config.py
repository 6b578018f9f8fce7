"""Storage credential resolution: environment first, then a local override file."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from core.config import settings
from core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATA_REPO = "mediatracker-data"
DEFAULT_IMAGE_REPOS = ["mediatracker-images-1"]


def split_repos(value: str | list[str] | None) -> list[str]:
    """Accept a list or a comma-separated string of repository names."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [repo.strip() for repo in value if repo and repo.strip()]


class StorageConfig(BaseModel):
    token: str = ""
    owner: str = ""
    data_repo: str = DEFAULT_DATA_REPO
    image_repos: list[str] = Field(default_factory=lambda: list(DEFAULT_IMAGE_REPOS))
    branch: str = "main"

    @property
    def is_complete(self) -> bool:
        return bool(self.token and self.owner and self.data_repo)

    def to_override(self) -> dict:
        return {
            "githubToken": self.token,
            "githubOwner": self.owner,
            "githubDataRepo": self.data_repo,
            "githubImageRepos": self.image_repos,
        }


class ConfigurationResolver:
    """Holds the process-wide StorageConfig.

    Starts Unloaded. ``load()`` tries the environment, then the override file;
    if neither yields credentials it stays Unloaded and ``get()`` raises
    ConfigurationError. ``reconfigure()`` always ends Loaded and persists the
    override file.
    """

    def __init__(
        self,
        override_path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._override_path = Path(override_path or settings.STORAGE_OVERRIDE_PATH)
        self._environ = environ if environ is not None else os.environ
        self._config: StorageConfig | None = None
        self._attempted = False

    @property
    def loaded(self) -> bool:
        return self._config is not None

    def load(self) -> StorageConfig | None:
        self._attempted = True
        config = self._from_env() or self._from_file()
        if config is None:
            logger.warning(
                "No storage configuration found; set GITHUB_TOKEN/GITHUB_OWNER or create %s",
                self._override_path,
            )
        self._config = config
        return config

    def _from_env(self) -> StorageConfig | None:
        token = self._environ.get("GITHUB_TOKEN")
        owner = self._environ.get("GITHUB_OWNER")
        if not (token and owner):
            return None
        config = StorageConfig(
            token=token,
            owner=owner,
            data_repo=self._environ.get("GITHUB_DATA_REPO") or DEFAULT_DATA_REPO,
            image_repos=split_repos(self._environ.get("GITHUB_IMAGE_REPOS")) or list(DEFAULT_IMAGE_REPOS),
            branch=self._environ.get("GITHUB_BRANCH") or "main",
        )
        logger.info("Storage config loaded from environment variables")
        return config

    def _from_file(self) -> StorageConfig | None:
        if not self._override_path.exists():
            return None
        try:
            data = json.loads(self._override_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading storage override %s: %s", self._override_path, exc)
            return None

        config = StorageConfig(
            token=data.get("githubToken") or "",
            owner=data.get("githubOwner") or "",
            data_repo=data.get("githubDataRepo") or DEFAULT_DATA_REPO,
            image_repos=split_repos(data.get("githubImageRepos")) or list(DEFAULT_IMAGE_REPOS),
            branch=data.get("githubBranch") or "main",
        )
        if not config.is_complete:
            logger.warning("Storage override %s is incomplete", self._override_path)
            return None
        logger.info("Storage config loaded from %s", self._override_path)
        return config

    def get(self) -> StorageConfig:
        if self._config is None and not self._attempted:
            self.load()
        if self._config is None or not self._config.is_complete:
            raise ConfigurationError("Remote storage is not configured")
        return self._config

    def is_configured(self) -> bool:
        try:
            self.get()
        except ConfigurationError:
            return False
        return True

    def reconfigure(
        self,
        *,
        token: str | None = None,
        owner: str | None = None,
        data_repo: str | None = None,
        image_repos: str | list[str] | None = None,
    ) -> StorageConfig:
        """Merge the given values over the current config and persist them."""
        if self._config is None and not self._attempted:
            self.load()
        current = self._config or StorageConfig()
        repos = split_repos(image_repos)
        self._config = current.model_copy(
            update={
                "token": token or current.token,
                "owner": owner or current.owner,
                "data_repo": data_repo or current.data_repo,
                "image_repos": repos or current.image_repos,
            }
        )
        self._attempted = True
        self._persist(self._config)
        return self._config

    def _persist(self, config: StorageConfig) -> None:
        try:
            self._override_path.write_text(json.dumps(config.to_override(), indent=2), encoding="utf-8")
            logger.info("Storage config saved to %s", self._override_path)
        except OSError as exc:
            logger.error("Error saving storage override %s: %s", self._override_path, exc)
