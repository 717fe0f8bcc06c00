"""Centralized configuration for the ShieldOps integrity engine."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from shieldops.domain.coordinates import ProviderCoordinates
from shieldops.domain.hashing import HashAlgorithm
from shieldops.shared.exceptions import ConfigurationError

DEFAULT_MANIFEST_PATH = "trusted_hashes.json"

DEFAULT_SKIP_FILES: frozenset[str] = frozenset({DEFAULT_MANIFEST_PATH, ".gitignore"})

DEFAULT_EXCLUDED_DIRS: frozenset[str] = frozenset({
    ".git", ".hg", ".svn", "node_modules", "__pycache__",
    ".venv", "venv", ".tox", ".mypy_cache", ".pytest_cache",
})


class Settings(BaseSettings):
    """Engine configuration loaded from ``SHIELD_*`` environment variables."""

    # Content provider
    owner: str = ""
    repo: str = ""
    ref: str = "main"
    manifest_path: str = DEFAULT_MANIFEST_PATH
    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0)

    # Repair
    backup_enabled: bool = True
    backup_suffix: str = Field(default=".bak", min_length=1)
    skip_files: set[str] = Field(default_factory=lambda: set(DEFAULT_SKIP_FILES))
    verify_fetched_content: bool = False

    # Scan
    exclude_dirs: set[str] = Field(default_factory=lambda: set(DEFAULT_EXCLUDED_DIRS))
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    max_workers: int = Field(default=8, ge=1, le=128)

    # Self-update
    self_update_enabled: bool = False
    self_update_path: str | None = None
    self_update_local_path: Path | None = None

    # Logging
    log_level: str = "info"
    json_logs: bool = False
    log_file: str | None = None

    model_config = {"env_prefix": "SHIELD_", "env_file": ".env", "extra": "ignore"}

    def coordinates(self) -> ProviderCoordinates:
        """Return the content-provider coordinates, failing closed if unset."""
        if not self.owner or not self.repo:
            raise ConfigurationError(
                "SHIELD_OWNER and SHIELD_REPO are required to reach the content provider",
                context={"owner": self.owner, "repo": self.repo},
            )
        return ProviderCoordinates(owner=self.owner, repo=self.repo, ref=self.ref)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
