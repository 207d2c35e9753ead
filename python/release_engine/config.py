"""
Configuration management for the release engine.

Supports YAML config files backed by environment variables
(``RELEASE_ENGINE_`` prefix, ``__`` as the nested delimiter, e.g.
``RELEASE_ENGINE_TAGS__PREFIX=rel-``). Values set in the file win;
environment variables only fill in what the file leaves unset.
"""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from release_engine.adapters.retry import RetryPolicy
from release_engine.commits import (
    DEFAULT_BREAKING_TOKEN,
    DEFAULT_CHORE_TYPES,
    DEFAULT_FEATURE_TYPES,
    DEFAULT_FIX_TYPES,
    CommitClassifier,
)
from release_engine.exceptions import ConfigurationError
from release_engine.models import BranchRole, CommitClass
from release_engine.release_lines import ReleaseLine, Tier
from release_engine.version import parse_version

CONFIG_ENV_VAR = "RELEASE_ENGINE_CONFIG"
CONFIG_CANDIDATES = (
    "release-engine.yaml",
    ".release-engine.yaml",
    "config/release-engine.yaml",
)


class BranchesConfig(BaseModel):
    """Branch naming model."""

    main: str = Field(default="main", description="Production branch")
    develop: str = Field(default="develop", description="Integration branch")
    feature_prefix: str = Field(default="feature/", description="Feature branch prefix")
    release_prefix: str = Field(default="release/", description="Release branch prefix")
    hotfix_prefix: str = Field(default="hotfix/", description="Hotfix branch prefix")
    support_prefix: str = Field(default="support/", description="Support branch prefix")

    def role_of(self, branch: str) -> BranchRole | None:
        """Role of a branch by name, or None for names outside the model."""
        if branch == self.main:
            return BranchRole.MAIN
        if branch == self.develop:
            return BranchRole.DEVELOP
        prefixes = (
            (self.release_prefix, BranchRole.RELEASE),
            (self.hotfix_prefix, BranchRole.HOTFIX),
            (self.support_prefix, BranchRole.SUPPORT),
            (self.feature_prefix, BranchRole.FEATURE),
        )
        for prefix, role in prefixes:
            if branch.startswith(prefix) and len(branch) > len(prefix):
                return role
        return None

    def name_for(self, role: BranchRole, suffix: str) -> str:
        prefix = {
            BranchRole.RELEASE: self.release_prefix,
            BranchRole.HOTFIX: self.hotfix_prefix,
            BranchRole.SUPPORT: self.support_prefix,
            BranchRole.FEATURE: self.feature_prefix,
        }[role]
        return f"{prefix}{suffix}"


class CommitsConfig(BaseModel):
    """Commit classification rules."""

    feature_types: list[str] = Field(default_factory=lambda: list(DEFAULT_FEATURE_TYPES))
    fix_types: list[str] = Field(default_factory=lambda: list(DEFAULT_FIX_TYPES))
    chore_types: list[str] = Field(default_factory=lambda: list(DEFAULT_CHORE_TYPES))
    breaking_token: str = Field(default=DEFAULT_BREAKING_TOKEN)

    def classifier(self) -> CommitClassifier:
        return CommitClassifier(
            feature_types=self.feature_types,
            fix_types=self.fix_types,
            chore_types=self.chore_types,
            breaking_token=self.breaking_token,
        )


class TagsConfig(BaseModel):
    """Tag naming."""

    prefix: str = Field(default="v", description="Version tag prefix")
    short_sha_length: int = Field(default=7, ge=4, le=40, description="Sha length in tags")
    service: str | None = Field(default=None, description="Service name for support tags")
    environments: list[str] = Field(
        default_factory=lambda: ["dev", "staging", "production"],
        description="Environments accepted by promotions",
    )


class ChangelogConfig(BaseModel):
    """Changelog file settings."""

    path: str = Field(default="CHANGELOG.md", description="Changelog path in the repository")


class LabelsConfig(BaseModel):
    """Issue labels that start branch transitions."""

    major: str = Field(default="release:major")
    minor: str = Field(default="release:minor")
    hotfix: str = Field(default="bug:hotfix")

    def all(self) -> set[str]:
        return {self.major, self.minor, self.hotfix}


class AdaptersConfig(BaseModel):
    """External collaborator settings."""

    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-call timeout")
    max_attempts: int = Field(default=3, ge=1, description="Attempts for retryable errors")
    retry_delay_seconds: float = Field(default=1.0, ge=0, description="Initial retry delay")
    retry_backoff: float = Field(default=2.0, ge=1, description="Retry delay multiplier")
    remote: str | None = Field(default=None, description="Remote to push ref changes to")
    github_repository: str | None = Field(default=None, description="owner/repo for gh")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            delay_seconds=self.retry_delay_seconds,
            backoff=self.retry_backoff,
        )


class QualityGateConfig(BaseModel):
    """CI stages that must pass before a release is tagged."""

    required_stages: list[str] = Field(default_factory=list)
    results: dict[str, bool] = Field(
        default_factory=dict, description="Stage results reported by CI"
    )


class LifecycleConfig(BaseModel):
    """Branch lifecycle behaviour."""

    version_file: str = Field(default="VERSION", description="File holding the version")
    cherry_pick_hotfixes: bool = Field(
        default=True, description="Cherry-pick hotfix merges onto support lines admitting fixes"
    )
    delete_merged_features: bool = Field(default=True)
    lock_dir: str | None = Field(
        default=None, description="Directory for lock files; None keeps locks in memory"
    )


class ReleaseLineConfig(BaseModel):
    """A release line declared in configuration."""

    line_id: str
    tier: Tier = Tier.LTS
    base_version: str
    support_until: date | None = None
    admissible_classes: list[CommitClass] = Field(default_factory=list)
    branch: str | None = None

    def to_release_line(self) -> ReleaseLine:
        return ReleaseLine(
            line_id=self.line_id,
            tier=self.tier,
            base_version=parse_version(self.base_version),
            support_until=self.support_until,
            admissible_classes=frozenset(self.admissible_classes),
            branch=self.branch,
        )


class ReleaseLinesConfig(BaseModel):
    """Release line registry seed and persistence."""

    state_file: str | None = Field(
        default=".release-engine/lines.yaml", description="Registry state file"
    )
    lines: list[ReleaseLineConfig] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="plain", description="Console log format (json, plain)")
    file: str | None = Field(default=None, description="JSONL log file path (None disables)")
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotation size")
    backup_count: int = Field(default=5, description="Rotated files kept")


class Config(BaseSettings):
    """Main configuration for the release engine."""

    model_config = SettingsConfigDict(
        env_prefix="RELEASE_ENGINE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    branches: BranchesConfig = Field(default_factory=BranchesConfig)
    commits: CommitsConfig = Field(default_factory=CommitsConfig)
    tags: TagsConfig = Field(default_factory=TagsConfig)
    changelog: ChangelogConfig = Field(default_factory=ChangelogConfig)
    labels: LabelsConfig = Field(default_factory=LabelsConfig)
    adapters: AdaptersConfig = Field(default_factory=AdaptersConfig)
    quality_gate: QualityGateConfig = Field(default_factory=QualityGateConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    release_lines: ReleaseLinesConfig = Field(default_factory=ReleaseLinesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Config:
        """
        Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is not valid YAML or has invalid values.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with path.open(encoding="utf-8") as f:
                data: Any = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError.invalid_file(str(path), str(e)) from e

        if not isinstance(data, dict):
            raise ConfigurationError.invalid_file(str(path), "top level must be a mapping")

        return cls.from_dict(data, source=str(path))

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "<dict>") -> Config:
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError.invalid_file(source, str(e)) from e

    @classmethod
    def load(cls, config_path: str | None = None) -> Config:
        """
        Load configuration with precedence:
        1. Config file (highest)
        2. Environment variables, for values the file does not set
        3. Defaults (lowest)
        """
        if config_path is None:
            config_path = os.getenv(CONFIG_ENV_VAR)

        if config_path is None:
            for candidate in CONFIG_CANDIDATES:
                if Path(candidate).exists():
                    config_path = candidate
                    break

        if config_path and Path(config_path).exists():
            return cls.from_yaml(config_path)

        if config_path:
            raise ConfigurationError.invalid_file(config_path, "file not found")

        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError.invalid_file("<environment>", str(e)) from e

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    def seed_lines(self) -> list[ReleaseLine]:
        return [line.to_release_line() for line in self.release_lines.lines]


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config | None) -> None:
    """Set (or reset with None) the global configuration instance."""
    global _config
    _config = config
