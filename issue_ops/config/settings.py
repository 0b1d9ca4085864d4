"""
Configuration system using Pydantic for type-safe settings management.

Settings come from a YAML file (``IssueOpsSettings.from_yaml``) or from the
environment alone (``IssueOpsSettings.from_environment``). Environment
variables use the ``ISSUE_OPS_`` prefix with ``__`` separating nested
sections, e.g. ``ISSUE_OPS_WORKFLOW__STATE_LOCATION=comment``. Inside a
GitHub Actions job the standard ``GITHUB_TOKEN``, ``GITHUB_REPOSITORY`` and
``GITHUB_API_URL`` variables are used when no explicit setting is given.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from issue_ops.exceptions import ConfigurationError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

ACTIONS_FALLBACKS = {
    "token": ("ISSUE_OPS_GITHUB__TOKEN", "GITHUB_TOKEN"),
    "repository": ("ISSUE_OPS_GITHUB__REPOSITORY", "GITHUB_REPOSITORY"),
    "api_url": ("ISSUE_OPS_GITHUB__API_URL", "GITHUB_API_URL"),
}


class GitHubConfig(BaseModel):
    """GitHub connection configuration."""

    token: SecretStr = Field(default=SecretStr(""), description="GitHub token (GITHUB_TOKEN or a PAT)")
    repository: str = Field(default="", description="Repository as owner/name")
    api_url: str = Field(default="https://api.github.com", description="API base URL (GitHub Enterprise)")
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries for rate limits and 5xx errors")

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, value: str) -> str:
        if value and value.count("/") != 1:
            raise ValueError(f"repository must be in owner/name form, got {value!r}")
        return value

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0] if self.repository else ""

    @property
    def name(self) -> str:
        return self.repository.split("/", 1)[1] if self.repository else ""


class WorkflowConfig(BaseModel):
    """Workflow engine behavior."""

    state_location: Literal["body", "comment"] = Field(
        default="body", description="Where the state block lives: issue body or a bot comment"
    )
    grace_period_label: str = Field(default="paused: grace-period", description="Label set during grace periods")
    nag_interval_days: int = Field(default=7, ge=1, description="Minimum days between reminders")
    nag_timezone: str = Field(default="America/Denver", description="Time zone of the reminder schedule")
    definitions_file: str | None = Field(default=None, description="Optional YAML file with extra workflows")


class IssueOpsSettings(BaseSettings):
    """Main issue-ops settings."""

    model_config = SettingsConfigDict(
        env_prefix="ISSUE_OPS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    log_level: str = Field(default="INFO", description="Log level")

    def require_github(self) -> GitHubConfig:
        """Return the GitHub section, checking it is usable.

        Raises:
            ConfigurationError: If the token or repository is missing
        """
        if not self.github.token.get_secret_value():
            raise ConfigurationError("GitHub token is required (set GITHUB_TOKEN or ISSUE_OPS_GITHUB__TOKEN)")
        if not self.github.repository:
            raise ConfigurationError(
                "GitHub repository is required (set GITHUB_REPOSITORY or ISSUE_OPS_GITHUB__REPOSITORY)"
            )
        return self.github

    @classmethod
    def from_environment(cls) -> IssueOpsSettings:
        """Load settings from environment variables only.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        github: dict[str, str] = {}
        for field_name, (own_var, actions_var) in ACTIONS_FALLBACKS.items():
            if os.getenv(own_var) is None and os.getenv(actions_var):
                github[field_name] = os.environ[actions_var]

        try:
            return cls(github=github) if github else cls()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in environment: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str) -> IssueOpsSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` substitution.

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return ENV_VAR_PATTERN.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
