"""
Configuration loader for ONBOARDER.
Merges built-in defaults with a user config file and ONBOARDER_* environment overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from onboarder.errors import ConfigError


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class GitHubConfig(BaseModel):
    organization: str = ""
    token: str = ""
    api_url: str = "https://api.github.com"


class HarnessConfig(BaseModel):
    api_key: str = ""
    account_id: str = ""
    org_id: str = ""
    project_id: str = ""
    base_url: str = "https://app.harness.io"
    connector_ref: str = "account.Gihubapp"


class DefaultsConfig(BaseModel):
    owner: str = ""
    type: str = "service"
    lifecycle: str = "production"
    system: str = ""
    tags: list[str] = Field(default_factory=list)
    annotations: dict[str, str] = Field(default_factory=dict)


class RuntimeConfig(BaseModel):
    mode: Literal["yaml", "api", "register"] = "yaml"
    concurrency: int = Field(default=5, ge=1)
    rate_limit: float = Field(default=0.1, ge=0)
    dry_run: bool = False
    state_file: str = ".onboarder-state.json"
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    include_repos: list[str] = Field(default_factory=list)
    exclude_repos: list[str] = Field(default_factory=list)
    # Accepted for config compatibility; no strategy consults it.
    required_files: list[str] = Field(default_factory=list)

    @field_validator("mode", "log_level", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("include_repos", "exclude_repos", "required_files", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return split_csv(value)
        return value


class OnboarderConfig(BaseModel):
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    harness: HarnessConfig = Field(default_factory=HarnessConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
_USER_CONFIG_NAME = "onboarder.yaml"

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ONBOARDER_GITHUB_ORG":        ("github", "organization"),
    "ONBOARDER_GITHUB_TOKEN":      ("github", "token"),
    "ONBOARDER_GITHUB_API_URL":    ("github", "api_url"),
    "ONBOARDER_HARNESS_API_KEY":   ("harness", "api_key"),
    "ONBOARDER_HARNESS_ACCOUNT_ID": ("harness", "account_id"),
    "ONBOARDER_HARNESS_ORG_ID":    ("harness", "org_id"),
    "ONBOARDER_HARNESS_PROJECT_ID": ("harness", "project_id"),
    "ONBOARDER_HARNESS_BASE_URL":  ("harness", "base_url"),
    "ONBOARDER_CONNECTOR_REF":     ("harness", "connector_ref"),
    "ONBOARDER_DEFAULT_OWNER":     ("defaults", "owner"),
    "ONBOARDER_MODE":              ("runtime", "mode"),
    "ONBOARDER_CONCURRENCY":       ("runtime", "concurrency"),
    "ONBOARDER_RATE_LIMIT":        ("runtime", "rate_limit"),
    "ONBOARDER_STATE_FILE":        ("runtime", "state_file"),
    "ONBOARDER_LOG_LEVEL":         ("runtime", "log_level"),
    "ONBOARDER_INCLUDE_REPOS":     ("runtime", "include_repos"),
    "ONBOARDER_EXCLUDE_REPOS":     ("runtime", "exclude_repos"),
}


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_config(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> OnboarderConfig:
    """
    Load config by merging:
      1. Built-in defaults (onboarder/config.yaml)
      2. User file (--config, else ./onboarder.yaml when present)
      3. ONBOARDER_* environment variable overrides
    CLI flags are applied by the caller on top of the result.
    """
    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. User file
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        base = _deep_merge(base, _read_yaml(config_path))
    elif Path(_USER_CONFIG_NAME).exists():
        base = _deep_merge(base, _read_yaml(Path(_USER_CONFIG_NAME)))

    # 3. Env overrides
    base = _deep_merge(base, _env_overrides(dict(os.environ) if environ is None else environ))

    try:
        return OnboarderConfig(**base)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def apply_overrides(config: OnboarderConfig, overrides: dict[str, Any]) -> OnboarderConfig:
    """Layer CLI flags on top of a loaded config. None values are ignored."""
    cleaned = {
        section: {k: v for k, v in values.items() if v is not None}
        for section, values in overrides.items()
    }
    try:
        return OnboarderConfig(**_deep_merge(config.model_dump(), cleaned))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def validate_config(config: OnboarderConfig, dry_run: bool = False) -> None:
    """Raise ConfigError naming every missing required value. Dry runs only need GitHub."""
    missing: list[str] = []

    if not config.github.organization:
        missing.append("github.organization (--org or ONBOARDER_GITHUB_ORG)")
    if not config.github.token:
        missing.append("github.token (ONBOARDER_GITHUB_TOKEN)")

    if not dry_run:
        if not config.harness.api_key:
            missing.append("harness.api_key (ONBOARDER_HARNESS_API_KEY)")
        if not config.harness.account_id:
            missing.append("harness.account_id (ONBOARDER_HARNESS_ACCOUNT_ID)")
        if not config.harness.org_id:
            missing.append("harness.org_id (ONBOARDER_HARNESS_ORG_ID)")
        if not config.harness.project_id:
            missing.append("harness.project_id (ONBOARDER_HARNESS_PROJECT_ID)")
        if not config.defaults.owner:
            missing.append("defaults.owner (ONBOARDER_DEFAULT_OWNER)")

    if missing:
        raise ConfigError("Missing required configuration:\n  - " + "\n  - ".join(missing))


def validate_tokens(config: OnboarderConfig) -> dict[str, bool]:
    """Check which credentials are available."""
    return {
        "GitHub token":    bool(config.github.token),
        "Harness API key": bool(config.harness.api_key),
    }
