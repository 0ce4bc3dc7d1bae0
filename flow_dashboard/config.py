from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flow_dashboard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/flow-dashboard/config.yaml"
DEFAULT_STORAGE_PATH = "~/.local/share/flow-dashboard/storage.json"


def expand_env_vars(config_str: str) -> str:
    """
    Expand environment variables in the format ${VAR_NAME} within a YAML string.
    Skips expansion in YAML comments (lines starting with #).

    Args:
        config_str: YAML configuration string potentially containing ${VAR_NAME} placeholders

    Returns:
        YAML string with all ${VAR_NAME} placeholders expanded to environment variable values

    Raises:
        KeyError: If a referenced environment variable is not set
    """
    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        try:
            return os.environ[var_name]
        except KeyError:
            msg = f"Environment variable '{var_name}' referenced in config.yaml but not set"
            raise KeyError(msg) from None

    lines = []
    for line in config_str.split("\n"):
        stripped = line.lstrip()
        if stripped.startswith("#"):
            lines.append(line)
        else:
            lines.append(re.sub(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}", replace_var, line))

    return "\n".join(lines)


def load_config_from_yaml(config_path: str | None = None) -> dict:
    """
    Load YAML configuration file and expand environment variables.

    Args:
        config_path: Path to config.yaml. If None, uses the CONFIG_PATH environment
                     variable, falling back to ~/.config/flow-dashboard/config.yaml.

    Returns:
        Parsed configuration mapping, or an empty dict if the file does not exist

    Raises:
        ConfigurationError: If the file is unreadable, invalid YAML, references an
                            unset environment variable, or is not a mapping
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)

    config_file = Path(config_path).expanduser()
    if not config_file.exists():
        logger.debug("No config file found, using defaults", extra={"config_path": str(config_file)})
        return {}

    try:
        config_str = config_file.read_text()
    except OSError as e:
        msg = f"Failed to read {config_file}: {e}"
        raise ConfigurationError(msg, context={"config_path": str(config_file)}) from e

    try:
        expanded_config = expand_env_vars(config_str)
    except KeyError as e:
        msg = f"Error expanding environment variables in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_path": str(config_file)}) from None

    try:
        config_dict = yaml.safe_load(expanded_config)
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_path": str(config_file)}) from None

    if config_dict is None:
        return {}

    if not isinstance(config_dict, dict):
        msg = "config.yaml must contain a YAML mapping/dictionary at root level"
        raise ConfigurationError(msg, context={"config_path": str(config_file)})

    return config_dict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLOW_DASHBOARD_",
        env_file=None,
        case_sensitive=False,
    )

    # GitHub API
    api_base_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Transport timeout for every GitHub API call",
        gt=0,
    )

    # Encrypted local store
    storage_path: Path = Field(default=Path(DEFAULT_STORAGE_PATH))
    app_salt: str = "github-flow-dashboard-v1"
    kdf_iterations: int = Field(default=100_000, ge=100_000)

    # Discovery and enrichment
    repository_page_size: int = Field(default=100, ge=1, le=100)
    enrichment_batch_size: int = Field(default=5, ge=1)
    enrichment_batch_delay_seconds: float = Field(default=0.2, ge=0)
    activity_days_back: int = Field(default=90, ge=1)

    # Status polling
    status_page_size: int = Field(default=50, ge=1, le=100)

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("storage_path", mode="after")
    @classmethod
    def expand_storage_path(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Invalid log level: {v}"
            raise ValueError(msg)
        return level


def _flatten_config(config_dict: dict) -> dict:
    """Map the nested config.yaml layout onto flat Settings fields."""
    flat_config: dict = {}

    github = config_dict.get("github")
    if isinstance(github, dict):
        if "base_url" in github:
            flat_config["api_base_url"] = github["base_url"]
        if "api_version" in github:
            flat_config["api_version"] = github["api_version"]
        if "timeout_seconds" in github:
            flat_config["request_timeout_seconds"] = github["timeout_seconds"]

    storage = config_dict.get("storage")
    if isinstance(storage, dict):
        if "path" in storage:
            flat_config["storage_path"] = storage["path"]
        if "app_salt" in storage:
            flat_config["app_salt"] = storage["app_salt"]
        if "kdf_iterations" in storage:
            flat_config["kdf_iterations"] = storage["kdf_iterations"]

    discovery = config_dict.get("discovery")
    if isinstance(discovery, dict):
        if "page_size" in discovery:
            flat_config["repository_page_size"] = discovery["page_size"]
        if "batch_size" in discovery:
            flat_config["enrichment_batch_size"] = discovery["batch_size"]
        if "batch_delay_seconds" in discovery:
            flat_config["enrichment_batch_delay_seconds"] = discovery["batch_delay_seconds"]
        if "activity_days_back" in discovery:
            flat_config["activity_days_back"] = discovery["activity_days_back"]

    polling = config_dict.get("polling")
    if isinstance(polling, dict) and "page_size" in polling:
        flat_config["status_page_size"] = polling["page_size"]

    logging_section = config_dict.get("logging")
    if isinstance(logging_section, dict):
        flat_config["log_level"] = logging_section.get("level", "INFO")
        flat_config["log_json"] = logging_section.get("json", True)

    return flat_config


def build_settings(config_path: str | None = None) -> Settings:
    """Load settings from the YAML config file (if any) with environment variable expansion."""
    config_dict = load_config_from_yaml(config_path)
    flat_config = _flatten_config(config_dict)

    try:
        return Settings(**flat_config)
    except ValueError as e:
        msg = f"Configuration validation error: {e}"
        raise ConfigurationError(msg) from e
