"""
Configuration System

YAML configuration for chaingen's external toolchain and runtime behaviour.
Features:
- Single-file YAML loading with environment variable resolution
- Dot-path access to raw values
- Validated, typed settings (ToolchainSettings) for the generation pipeline
- Optional file: built-in defaults apply when no chaingen.yml is present

Lookup order for the configuration file:
1. Explicit path passed by the caller
2. CHAINGEN_CONFIG environment variable
3. chaingen.yml in the current working directory
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

# Use standard logging (not get_logger) to avoid circular imports with logger.py
logger = logging.getLogger("CONFIG")

CONFIG_FILE_NAME = "chaingen.yml"
CONFIG_ENV_VAR = "CHAINGEN_CONFIG"


# =============================================================================
# Typed Settings
# =============================================================================


class ToolsSettings(BaseModel):
    """Command prefixes used to start each external tool."""

    go: list[str] = Field(default_factory=lambda: ["go"], description="Go toolchain")
    protoc: list[str] = Field(default_factory=lambda: ["protoc"], description="Schema compiler")
    pbjs: list[str] = Field(default_factory=lambda: ["pbjs"], description="protobufjs static generator")
    pbts: list[str] = Field(default_factory=lambda: ["pbts"], description="protobufjs typings generator")
    sta: list[str] = Field(
        default_factory=lambda: ["swagger-typescript-api"], description="REST client synthesizer"
    )


class SetupSettings(BaseModel):
    download_dependencies: bool = Field(
        default=True, description="Run `go mod download` before resolving dependencies"
    )


class GenerationSettings(BaseModel):
    max_concurrency: int = Field(
        default=0, ge=0, description="Maximum concurrent tool invocations, 0 for unbounded"
    )


class ToolchainSettings(BaseModel):
    """Validated view of the configuration used by the generation pipeline."""

    tools: ToolsSettings = Field(default_factory=ToolsSettings)
    setup: SetupSettings = Field(default_factory=SetupSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)


# =============================================================================
# Config Builder
# =============================================================================


class ConfigBuilder:
    """
    Configuration builder for chaingen.

    Loads one YAML file, resolves environment variables, and exposes both the
    raw mapping (dot-path access) and the validated ToolchainSettings.
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize configuration builder.

        Args:
            config_path: Path to the YAML file. If None, chaingen.yml in the
                current directory is used when it exists; otherwise defaults apply.

        Raises:
            FileNotFoundError: If an explicit config_path does not exist.
        """
        if config_path is None:
            cwd_config = Path.cwd() / CONFIG_FILE_NAME
            config_path = cwd_config if cwd_config.exists() else None
        elif not Path(config_path).exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self.config_path = Path(config_path) if config_path is not None else None
        if self.config_path is None:
            logger.debug("No configuration file found, using built-in defaults")
            self.raw_config: dict[str, Any] = {}
        else:
            self.raw_config = self._load_config()

        self.settings = ToolchainSettings.model_validate(self.raw_config)

    def _load_yaml_file(self, file_path: Path) -> dict[str, Any]:
        """Load and validate a YAML configuration file."""
        try:
            with open(file_path) as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.warning(f"Configuration file is empty: {file_path}")
                return {}

            if not isinstance(config, dict):
                error_msg = f"Configuration file must contain a dictionary/mapping: {file_path}"
                logger.error(error_msg)
                raise ValueError(error_msg)

            return config
        except yaml.YAMLError as e:
            error_msg = f"Error parsing YAML configuration: {e}"
            logger.error(error_msg)
            raise yaml.YAMLError(error_msg) from e

    def _resolve_env_vars(self, data: Any) -> Any:
        """Recursively resolve environment variables in configuration data.

        Supports both simple and bash-style default value syntax:
        - ${VAR_NAME} - simple substitution
        - ${VAR_NAME:-default_value} - with default value
        - $VAR_NAME - simple substitution without braces
        """
        if isinstance(data, dict):
            return {key: self._resolve_env_vars(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._resolve_env_vars(item) for item in data]
        elif isinstance(data, str):

            def replace_env_var(match):
                if match.group(1):
                    var_name = match.group(1)
                    default_value = match.group(2)
                else:
                    var_name = match.group(3)
                    default_value = None

                env_value = os.environ.get(var_name)
                if env_value is None:
                    if default_value is not None:
                        return default_value
                    logger.info(f"Environment variable '{var_name}' not found, keeping original value")
                    return match.group(0)
                return env_value

            pattern = r"\$\{([^}:]+)(?::-(.*?))?\}|\$([A-Za-z_][A-Za-z0-9_]*)"
            return re.sub(pattern, replace_env_var, data)
        else:
            return data

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from the file.

        Returns:
            Configuration with environment variables expanded
        """
        config = self._load_yaml_file(self.config_path)
        expanded_config = self._resolve_env_vars(config)

        logger.debug(f"Loaded configuration from {self.config_path}")
        return expanded_config

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation path."""
        keys = path.split(".")
        value = self.raw_config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default


# =============================================================================
# GLOBAL CONFIGURATION
# =============================================================================

_default_config: ConfigBuilder | None = None

# Per-path config cache for explicit config paths
_config_cache: dict[str, ConfigBuilder] = {}


def get_config_builder(config_path: str | Path | None = None) -> ConfigBuilder:
    """Get a configuration builder, cached per path.

    Args:
        config_path: Optional explicit path. Without it, CHAINGEN_CONFIG or
            ./chaingen.yml is used (defaults when neither exists).

    Returns:
        ConfigBuilder instance
    """
    global _default_config

    if config_path is None:
        if _default_config is None:
            config_file = os.environ.get(CONFIG_ENV_VAR)
            _default_config = ConfigBuilder(config_file) if config_file else ConfigBuilder()
        return _default_config

    resolved_path = str(Path(config_path).resolve())
    if resolved_path not in _config_cache:
        _config_cache[resolved_path] = ConfigBuilder(resolved_path)
    return _config_cache[resolved_path]


def get_settings(config_path: str | Path | None = None) -> ToolchainSettings:
    """Get validated toolchain settings."""
    return get_config_builder(config_path).settings


def get_config_value(path: str, default: Any = None, config_path: str | Path | None = None) -> Any:
    """
    Get a specific configuration value by dot-separated path.

    Args:
        path: Dot-separated configuration path (e.g., "logging.level")
        default: Default value to return if path is not found
        config_path: Optional explicit path to configuration file

    Returns:
        The configuration value at the specified path, or default if not found

    Raises:
        ValueError: If path is empty or None

    Examples:
        >>> level = get_config_value("logging.level", "INFO")
    """
    if not path:
        raise ValueError("Configuration path cannot be empty or None")

    return get_config_builder(config_path).get(path, default)


def reset_config() -> None:
    """Drop cached configuration so the next access reloads it."""
    global _default_config
    _default_config = None
    _config_cache.clear()
