"""
Configuration loader: reads pkgmux.yml into a Settings model.

Resolution order: explicit path, then $PKGMUX_CONFIG, then
~/.config/pkgmux/config.yml. A missing file means defaults; a file
that exists but does not parse or validate is a ConfigError.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from pkgmux.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PKGMUX_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/pkgmux/config.yml")


class ConfigError(Exception):
    """Raised when the configuration file is invalid."""


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Locate the config file, or None when no file is configured.

    An explicit path is returned as-is (existence is checked by the
    loader so the error message can name it).
    """
    if explicit is not None:
        return explicit

    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit config path. If None, the standard locations are searched.

    Returns:
        Validated Settings (defaults when no config file exists).

    Raises:
        ConfigError: If an explicitly requested file is missing, or any
            file found is not valid YAML or does not match the schema.
    """
    explicit = path is not None
    path = find_config_file(path)

    if path is None:
        logger.debug("No config file found, using defaults")
        return Settings()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        logger.info("Config file %s does not exist, using defaults", path)
        return Settings()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    disabled = [k.value for k, o in settings.backends.items() if not o.enabled]
    logger.info(
        "Loaded config from %s (disabled backends: %s)",
        path, ", ".join(disabled) or "none",
    )
    return settings
