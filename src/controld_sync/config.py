"""Configuration loading and validation for Control D Sync."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from platformdirs import user_config_dir

from .common import (
    APP_NAME,
    get_data_dir,
    parse_env_value,
    safe_int,
    validate_api_token,
)
from .exceptions import ConfigurationError

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TIMEOUT = 10
DEFAULT_REFRESH_INTERVAL = 60
ENTITY_CACHE_FILE = "entities.json"

logger = logging.getLogger(__name__)


# =============================================================================
# XDG DIRECTORY FUNCTIONS
# =============================================================================


def get_config_dir(override: Optional[Path] = None) -> Path:
    """
    Get the configuration directory path.

    Resolution order:
    1. Override path if provided
    2. Current working directory if it contains a .env file
    3. XDG config directory (~/.config/controld-sync on Linux,
       ~/Library/Application Support/controld-sync on macOS)

    Args:
        override: Optional path to use instead of auto-detection

    Returns:
        Path to the configuration directory
    """
    if override:
        return Path(override)

    cwd = Path.cwd()
    if (cwd / ".env").exists():
        return cwd

    return Path(user_config_dir(APP_NAME))


def get_cache_dir() -> Path:
    """Get the cache directory path (data_dir/cache)."""
    return get_data_dir() / "cache"


def get_entity_cache_file() -> Path:
    """Get the default path of the exposed-entity cache."""
    return get_cache_dir() / ENTITY_CACHE_FILE


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def load_env_file(env_file: Path) -> int:
    """
    Load KEY=VALUE pairs from a .env file into the process environment.

    Args:
        env_file: Path to the .env file

    Returns:
        Number of variables loaded
    """
    loaded = 0
    with open(env_file, encoding="utf-8-sig") as f:  # utf-8-sig handles BOM
        for line_num, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                logger.warning(f".env line {line_num}: missing '=' separator, skipping")
                continue

            key, value = line.split("=", 1)
            key = key.strip()

            if not key:
                logger.warning(f".env line {line_num}: empty key, skipping")
                continue

            os.environ[key] = parse_env_value(value)
            loaded += 1

    return loaded


def load_config(config_dir: Optional[Path] = None) -> dict[str, Any]:
    """
    Load configuration from .env file and environment variables.

    Args:
        config_dir: Optional directory containing the .env file.
                   If None, auto-detected with get_config_dir().

    Returns:
        Configuration dictionary with all settings

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    config_dir = get_config_dir(config_dir)
    env_file = config_dir / ".env"

    if env_file.exists():
        count = load_env_file(env_file)
        logger.debug(f"Loaded {count} setting(s) from {env_file}")

    cache_file = os.getenv("ENTITY_CACHE_FILE")

    config: dict[str, Any] = {
        "api_token": os.getenv("CONTROLD_API_TOKEN"),
        "refresh_interval": safe_int(
            os.getenv("REFRESH_INTERVAL"), DEFAULT_REFRESH_INTERVAL, "REFRESH_INTERVAL", minimum=1
        ),
        "timeout": safe_int(os.getenv("API_TIMEOUT"), DEFAULT_TIMEOUT, "API_TIMEOUT", minimum=1),
        "cache_file": Path(cache_file).expanduser() if cache_file else get_entity_cache_file(),
        "config_dir": str(config_dir),
    }

    if not config["api_token"]:
        raise ConfigurationError(
            "Missing CONTROLD_API_TOKEN in .env or environment. "
            "Please add your Control D API token to the configuration."
        )

    if not validate_api_token(config["api_token"]):
        raise ConfigurationError(
            "Invalid CONTROLD_API_TOKEN format. "
            "The token should be at least 8 characters of letters, digits, '.', '-' or '_'."
        )

    config["api_token"] = config["api_token"].strip()
    return config
