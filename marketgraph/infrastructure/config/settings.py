"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML file (~/.marketgraph/config.yaml), a .env file
and environment variables prefixed with MARKETGRAPH_.

Keys are dotted (e.g. 'limiter.profile'); nested YAML mappings are
flattened to dotted keys, and the matching environment variable is the
upper-cased key with dots replaced by underscores
(MARKETGRAPH_LIMITER_PROFILE).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from marketgraph.domain.models.common import BackoffPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".marketgraph"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "MARKETGRAPH_"

DEFAULT_BASE_URL = "https://flex-integ-api.sharetribe.com"
DEFAULT_API_VERSION = "v1"
DEFAULT_LIMITER_PROFILE = "dev"
DEFAULT_HTTP_TIMEOUT_S = 30.0

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def env_var_name(key: str) -> str:
    """'limiter.profile' -> 'MARKETGRAPH_LIMITER_PROFILE'."""
    return ENV_PREFIX + key.upper().replace(".", "_").replace("-", "_")


def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from the YAML file and the .env file.

    Priority order (highest to lowest):
    1. Environment variables
    2. .env file
    3. YAML configuration file
    4. Defaults of the getter functions

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.is_file():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False keeps real environment variables on top
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    # 3. Environment variables are read by get_config at lookup time
    _loaded = True
    logger.debug("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        return float(value) if '.' in value else int(value)
    except ValueError:
        return value


def get_config(key: str, default: Any = None) -> Any:
    """Gets a configuration value by dotted key.

    Priority:
    1. Test configuration
    2. Environment variable (MARKETGRAPH_ prefix, scalars coerced)
    3. Loaded YAML configuration
    4. Default value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def get_client_id() -> Optional[str]:
    return _optional_str(get_config('client_id'))


def get_client_secret() -> Optional[str]:
    return _optional_str(get_config('client_secret'))


def get_base_url() -> str:
    return str(get_config('base_url', DEFAULT_BASE_URL)).rstrip("/")


def get_api_version() -> str:
    return str(get_config('api_version', DEFAULT_API_VERSION))


def get_token_store_path() -> Optional[Path]:
    """Path of the credential file, or None to keep credentials in memory."""
    value = _optional_str(get_config('token_store.path'))
    return Path(value).expanduser() if value else None


def get_limiter_profile() -> str:
    """Rate limiter preset name: 'dev' or 'prod'."""
    profile = str(get_config('limiter.profile', DEFAULT_LIMITER_PROFILE)).lower()
    if profile not in ("dev", "prod"):
        logger.warning(f"Unknown limiter profile '{profile}'. Falling back to '{DEFAULT_LIMITER_PROFILE}'.")
        return DEFAULT_LIMITER_PROFILE
    return profile


def get_backoff_policy() -> BackoffPolicy:
    """Backoff settings from 'retry.*' keys. Unset keys are left out so
    the request pipeline's defaults apply."""
    policy: Dict[str, Any] = {}
    for name, cast in (("max_retries", int), ("initial_delay", float), ("factor", float), ("max_delay", float)):
        value = get_config(f'retry.{name}')
        if value is not None:
            policy[name] = cast(value)
    return policy  # type: ignore[return-value]


def get_http_timeout() -> float:
    return float(get_config('http.timeout', DEFAULT_HTTP_TIMEOUT_S))


# --- Testing Helpers ---

def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Sets configuration values that override every other source."""
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clears all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
