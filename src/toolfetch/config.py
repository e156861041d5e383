"""
Configuration loading for toolfetch.

Settings live in an optional `toolfetch.yaml`, looked up in the project directory
first and the platformdirs user config directory second.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
import yaml

from toolfetch.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    CONFIG_KEY_TOOLS,
    DEFAULT_DOWNLOAD_RETRY_DELAY,
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    DEFAULT_MAX_DOWNLOAD_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TOOLS_DIR_NAME,
)
from toolfetch.exceptions import ConfigFileError, ConfigValidationError
from toolfetch.log_utils import logger
from toolfetch.utils import get_effective_github_token


def user_config_file() -> Path:
    """Return the platformdirs-managed configuration file path."""
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def default_cache_dir() -> Path:
    return Path(platformdirs.user_cache_dir(APP_NAME))


@dataclass
class ToolfetchConfig:
    """Validated toolfetch settings."""

    tools_dir: Path
    """Directory tools are installed into"""

    cache_dir: Optional[Path]
    """Download cache, or None when caching is disabled"""

    github_token: Optional[str] = None
    """Token used for GitHub API calls and downloads"""

    log_level: Optional[str] = None
    log_dir: Optional[Path] = None

    max_concurrent_downloads: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_download_retries: int = DEFAULT_MAX_DOWNLOAD_RETRIES
    download_retry_delay: float = DEFAULT_DOWNLOAD_RETRY_DELAY

    tools: Dict[str, Any] = field(default_factory=dict)
    """The raw tool manifest (see registry.load_downloadables)"""

    source: Optional[Path] = None
    """File the settings were read from, None when defaults are used"""


def find_config_file(project_dir: Path) -> Optional[Path]:
    """
    Locate the configuration file for a project.

    Returns:
        Optional[Path]: `<project_dir>/toolfetch.yaml` if it exists, else the user config
        file if that exists, else None.
    """
    for candidate in (project_dir / CONFIG_FILE_NAME, user_config_file()):
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Parse a YAML configuration file.

    An empty file yields an empty mapping.

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or is not a mapping.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(f"Cannot read configuration file {path}", str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML in {path}", str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(
            f"Invalid configuration file {path}",
            f"expected a mapping, got {type(data).__name__}",
        )
    return data


def _get_number(
    config: Dict[str, Any], key: str, default: Any, minimum: float, cast: type
) -> Any:
    """Read a numeric setting; invalid values are warned about and replaced with `default`."""
    value = config.get(key)
    if value is None:
        return default
    try:
        number = cast(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r, using default %s", key, value, default)
        return default
    if isinstance(value, bool) or number < minimum:
        logger.warning(
            "Invalid %s value %r, must be >= %s; using default %s",
            key,
            value,
            minimum,
            default,
        )
        return default
    return number


def _resolve_path(value: Any, base: Path) -> Path:
    path = Path(os.path.expanduser(str(value)))
    return path if path.is_absolute() else base / path


def _resolve_cache_dir(config: Dict[str, Any], project_dir: Path) -> Optional[Path]:
    if "CACHE_DIR" not in config:
        return default_cache_dir()
    value = config["CACHE_DIR"]
    if value is False or value is None or value == "":
        return None
    if value is True:
        return default_cache_dir()
    return _resolve_path(value, project_dir)


def build_config(config: Dict[str, Any], project_dir: Path) -> ToolfetchConfig:
    """
    Validate raw settings into a ToolfetchConfig.

    Relative paths are resolved against `project_dir`.

    Raises:
        ConfigValidationError: If `TOOLS` is not a mapping.
    """
    tools = config.get(CONFIG_KEY_TOOLS) or {}
    if not isinstance(tools, dict):
        raise ConfigValidationError(
            f"{CONFIG_KEY_TOOLS} must be a mapping of tool keys to tool definitions"
        )

    tools_dir_value = config.get("TOOLS_DIR")
    tools_dir = (
        _resolve_path(tools_dir_value, project_dir)
        if tools_dir_value
        else project_dir / DEFAULT_TOOLS_DIR_NAME
    )

    log_dir_value = config.get("LOG_DIR")
    log_level = config.get("LOG_LEVEL")

    return ToolfetchConfig(
        tools_dir=tools_dir,
        cache_dir=_resolve_cache_dir(config, project_dir),
        github_token=get_effective_github_token(
            config.get("GITHUB_TOKEN"), bool(config.get("ALLOW_ENV_TOKEN", True))
        ),
        log_level=str(log_level) if log_level else None,
        log_dir=_resolve_path(log_dir_value, project_dir) if log_dir_value else None,
        max_concurrent_downloads=_get_number(
            config, "MAX_CONCURRENT_DOWNLOADS", DEFAULT_MAX_CONCURRENT_DOWNLOADS, 1, int
        ),
        request_timeout=_get_number(
            config, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, 1, float
        ),
        max_download_retries=_get_number(
            config, "MAX_DOWNLOAD_RETRIES", DEFAULT_MAX_DOWNLOAD_RETRIES, 0, int
        ),
        download_retry_delay=_get_number(
            config, "DOWNLOAD_RETRY_DELAY", DEFAULT_DOWNLOAD_RETRY_DELAY, 0, float
        ),
        tools=tools,
    )


def load_config(
    project_dir: Path, config_file: Optional[Path] = None
) -> ToolfetchConfig:
    """
    Load and validate the configuration of a project.

    Parameters:
        project_dir (Path): Project root used to find `toolfetch.yaml` and resolve relative paths.
        config_file (Optional[Path]): Explicit configuration file; it must exist.

    Returns:
        ToolfetchConfig: Loaded settings, or defaults when no file was found.

    Raises:
        ConfigFileError: If an explicit file is missing or any file cannot be parsed.
        ConfigValidationError: If the settings are invalid.
    """
    if config_file is not None:
        if not config_file.is_file():
            raise ConfigFileError(f"Configuration file not found: {config_file}")
        path: Optional[Path] = config_file
    else:
        path = find_config_file(project_dir)

    if path is None:
        logger.debug("No configuration file found, using defaults")
        return build_config({}, project_dir)

    logger.debug("Loading configuration from %s", path)
    config = build_config(read_config_file(path), project_dir)
    config.source = path
    return config
