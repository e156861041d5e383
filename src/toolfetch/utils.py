"""
Small helpers shared across toolfetch modules.
"""

import importlib.metadata
import os
import platform
import sys
from typing import Optional, Tuple

from toolfetch.constants import (
    APP_NAME,
    GITHUB_TOKEN_ENV_VAR,
    MACHINE_ARCH_ALIASES,
    PLATFORM_OS_ALIASES,
    SUPPORTED_TARGETS,
)
from toolfetch.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `toolfetch/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def get_effective_github_token(
    github_token: Optional[str], allow_env_token: bool = True
) -> Optional[str]:
    """
    Determine the GitHub token to use, preferring the explicit argument over the environment.

    Parameters:
        github_token (Optional[str]): Explicit token to use; leading and trailing whitespace are ignored.
        allow_env_token (bool): If True, fall back to the `GITHUB_TOKEN` environment variable when no explicit token is provided.

    Returns:
        Optional[str]: The chosen token with surrounding whitespace removed, or `None` if no token is available.
    """
    candidate = (github_token or "").strip()
    if candidate:
        return candidate
    if not allow_env_token:
        return None
    env_token = os.environ.get(GITHUB_TOKEN_ENV_VAR)
    return env_token.strip() if env_token and env_token.strip() else None


def split_target(target: str) -> Tuple[str, str]:
    """
    Split a target such as `linux-x64` into its OS and architecture parts.

    Raises:
        ValueError: If the target has no `-` separator.
    """
    os_name, sep, arch = target.partition("-")
    if not sep or not os_name or not arch:
        raise ValueError(f"Invalid target {target!r}; expected '<os>-<arch>'")
    return os_name, arch


def host_target() -> str:
    """
    Return the target describing the running interpreter's platform.

    Unknown machines are passed through unchanged; a warning is logged when the
    result is not one of SUPPORTED_TARGETS.
    """
    os_name = sys.platform
    for prefix, alias in PLATFORM_OS_ALIASES.items():
        if sys.platform.startswith(prefix):
            os_name = alias
            break

    machine = platform.machine().lower()
    arch = MACHINE_ARCH_ALIASES.get(machine, machine)

    target = f"{os_name}-{arch}"
    if target not in SUPPORTED_TARGETS:
        logger.warning("Host target %s is not a supported target", target)
    return target
