"""
Tool Manifest Registry

Builds Downloadables from the `TOOLS` mapping of the configuration file, so a
project can declare its tools in YAML instead of code:

    TOOLS:
      cmake:
        name: CMake
        destination: [cmake]
        source: web
        url: https://example.com/cmake-{os}-{arch}.tar.gz
        version: "3.30.0"
        archive: {strip: 1}
"""

import functools
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from toolfetch.exceptions import ConfigValidationError
from toolfetch.utils import split_target

from .base import AbstractAsset, Transport
from .file_assets import ArchiveFileAsset, LocalFileAsset, WebFileAsset
from .github_assets import GitHubReleaseAsset, GitHubRepoAsset, GitHubWorkflowAsset
from .interfaces import Asset, Downloadable, Target

# Fields every source accepts in addition to its own
COMMON_FIELDS = {"name", "destination", "source", "targets", "archive", "overrides"}

# Required and optional fields per source
SOURCE_FIELDS: Dict[str, Dict[str, bool]] = {
    "web": {"url": True, "file_name": False, "version": False, "headers": False},
    "local": {"path": True, "target_name": False},
    "github-release": {"repo": True, "tag": True, "asset": True},
    "github-repo": {"repo": True, "ref": False, "path": False},
    "github-workflow": {
        "repo": True,
        "workflow": True,
        "artifact": True,
        "branch": False,
        "status": False,
        "event": False,
    },
}


def _expand(value: Any, placeholders: Mapping[str, str], key: str) -> Any:
    """Substitute `{target}`, `{os}` and `{arch}` in strings, recursing into lists and mappings."""
    if isinstance(value, str):
        try:
            return value.format_map(placeholders)
        except (KeyError, ValueError, IndexError) as e:
            raise ConfigValidationError(
                f"Invalid placeholder in tool '{key}'", f"{value!r}: {e}"
            ) from e
    if isinstance(value, list):
        return [_expand(item, placeholders, key) for item in value]
    if isinstance(value, dict):
        return {k: _expand(v, placeholders, key) for k, v in value.items()}
    return value


def _split_repo(key: str, repo: Any) -> Tuple[str, str]:
    owner, sep, name = str(repo).partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ConfigValidationError(
            f"Invalid repo for tool '{key}'", f"expected 'owner/name', got {repo!r}"
        )
    return owner, name


def _archive_strip(key: str, archive: Any) -> Optional[int]:
    """Return the strip level of an `archive` setting, or None when the tool is not an archive."""
    if archive is None or archive is False:
        return None
    if archive is True:
        return 0
    if isinstance(archive, dict):
        strip = archive.get("strip", 0)
        if isinstance(strip, int) and not isinstance(strip, bool) and strip >= 0:
            return strip
    raise ConfigValidationError(
        f"Invalid archive setting for tool '{key}'",
        "expected true or a mapping with a non-negative integer 'strip'",
    )


def validate_tool(key: str, entry: Any) -> Dict[str, Any]:
    """
    Check a single manifest entry.

    Returns:
        Dict[str, Any]: The entry, unchanged.

    Raises:
        ConfigValidationError: If the source is unknown, a required field is missing,
            or an unknown field is present.
    """
    if not isinstance(entry, dict):
        raise ConfigValidationError(f"Tool '{key}' must be a mapping")

    source = entry.get("source")
    fields = SOURCE_FIELDS.get(str(source))
    if fields is None:
        raise ConfigValidationError(
            f"Unknown source for tool '{key}'",
            f"{source!r}; expected one of {', '.join(SOURCE_FIELDS)}",
        )

    unknown = set(entry) - COMMON_FIELDS - set(fields)
    if unknown:
        raise ConfigValidationError(
            f"Unknown fields for tool '{key}'", ", ".join(sorted(unknown))
        )

    for required in (name for name, needed in fields.items() if needed):
        if required not in entry:
            raise ConfigValidationError(
                f"Missing field '{required}' for tool '{key}'"
            )
    overrides = entry.get("overrides") or {}
    if not isinstance(overrides, dict) or not all(
        isinstance(override, dict) for override in overrides.values()
    ):
        raise ConfigValidationError(
            f"Overrides for tool '{key}' must map targets to mappings"
        )

    _archive_strip(key, entry.get("archive"))
    return entry


def build_asset(
    key: str,
    entry: Mapping[str, Any],
    target: Target,
    *,
    github_token: Optional[str] = None,
    transport: Optional[Transport] = None,
    base_dir: Optional[Path] = None,
) -> Optional[Asset]:
    """
    Create the asset a manifest entry describes for `target`.

    Returns:
        Optional[Asset]: The asset, or None when `targets` excludes `target`.
    """
    targets = entry.get("targets")
    if targets is not None and target not in targets:
        return None

    os_name, arch = split_target(target)
    placeholders = {"target": target, "os": os_name, "arch": arch}

    settings = dict(entry)
    settings.update((entry.get("overrides") or {}).get(target) or {})
    settings = _expand(settings, placeholders, key)

    source = settings["source"]
    asset: AbstractAsset
    if source == "web":
        asset = WebFileAsset(
            settings["url"],
            file_name=settings.get("file_name"),
            version=(
                str(settings["version"]) if settings.get("version") is not None else None
            ),
            headers=settings.get("headers"),
            transport=transport,
        )
    elif source == "local":
        path = Path(settings["path"])
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        asset = LocalFileAsset(path, target_name=settings.get("target_name"))
    else:
        owner, repo = _split_repo(key, settings["repo"])
        github = {"token": github_token, "transport": transport}
        if source == "github-release":
            asset = GitHubReleaseAsset(
                owner, repo, str(settings["tag"]), settings["asset"], **github
            )
        elif source == "github-repo":
            asset = GitHubRepoAsset(
                owner,
                repo,
                ref=settings.get("ref"),
                path=settings.get("path") or "",
                **github,
            )
        else:
            asset = GitHubWorkflowAsset(
                owner,
                repo,
                str(settings["workflow"]),
                settings["artifact"],
                branch=settings.get("branch"),
                status=settings.get("status", "success"),
                event=settings.get("event"),
                **github,
            )

    strip = _archive_strip(key, settings.get("archive"))
    if strip is not None:
        return ArchiveFileAsset(asset, strip=strip)
    return asset


def load_downloadables(
    tools: Mapping[str, Any],
    *,
    github_token: Optional[str] = None,
    transport: Optional[Transport] = None,
    base_dir: Optional[Path] = None,
) -> Dict[str, Downloadable]:
    """
    Build the registry for a `TOOLS` manifest.

    Parameters:
        tools (Mapping[str, Any]): Manifest keyed by tool key.
        github_token (Optional[str]): Token for GitHub sources.
        transport (Optional[Transport]): Download transport shared by all assets.
        base_dir (Optional[Path]): Directory relative `local` paths are resolved against.

    Returns:
        Dict[str, Downloadable]: Registry keyed by tool key, in manifest order.

    Raises:
        ConfigValidationError: If an entry is invalid.
    """
    registry: Dict[str, Downloadable] = {}
    for key, entry in tools.items():
        validate_tool(key, entry)
        factory: Callable[[Target], Optional[Asset]] = functools.partial(
            build_asset,
            key,
            entry,
            github_token=github_token,
            transport=transport,
            base_dir=base_dir,
        )
        registry[key] = Downloadable(
            name=str(entry.get("name") or key),
            destination=entry.get("destination") or key,
            get_asset=factory,
        )
    return registry
