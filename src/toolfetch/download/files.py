"""
File Operations for the toolfetch download subsystem

Blocking filesystem helpers used by assets and the downloader. Async callers run
them in the default executor.
"""

import re
import shutil
from pathlib import Path
from typing import Optional

from toolfetch.log_utils import logger

from .interfaces import Pathish

_UNSAFE_CACHE_CHARS = re.compile(r"[^A-Za-z0-9._@+-]")


def remove_tree(path: Pathish) -> None:
    """
    Remove a file, symlink or directory tree; a missing path is not an error.
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        shutil.rmtree(path)


def ensure_empty_directory(path: Pathish) -> Path:
    """Remove whatever is at `path` and recreate it as an empty directory."""
    path = Path(path)
    remove_tree(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def copy_file(src: Pathish, dest_dir: Pathish, name: Optional[str] = None) -> Path:
    """Copy `src` into `dest_dir`, keeping its basename unless `name` is given."""
    src = Path(src)
    target = Path(dest_dir) / (name or src.name)
    shutil.copy2(src, target)
    return target


def copy_recursive(src: Pathish, dest_dir: Pathish, strip: int = 0) -> None:
    """
    Copy a file or directory tree into `dest_dir`.

    A file is copied directly into `dest_dir`. A directory is recreated as
    `dest_dir/<name>`, unless `strip > 0` in which case its children go straight
    into `dest_dir` and `strip` is decremented for the next level down.

    Parameters:
        src (Pathish): File or directory to copy.
        dest_dir (Pathish): Directory receiving the copy.
        strip (int): Number of directory levels to flatten.
    """
    src = Path(src)
    dest_dir = Path(dest_dir)
    if src.is_file():
        shutil.copy2(src, dest_dir / src.name)
    elif src.is_dir():
        dest_path = dest_dir if strip > 0 else dest_dir / src.name
        dest_path.mkdir(parents=True, exist_ok=True)
        child_strip = strip - 1 if strip > 0 else 0
        for child in src.iterdir():
            copy_recursive(child, dest_path, strip=child_strip)
    else:
        logger.debug("Nothing to copy at %s", src)


def _sanitize_cache_component(component: str) -> Optional[str]:
    """Replace characters that are unsafe in a directory name; drop empty, `.` and `..`."""
    sanitized = _UNSAFE_CACHE_CHARS.sub("_", component.strip())
    if not sanitized or sanitized in {".", ".."}:
        return None
    return sanitized


def make_cache_id(*components: str) -> str:
    """
    Join source-identity components into a relative cache path.

    Each component may itself contain `/` separators; every segment is sanitized
    so the result is always a safe relative path below the cache directory.

    Raises:
        ValueError: If nothing usable remains after sanitizing.
    """
    segments = []
    for component in components:
        for part in str(component).replace("\\", "/").split("/"):
            safe = _sanitize_cache_component(part)
            if safe is not None:
                segments.append(safe)
    if not segments:
        raise ValueError(f"Cannot build a cache id from {components!r}")
    return "/".join(segments)
