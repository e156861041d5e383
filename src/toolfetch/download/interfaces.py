"""
Core Interfaces for the toolfetch download subsystem

This module defines the fundamental interfaces and data structures that form
the foundation of the asset download architecture.
"""

import inspect
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

Pathish = Union[str, Path]

Target = str
"""An OS/architecture pair such as `linux-x64` (see constants.SUPPORTED_TARGETS)."""


class Asset(ABC):
    """
    A materializable unit of content from some source.

    The owner of an asset calls `dispose()` exactly once when done with it,
    whether or not `copy_to()` succeeded.
    """

    @abstractmethod
    async def get_version(self) -> Optional[str]:
        """
        Version of this asset, or `None` when the source has no notion of one.

        May require a network round-trip.
        """

    @abstractmethod
    async def get_cache_id(self) -> Optional[str]:
        """
        Filesystem-safe identifier used as a subdirectory of the cache directory.

        Returns:
            Optional[str]: The identifier, stable across runs for the same source, or
            `None` when the asset cannot be cached.
        """

    @abstractmethod
    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """
        Copy the asset into the given directory.

        If no directory is given, the asset is copied either to the cache directory
        (see `with_cache_dir`) when the asset supports caching, or to a temporary
        directory that is removed on disposal.

        Parameters:
            dest (Optional[Pathish]): Target directory to copy the asset to.

        Returns:
            Path: The path to the copied asset.
        """

    @abstractmethod
    def with_cache_dir(self, cache_dir: Optional[Pathish]) -> "Asset":
        """
        Set the cache directory for the asset.

        Returns:
            Asset: The asset itself, allowing for method chaining.
        """

    @abstractmethod
    async def dispose(self) -> None:
        """Release every resource the asset holds."""


AssetFactory = Callable[[Target], Union[Optional[Asset], Awaitable[Optional[Asset]]]]


@dataclass
class Downloadable:
    """A named registry entry mapping a tool to a target-specific asset factory."""

    name: str
    """Display name of the tool"""

    destination: Union[str, Sequence[str]]
    """Destination directory relative to the tools directory, as a path or path segments"""

    get_asset: Optional[AssetFactory] = None
    """Returns the asset for a target, or None when the tool is unsupported on it"""

    @property
    def destination_path(self) -> Path:
        if isinstance(self.destination, (str, os.PathLike)):
            return Path(self.destination)
        return Path(*self.destination)

    async def resolve_asset(self, target: Target) -> Optional[Asset]:
        """Call the factory for `target`, awaiting it when it is a coroutine function."""
        if self.get_asset is None:
            return None
        result = self.get_asset(target)
        if inspect.isawaitable(result):
            result = await result
        return result


class DownloadStatus(Enum):
    """Outcome of a single tool download."""

    INSTALLED = "installed"
    SKIPPED = "skipped"
    UNSUPPORTED = "unsupported"


@dataclass
class DownloadResult:
    """Result of a download operation."""

    name: str
    """The registry key of the tool"""

    status: DownloadStatus
    """What the download did"""

    destination: Path
    """Directory the tool is installed in"""

    target: Target
    """The requested target"""

    version: Optional[str] = None
    """Version of the asset, when known"""

    @property
    def was_skipped(self) -> bool:
        return self.status is DownloadStatus.SKIPPED
