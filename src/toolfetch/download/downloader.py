"""
Tool Downloader

The Downloader installs the tools of a registry into a target directory. Each
tool directory carries `version.txt` and `target.txt` markers so an unchanged
tool is not fetched again.
"""

import asyncio
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import aiofiles  # type: ignore[import-untyped]

from toolfetch.constants import (
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    DEFAULT_TOOLS_DIR_NAME,
    TARGET_FILE_NAME,
    VERSION_FILE_NAME,
)
from toolfetch.exceptions import ConfigValidationError, UnknownToolError
from toolfetch.log_utils import logger
from toolfetch.utils import host_target

from .files import ensure_empty_directory
from .interfaces import Downloadable, DownloadResult, DownloadStatus, Pathish, Target


async def _read_marker(path: Path) -> Optional[str]:
    """Return the contents of a marker file, or None if it does not exist."""
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()
    except FileNotFoundError:
        return None


async def _write_marker(path: Path, value: str) -> None:
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(value)


class Downloader:
    """
    Installs tools from a registry of Downloadables.

    Example:
        downloader = Downloader(TOOLS, target_dir="tools", cache_dir=cache)
        await downloader.run(target="linux-x64")
    """

    def __init__(
        self,
        downloadables: Mapping[str, Downloadable],
        *,
        target_dir: Optional[Pathish] = None,
        project_dir: Optional[Pathish] = None,
        cache_dir: Optional[Pathish] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    ) -> None:
        """
        Create a downloader.

        Parameters:
            downloadables (Mapping[str, Downloadable]): Registry keyed by tool name.
            target_dir (Optional[Pathish]): Directory tools are installed into.
            project_dir (Optional[Pathish]): Project root; `<project_dir>/tools` is the target
                directory when `target_dir` is not given.
            cache_dir (Optional[Pathish]): Cache directory handed to every asset; no caching when None.
            max_concurrent (int): Maximum number of tools downloaded at once by `run`.
        """
        self.downloadables: Dict[str, Downloadable] = dict(downloadables)
        self._target_dir = Path(target_dir) if target_dir is not None else None
        self.project_dir = Path(project_dir) if project_dir is not None else None
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.max_concurrent = max(1, max_concurrent)

    @property
    def tools(self) -> List[str]:
        return list(self.downloadables)

    @property
    def target_dir(self) -> Path:
        """
        Raises:
            ConfigValidationError: If neither a target nor a project directory was configured.
        """
        if self._target_dir is not None:
            return self._target_dir
        if self.project_dir is not None:
            return self.project_dir / DEFAULT_TOOLS_DIR_NAME
        raise ConfigValidationError("No target directory configured")

    def with_project_dir(self, project_dir: Pathish) -> "Downloader":
        self.project_dir = Path(project_dir)
        return self

    def with_target_dir(self, target_dir: Pathish) -> "Downloader":
        self._target_dir = Path(target_dir)
        return self

    def with_cache_dir(self, cache_dir: Optional[Pathish]) -> "Downloader":
        self.cache_dir = Path(cache_dir) if cache_dir else None
        return self

    def destination_for(self, name: str) -> Path:
        """Return the install directory of the tool registered as `name`."""
        try:
            item = self.downloadables[name]
        except KeyError:
            raise UnknownToolError(name) from None
        return self.target_dir / item.destination_path

    async def download(
        self, name: str, target: Target, force: bool = False
    ) -> DownloadResult:
        """
        Install one tool for `target` unless the installed copy is already current.

        The tool is skipped when `force` is False, its asset reports a version, and
        both markers match that version and `target`. The asset is disposed exactly
        once whatever happens.

        Parameters:
            name (str): Registry key of the tool.
            target (Target): Target to install the tool for.
            force (bool): Reinstall even if the markers match.

        Returns:
            DownloadResult: What happened, with the asset version when known.

        Raises:
            UnknownToolError: If `name` is not registered.
            Exception: Any error from the asset, after it was logged and the asset disposed.
        """
        item = self.downloadables.get(name)
        if item is None:
            raise UnknownToolError(name)

        destination = self.target_dir / item.destination_path
        version_file = destination / VERSION_FILE_NAME
        target_file = destination / TARGET_FILE_NAME

        logger.info("Downloading %s to %s", item.name, destination)

        current_version = await _read_marker(version_file)
        current_target = await _read_marker(target_file)

        asset = await item.resolve_asset(target)
        if asset is None:
            logger.warning(
                "No asset found for %s for target %s. Skipping.", item.name, target
            )
            return DownloadResult(name, DownloadStatus.UNSUPPORTED, destination, target)

        try:
            version = await asset.get_version()
            if (
                not force
                and version is not None
                and current_version == version
                and current_target == target
            ):
                logger.info(
                    "Already downloaded %s version %s for target %s",
                    item.name,
                    version,
                    target,
                )
                return DownloadResult(
                    name, DownloadStatus.SKIPPED, destination, target, version
                )

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, ensure_empty_directory, destination)
            await asset.with_cache_dir(self.cache_dir).copy_to(destination)

            await _write_marker(version_file, version or "")
            await _write_marker(target_file, target)
        except Exception as e:
            logger.error("Failed to download %s: %s", item.name, e)
            raise
        finally:
            await asset.dispose()

        logger.info("Copied %s to %s", item.name, destination)
        return DownloadResult(name, DownloadStatus.INSTALLED, destination, target, version)

    async def run(
        self,
        names: Optional[Iterable[str]] = None,
        target: Optional[Target] = None,
        force: bool = False,
    ) -> List[DownloadResult]:
        """
        Download several tools concurrently.

        Every download runs to completion even if others fail.

        Parameters:
            names (Optional[Iterable[str]]): Tools to download, all registered tools when None.
                Duplicates are downloaded once.
            target (Optional[Target]): Target to download for, the host target when None.
            force (bool): Reinstall even if the markers match.

        Returns:
            List[DownloadResult]: One result per distinct name, in request order.

        Raises:
            Exception: The first failure in request order, once all downloads have settled.
        """
        if target is None:
            target = host_target()

        requested = list(dict.fromkeys(names if names is not None else self.tools))
        for name in requested:
            if name not in self.downloadables:
                raise UnknownToolError(name)

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def download_one(name: str) -> DownloadResult:
            async with semaphore:
                return await self.download(name, target, force=force)

        results = await asyncio.gather(
            *(download_one(name) for name in requested), return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(
                "%d of %d tool downloads failed", len(failures), len(requested)
            )
            raise failures[0]
        return [r for r in results if isinstance(r, DownloadResult)]
