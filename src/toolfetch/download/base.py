"""
Base Asset Implementation

This module provides the behavior shared by every concrete asset: resolving
where a copy lands (explicit path, cache entry, or an ephemeral temp directory),
guarded downloads and archive extraction dispatch.
"""

import asyncio
import functools
import lzma
import tarfile
import tempfile
import zipfile
import zlib
from abc import ABC
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional

from toolfetch.constants import TAR_EXTENSIONS, TEMP_DIR_PREFIX, ZIP_EXTENSION
from toolfetch.exceptions import ExtractionError, PathConflictError, UnsupportedFormatError
from toolfetch.log_utils import logger

from . import async_client
from .archives import extract_tar, extract_zip, strip_directories
from .disposable import DisposableMixin
from .files import copy_recursive, remove_tree
from .interfaces import Asset, Pathish

Transport = Callable[..., Awaitable[Path]]

# Errors raised by zipfile/tarfile and their decompressors while reading an archive
_EXTRACTION_ERRORS = (
    OSError,
    EOFError,
    ValueError,
    zipfile.BadZipFile,
    tarfile.TarError,
    zlib.error,
    lzma.LZMAError,
)


def _extract_zip_with_strip(archive: Path, dest: Path, strip: int, overwrite: bool) -> None:
    extract_zip(archive, dest, overwrite=overwrite)
    if strip > 0:
        strip_directories(dest, strip)


class AbstractAsset(DisposableMixin, Asset, ABC):
    """
    Base implementation of the Asset interface.

    Subclasses implement `copy_to` and, where the source supports it,
    `get_version` and `get_cache_id`.
    """

    def __init__(
        self,
        cache_dir: Optional[Pathish] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        """
        Initialize the asset.

        Parameters:
            cache_dir (Optional[Pathish]): Directory holding cache entries; caching is disabled when None.
            transport (Optional[Transport]): Coroutine function `(url, dest_path, headers) -> Path`
                used for downloads. Defaults to `async_client.download_file`.
        """
        DisposableMixin.__init__(self)
        self.cache_dir: Optional[Path] = Path(cache_dir) if cache_dir else None
        self._transport = transport

    async def get_version(self) -> Optional[str]:
        return None

    async def get_cache_id(self) -> Optional[str]:
        return None

    def with_cache_dir(self, cache_dir: Optional[Pathish]) -> "AbstractAsset":
        self.cache_dir = Path(cache_dir) if cache_dir else None
        return self

    @property
    def transport(self) -> Transport:
        return self._transport or async_client.download_file

    @staticmethod
    def _ensure_directory(path: Path) -> Path:
        if path.is_file():
            raise PathConflictError(
                f"Cannot create directory '{path}': a file with the same name already exists.",
                path=str(path),
            )
        path.mkdir(parents=True, exist_ok=True)
        return path

    async def mk_dest(self, explicit_path: Optional[Pathish] = None) -> Path:
        """
        Resolve and create the directory an operation writes into.

        Parameters:
            explicit_path (Optional[Pathish]): Directory requested by the caller. When omitted, the
                cache entry `cache_dir/cache_id` is used if both are available, otherwise a fresh
                temporary directory that is removed on `dispose()`.

        Returns:
            Path: The existing directory.

        Raises:
            PathConflictError: If a plain file occupies the resolved path.
        """
        if explicit_path is not None:
            return self._ensure_directory(Path(explicit_path))

        if self.cache_dir is not None:
            cache_id = await self.get_cache_id()
            if cache_id:
                return self._ensure_directory(self.cache_dir / cache_id)

        return await self.mk_temp_dir()

    async def mk_temp_dir(self) -> Path:
        """Create a unique temporary directory owned by this asset and removed on `dispose()`."""
        temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX))
        self.add_disposable(functools.partial(self._remove_dir, temp_dir))
        logger.debug("Created temporary directory %s", temp_dir)
        return temp_dir

    @staticmethod
    async def _remove_dir(path: Path) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, remove_tree, path)

    async def assure_file(self, path: Pathish) -> bool:
        """
        Check whether `path` already holds a downloaded file.

        Returns:
            bool: True for an existing file or symlink. A directory in the way is removed
            and False is returned, as is False when nothing exists.
        """
        path = Path(path)
        if path.is_symlink() or path.is_file():
            return True
        if path.is_dir():
            logger.debug("Removing directory in the way of download target %s", path)
            await self._remove_dir(path)
        return False

    async def download_file(
        self,
        url: str,
        dest_path: Pathish,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Path:
        """
        Download `url` to `dest_path` unless a file is already there.

        Returns:
            Path: `dest_path`.
        """
        dest_path = Path(dest_path)
        if await self.assure_file(dest_path):
            logger.debug("Using existing file %s", dest_path)
            return dest_path
        logger.debug("Downloading %s to %s", url, dest_path)
        return await self.transport(url, dest_path, headers)

    async def extract_archive(
        self,
        archive_file: Pathish,
        dest: Optional[Pathish] = None,
        strip: int = 0,
        force: bool = False,
    ) -> Path:
        """
        Extract an archive into a directory resolved with `mk_dest`.

        Parameters:
            archive_file (Pathish): The archive; its extension selects the format.
            dest (Optional[Pathish]): Destination directory (see `mk_dest`).
            strip (int): Leading path components to discard. For zip archives, up to
                `strip` levels of single-directory nesting are collapsed instead.
            force (bool): Overwrite files already present in the destination.

        Returns:
            Path: The destination directory.

        Raises:
            ExtractionError: If the format is unsupported (UnsupportedFormatError) or extraction fails.
        """
        dest_dir = await self.mk_dest(dest)
        archive_path = Path(archive_file)
        name = archive_path.name.lower()
        loop = asyncio.get_running_loop()

        try:
            if name.endswith(ZIP_EXTENSION):
                await loop.run_in_executor(
                    None, _extract_zip_with_strip, archive_path, dest_dir, strip, force
                )
            elif name.endswith(TAR_EXTENSIONS):
                await loop.run_in_executor(
                    None,
                    functools.partial(
                        extract_tar, archive_path, dest_dir, strip=strip, overwrite=force
                    ),
                )
            else:
                raise UnsupportedFormatError(
                    "Failed to extract archive",
                    archive_path=str(archive_path),
                    details=f"Unsupported archive format: {archive_path.suffix or archive_path.name}",
                )
        except ExtractionError:
            raise
        except _EXTRACTION_ERRORS as e:
            raise ExtractionError(
                "Failed to extract archive",
                archive_path=str(archive_path),
                details=str(e),
            ) from e

        logger.debug("Extracted %s into %s", archive_path.name, dest_dir)
        return dest_dir

    async def copy_recursive(self, src: Pathish, dest_dir: Pathish, strip: int = 0) -> None:
        """Copy a file or directory tree into `dest_dir` (see `files.copy_recursive`)."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, functools.partial(copy_recursive, src, dest_dir, strip=strip)
        )
