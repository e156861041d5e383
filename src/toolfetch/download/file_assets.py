"""
File-backed Assets

Assets for files that come from a URL or the local filesystem, plus the
`ArchiveFileAsset` decorator that extracts whatever archive another asset produces.
"""

import asyncio
import posixpath
from pathlib import Path, PurePosixPath
from typing import Dict, Mapping, Optional
from urllib.parse import unquote, urlparse

from toolfetch.constants import CACHE_ID_SUFFIX
from toolfetch.exceptions import ExtractionError

from .base import AbstractAsset, Transport
from .files import copy_file, make_cache_id
from .interfaces import Asset, Pathish


class LocalFileAsset(AbstractAsset):
    """
    Asset that represents a local file on the filesystem.

    If the file is an archive, consider wrapping it in an `ArchiveFileAsset`.
    """

    def __init__(
        self,
        file_path: Pathish,
        target_name: Optional[str] = None,
        cache_dir: Optional[Pathish] = None,
    ) -> None:
        super().__init__(cache_dir=cache_dir)
        self.file_path = Path(file_path)
        self.target_name = target_name

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Copy the file into `dest` and return the directory it was copied into."""
        dest_dir = await self.mk_dest(dest)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, copy_file, self.file_path, dest_dir, self.target_name
        )
        return dest_dir


class WebFileAsset(AbstractAsset):
    """
    Asset that represents a file available at a URL.

    If the file is an archive, consider wrapping it in an `ArchiveFileAsset`.
    """

    def __init__(
        self,
        url: str,
        file_name: Optional[str] = None,
        version: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        cache_dir: Optional[Pathish] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        """
        Create a web file asset.

        Parameters:
            url (str): Where to download the file from.
            file_name (Optional[str]): Name to save the file as; derived from the URL path when omitted.
            version (Optional[str]): Version of the file, if known.
            headers (Optional[Mapping[str, str]]): Extra HTTP headers sent with the download, e.g. for authentication.
            cache_dir (Optional[Pathish]): Cache directory, see `with_cache_dir`.
            transport (Optional[Transport]): Download transport override.
        """
        super().__init__(cache_dir=cache_dir, transport=transport)
        self.url = url
        self.file_name = file_name
        self.version = version
        self.headers: Dict[str, str] = dict(headers or {})

        parsed = urlparse(url)
        self._host = parsed.netloc
        self._url_path = unquote(parsed.path)

    async def get_version(self) -> Optional[str]:
        return self.version

    async def get_cache_id(self) -> Optional[str]:
        # The suffix keeps the cache entry a directory that never collides with a file
        dirname = posixpath.dirname(self._url_path)
        basename = PurePosixPath(self._url_path).stem
        if basename.endswith(".tar"):
            basename = basename[: -len(".tar")]
        return make_cache_id(self._host, dirname, basename + CACHE_ID_SUFFIX)

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Download the file into `dest` and return the downloaded file's path."""
        dest_dir = await self.mk_dest(dest)
        name = self.file_name or posixpath.basename(self._url_path)
        return await self.download_file(self.url, dest_dir / name, self.headers)


class ArchiveFileAsset(AbstractAsset):
    """
    Asset extracted from an archive produced by another asset.

    The wrapped asset is owned by this one and disposed along with it.
    """

    def __init__(self, subject: Asset, strip: int = 0) -> None:
        """
        Parameters:
            subject (Asset): The asset providing the archive file.
            strip (int): Leading path components to discard when extracting.
        """
        super().__init__()
        self.subject = subject
        self.strip = strip
        self.add_disposable(subject)

    def with_cache_dir(self, cache_dir: Optional[Pathish]) -> "ArchiveFileAsset":
        self.subject.with_cache_dir(cache_dir)
        super().with_cache_dir(cache_dir)
        return self

    async def get_version(self) -> Optional[str]:
        return await self.subject.get_version()

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Materialize the subject, then extract its archive into `dest`."""
        archive_file = await self.subject.copy_to()
        if archive_file.is_dir():
            archive_file = self._single_file_in(archive_file)
        return await self.extract_archive(
            archive_file, dest, strip=self.strip, force=True
        )

    @staticmethod
    def _single_file_in(directory: Path) -> Path:
        """Return the only file in `directory`, as produced by directory-returning assets."""
        files = [entry for entry in directory.iterdir() if entry.is_file()]
        if len(files) != 1:
            raise ExtractionError(
                "Failed to extract archive",
                archive_path=str(directory),
                details=f"Expected exactly one archive file, found {len(files)}",
            )
        return files[0]
