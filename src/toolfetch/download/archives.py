"""
Archive extraction for the toolfetch download subsystem

ZIP archives are handled with `zipfile` and TAR archives (plain, gzip, bzip2, xz)
with `tarfile`. Both reject members that would land outside the destination.
"""

import os
import posixpath
import stat
import tarfile
import uuid
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional

from toolfetch.log_utils import logger

from .interfaces import Pathish


def _is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith(("/", "\\")):
        return False
    if "\x00" in member_name:
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    parts = PurePosixPath(normalized.replace("\\", "/")).parts
    return ".." not in parts


def safe_extract_path(extract_dir: Pathish, member_name: str) -> Path:
    """
    Resolve the path an archive member extracts to and prevent directory traversal.

    Raises:
        ValueError: If the member is unsafe or resolves outside `extract_dir`.
    """
    if not _is_safe_archive_member(member_name):
        raise ValueError(f"Unsafe archive member '{member_name}'")
    base = Path(extract_dir).resolve()
    candidate = (base / member_name).resolve()
    if candidate != base and base not in candidate.parents:
        raise ValueError(
            f"Unsafe extraction path '{member_name}' is outside base '{extract_dir}'"
        )
    return candidate


def _extract_zip_symlink(
    zip_ref: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Pathish, overwrite: bool
) -> Optional[Path]:
    """
    Recreate a symbolic link stored in a ZIP archive.

    The member data holds the link target, which must resolve inside `dest`.

    Returns:
        Optional[Path]: The created link, or None when an existing entry was kept.

    Raises:
        ValueError: If the link target points outside `dest`.
    """
    link_target = zip_ref.read(info).decode("utf-8")
    member_dir = posixpath.dirname(info.filename.rstrip("/"))
    if posixpath.isabs(link_target):
        raise ValueError(
            f"Unsafe symlink '{info.filename}' -> '{link_target}' is absolute"
        )
    safe_extract_path(dest, posixpath.normpath(posixpath.join(member_dir, link_target)))

    link_path = Path(dest) / info.filename
    if link_path.is_symlink() or link_path.exists():
        if not overwrite:
            logger.debug("Keeping existing file %s", link_path)
            return None
        link_path.unlink()
    link_path.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(link_target, link_path)
    return link_path


def extract_zip(archive_path: Pathish, dest: Pathish, overwrite: bool = True) -> List[Path]:
    """
    Extract every member of a ZIP archive into `dest`.

    Unix permission bits stored in the archive are restored so extracted
    executables stay executable, and symbolic links are recreated.

    Parameters:
        archive_path (Pathish): The ZIP archive.
        dest (Pathish): Existing destination directory.
        overwrite (bool): Replace files that already exist; when False they are kept.

    Returns:
        List[Path]: The extracted file paths.

    Raises:
        zipfile.BadZipFile: If the archive is corrupt.
        ValueError: If a member would escape `dest`.
        OSError: On I/O failures.
    """
    extracted: List[Path] = []
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        for info in zip_ref.infolist():
            target = safe_extract_path(dest, info.filename)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            if stat.S_ISLNK(info.external_attr >> 16):
                link = _extract_zip_symlink(zip_ref, info, dest, overwrite)
                if link is not None:
                    extracted.append(link)
                continue
            if target.exists() and not overwrite:
                logger.debug("Keeping existing file %s", target)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zip_ref.open(info) as source, open(target, "wb") as out:
                while True:
                    chunk = source.read(1024 * 1024)
                    if not chunk:
                        break
                    out.write(chunk)
            mode = (info.external_attr >> 16) & 0o777
            if mode and os.name != "nt":
                os.chmod(target, mode)
            extracted.append(target)
    logger.debug("Extracted %d files from %s", len(extracted), archive_path)
    return extracted


def _strip_member_name(name: str, strip: int) -> Optional[str]:
    """
    Drop the first `strip` components of a member name, counting `.` as a component.

    Returns:
        Optional[str]: The remaining name, or None when nothing is left.
    """
    parts = [part for part in name.split("/") if part][strip:]
    parts = [part for part in parts if part != "."]
    if not parts:
        return None
    return "/".join(parts)


def extract_tar(
    archive_path: Pathish, dest: Pathish, strip: int = 0, overwrite: bool = True
) -> List[Path]:
    """
    Extract a TAR archive (optionally gzip, bzip2 or xz compressed) into `dest`.

    The first `strip` path components of every member are dropped; members left
    with no components are skipped. Hard link targets are stripped the same way.

    Returns:
        List[Path]: The destination paths of the extracted members.

    Raises:
        tarfile.TarError: If the archive is corrupt or a member is rejected.
        ValueError: If a member would escape `dest`.
        OSError: On I/O failures, including decompression errors.
    """
    extracted: List[Path] = []
    with tarfile.open(archive_path, "r:*") as tar:
        members = []
        for member in tar.getmembers():
            name = _strip_member_name(member.name, strip) if strip else member.name
            if name is None:
                continue
            target = safe_extract_path(dest, name)
            if not overwrite and target.exists() and not member.isdir():
                logger.debug("Keeping existing file %s", target)
                continue
            member.name = name
            if member.islnk() and strip:
                link_name = _strip_member_name(member.linkname, strip)
                if link_name is None:
                    continue
                member.linkname = link_name
            members.append(member)
            extracted.append(target)
        tar.extractall(dest, members=members, filter="data")
    logger.debug("Extracted %d members from %s", len(extracted), archive_path)
    return extracted


def strip_directories(directory: Pathish, levels: int) -> None:
    """
    Collapse up to `levels` levels of single-child directory nesting in place.

    While `directory` contains exactly one entry and that entry is a directory, its
    contents replace `directory`'s contents. Stops early as soon as the root holds
    anything else.
    """
    directory = Path(directory)
    for _ in range(max(levels, 0)):
        entries = list(directory.iterdir())
        if len(entries) != 1 or not entries[0].is_dir() or entries[0].is_symlink():
            logger.debug(
                "Cannot strip further in %s: %d top-level entries",
                directory,
                len(entries),
            )
            return
        staging = directory.parent / f".{directory.name}-strip-{uuid.uuid4().hex}"
        entries[0].rename(staging)
        directory.rmdir()
        staging.rename(directory)
