"""
toolfetch Download Subsystem

This package fetches platform-specific tools from heterogeneous sources and
installs them into a project's tool directory, optionally through a cache.

Core Components:
- interfaces: Asset contract, Downloadable registry entries and results
- disposable: Cleanup registration shared by all assets
- base: Destination resolution, guarded downloads and archive extraction
- file_assets: Local, web and archive-decorator assets
- github_assets: GitHub release, repository snapshot and workflow artifact assets
- downloader: Per-tool install lifecycle with version/target markers
- registry: Downloadables built from the YAML tool manifest
"""

from .async_client import AsyncGitHubClient, download_file
from .base import AbstractAsset
from .disposable import Disposable, DisposableMixin
from .downloader import Downloader
from .file_assets import ArchiveFileAsset, LocalFileAsset, WebFileAsset
from .github_assets import (
    GitHubAsset,
    GitHubReleaseAsset,
    GitHubRepoAsset,
    GitHubWorkflowAsset,
)
from .interfaces import (
    Asset,
    Downloadable,
    DownloadResult,
    DownloadStatus,
    Pathish,
    Target,
)
from .registry import load_downloadables

__all__ = [
    # Interfaces
    "Asset",
    "Downloadable",
    "DownloadResult",
    "DownloadStatus",
    "Pathish",
    "Target",
    # Base classes
    "Disposable",
    "DisposableMixin",
    "AbstractAsset",
    # Assets
    "LocalFileAsset",
    "WebFileAsset",
    "ArchiveFileAsset",
    "GitHubAsset",
    "GitHubReleaseAsset",
    "GitHubRepoAsset",
    "GitHubWorkflowAsset",
    # Orchestration
    "Downloader",
    "load_downloadables",
    # Transport
    "AsyncGitHubClient",
    "download_file",
]
