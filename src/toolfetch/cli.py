# src/toolfetch/cli.py

import argparse
import asyncio
import functools
import sys
from pathlib import Path
from typing import List, Mapping, Optional

from toolfetch import log_utils
from toolfetch.config import ToolfetchConfig, load_config
from toolfetch.constants import (
    EXIT_CONFIG_ERROR,
    EXIT_DOWNLOAD_FAILED,
    EXIT_SUCCESS,
    SUPPORTED_TARGETS,
)
from toolfetch.download import async_client
from toolfetch.download.downloader import Downloader
from toolfetch.download.interfaces import Downloadable, DownloadStatus
from toolfetch.download.registry import load_downloadables
from toolfetch.exceptions import ConfigurationError
from toolfetch.log_utils import logger
from toolfetch.utils import host_target

LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolfetch",
        description="Downloads the tool(s) for the given architecture and OS",
    )
    parser.add_argument(
        "tools",
        nargs="*",
        metavar="TOOL",
        help="Tool to be fetched (default: all registered tools)",
    )
    parser.add_argument(
        "-t",
        "--target",
        choices=SUPPORTED_TARGETS,
        default=host_target(),
        help="Target to download for, defaults to the running system",
    )
    parser.add_argument(
        "-d", "--dest", help="Destination directory for the tools (default: TOOLS_DIR)"
    )
    cache_group = parser.add_mutually_exclusive_group()
    cache_group.add_argument(
        "-c", "--cache", help="Cache directory for downloaded tools (default: CACHE_DIR)"
    )
    cache_group.add_argument(
        "--no-cache", action="store_true", help="Disable the download cache"
    )
    parser.add_argument(
        "-f", "--force", action="store_true", help="Force download of tools"
    )
    parser.add_argument(
        "--project-dir",
        help="Project root holding toolfetch.yaml (default: current directory)",
    )
    parser.add_argument("--config", help="Explicit configuration file")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVEL_CHOICES,
        help="Console log level",
    )
    parser.add_argument(
        "--list", action="store_true", help="List registered tools and exit"
    )
    return parser


def _configure_logging(args: argparse.Namespace, config: ToolfetchConfig) -> None:
    level = args.log_level or config.log_level
    if level:
        log_utils.set_log_level(level)
    if config.log_dir:
        log_utils.add_file_logging(config.log_dir, level or "INFO")


def _list_tools(registry: Mapping[str, Downloadable], tools_dir: Path) -> None:
    for key, item in registry.items():
        print(f"{key}: {item.name} -> {tools_dir / item.destination_path}")


def run_cli(
    downloadables: Optional[Mapping[str, Downloadable]] = None,
    argv: Optional[List[str]] = None,
) -> int:
    """
    Run the toolfetch command line for a registry.

    Tools declared in the configuration's `TOOLS` manifest are combined with
    `downloadables`; entries in `downloadables` win on name clashes.

    Parameters:
        downloadables (Optional[Mapping[str, Downloadable]]): Registry embedded by the calling project.
        argv (Optional[List[str]]): Arguments to parse instead of `sys.argv[1:]`.

    Returns:
        int: 0 on success, 1 if any download failed, 2 on configuration errors.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    project_dir = Path(args.project_dir) if args.project_dir else Path.cwd()
    try:
        config = load_config(project_dir, Path(args.config) if args.config else None)
        _configure_logging(args, config)
        transport = functools.partial(
            async_client.download_file,
            timeout=config.request_timeout,
            max_retries=config.max_download_retries,
            retry_delay=config.download_retry_delay,
        )
        registry = load_downloadables(
            config.tools,
            github_token=config.github_token,
            transport=transport,
            base_dir=project_dir,
        )
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    registry.update(downloadables or {})
    tools_dir = Path(args.dest) if args.dest else config.tools_dir

    if args.list:
        _list_tools(registry, tools_dir)
        return EXIT_SUCCESS

    if not registry:
        logger.error("No tools registered; add a TOOLS section to toolfetch.yaml")
        return EXIT_CONFIG_ERROR

    unknown = [name for name in args.tools if name not in registry]
    if unknown:
        parser.error(
            f"unknown tools: {', '.join(unknown)} "
            f"(choose from {', '.join(registry)})"
        )

    cache_dir = None if args.no_cache else (args.cache or config.cache_dir)
    downloader = Downloader(
        registry,
        target_dir=tools_dir,
        project_dir=project_dir,
        cache_dir=cache_dir,
        max_concurrent=config.max_concurrent_downloads,
    )

    try:
        results = asyncio.run(
            downloader.run(args.tools or None, target=args.target, force=args.force)
        )
    except Exception as e:
        logger.error("Download failed: %s", e)
        return EXIT_DOWNLOAD_FAILED

    installed = sum(1 for r in results if r.status is DownloadStatus.INSTALLED)
    skipped = sum(1 for r in results if r.was_skipped)
    logger.info("Done: %d installed, %d up to date", installed, skipped)
    return EXIT_SUCCESS


def main() -> None:
    """Entry point for the `toolfetch` console script."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
