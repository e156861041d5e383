"""
Async HTTP Client for toolfetch

This module provides asynchronous HTTP operations using aiohttp,
with proper session management and error handling.

Provides both:
- download_file: the streaming download transport used by all assets
- AsyncGitHubClient: the handful of GitHub REST operations the GitHub assets need
"""

import asyncio
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional
from urllib.parse import quote

import aiofiles  # type: ignore[import-untyped]
import aiohttp
from aiohttp import ClientResponse, ClientSession, ClientTimeout

from toolfetch.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DOWNLOAD_RETRY_DELAY,
    DEFAULT_MAX_DOWNLOAD_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
    GITHUB_API_BASE,
    GITHUB_API_VERSION,
    GITHUB_MAX_PER_PAGE,
    HTTP_STATUS_ERROR_THRESHOLD,
    HTTP_STATUS_RETRY_THRESHOLD,
)
from toolfetch.exceptions import (
    APIError,
    AuthenticationError,
    DownloadError,
    HTTPError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from toolfetch.log_utils import logger
from toolfetch.utils import get_user_agent

from .interfaces import Pathish

REDIRECT_STATUSES = (301, 302, 303, 307, 308)


def _remove_temp_file(temp_path: Path) -> None:
    if temp_path.exists():
        try:
            temp_path.unlink()
        except OSError as e:
            logger.debug("Error cleaning up temp file %s: %s", temp_path, e)


async def _download_once(
    session: ClientSession,
    url: str,
    target: Path,
    headers: Mapping[str, str],
    chunk_size: int,
) -> Path:
    temp_path = target.with_name(
        f"{target.name}.tmp.{os.getpid()}.{int(time.time() * 1000)}"
    )
    try:
        start_time = time.time()
        downloaded = 0

        async with session.get(url, headers=dict(headers)) as response:
            if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                raise HTTPError(
                    f"HTTP error {response.status}",
                    status_code=response.status,
                    url=url,
                    is_retryable=response.status >= HTTP_STATUS_RETRY_THRESHOLD,
                )

            async with aiofiles.open(temp_path, "wb") as f:
                async for chunk in response.content.iter_chunked(chunk_size):
                    await f.write(chunk)
                    downloaded += len(chunk)

        temp_path.replace(target)

        elapsed = time.time() - start_time
        file_size_mb = downloaded / BYTES_PER_MEGABYTE
        logger.debug("Downloaded %s in %.2fs (%.2f MB)", url, elapsed, file_size_mb)
        if file_size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
            logger.info("Downloaded: %s (%.1f MB)", target.name, file_size_mb)
        else:
            logger.info("Downloaded: %s (%d bytes)", target.name, downloaded)
        return target

    except aiohttp.ClientError as e:
        raise NetworkError(f"Download failed: {e}", url=url, is_retryable=True) from e
    except asyncio.TimeoutError as e:
        raise NetworkError("Download timed out", url=url, is_retryable=True) from e
    except OSError as e:
        raise DownloadError(f"Filesystem error: {e}", url=url) from e
    finally:
        _remove_temp_file(temp_path)


async def download_file(
    url: str,
    target_path: Pathish,
    headers: Optional[Mapping[str, str]] = None,
    *,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_retries: int = DEFAULT_MAX_DOWNLOAD_RETRIES,
    retry_delay: float = DEFAULT_DOWNLOAD_RETRY_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    session: Optional[ClientSession] = None,
) -> Path:
    """
    Download `url` to `target_path`, streaming into a temp file that atomically replaces the target.

    Parameters:
        url (str): Source URL to download. Redirects are followed.
        target_path (Pathish): Destination file path; parent directories are created if missing.
        headers (Optional[Mapping[str, str]]): Extra request headers, e.g. Authorization.
        timeout (float): Total timeout per attempt in seconds.
        chunk_size (int): Number of bytes to read per chunk.
        max_retries (int): Retries after the first attempt for retryable failures (5xx, network).
        retry_delay (float): Initial delay in seconds before the first retry.
        backoff_factor (float): Multiplier applied to the delay after each failed attempt.
        session (Optional[ClientSession]): Session to reuse; a short-lived one is created when omitted.

    Returns:
        Path: `target_path`.

    Raises:
        HTTPError: The server answered with a non-success status.
        NetworkError: Connection failure or timeout.
        DownloadError: The file could not be written.
    """
    target = Path(target_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    request_headers = {"User-Agent": get_user_agent(), **(headers or {})}

    delay = retry_delay
    for attempt in range(max_retries + 1):
        try:
            if session is not None:
                return await _download_once(
                    session, url, target, request_headers, chunk_size
                )
            async with ClientSession(timeout=ClientTimeout(total=timeout)) as own_session:
                return await _download_once(
                    own_session, url, target, request_headers, chunk_size
                )
        except DownloadError as e:
            e.retry_count = attempt
            if not e.is_retryable or attempt >= max_retries:
                logger.debug("Download failed permanently for %s: %s", url, e)
                raise
            logger.warning(
                "Download attempt %d/%d failed for %s, retrying in %.1fs: %s",
                attempt + 1,
                max_retries + 1,
                url,
                delay,
                e.message,
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor

    raise DownloadError(f"Download of {url} was not attempted", url=url)


class AsyncGitHubClient:
    """
    Asynchronous GitHub REST client using aiohttp.

    Covers the calls needed to fetch release assets, repository snapshots and
    workflow artifacts. A missing resource is reported as ResourceNotFoundError;
    callers translate it into the matching domain error.

    Example:
        async with AsyncGitHubClient(github_token="...") as client:
            release = await client.get_release_by_tag("owner", "repo", "v1.0.0")
    """

    def __init__(
        self,
        github_token: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        api_base: str = GITHUB_API_BASE,
    ) -> None:
        """
        Initialize the async GitHub client.

        Parameters:
            github_token (Optional[str]): Token sent as a bearer Authorization header; unauthenticated when None.
            timeout (float): Request timeout in seconds.
            api_base (str): Base URL of the REST API.
        """
        self.github_token = github_token
        self.timeout = ClientTimeout(total=timeout)
        self.api_base = api_base.rstrip("/")
        self._session: Optional[ClientSession] = None

        self.rate_limit_remaining: Optional[int] = None
        self.rate_limit_reset: Optional[datetime] = None

    async def __aenter__(self) -> "AsyncGitHubClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                timeout=self.timeout,
                headers=self._get_default_headers(),
            )
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": get_user_agent(),
        }
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        return headers

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _update_rate_limits(self, response: ClientResponse) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")
        if remaining:
            try:
                self.rate_limit_remaining = int(remaining)
            except (TypeError, ValueError):
                pass
        if reset:
            try:
                self.rate_limit_reset = datetime.fromtimestamp(int(reset), tz=timezone.utc)
            except (TypeError, ValueError, OSError):
                pass

    def _raise_for_status(self, response: ClientResponse, url: str) -> None:
        """
        Translate an error response into the matching exception.

        Raises:
            AuthenticationError: On 401.
            RateLimitError: On 403/429 with an exhausted rate limit.
            ResourceNotFoundError: On 404.
            APIError: On any other status >= 400.
        """
        status = response.status
        if status < HTTP_STATUS_ERROR_THRESHOLD:
            return
        if status == 401:
            raise AuthenticationError(
                "GitHub API authentication failed", endpoint=url, status_code=status
            )
        if status in (403, 429) and self.rate_limit_remaining == 0:
            reset_time = (
                int(self.rate_limit_reset.timestamp()) if self.rate_limit_reset else None
            )
            raise RateLimitError(reset_time=reset_time, remaining=0, url=url)
        if status == 404:
            raise ResourceNotFoundError(
                "GitHub resource not found", endpoint=url, status_code=status
            )
        if status == 403:
            raise APIError("GitHub API access forbidden", endpoint=url, status_code=status)
        raise APIError(f"GitHub API error {status}", endpoint=url, status_code=status)

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_base}{path}"
        session = await self._ensure_session()
        try:
            async with session.get(url, params=params) as response:
                self._update_rate_limits(response)
                self._raise_for_status(response, url)
                return await response.json()
        except aiohttp.ClientError as e:
            logger.error("Network error requesting %s: %s", url, e)
            raise NetworkError(f"Network error: {e}", url=url, is_retryable=True) from e

    async def _get_redirect_location(self, path: str) -> str:
        """Request `path` without following redirects and return where it points."""
        url = f"{self.api_base}{path}"
        session = await self._ensure_session()
        try:
            async with session.get(url, allow_redirects=False) as response:
                self._update_rate_limits(response)
                if response.status in REDIRECT_STATUSES:
                    location = response.headers.get("Location")
                    if location:
                        return location
                self._raise_for_status(response, url)
                return str(response.url)
        except aiohttp.ClientError as e:
            logger.error("Network error requesting %s: %s", url, e)
            raise NetworkError(f"Network error: {e}", url=url, is_retryable=True) from e

    async def _paginate(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        key: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield every item of a paginated list endpoint, page by page."""
        page = 1
        while True:
            page_params = dict(params or {})
            page_params.update({"per_page": GITHUB_MAX_PER_PAGE, "page": page})
            data = await self._get_json(path, page_params)
            items = data.get(key, []) if key else data
            if not isinstance(items, list):
                logger.warning(
                    "Unexpected payload from %s: expected list, got %s",
                    path,
                    type(items).__name__,
                )
                return
            for item in items:
                if isinstance(item, dict):
                    yield item
            if len(items) < GITHUB_MAX_PER_PAGE:
                return
            page += 1

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self._get_json(self._repo_path(owner, repo))
        return data["default_branch"]

    async def get_release_by_tag(
        self, owner: str, repo: str, tag: str
    ) -> Optional[Dict[str, Any]]:
        """Return the published release for `tag`, or None when the tag lookup finds nothing."""
        path = f"{self._repo_path(owner, repo)}/releases/tags/{quote(tag, safe='')}"
        try:
            return await self._get_json(path)
        except ResourceNotFoundError:
            return None

    def iter_releases(self, owner: str, repo: str) -> AsyncIterator[Dict[str, Any]]:
        """Iterate over all releases of a repository, newest first, including drafts visible to the token."""
        return self._paginate(f"{self._repo_path(owner, repo)}/releases")

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> List[Dict[str, Any]]:
        path = f"{self._repo_path(owner, repo)}/releases/{release_id}/assets"
        return [asset async for asset in self._paginate(path)]

    async def get_commit_sha(self, owner: str, repo: str, ref: str) -> str:
        """
        Resolve a branch, tag or commit reference to a commit sha.

        Accepts `main`, `heads/main`, `refs/tags/v1.0` and plain shas.

        Raises:
            ResourceNotFoundError: If the reference does not exist.
        """
        name = ref
        for prefix in ("refs/", "heads/", "tags/"):
            if name.startswith(prefix):
                name = name[len(prefix):]
        path = f"{self._repo_path(owner, repo)}/commits/{quote(name, safe='')}"
        try:
            data = await self._get_json(path)
        except APIError as e:
            # GitHub answers 422 for refs that look valid but match no commit
            if e.status_code == 422:
                raise ResourceNotFoundError(
                    f"No commit found for ref {ref}", endpoint=e.endpoint, status_code=422
                ) from e
            raise
        return data["sha"]

    async def get_tarball_url(self, owner: str, repo: str, ref: str) -> str:
        """Return the download URL of the repository tarball for `ref`."""
        return await self._get_redirect_location(
            f"{self._repo_path(owner, repo)}/tarball/{quote(ref, safe='')}"
        )

    async def get_latest_workflow_run(
        self,
        owner: str,
        repo: str,
        workflow: str,
        branch: Optional[str] = None,
        status: Optional[str] = None,
        event: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the most recent run of a workflow file matching the filters, or None."""
        params: Dict[str, Any] = {"per_page": 1}
        if branch:
            params["branch"] = branch
        if status:
            params["status"] = status
        if event:
            params["event"] = event
        path = (
            f"{self._repo_path(owner, repo)}/actions/workflows/"
            f"{quote(workflow, safe='')}/runs"
        )
        data = await self._get_json(path, params)
        runs = data.get("workflow_runs") or []
        return runs[0] if runs else None

    async def list_run_artifacts(
        self, owner: str, repo: str, run_id: int
    ) -> List[Dict[str, Any]]:
        path = f"{self._repo_path(owner, repo)}/actions/runs/{run_id}/artifacts"
        return [artifact async for artifact in self._paginate(path, key="artifacts")]

    async def get_artifact_download_url(
        self, owner: str, repo: str, artifact_id: int
    ) -> str:
        """Return the short-lived download URL of a workflow artifact's zip archive."""
        return await self._get_redirect_location(
            f"{self._repo_path(owner, repo)}/actions/artifacts/{artifact_id}/zip"
        )
