"""
GitHub-backed Assets

Assets fetched through the GitHub REST API: release assets, repository
snapshots at a ref, and GitHub Actions workflow artifacts.
"""

from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional

from toolfetch.constants import CACHE_ID_SUFFIX, GITHUB_HOST, REPO_ARCHIVE_NAME
from toolfetch.exceptions import (
    ArtifactNotFoundError,
    AssetNotFoundError,
    FileSystemError,
    RefNotFoundError,
    ReleaseNotFoundError,
    ResourceNotFoundError,
    WorkflowRunNotFoundError,
)
from toolfetch.log_utils import logger

from .async_client import AsyncGitHubClient
from .base import AbstractAsset, Transport
from .files import make_cache_id
from .interfaces import Pathish

DEFAULT_WORKFLOW_STATUS = "success"


class GitHubAsset(AbstractAsset):
    """
    Base class for assets downloaded from a GitHub repository.

    Owns a lazily created `AsyncGitHubClient` (closed on `dispose()`) unless a client
    is injected, in which case the caller keeps ownership of it.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: Optional[str] = None,
        client: Optional[AsyncGitHubClient] = None,
        cache_dir: Optional[Pathish] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        super().__init__(cache_dir=cache_dir, transport=transport)
        self.owner = owner
        self.repo = repo
        self.token = token
        self._client = client
        self._ref_cache: Dict[str, str] = {}

    def get_client(self) -> AsyncGitHubClient:
        """Return the REST client, creating and taking ownership of one on first use."""
        if self._client is None:
            self._client = AsyncGitHubClient(github_token=self.token)
            self.add_disposable(self._client.close)
        return self._client

    def _auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _cache_id(self, *components: str) -> str:
        return make_cache_id(GITHUB_HOST, self.owner, self.repo, *components)

    async def download_file(
        self,
        url: str,
        dest_path: Pathish,
        headers: Optional[Dict[str, str]] = None,
    ) -> Path:
        """Download `url` like `AbstractAsset.download_file`, authenticating when a token is set."""
        return await super().download_file(
            url, dest_path, {**self._auth_headers(), **(headers or {})}
        )

    async def resolve_ref(self, ref: str) -> str:
        """
        Resolve a branch, tag or commit reference to its commit sha.

        Results are memoized per ref for the lifetime of the asset.

        Raises:
            RefNotFoundError: If the ref does not exist in the repository.
        """
        if ref not in self._ref_cache:
            try:
                sha = await self.get_client().get_commit_sha(self.owner, self.repo, ref)
            except ResourceNotFoundError as e:
                raise RefNotFoundError(
                    f"Ref {ref} not found in {self.owner}/{self.repo}",
                    endpoint=e.endpoint,
                    status_code=e.status_code,
                ) from e
            logger.debug("Resolved %s/%s@%s to %s", self.owner, self.repo, ref, sha)
            self._ref_cache[ref] = sha
        return self._ref_cache[ref]

    async def download_repo(self, dest: Pathish, ref: str) -> Path:
        """Download the repository tarball for `ref` as `dest/repo.tar.gz`, unless already present."""
        archive = Path(dest) / REPO_ARCHIVE_NAME
        if await self.assure_file(archive):
            return archive
        url = await self.get_client().get_tarball_url(self.owner, self.repo, ref)
        return await self.download_file(url, archive)


class GitHubReleaseAsset(GitHubAsset):
    """A single file attached to a GitHub release."""

    def __init__(
        self,
        owner: str,
        repo: str,
        tag: str,
        asset_name: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(owner, repo, **kwargs)
        self.tag = tag
        self.asset_name = asset_name

    async def get_version(self) -> Optional[str]:
        return self.tag

    async def get_cache_id(self) -> Optional[str]:
        stem = PurePosixPath(self.asset_name).stem
        return self._cache_id("releases", self.tag, stem + CACHE_ID_SUFFIX)

    async def _find_release(self) -> Dict[str, Any]:
        client = self.get_client()
        release = await client.get_release_by_tag(self.owner, self.repo, self.tag)
        if release is not None:
            return release

        logger.debug(
            "Tag lookup for %s/%s@%s failed, scanning releases",
            self.owner,
            self.repo,
            self.tag,
        )
        async for candidate in client.iter_releases(self.owner, self.repo):
            if candidate.get("tag_name") == self.tag:
                return candidate

        raise ReleaseNotFoundError(
            f"Release {self.tag} not found in {self.owner}/{self.repo}"
        )

    async def _find_asset(self, release: Dict[str, Any]) -> Dict[str, Any]:
        assets = await self.get_client().list_release_assets(
            self.owner, self.repo, release["id"]
        )
        for asset in assets:
            if asset.get("name") == self.asset_name:
                return asset
        raise AssetNotFoundError(
            f"Asset {self.asset_name} not found in release {self.tag} "
            f"of {self.owner}/{self.repo}"
        )

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Download the release asset into `dest` and return the file path."""
        dest_dir = await self.mk_dest(dest)
        release = await self._find_release()
        asset = await self._find_asset(release)
        return await self.download_file(
            asset["browser_download_url"], dest_dir / self.asset_name
        )


class GitHubRepoAsset(GitHubAsset):
    """
    A file or directory taken from a repository snapshot.

    The snapshot tarball is stored in the asset's own storage (the cache entry when
    caching is enabled) and only `path` is copied to the destination.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        ref: Optional[str] = None,
        path: str = "",
        **kwargs: Any,
    ) -> None:
        """
        Parameters:
            owner (str): Repository owner.
            repo (str): Repository name.
            ref (Optional[str]): Branch, tag or commit; the default branch when omitted.
            path (str): Repository-relative file or directory to copy; the whole tree when empty.
        """
        super().__init__(owner, repo, **kwargs)
        self.ref = ref
        self.path = path

    async def _get_ref(self) -> str:
        if self.ref is None:
            self.ref = await self.get_client().get_default_branch(self.owner, self.repo)
        return self.ref

    async def get_version(self) -> Optional[str]:
        return await self.resolve_ref(await self._get_ref())

    async def get_cache_id(self) -> Optional[str]:
        sha = await self.get_version()
        return self._cache_id("snapshots", sha + CACHE_ID_SUFFIX)

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Copy the requested repository path into `dest` and return the directory."""
        dest_dir = await self.mk_dest(dest)
        sha = await self.get_version()
        archive = await self.download_repo(await self.mk_dest(), sha)

        staging = await self.extract_archive(archive, await self.mk_temp_dir(), strip=1)
        source = staging / self.path if self.path else staging
        if not source.exists():
            raise FileSystemError(
                f"Path '{self.path}' not found in {self.owner}/{self.repo}@{sha}",
                path=self.path,
            )
        await self.copy_recursive(source, dest_dir, strip=1)
        return dest_dir


class GitHubWorkflowAsset(GitHubAsset):
    """An artifact uploaded by the latest matching run of a GitHub Actions workflow."""

    def __init__(
        self,
        owner: str,
        repo: str,
        workflow: str,
        artifact_name: str,
        *,
        branch: Optional[str] = None,
        status: Optional[str] = DEFAULT_WORKFLOW_STATUS,
        event: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Parameters:
            owner (str): Repository owner.
            repo (str): Repository name.
            workflow (str): Workflow file name, e.g. `build.yml`, or numeric workflow id.
            artifact_name (str): Name of the uploaded artifact.
            branch (Optional[str]): Only consider runs on this branch.
            status (Optional[str]): Only consider runs with this status or conclusion.
            event (Optional[str]): Only consider runs triggered by this event.
        """
        super().__init__(owner, repo, **kwargs)
        self.workflow = workflow
        self.artifact_name = artifact_name
        self.branch = branch
        self.status = status
        self.event = event
        self._run: Optional[Dict[str, Any]] = None

    async def get_latest_run(self) -> Dict[str, Any]:
        """
        Return the most recent workflow run matching the filters.

        Raises:
            WorkflowRunNotFoundError: If the workflow has no such run.
        """
        if self._run is None:
            run = await self.get_client().get_latest_workflow_run(
                self.owner,
                self.repo,
                self.workflow,
                branch=self.branch,
                status=self.status,
                event=self.event,
            )
            if run is None:
                raise WorkflowRunNotFoundError(
                    f"No runs found for workflow {self.workflow} in {self.owner}/{self.repo}"
                )
            self._run = run
        return self._run

    async def get_version(self) -> Optional[str]:
        run = await self.get_latest_run()
        return run.get("head_sha") or None

    async def get_cache_id(self) -> Optional[str]:
        run = await self.get_latest_run()
        return self._cache_id(
            "actions",
            str(run["id"]),
            self.artifact_name + CACHE_ID_SUFFIX,
        )

    async def find_artifact(self) -> Dict[str, Any]:
        """
        Raises:
            ArtifactNotFoundError: If the latest run has no artifact with the configured name.
        """
        run = await self.get_latest_run()
        artifacts = await self.get_client().list_run_artifacts(
            self.owner, self.repo, run["id"]
        )
        for artifact in artifacts:
            if artifact.get("name") == self.artifact_name:
                return artifact
        raise ArtifactNotFoundError(
            f"Artifact {self.artifact_name} not found in run {run['id']} "
            f"of workflow {self.workflow}"
        )

    async def download_artifact(self, artifact_id: int, dest_file: Pathish) -> Path:
        """Download the zip archive of an artifact to `dest_file` unless it already exists."""
        dest_file = Path(dest_file)
        if await self.assure_file(dest_file):
            logger.debug("Using existing artifact archive %s", dest_file)
            return dest_file
        url = await self.get_client().get_artifact_download_url(
            self.owner, self.repo, artifact_id
        )
        # The redirect target is a pre-signed URL that rejects extra credentials
        return await self.transport(url, dest_file, {})

    async def copy_to(self, dest: Optional[Pathish] = None) -> Path:
        """Download the artifact and extract it into `dest`."""
        artifact = await self.find_artifact()
        archive = await self.download_artifact(
            artifact["id"], (await self.mk_dest()) / f"{self.artifact_name}.zip"
        )
        return await self.extract_archive(archive, dest)
