"""
Tests for async_client.py.

Tests the aiohttp based transport and REST client including:
- Streaming downloads into a temp file with atomic replace
- Error classification (HTTP status vs. network failure)
- Retry logic with exponential backoff
- AsyncGitHubClient headers, error mapping and pagination
- Redirect handling for tarball and artifact URLs
"""

import aiohttp
import pytest

from toolfetch.download.async_client import AsyncGitHubClient, download_file
from toolfetch.exceptions import (
    APIError,
    AuthenticationError,
    HTTPError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


@pytest.fixture
def github_client(mock_aiohttp_session):
    """AsyncGitHubClient whose session is the mocked aiohttp session."""
    client = AsyncGitHubClient(github_token="test-token")  # noqa: S106
    client._session = mock_aiohttp_session
    return client


# =============================================================================
# download_file
# =============================================================================


@pytest.mark.asyncio
class TestDownloadFile:
    """Test the download transport."""

    async def test_streams_to_target(self, tmp_path, serve, mock_async_response):
        session = serve(mock_async_response(content_chunks=[b"ab", b"cd"]))
        target = tmp_path / "nested" / "tool.bin"

        result = await download_file(
            "https://example.com/tool.bin",
            target,
            {"Authorization": "Bearer x"},
            session=session,
        )

        assert result == target
        assert target.read_bytes() == b"abcd"
        assert [p.name for p in target.parent.iterdir()] == ["tool.bin"]
        headers = session.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer x"
        assert headers["User-Agent"].startswith("toolfetch/")

    async def test_http_error_is_not_retryable_for_4xx(
        self, tmp_path, serve, mock_async_response
    ):
        session = serve(mock_async_response(status=404))
        target = tmp_path / "tool.bin"

        with pytest.raises(HTTPError) as exc_info:
            await download_file("https://example.com/missing", target, session=session)

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_retryable is False
        assert not target.exists()
        assert list(tmp_path.iterdir()) == []

    async def test_server_errors_are_retried(self, tmp_path, serve, mock_async_response):
        session = serve(
            mock_async_response(status=503),
            mock_async_response(status=502),
            mock_async_response(content_chunks=[b"ok"]),
        )
        target = tmp_path / "tool.bin"

        await download_file(
            "https://example.com/tool.bin",
            target,
            max_retries=2,
            retry_delay=0,
            session=session,
        )

        assert target.read_bytes() == b"ok"
        assert session.get.call_count == 3

    async def test_gives_up_after_max_retries(self, tmp_path, serve, mock_async_response):
        session = serve(*(mock_async_response(status=500) for _ in range(3)))

        with pytest.raises(HTTPError) as exc_info:
            await download_file(
                "https://example.com/tool.bin",
                tmp_path / "tool.bin",
                max_retries=2,
                retry_delay=0,
                session=session,
            )

        assert exc_info.value.retry_count == 2
        assert session.get.call_count == 3

    async def test_no_retries_by_default(self, tmp_path, serve, mock_async_response):
        session = serve(mock_async_response(status=500), mock_async_response())

        with pytest.raises(HTTPError):
            await download_file(
                "https://example.com/tool.bin", tmp_path / "tool.bin", session=session
            )

        assert session.get.call_count == 1

    async def test_client_error_becomes_network_error(self, tmp_path, mock_aiohttp_session):
        mock_aiohttp_session.get.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(NetworkError) as exc_info:
            await download_file(
                "https://example.com/tool.bin",
                tmp_path / "tool.bin",
                session=mock_aiohttp_session,
            )

        assert exc_info.value.is_retryable is True
        assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)


# =============================================================================
# AsyncGitHubClient
# =============================================================================


class TestAsyncGitHubClientInit:
    """Test client configuration."""

    def test_default_headers_with_token(self):
        client = AsyncGitHubClient(github_token="abc")

        headers = client._get_default_headers()

        assert headers["Authorization"] == "Bearer abc"
        assert headers["Accept"] == "application/vnd.github+json"
        assert "X-GitHub-Api-Version" in headers

    def test_default_headers_without_token(self):
        headers = AsyncGitHubClient()._get_default_headers()

        assert "Authorization" not in headers


@pytest.mark.asyncio
class TestAsyncGitHubClientErrors:
    """Test mapping of error responses."""

    async def test_release_by_tag_returns_none_on_404(
        self, github_client, serve, mock_async_response
    ):
        serve(mock_async_response(status=404))

        assert await github_client.get_release_by_tag("o", "r", "v1") is None

    async def test_release_by_tag(self, github_client, serve, mock_async_response):
        session = serve(mock_async_response(json_data={"id": 1, "tag_name": "v1"}))

        release = await github_client.get_release_by_tag("o", "r", "v1")

        assert release == {"id": 1, "tag_name": "v1"}
        assert session.get.call_args.args[0] == "https://api.github.com/repos/o/r/releases/tags/v1"

    async def test_401_is_authentication_error(
        self, github_client, serve, mock_async_response
    ):
        serve(mock_async_response(status=401))

        with pytest.raises(AuthenticationError):
            await github_client.get_default_branch("o", "r")

    async def test_exhausted_rate_limit(self, github_client, serve, mock_async_response):
        serve(
            mock_async_response(
                status=403,
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
            )
        )

        with pytest.raises(RateLimitError) as exc_info:
            await github_client.get_default_branch("o", "r")

        assert exc_info.value.reset_time == 1700000000
        assert github_client.rate_limit_remaining == 0

    async def test_forbidden_without_rate_limit(
        self, github_client, serve, mock_async_response
    ):
        serve(mock_async_response(status=403, headers={"X-RateLimit-Remaining": "10"}))

        with pytest.raises(APIError) as exc_info:
            await github_client.get_default_branch("o", "r")

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 403

    async def test_client_error_becomes_network_error(self, github_client):
        github_client._session.get.side_effect = aiohttp.ClientConnectionError("down")

        with pytest.raises(NetworkError):
            await github_client.get_default_branch("o", "r")


@pytest.mark.asyncio
class TestAsyncGitHubClientOperations:
    """Test the REST operations used by the assets."""

    async def test_iter_releases_paginates(self, github_client, serve, mock_async_response):
        first_page = [{"id": i, "tag_name": f"v{i}"} for i in range(100)]
        session = serve(
            mock_async_response(json_data=first_page),
            mock_async_response(json_data=[{"id": 100, "tag_name": "v100"}]),
        )

        releases = [r async for r in github_client.iter_releases("o", "r")]

        assert len(releases) == 101
        pages = [c.kwargs["params"]["page"] for c in session.get.call_args_list]
        assert pages == [1, 2]

    async def test_list_release_assets(self, github_client, serve, mock_async_response):
        serve(mock_async_response(json_data=[{"name": "a.zip"}]))

        assets = await github_client.list_release_assets("o", "r", 5)

        assert assets == [{"name": "a.zip"}]

    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("refs/heads/main", "main"),
            ("heads/dev", "dev"),
            ("tags/v1", "v1"),
            ("abc", "abc"),
        ],
    )
    async def test_get_commit_sha_strips_prefixes(
        self, github_client, serve, mock_async_response, ref, expected
    ):
        session = serve(mock_async_response(json_data={"sha": "deadbeef"}))

        assert await github_client.get_commit_sha("o", "r", ref) == "deadbeef"
        assert session.get.call_args.args[0].endswith(f"/repos/o/r/commits/{expected}")

    async def test_get_commit_sha_422_is_not_found(
        self, github_client, serve, mock_async_response
    ):
        serve(mock_async_response(status=422))

        with pytest.raises(ResourceNotFoundError):
            await github_client.get_commit_sha("o", "r", "nope")

    async def test_get_tarball_url_returns_redirect(
        self, github_client, serve, mock_async_response
    ):
        session = serve(
            mock_async_response(status=302, headers={"Location": "https://codeload/x.tar.gz"})
        )

        url = await github_client.get_tarball_url("o", "r", "abc")

        assert url == "https://codeload/x.tar.gz"
        assert session.get.call_args.kwargs["allow_redirects"] is False

    async def test_latest_workflow_run_filters(self, github_client, serve, mock_async_response):
        session = serve(
            mock_async_response(json_data={"workflow_runs": [{"id": 1, "head_sha": "s"}]})
        )

        run = await github_client.get_latest_workflow_run(
            "o", "r", "build.yml", branch="main", status="success"
        )

        assert run == {"id": 1, "head_sha": "s"}
        params = session.get.call_args.kwargs["params"]
        assert params["branch"] == "main"
        assert params["status"] == "success"
        assert "event" not in params

    async def test_latest_workflow_run_none(self, github_client, serve, mock_async_response):
        serve(mock_async_response(json_data={"workflow_runs": []}))

        assert await github_client.get_latest_workflow_run("o", "r", "build.yml") is None

    async def test_list_run_artifacts(self, github_client, serve, mock_async_response):
        serve(mock_async_response(json_data={"artifacts": [{"id": 3, "name": "dist"}]}))

        artifacts = await github_client.list_run_artifacts("o", "r", 42)

        assert artifacts == [{"id": 3, "name": "dist"}]

    async def test_artifact_download_url(self, github_client, serve, mock_async_response):
        serve(mock_async_response(status=302, headers={"Location": "https://blob/a.zip"}))

        assert await github_client.get_artifact_download_url("o", "r", 3) == "https://blob/a.zip"

    async def test_close(self, github_client, mock_aiohttp_session):
        await github_client.close()

        mock_aiohttp_session.close.assert_awaited_once()
        assert github_client._session is None
