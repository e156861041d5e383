from unittest.mock import AsyncMock

import platformdirs
import pytest

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Intended to replace async network request callables (for example, aiohttp.ClientSession methods)
    so tests do not perform real HTTP requests.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` explaining that async network access is blocked and suggesting mocking `aiohttp.ClientSession`.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used by the test suite.

    Parameters:
        config: pytest.Config
            The pytest configuration object used to register markers.
    """
    config.addinivalue_line("markers", "asyncio: mark test as an asyncio test")
    config.addinivalue_line("markers", "unit: fast tests without filesystem fixtures")
    config.addinivalue_line(
        "markers", "integration: tests that build real archives and directories"
    )
    config.addinivalue_line(
        "markers", "core_downloads: asset, transport and downloader tests"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Create an isolated temporary XDG directory layout and point platformdirs at it.

    Also clears GITHUB_TOKEN and TOOLFETCH_LOG_LEVEL so the developer's environment
    never leaks into a test.
    """
    base = tmp_path_factory.mktemp("toolfetch")
    cache_dir = base / "cache"
    config_dir = base / "config"
    data_dir = base / "data"

    for path in (cache_dir, config_dir, data_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("TOOLFETCH_LOG_LEVEL", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing aiohttp entry points with blocking callables.
    """
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.post = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.head = _async_block_network  # type: ignore[assignment]


# =============================================================================
# Async Test Fixtures
# =============================================================================


@pytest.fixture
def mock_aiohttp_session(mocker):
    """
    Provide a mock aiohttp.ClientSession for testing async HTTP operations.

    Yields a MagicMock configured with the aiohttp.ClientSession spec and with `closed` set to False.
    """
    import aiohttp

    mock_session = mocker.MagicMock(spec=aiohttp.ClientSession)
    mock_session.closed = False
    # Plain callables returning async context managers, as aiohttp does
    mock_session.get = mocker.MagicMock()
    mock_session.close = mocker.AsyncMock()
    yield mock_session


@pytest.fixture
def mock_async_response(mocker):
    """
    Provide a factory that creates configured mock aiohttp.ClientResponse objects for tests.

    Returns:
        factory (callable): A function that returns a mocked `aiohttp.ClientResponse` configured
        with `status`, `headers`, `json()` behavior and optional `content.iter_chunked` chunks.
    """

    def _create_response(status=200, headers=None, json_data=None, content_chunks=None):
        import aiohttp

        response = AsyncMock(spec=aiohttp.ClientResponse)
        response.status = status
        response.headers = headers or {}
        response.url = "https://api.github.com/mock"
        response.json = AsyncMock(return_value=json_data if json_data is not None else {})

        async def _async_iter_chunks(*_args):
            for chunk in content_chunks or []:
                yield chunk

        mock_content = mocker.MagicMock()
        mock_content.iter_chunked = mocker.Mock(side_effect=_async_iter_chunks)
        response.content = mock_content
        return response

    return _create_response


@pytest.fixture
def serve(mock_aiohttp_session):
    """
    Make `mock_aiohttp_session.get(...)` answer with the given responses in order.

    Returns:
        callable: `serve(*responses)`; each call of `session.get` enters the next response.
    """

    def _serve(*responses):
        contexts = []
        for response in responses:
            ctx = AsyncMock()
            ctx.__aenter__.return_value = response
            ctx.__aexit__.return_value = False
            contexts.append(ctx)
        mock_aiohttp_session.get.side_effect = contexts
        return mock_aiohttp_session

    return _serve
