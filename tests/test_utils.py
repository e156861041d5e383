import importlib.metadata

import pytest

from toolfetch import utils


@pytest.fixture(autouse=True)
def reset_user_agent_cache():
    utils._USER_AGENT_CACHE = None
    yield
    utils._USER_AGENT_CACHE = None


class TestUserAgent:
    def test_uses_installed_version(self, mocker):
        mocker.patch("importlib.metadata.version", return_value="1.2.3")
        assert utils.get_user_agent() == "toolfetch/1.2.3"

    def test_unknown_version(self, mocker):
        mocker.patch(
            "importlib.metadata.version",
            side_effect=importlib.metadata.PackageNotFoundError,
        )
        assert utils.get_user_agent() == "toolfetch/unknown"

    def test_is_cached(self, mocker):
        version = mocker.patch("importlib.metadata.version", return_value="1.0")
        utils.get_user_agent()
        utils.get_user_agent()
        version.assert_called_once()


class TestEffectiveGithubToken:
    def test_explicit_token_is_stripped(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env")
        assert utils.get_effective_github_token("  explicit \n") == "explicit"

    def test_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", " env ")
        assert utils.get_effective_github_token(None) == "env"
        assert utils.get_effective_github_token("   ") == "env"

    def test_environment_disallowed(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env")
        assert utils.get_effective_github_token(None, allow_env_token=False) is None

    def test_no_token(self):
        assert utils.get_effective_github_token(None) is None

    def test_blank_environment(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "  ")
        assert utils.get_effective_github_token(None) is None


class TestTargets:
    @pytest.mark.parametrize(
        "target, expected",
        [("linux-x64", ("linux", "x64")), ("win32-arm64", ("win32", "arm64"))],
    )
    def test_split_target(self, target, expected):
        assert utils.split_target(target) == expected

    @pytest.mark.parametrize("target", ["linux", "-x64", "linux-", ""])
    def test_split_target_invalid(self, target):
        with pytest.raises(ValueError):
            utils.split_target(target)

    @pytest.mark.parametrize(
        "platform_name, machine, expected",
        [
            ("linux", "x86_64", "linux-x64"),
            ("linux", "aarch64", "linux-arm64"),
            ("darwin", "arm64", "darwin-arm64"),
            ("win32", "AMD64", "win32-x64"),
            ("cygwin", "x86_64", "win32-x64"),
        ],
    )
    def test_host_target(self, mocker, platform_name, machine, expected):
        mocker.patch("toolfetch.utils.sys.platform", platform_name)
        mocker.patch("toolfetch.utils.platform.machine", return_value=machine)

        assert utils.host_target() == expected

    def test_host_target_unsupported_warns(self, mocker):
        mocker.patch("toolfetch.utils.sys.platform", "freebsd13")
        mocker.patch("toolfetch.utils.platform.machine", return_value="riscv64")
        mock_logger = mocker.patch("toolfetch.utils.logger")

        assert utils.host_target() == "freebsd13-riscv64"
        mock_logger.warning.assert_called_once()
