"""
Tests for the DisposableMixin cleanup registry.

Covers registration validation, concurrent execution of every registered
action, awaiting async actions, and failure isolation.
"""

import asyncio

import pytest

from toolfetch.download.disposable import Disposable, DisposableMixin

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


class _SyncResource:
    def __init__(self):
        self.disposed = 0

    def dispose(self):
        self.disposed += 1


class _AsyncResource:
    def __init__(self):
        self.disposed = 0

    async def dispose(self):
        await asyncio.sleep(0)
        self.disposed += 1


class TestAddDisposable:
    """Test registration of cleanup actions."""

    def test_accepts_plain_function(self):
        owner = DisposableMixin()
        owner.add_disposable(lambda: None)
        assert len(owner._disposables) == 1

    def test_accepts_object_with_dispose(self):
        owner = DisposableMixin()
        resource = _SyncResource()
        owner.add_disposable(resource)
        assert owner._disposables == [resource.dispose]

    def test_rejects_non_callable(self):
        owner = DisposableMixin()
        with pytest.raises(TypeError, match="Expected a function or an object with a dispose method"):
            owner.add_disposable(42)  # type: ignore[arg-type]

    def test_rejects_object_with_non_callable_dispose(self):
        class _Broken:
            dispose = "not callable"

        owner = DisposableMixin()
        with pytest.raises(TypeError):
            owner.add_disposable(_Broken())  # type: ignore[arg-type]

    def test_protocol_matches_disposable_objects(self):
        assert isinstance(_AsyncResource(), Disposable)
        assert isinstance(DisposableMixin(), Disposable)


@pytest.mark.asyncio
class TestDispose:
    """Test running registered cleanup actions."""

    async def test_runs_every_registration_once(self):
        owner = DisposableMixin()
        calls = []
        action = lambda: calls.append("x")  # noqa: E731
        owner.add_disposable(action)
        owner.add_disposable(action)

        await owner.dispose()

        assert calls == ["x", "x"]

    async def test_awaits_async_actions(self):
        owner = DisposableMixin()
        sync_resource = _SyncResource()
        async_resource = _AsyncResource()
        owner.add_disposable(sync_resource)
        owner.add_disposable(async_resource)

        await owner.dispose()

        assert sync_resource.disposed == 1
        assert async_resource.disposed == 1

    async def test_failure_does_not_stop_other_actions(self, mocker):
        mock_logger = mocker.patch("toolfetch.download.disposable.logger")
        owner = DisposableMixin()
        survivor = _AsyncResource()

        def failing():
            raise RuntimeError("boom")

        owner.add_disposable(failing)
        owner.add_disposable(survivor)

        await owner.dispose()

        assert survivor.disposed == 1
        mock_logger.warning.assert_called_once()
        assert "boom" in str(mock_logger.warning.call_args)

    async def test_actions_run_concurrently(self):
        owner = DisposableMixin()
        started = []
        release = asyncio.Event()

        async def first():
            started.append("first")
            await release.wait()

        async def second():
            started.append("second")
            release.set()

        owner.add_disposable(first)
        owner.add_disposable(second)

        await asyncio.wait_for(owner.dispose(), timeout=1)

        assert started == ["first", "second"]

    async def test_second_dispose_is_noop(self):
        owner = DisposableMixin()
        resource = _SyncResource()
        owner.add_disposable(resource)

        await owner.dispose()
        await owner.dispose()

        assert resource.disposed == 1
