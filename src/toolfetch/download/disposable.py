"""
Disposable resource support.

Assets allocate temporary directories, HTTP sessions and nested assets while they
materialize. Each of those registers a cleanup action here, and the owner runs all
of them with a single `dispose()` call.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union, runtime_checkable

from toolfetch.log_utils import logger

DisposeFn = Callable[[], Union[Awaitable[Any], Any]]


@runtime_checkable
class Disposable(Protocol):
    """Anything exposing a `dispose()` method, sync or async."""

    def dispose(self) -> Union[Awaitable[Any], Any]: ...


class DisposableMixin:
    """
    Collects cleanup actions and runs them together on `dispose()`.

    Registered actions are started in registration order, run concurrently, and are
    all awaited before `dispose()` returns. A failing action never prevents the
    others from running; failures are logged at warning level.
    """

    def __init__(self) -> None:
        self._disposables: List[DisposeFn] = []

    def add_disposable(self, resource: Union[DisposeFn, Disposable]) -> None:
        """
        Register a cleanup action.

        Parameters:
            resource: Either a callable taking no arguments, or an object with a callable
                `dispose` attribute. Either may return an awaitable.

        Raises:
            TypeError: If `resource` is neither callable nor disposable.
        """
        dispose = getattr(resource, "dispose", None)
        if callable(dispose):
            self._disposables.append(dispose)
        elif callable(resource):
            self._disposables.append(resource)
        else:
            raise TypeError(
                "Expected a function or an object with a dispose method, "
                f"got {type(resource).__name__}"
            )

    async def dispose(self) -> None:
        """Run every registered cleanup action and wait for all of them to settle."""
        disposables, self._disposables = self._disposables, []
        if not disposables:
            return

        results = await asyncio.gather(
            *(self._run_disposable(fn) for fn in disposables), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Error during cleanup: %s", result)

    @staticmethod
    async def _run_disposable(fn: DisposeFn) -> Optional[Any]:
        result = fn()
        if inspect.isawaitable(result):
            return await result
        return result
