"""View scopes: cancellation for fetches started by a view.

A view-model opens a ViewScope when it is shown and closes it on teardown.
Closing cancels every task the scope spawned. Commit points check
``scope.closed`` so that a response arriving after teardown never
mutates the abandoned view's state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ViewScope:
    """Owns the asyncio tasks of one view lifetime."""

    def __init__(self, name: str = "view") -> None:
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Schedule a coroutine that is cancelled when the scope closes."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"ViewScope {self.name!r} is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Spawn and await a coroutine inside this scope."""
        return await self.spawn(coro)

    def close(self) -> None:
        """Cancel outstanding work and refuse further commits."""
        if self._closed:
            return
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        logger.debug("view_scope.closed", scope=self.name, cancelled=len(pending))
