from __future__ import annotations

import asyncio
from typing import Any, Awaitable

from PySide6.QtCore import QObject, Signal


class AsyncBridge(QObject):
    """Run coroutines from Qt slots and report their outcome as a signal."""

    task_completed = Signal(object, object)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__()
        self._loop = loop
        self._pending: set[asyncio.Future[Any]] = set()

    def run_coroutine(self, coro: Awaitable[object]) -> asyncio.Future[None]:
        loop = self._loop or asyncio.get_event_loop()
        future = asyncio.ensure_future(self._wrap(coro), loop=loop)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    async def _wrap(self, coro: Awaitable[object]) -> None:
        error = None
        result = None
        try:
            result = await coro
        except Exception as exc:  # noqa: BLE001 - reported through the signal
            error = exc
        self.task_completed.emit(result, error)

    async def wait_idle(self) -> None:
        """Wait for every coroutine scheduled so far to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["AsyncBridge"]
