from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class ResolverQueue(Generic[T]):
    """Callers waiting for one future event.

    Each drain settles exactly the futures registered so far and starts a
    fresh list, so a waiter registered after a drain waits for the next one.
    """

    def __init__(self) -> None:
        self._waiters: list[asyncio.Future[T]] = []

    def __len__(self) -> int:
        return len(self._waiters)

    def register(self) -> asyncio.Future[T]:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        return future

    def drain_success(self, value: T) -> int:
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(value)
        return len(waiters)

    def drain_failure(self, error: BaseException) -> int:
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_exception(error)
        return len(waiters)
