"""Bounded pool of page-rendering sessions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Protocol

from pricehub.errors import PoolExhaustedError

logger = logging.getLogger(__name__)


class RenderSession(Protocol):
    async def goto(self, url: str, *, timeout_ms: int, headers: Mapping[str, str] | None = None) -> None: ...

    async def wait_for_text(self, selector: str, *, timeout_ms: int) -> str: ...

    async def text_of(self, selector: str) -> str | None: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    async def create(self) -> RenderSession: ...

    async def close(self) -> None: ...


class RenderPool:
    """Hands out render sessions, one caller at a time per session.

    Up to ``capacity`` idle sessions are kept for reuse. When none is idle a new
    one is opened as long as fewer than ``ceiling`` are open; past that,
    ``acquire`` waits for a release and gives up after ``acquire_timeout``.
    """

    def __init__(
        self,
        factory: SessionFactory,
        *,
        capacity: int = 5,
        ceiling: int | None = None,
        acquire_timeout: float = 30.0,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.ceiling = max(ceiling or capacity * 2, capacity)
        self.acquire_timeout = acquire_timeout
        self._factory = factory
        self._idle: list[RenderSession] = []
        self._open = 0
        self._closed = False
        self._cond = asyncio.Condition()
        self.peak_open = 0

    @property
    def open_count(self) -> int:
        return self._open

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    def _can_acquire(self) -> bool:
        return self._closed or bool(self._idle) or self._open < self.ceiling

    async def acquire(self) -> RenderSession:
        async with self._cond:
            try:
                await asyncio.wait_for(self._cond.wait_for(self._can_acquire), self.acquire_timeout)
            except asyncio.TimeoutError:
                raise PoolExhaustedError(
                    f"No render session free after {self.acquire_timeout:.0f}s ({self._open} open)"
                ) from None
            if self._closed:
                raise PoolExhaustedError("Render pool is closed")
            if self._idle:
                return self._idle.pop()
            self._open += 1
            self.peak_open = max(self.peak_open, self._open)
        try:
            session = await self._factory.create()
        except BaseException as exc:
            # the slot was reserved above; give it back even when cancelled
            await asyncio.shield(self._give_back_slot())
            if isinstance(exc, Exception):
                raise PoolExhaustedError(f"Could not open render session: {exc}") from exc
            raise
        if self._open > self.capacity:
            logger.debug("Opened overflow render session (%s/%s)", self._open, self.ceiling)
        return session

    async def release(self, session: RenderSession, *, discard: bool = False) -> None:
        dispose = False
        async with self._cond:
            if discard or self._closed or len(self._idle) >= self.capacity:
                self._open -= 1
                dispose = True
            else:
                self._idle.append(session)
            self._cond.notify()
        if dispose:
            await self._dispose(session)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[RenderSession]:
        session = await self.acquire()
        discard = False
        try:
            yield session
        except asyncio.CancelledError:
            # an operation may still be running on the page
            discard = True
            raise
        finally:
            await asyncio.shield(self.release(session, discard=discard))

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            idle, self._idle = self._idle, []
            self._open -= len(idle)
            self._cond.notify_all()
        for session in idle:
            await self._dispose(session)
        await self._factory.close()
        logger.info("Render pool closed")

    async def _give_back_slot(self) -> None:
        async with self._cond:
            self._open -= 1
            self._cond.notify()

    async def _dispose(self, session: RenderSession) -> None:
        try:
            await session.close()
        except Exception as exc:
            logger.warning("Error closing render session: %s", exc)
