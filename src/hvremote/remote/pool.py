# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Connection Pool
# Bounded borrow/return pool for reusable session handles
# ═══════════════════════════════════════════════════════════════

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator, Awaitable, Callable, Deque, Dict, Generic, Optional, TypeVar,
)

from ..core.exceptions import PoolExhaustedError, TransportError
from .models import PoolStats

logger = logging.getLogger("hvremote.remote.pool")

T = TypeVar("T")


class ConnectionPool(Generic[T]):
    """
    Bounded pool of session handles.

    At most ``max_size`` handles exist at any time. A handle is either
    idle (in the deque) or checked out (tracked by identity), never both,
    so two borrowers can never hold the same handle.

    Handles are created lazily by ``factory``. A handle that leaves a
    ``borrow()`` block through cancellation or a timeout is invalidated
    (destroyed and its slot freed) instead of being returned, because the
    worker still using it may not have finished.

    Usage:
        pool = ConnectionPool("winrm://hv01", factory=make_session, max_size=5)

        async with pool.borrow() as session:
            ...

        await pool.close()
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[], Awaitable[T]],
        max_size: int = 5,
        borrow_timeout: float = 60.0,
        validator: Optional[Callable[[T], Awaitable[bool]]] = None,
        destroyer: Optional[Callable[[T], None]] = None,
    ):
        """
        Initialize the pool.

        Args:
            name: Pool name used in logs and errors
            factory: Coroutine function creating a new handle
            max_size: Maximum number of live handles
            borrow_timeout: Maximum seconds to wait for a free slot
            validator: Optional check run on idle handles before reuse
            destroyer: Optional callable releasing a handle's resources
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")

        self.name = name
        self.max_size = max_size
        self.borrow_timeout = borrow_timeout
        self._factory = factory
        self._validator = validator
        self._destroyer = destroyer

        self._semaphore = asyncio.Semaphore(max_size)
        self._idle: Deque[T] = deque()
        self._in_use: Dict[int, T] = {}
        self._closed = False

        # Statistics
        self._created = 0
        self._borrowed = 0
        self._returned = 0
        self._invalidated = 0
        self._destroyed = 0

    # ═══════════════════════════════════════════════════════════
    # Borrow / Return
    # ═══════════════════════════════════════════════════════════

    @asynccontextmanager
    async def borrow(self) -> AsyncIterator[T]:
        """
        Borrow a handle for the duration of an ``async with`` block.

        Raises:
            PoolExhaustedError: No slot freed up within borrow_timeout
            TransportError: The pool is closed or the factory failed
        """
        handle = await self.acquire()
        discard = False
        try:
            yield handle
        except (asyncio.CancelledError, asyncio.TimeoutError):
            discard = True
            raise
        finally:
            if discard:
                self.invalidate(handle)
            else:
                self.release(handle)

    async def acquire(self) -> T:
        """
        Check out a handle. Pair with ``release`` or ``invalidate``.

        Returns:
            An idle handle, or a newly created one
        """
        if self._closed:
            raise TransportError(f"Connection pool '{self.name}' is closed")

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.borrow_timeout)
        except asyncio.TimeoutError:
            raise PoolExhaustedError(self.name, self.max_size, self.borrow_timeout) from None

        try:
            handle = await self._take_idle_or_create()
            if id(handle) in self._in_use:
                raise TransportError(
                    f"Connection pool '{self.name}' produced a session that is already checked out"
                )
        except BaseException:
            self._semaphore.release()
            raise

        self._in_use[id(handle)] = handle
        self._borrowed += 1
        return handle

    def release(self, handle: T) -> None:
        """Return a checked-out handle to the idle set."""
        self._check_out(handle)
        self._returned += 1

        if self._closed:
            self._destroy(handle)
        else:
            self._idle.append(handle)
        self._semaphore.release()

    def invalidate(self, handle: T) -> None:
        """Destroy a checked-out handle and free its slot."""
        self._check_out(handle)
        self._invalidated += 1
        self._destroy(handle)
        self._semaphore.release()
        logger.debug(f"Invalidated session in pool {self.name}")

    def _check_out(self, handle: T) -> None:
        if self._in_use.pop(id(handle), None) is None:
            raise ValueError(f"handle is not checked out from pool '{self.name}'")

    # ═══════════════════════════════════════════════════════════
    # Handle Lifecycle
    # ═══════════════════════════════════════════════════════════

    async def _take_idle_or_create(self) -> T:
        while self._idle:
            handle = self._idle.popleft()
            if self._validator is None:
                return handle
            try:
                valid = await self._validate(handle)
            except BaseException:
                self._idle.appendleft(handle)
                raise
            if valid:
                return handle
            self._destroy(handle)

        handle = await self._factory()
        self._created += 1
        logger.debug(f"Created session {self._created} for pool {self.name}")
        return handle

    async def _validate(self, handle: T) -> bool:
        try:
            return bool(await self._validator(handle))
        except Exception as e:
            logger.debug(f"Session validation failed in pool {self.name}: {e}")
            return False

    def _destroy(self, handle: T) -> None:
        self._destroyed += 1
        if self._destroyer is None:
            return
        try:
            self._destroyer(handle)
        except Exception as e:
            logger.warning(f"Error destroying session in pool {self.name}: {e}")

    async def warm_up(self, count: int) -> int:
        """
        Pre-create idle handles.

        Returns:
            Number of handles created
        """
        handles = []
        try:
            for _ in range(min(count, self.max_size)):
                handles.append(await self.acquire())
        finally:
            for handle in handles:
                self.release(handle)
        return len(handles)

    async def close(self) -> None:
        """Destroy idle handles; checked-out handles are destroyed on return."""
        if self._closed:
            return
        self._closed = True

        while self._idle:
            self._destroy(self._idle.popleft())

        logger.debug(f"Closed pool {self.name}")

    # ═══════════════════════════════════════════════════════════
    # Introspection
    # ═══════════════════════════════════════════════════════════

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> PoolStats:
        """Get a snapshot of the pool counters."""
        return PoolStats(
            name=self.name,
            max_size=self.max_size,
            created=self._created,
            borrowed=self._borrowed,
            returned=self._returned,
            invalidated=self._invalidated,
            destroyed=self._destroyed,
            idle=len(self._idle),
            in_use=len(self._in_use),
        )

    def __repr__(self) -> str:
        return (
            f"<ConnectionPool(name={self.name!r}, max_size={self.max_size}, "
            f"idle={len(self._idle)}, in_use={len(self._in_use)})>"
        )
