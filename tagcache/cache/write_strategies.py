"""Write-through and write-behind strategies over a cache backend.

Write-through: origin first, cache second; origin errors propagate, cache
errors are only logged.

Write-behind: cache first, origin later. Pending origin writes sit in a
bounded in-process WriteQueue and are flushed in batches by a background
task. The queue is not durable: a crash loses whatever was still pending.

Architecture:
    write_behind() -> WriteQueue -> flush (per-key chains, in parallel) -> origin
"""

import asyncio
import inspect
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar, Union

from tagcache.cache.backends.base import CacheBackend, validate_ttl
from tagcache.core.errors import CacheError, QueueFullError
from tagcache.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
WriteFn = Callable[[], Union[Awaitable[Any], Any]]

MAX_RETRIES = 3
MAX_QUEUE_SIZE = 1000
FLUSH_INTERVAL_SECONDS = 5.0


async def invoke(fn: WriteFn) -> Any:
    """Invoke an origin callable that may be sync or async."""
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class PendingWriteState(str, Enum):
    """Lifecycle of a pending write.

    QUEUED -> FLUSHING -> COMMITTED | REQUEUED | DROPPED
    """

    QUEUED = "queued"
    FLUSHING = "flushing"
    COMMITTED = "committed"
    REQUEUED = "requeued"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self in (PendingWriteState.COMMITTED, PendingWriteState.DROPPED)


@dataclass
class PendingWrite:
    """An origin write waiting in the write-behind queue."""

    key: str
    value: Any
    write_fn: WriteFn
    retries: int = 0
    enqueued_at: float = field(default_factory=time.monotonic)
    next_attempt_at: float = 0.0
    state: PendingWriteState = PendingWriteState.QUEUED
    last_error: Optional[str] = None

    def is_due(self, now: float) -> bool:
        return now >= self.next_attempt_at


@dataclass
class WriteQueueStats:
    """Counters for write-behind activity."""

    enqueued: int = 0
    committed: int = 0
    retried: int = 0
    dropped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "enqueued": self.enqueued,
            "committed": self.committed,
            "retried": self.retried,
            "dropped": self.dropped,
        }


class WriteQueue:
    """Bounded FIFO of pending writes.

    All methods are synchronous, so callers on the event loop can never be
    interleaved mid-mutation.

    Drained writes keep counting toward ``max_size`` until the flush that
    took them calls ``release``, so writes accepted during a flush can never
    push the queue past its bound when leftovers are requeued.
    """

    def __init__(self, max_size: int = MAX_QUEUE_SIZE):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._items: Deque[PendingWrite] = deque()
        self._in_flight = 0
        self.stats = WriteQueueStats()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def in_flight(self) -> int:
        """Writes drained by a flush that has not released them yet."""
        return self._in_flight

    def is_full(self) -> bool:
        return len(self._items) + self._in_flight >= self.max_size

    def put(self, item: PendingWrite) -> None:
        """Append a new write.

        Raises:
            QueueFullError: If the queue is at capacity.
        """
        if self.is_full():
            raise QueueFullError(self.max_size, key=item.key)
        self._items.append(item)
        self.stats.enqueued += 1

    def requeue(self, items: List[PendingWrite]) -> None:
        """Put already-accepted writes back at the front, preserving order.

        Requeued writes were accepted earlier, so capacity is not checked.
        """
        self._items.extendleft(reversed(items))

    def drain(self) -> List[PendingWrite]:
        """Remove and return every queued write in FIFO order.

        The drained writes stay reserved until ``release`` is called.
        """
        items = list(self._items)
        self._items.clear()
        self._in_flight += len(items)
        return items

    def release(self, count: int) -> None:
        """Return the capacity reserved by a drain."""
        self._in_flight -= count

    def snapshot(self) -> List[PendingWrite]:
        """Queued writes in FIFO order, without removing them."""
        return list(self._items)


class WriteThroughStrategy:
    """Synchronous dual write: origin, then cache."""

    def __init__(self, backend: CacheBackend):
        self.backend = backend

    async def write(
        self,
        key: str,
        write_fn: Callable[[], Union[Awaitable[T], T]],
        ttl: Optional[int] = None,
    ) -> T:
        """Run the origin write and cache its result.

        Args:
            key: Cache key to populate.
            write_fn: Authoritative origin write returning the value to cache.
            ttl: Cache TTL in seconds (None for no expiration).

        Returns:
            The origin write's result.

        Raises:
            Exception: Whatever ``write_fn`` raises; the cache is untouched.
        """
        result = await invoke(write_fn)

        try:
            await self.backend.set(key, result, ttl)
        except CacheError as e:
            # The origin already holds the truth; a missing entry only costs a miss.
            logger.warning(f"Write-through cache update failed for key {key}: {e}")

        return result


class WriteBehindStrategy:
    """Deferred, batched, retrying origin writes.

    Usage:
        strategy = WriteBehindStrategy(backend, WriteQueue(max_size=500))
        strategy.start()

        await strategy.write("app:products:42", product, save_product)

        # Graceful shutdown (final flush)
        await strategy.stop()
    """

    def __init__(
        self,
        backend: CacheBackend,
        queue: Optional[WriteQueue] = None,
        flush_interval: float = FLUSH_INTERVAL_SECONDS,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize write-behind strategy.

        Args:
            backend: Cache backend updated on the fast path.
            queue: Pending-write queue; a fresh one is created if omitted.
            flush_interval: Seconds between background flushes.
            max_retries: Attempts per write before it is dropped.
            retry_base_delay: First backoff delay in seconds, doubled per retry.
            retry_max_delay: Upper bound for the backoff delay.
            clock: Monotonic time source (override in tests).
        """
        self.backend = backend
        self.queue = queue if queue is not None else WriteQueue()
        self.flush_interval = flush_interval
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._clock = clock

        self._flushing = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def stats(self) -> WriteQueueStats:
        return self.queue.stats

    @property
    def pending(self) -> int:
        """Number of writes not yet committed or dropped."""
        return len(self.queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    async def write(
        self,
        key: str,
        value: Any,
        write_fn: WriteFn,
        ttl: Optional[int] = None,
    ) -> None:
        """Update the cache now and schedule the origin write.

        Raises:
            InvalidTTLError: If ``ttl`` is not positive. Nothing is queued.
            QueueFullError: If the queue is still full after a forced flush.
        """
        validate_ttl(ttl)

        if self.queue.is_full():
            logger.warning(
                f"Write-behind queue full ({self.queue.max_size}), flushing before accepting {key}"
            )
            await self.flush_all()
            if self.queue.is_full():
                raise QueueFullError(self.queue.max_size, key=key)

        # Reserve the slot before awaiting so capacity cannot be overtaken.
        self.queue.put(PendingWrite(key=key, value=value, write_fn=write_fn, enqueued_at=self._clock()))

        try:
            await self.backend.set(key, value, ttl)
        except CacheError as e:
            logger.warning(f"Write-behind cache update failed for key {key}: {e}")

    async def flush(self, force: bool = False) -> int:
        """Flush pending writes.

        Args:
            force: Ignore retry backoff and repeat until the queue is empty.
                Otherwise run one round over writes whose backoff elapsed.

        Returns:
            Number of writes committed. 0 if a flush was already running.
        """
        if self._flushing:
            logger.debug("Flush already in progress, skipping")
            return 0

        self._flushing = True
        try:
            committed = await self._flush_round(force)
            while force and len(self.queue):
                committed += await self._flush_round(force)
            return committed
        finally:
            self._flushing = False

    async def flush_all(self) -> int:
        """Forced flush: drain the queue, retrying failures without backoff."""
        return await self.flush(force=True)

    async def _flush_round(self, force: bool) -> int:
        now = self._clock()
        items = self.queue.drain()
        if not items:
            return 0

        chains: Dict[str, List[PendingWrite]] = {}
        for item in items:
            chains.setdefault(item.key, []).append(item)

        due = [chain for chain in chains.values() if force or chain[0].is_due(now)]

        committed = 0
        try:
            results = await asyncio.gather(
                *(self._flush_chain(chain) for chain in due),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    logger.error(f"Unexpected write-behind flush failure: {result!r}")
                else:
                    committed += result
        finally:
            leftovers = [item for item in items if not item.state.is_terminal]
            for item in leftovers:
                if item.state is PendingWriteState.FLUSHING:
                    item.state = PendingWriteState.QUEUED
            self.queue.release(len(items))
            if leftovers:
                self.queue.requeue(leftovers)

        logger.debug(
            f"Write-behind flush: {committed} committed, {len(leftovers)} pending"
        )
        return committed

    async def _flush_chain(self, chain: List[PendingWrite]) -> int:
        """Write one key's pending items in order.

        A failing item that will be retried blocks the rest of its chain, so
        the origin never sees an older value after a newer one.
        """
        committed = 0
        for item in chain:
            item.state = PendingWriteState.FLUSHING
            try:
                await invoke(item.write_fn)
            except Exception as e:
                item.retries += 1
                item.last_error = str(e)

                if item.retries < self.max_retries:
                    delay = self._backoff(item.retries)
                    item.next_attempt_at = self._clock() + delay
                    item.state = PendingWriteState.REQUEUED
                    self.queue.stats.retried += 1
                    logger.warning(
                        f"Write-behind for key {item.key} failed "
                        f"(attempt {item.retries}/{self.max_retries}), retrying in {delay:.2f}s: {e}"
                    )
                    return committed

                item.state = PendingWriteState.DROPPED
                self.queue.stats.dropped += 1
                logger.error(
                    f"Write-behind for key {item.key} dropped after {item.retries} attempts; "
                    f"cache and origin may diverge: {e}"
                )
                continue

            item.state = PendingWriteState.COMMITTED
            self.queue.stats.committed += 1
            committed += 1
        return committed

    def _backoff(self, retries: int) -> float:
        return min(self.retry_max_delay, self.retry_base_delay * (2 ** (retries - 1)))

    def start(self) -> None:
        """Start the background flush task on the running loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Write-behind flusher started (interval {self.flush_interval}s)")

    async def stop(self) -> None:
        """Stop the background task and make a final best-effort flush."""
        if self._task is not None:
            self._stop_event.set()
            await self._task
            self._task = None
            self._stop_event = None

        committed = await self.flush_all()
        if self.pending:
            logger.error(f"Write-behind stopped with {self.pending} writes still pending")
        logger.info(f"Write-behind flusher stopped ({committed} writes committed on shutdown)")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break

            try:
                await self.flush()
            except Exception as e:
                logger.error(f"Write-behind background flush failed: {e}")
