"""
Admission control for concurrent downloads

Bounds in-flight work by both task count and estimated byte volume so that
network throughput never outruns what the disk can absorb.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

# Cost charged to the scheduler when the listing has no size for a file
FALLBACK_ESTIMATE_BYTES = 8 * MIB


class DiskProfile(Enum):
    """Destination disk speed class"""
    FAST = "fast"          # SSD / NVMe
    BALANCED = "balanced"  # typical SD card or HDD
    SLOW = "slow"          # slow SD card, network share


@dataclass(frozen=True)
class BackpressureState:
    """Point-in-time snapshot of a scheduler"""
    bytes_in_flight: int
    active_tasks: int
    queued_tasks: int
    max_bytes_in_flight: int
    max_concurrent: int


@dataclass(frozen=True)
class BackpressureLimits:
    """Resolved limits for one download batch"""
    max_bytes_in_flight: int
    max_concurrent: int


def resolve_backpressure(profile: DiskProfile, jobs: int) -> BackpressureLimits:
    """
    Resolve scheduler limits for a disk profile and requested job count.

    Args:
        profile: Destination disk profile
        jobs: Requested parallel downloads

    Returns:
        BackpressureLimits with at least one concurrent slot
    """
    jobs = max(1, int(jobs))

    if profile == DiskProfile.FAST:
        return BackpressureLimits(512 * MIB, max(jobs, 16))
    if profile == DiskProfile.SLOW:
        return BackpressureLimits(32 * MIB, min(jobs, 4))
    return BackpressureLimits(128 * MIB, min(jobs, 8))


@dataclass
class _Waiter:
    future: asyncio.Future
    estimated_bytes: int


class BackpressureController:
    """
    FIFO admission scheduler bounded by bytes in flight and task count.

    Features:
    - A task is admitted immediately when nothing else is running, whatever
      its size, so one oversized file can never deadlock the queue
    - Otherwise admission requires a free slot AND room in the byte budget
    - Waiters are served strictly in arrival order; one release can admit
      several small waiters in a row
    - drain() barrier for the end of a batch

    All state changes happen inside acquire()/release() on the event loop
    thread, so no lock is taken.

    Example:
        controller = BackpressureController(
            max_bytes_in_flight=128 * MIB,
            max_concurrent=8
        )

        await controller.acquire(file_size)
        try:
            await download(...)
        finally:
            controller.release(file_size)

        await controller.drain()
    """

    def __init__(
        self,
        max_bytes_in_flight: int,
        max_concurrent: int,
        on_state_change: Optional[Callable[[BackpressureState], None]] = None
    ):
        """
        Initialize controller

        Args:
            max_bytes_in_flight: Byte budget shared by all active tasks
            max_concurrent: Maximum number of active tasks
            on_state_change: Optional callback invoked with a snapshot after
                every admission, queueing or release
        """
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        if max_bytes_in_flight < 0:
            raise ValueError(f"max_bytes_in_flight must not be negative, got {max_bytes_in_flight}")

        self.max_bytes_in_flight = max_bytes_in_flight
        self.max_concurrent = max_concurrent
        self.on_state_change = on_state_change

        self.bytes_in_flight = 0
        self.active_tasks = 0
        self._queue: Deque[_Waiter] = deque()
        self._drain_waiters: List[asyncio.Future] = []

    def get_state(self) -> BackpressureState:
        """Get current scheduler state for monitoring"""
        return BackpressureState(
            bytes_in_flight=self.bytes_in_flight,
            active_tasks=self.active_tasks,
            queued_tasks=len(self._queue),
            max_bytes_in_flight=self.max_bytes_in_flight,
            max_concurrent=self.max_concurrent,
        )

    def _can_acquire(self, estimated_bytes: int) -> bool:
        if self.active_tasks == 0:
            return True

        return (
            self.active_tasks < self.max_concurrent
            and self.bytes_in_flight + estimated_bytes <= self.max_bytes_in_flight
        )

    def _admit(self, estimated_bytes: int) -> None:
        self.bytes_in_flight += estimated_bytes
        self.active_tasks += 1

    async def acquire(self, estimated_bytes: int) -> None:
        """
        Wait until the task may start.

        Args:
            estimated_bytes: Expected size of the work item (0 if unknown)

        Raises:
            ValueError: If estimated_bytes is negative
        """
        if estimated_bytes < 0:
            raise ValueError(f"estimated_bytes must not be negative, got {estimated_bytes}")

        # Later arrivals never overtake queued waiters
        if not self._queue and self._can_acquire(estimated_bytes):
            self._admit(estimated_bytes)
            self._notify_state_change()
            return

        waiter = _Waiter(asyncio.get_running_loop().create_future(), estimated_bytes)
        self._queue.append(waiter)
        logger.debug(
            f"Queued task ({estimated_bytes} bytes), "
            f"{self.active_tasks} active, {len(self._queue)} waiting"
        )
        self._notify_state_change()

        try:
            await waiter.future
        except asyncio.CancelledError:
            if waiter.future.done() and not waiter.future.cancelled():
                # Admitted just before the cancellation landed
                self.release(estimated_bytes)
            else:
                try:
                    self._queue.remove(waiter)
                except ValueError:
                    pass
                self._process_queue()
                self._notify_state_change()
                self._check_drained()
            raise

    def release(self, estimated_bytes: int, actual_bytes: Optional[int] = None) -> None:
        """
        Release a slot after the task finished (success or failure).

        Args:
            estimated_bytes: The estimate originally passed to acquire()
            actual_bytes: Bytes actually transferred, for diagnostics only

        Raises:
            RuntimeError: If called with no active task
        """
        if self.active_tasks == 0:
            raise RuntimeError("release() called without a matching acquire()")

        self.bytes_in_flight = max(0, self.bytes_in_flight - estimated_bytes)
        self.active_tasks -= 1

        if actual_bytes is not None and actual_bytes != estimated_bytes:
            logger.debug(f"Released task: estimated {estimated_bytes} bytes, actual {actual_bytes}")

        self._process_queue()
        self._notify_state_change()
        self._check_drained()

    def _process_queue(self) -> None:
        while self._queue:
            head = self._queue[0]
            if head.future.done():
                self._queue.popleft()
                continue
            if not self._can_acquire(head.estimated_bytes):
                break

            self._queue.popleft()
            self._admit(head.estimated_bytes)
            head.future.set_result(None)

    def _check_drained(self) -> None:
        if self.active_tasks == 0 and not self._queue:
            waiters, self._drain_waiters = self._drain_waiters, []
            for future in waiters:
                if not future.done():
                    future.set_result(None)

    def _notify_state_change(self) -> None:
        if self.on_state_change:
            self.on_state_change(self.get_state())

    async def drain(self) -> None:
        """Wait until no task is active and none is queued"""
        if self.active_tasks == 0 and not self._queue:
            return

        future = asyncio.get_running_loop().create_future()
        self._drain_waiters.append(future)
        await future
