"""Paced delivery towards the telephony leg.

The assistant leg produces audio in bursts that run ahead of real time.
The telephony leg expects one frame per frame interval, so outbound frames
are queued here and released one per tick.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable

from loguru import logger

SendFunc = Callable[[bytes], Awaitable[None]]
OpenFunc = Callable[[], bool]
ErrorFunc = Callable[[Exception], Awaitable[None]]


class PacedDeliveryQueue:
    """Bounded frame queue drained at a fixed tick interval.

    On each tick: if ``is_open()`` reports the downstream socket is not
    open the tick is skipped, otherwise at most one frame is popped and
    passed to ``send``. When the queue is full the oldest frame is dropped.

    Usage:
        queue = PacedDeliveryQueue(send=transport_send, is_open=transport.is_connected)
        queue.start()
        queue.put(frame)
        ...
        await queue.stop()
    """

    def __init__(
        self,
        send: SendFunc,
        is_open: OpenFunc,
        tick_interval: float = 0.02,
        max_frames: int = 500,
        on_error: ErrorFunc | None = None,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {tick_interval}")
        if max_frames <= 0:
            raise ValueError(f"Capacity must be positive, got {max_frames}")

        self._send = send
        self._is_open = is_open
        self._on_error = on_error
        self.tick_interval = tick_interval
        self.max_frames = max_frames
        self._frames: deque[bytes] = deque()
        self._task: asyncio.Task | None = None
        self._stopped = False

        self.sent = 0
        self.dropped = 0
        self.skipped_ticks = 0

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def put(self, frame: bytes) -> None:
        """Queue a frame, dropping the oldest one if the queue is full."""
        if self._stopped:
            return
        if len(self._frames) >= self.max_frames:
            self._frames.popleft()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"Outbound queue full, dropped {self.dropped} frame(s) so far")
        self._frames.append(bytes(frame))

    def clear(self) -> int:
        """Flush all queued frames. Returns the number cleared."""
        count = len(self._frames)
        self._frames.clear()
        return count

    def start(self) -> None:
        """Start the tick. Has no effect once started or stopped."""
        if self._task is not None or self._stopped:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Retire the tick exactly once and discard queued frames."""
        if self._stopped:
            return
        self._stopped = True
        self._frames.clear()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def tick(self) -> bool:
        """Run a single tick. Returns True if a frame was sent."""
        if not self._is_open():
            self.skipped_ticks += 1
            return False
        if not self._frames:
            return False
        frame = self._frames.popleft()
        await self._send(frame)
        self.sent += 1
        return True

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._stopped:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Paced delivery send failed: {e}")
                self._stopped = True
                if self._on_error:
                    await self._on_error(e)
                return

            # Fixed cadence: schedule against the ideal timeline, not the
            # completion of the previous send
            next_tick += self.tick_interval
            delay = next_tick - loop.time()
            if delay < 0:
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)
