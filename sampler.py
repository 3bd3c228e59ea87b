"""Fixed-interval frame sampling on the asyncio loop."""

import asyncio
import logging

logger = logging.getLogger("scanner")


class SamplerHandle:
    """One running sampler. Once cancelled it never fires again."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, stream, on_tick):
        self._loop = loop
        self._interval = interval
        self._stream = stream
        self._on_tick = on_tick
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self.active = True
        self.ticks = 0

    def _arm(self):
        self._timer = self._loop.call_later(self._interval, self._fire)

    def _fire(self):
        if not self.active:
            return
        self._arm()
        task = self._loop.create_task(self._run_tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_tick(self):
        # A tick queued just before cancel() must not reach the callback
        if not self.active:
            return
        self.ticks += 1
        try:
            await self._on_tick(self._stream)
        except Exception:
            logger.exception("Sampler tick failed")

    def cancel(self):
        self.active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class FrameSampler:
    """Calls `on_tick(stream)` every `interval` seconds until stopped.

    Ticks are spawned as separate tasks, so a tick that stops the sampler
    from inside its own callback is not interrupted.
    """

    def __init__(self, interval: float = 0.8):
        self.interval = interval
        self._handle: SamplerHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    def start(self, stream, on_tick) -> SamplerHandle:
        if self.running:
            raise RuntimeError("sampler already running")
        loop = asyncio.get_running_loop()
        handle = SamplerHandle(loop, self.interval, stream, on_tick)
        handle._arm()
        self._handle = handle
        logger.debug("Sampler started (interval=%.3fs)", self.interval)
        return handle

    def stop(self, handle: SamplerHandle | None = None):
        handle = handle or self._handle
        if handle is None:
            return
        handle.cancel()
        if handle is self._handle:
            self._handle = None
        logger.debug("Sampler stopped after %d ticks", handle.ticks)
