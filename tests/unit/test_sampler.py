"""Unit tests for the interval frame sampler."""

from __future__ import annotations

import asyncio
import unittest

from sampler import FrameSampler

INTERVAL = 0.01


class FrameSamplerTests(unittest.IsolatedAsyncioTestCase):
    async def test_ticks_repeat_with_stream(self) -> None:
        seen = []

        async def on_tick(stream) -> None:
            seen.append(stream)

        sampler = FrameSampler(interval=INTERVAL)
        handle = sampler.start("stream", on_tick)
        await asyncio.sleep(INTERVAL * 8)
        sampler.stop(handle)

        self.assertGreaterEqual(len(seen), 2)
        self.assertTrue(all(s == "stream" for s in seen))

    async def test_no_tick_after_stop(self) -> None:
        count = 0

        async def on_tick(stream) -> None:
            nonlocal count
            count += 1

        sampler = FrameSampler(interval=INTERVAL)
        handle = sampler.start(None, on_tick)
        await asyncio.sleep(INTERVAL * 4)
        sampler.stop(handle)
        stopped_at = count

        await asyncio.sleep(INTERVAL * 6)

        self.assertEqual(count, stopped_at)
        self.assertFalse(handle.active)
        self.assertFalse(sampler.running)

    async def test_stop_before_first_tick(self) -> None:
        count = 0

        async def on_tick(stream) -> None:
            nonlocal count
            count += 1

        sampler = FrameSampler(interval=INTERVAL)
        sampler.stop(sampler.start(None, on_tick))
        await asyncio.sleep(INTERVAL * 5)

        self.assertEqual(count, 0)

    async def test_stop_from_inside_tick_finishes_that_tick(self) -> None:
        sampler = FrameSampler(interval=INTERVAL)
        events = []

        async def on_tick(stream) -> None:
            events.append("tick")
            sampler.stop()
            await asyncio.sleep(0)
            events.append("after-stop")

        sampler.start(None, on_tick)
        await asyncio.sleep(INTERVAL * 6)

        self.assertEqual(events, ["tick", "after-stop"])

    async def test_only_one_active_handle(self) -> None:
        async def on_tick(stream) -> None:
            return None

        sampler = FrameSampler(interval=INTERVAL)
        handle = sampler.start(None, on_tick)
        with self.assertRaises(RuntimeError):
            sampler.start(None, on_tick)
        sampler.stop(handle)

        sampler.stop(sampler.start(None, on_tick))

    async def test_failing_tick_does_not_stop_sampling(self) -> None:
        count = 0

        async def on_tick(stream) -> None:
            nonlocal count
            count += 1
            raise ValueError("boom")

        sampler = FrameSampler(interval=INTERVAL)
        handle = sampler.start(None, on_tick)
        with self.assertLogs("scanner", level="ERROR"):
            await asyncio.sleep(INTERVAL * 8)
        sampler.stop(handle)

        self.assertGreaterEqual(count, 2)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
