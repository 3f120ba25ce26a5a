import asyncio
import time
import unittest

from sequencer.scheduler import Scheduler
from sequencer.store import ActorStorage, InMemoryStore

from tests.fakes import FakeClock


class RecordingActor:
    def __init__(self, fail_times: int = 0):
        self.calls = 0
        self.fail_times = fail_times
        self.called = asyncio.Event()

    async def alarm(self):
        self.calls += 1
        self.called.set()
        if self.calls <= self.fail_times:
            raise RuntimeError("boom")


class TestScheduler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.clock = FakeClock()
        self.actors = {"wallet:a": RecordingActor(), "pool": RecordingActor()}
        self.scheduler = Scheduler(self.store, self.actors.__getitem__, clock=self.clock, retry_delay=5.0)

    def storage(self, namespace):
        return ActorStorage(self.store, namespace, self.scheduler)

    async def fire(self) -> int:
        fired = await self.scheduler.fire_due()
        await self.scheduler.drain()
        return fired

    async def test_fires_only_when_due(self):
        await self.storage("wallet:a").set_wakeup_if_absent(self.clock.now + 5)
        self.assertEqual(await self.fire(), 0)
        self.assertEqual(self.actors["wallet:a"].calls, 0)

        self.clock.advance(5)
        self.assertEqual(await self.fire(), 1)
        self.assertEqual(self.actors["wallet:a"].calls, 1)
        # Cleared before dispatch, so the actor can set a new one
        self.assertIsNone(await self.store.get_wakeup("wallet:a"))

    async def test_fires_in_due_order(self):
        order = []

        class Ordered:
            def __init__(self, name):
                self.name = name

            async def alarm(self):
                order.append(self.name)

        self.scheduler.resolver = lambda ns: Ordered(ns)
        await self.storage("late").set_wakeup_if_absent(self.clock.now + 2)
        await self.storage("early").set_wakeup_if_absent(self.clock.now + 1)
        self.assertEqual(self.scheduler.pending()[0][1], "early")

        self.clock.advance(3)
        self.assertEqual(await self.fire(), 2)
        self.assertEqual(order, ["early", "late"])

    async def test_stale_entries_are_dropped(self):
        self.scheduler.arm("wallet:a", self.clock.now)
        self.assertEqual(await self.fire(), 0)
        self.assertEqual(self.actors["wallet:a"].calls, 0)
        self.assertIsNone(self.scheduler.next_due())

    async def test_failed_alarm_is_rearmed(self):
        self.actors["wallet:a"] = RecordingActor(fail_times=1)
        await self.storage("wallet:a").set_wakeup_if_absent(self.clock.now)

        with self.assertLogs("sequencer.scheduler", "ERROR"):
            await self.fire()
        self.assertEqual(await self.store.get_wakeup("wallet:a"), self.clock.now + 5.0)

        self.clock.advance(5)
        await self.fire()
        self.assertEqual(self.actors["wallet:a"].calls, 2)
        self.assertIsNone(await self.store.get_wakeup("wallet:a"))

    async def test_load_rearms_persisted_wakeups(self):
        await self.store.set_wakeup_if_absent("pool", self.clock.now - 1)
        await self.store.set_wakeup_if_absent("wallet:a", self.clock.now + 10)

        self.assertEqual(await self.scheduler.load(), 2)
        self.assertEqual(await self.fire(), 1)
        self.assertEqual(self.actors["pool"].calls, 1)
        self.assertEqual(self.scheduler.next_due(), self.clock.now + 10)


class TestSchedulerLoop(unittest.IsolatedAsyncioTestCase):
    async def test_run_dispatches_and_stops(self):
        store = InMemoryStore()
        actor = RecordingActor()
        scheduler = Scheduler(store, lambda ns: actor)
        stop = asyncio.Event()

        runner = asyncio.create_task(scheduler.run(stop))
        await asyncio.sleep(0)
        await ActorStorage(store, "wallet:a", scheduler).set_wakeup_if_absent(time.time() + 0.01)

        await asyncio.wait_for(actor.called.wait(), timeout=2)
        stop.set()
        await asyncio.wait_for(runner, timeout=2)
        self.assertEqual(actor.calls, 1)
