"""
Tests for the per-client controller worker.

Tests cover:
1. Input snapshots are applied 1:1 to the virtual controller
2. Heartbeats refresh activity without touching the controller
3. Liveness timeout unplugs the controller and ends the worker
4. A heartbeat inside the window keeps the session alive
5. Sink failures: plug-in is fatal to the worker, update is not
"""

import asyncio

import pytest

pytest_plugins = ("pytest_asyncio",)

from netpad.models.controller_types import ControllerState
from netpad.models.wire_types import Heartbeat, UserInput
from netpad.servers.controller_worker import ControllerWorker
from netpad.servers.sessions import ClientSession
from netpad.util.errors import SinkError

TEST_CLIENT = ("203.0.113.10", 40001)


class FakeSink:
    """Records every call a worker makes to its virtual controller."""

    def __init__(self, fail_plug_in=False, fail_update=False, fail_unplug=False):
        self.fail_plug_in = fail_plug_in
        self.fail_update = fail_update
        self.fail_unplug = fail_unplug
        self.plugged_in = False
        self.unplug_calls = 0
        self.updates = []

    def plug_in(self):
        if self.fail_plug_in:
            raise SinkError("no bus driver")
        self.plugged_in = True

    def update(self, state):
        if self.fail_update:
            raise SinkError("device busy")
        self.updates.append(state)

    def unplug(self):
        self.unplug_calls += 1
        self.plugged_in = False
        if self.fail_unplug:
            raise SinkError("already gone")


def make_session() -> ClientSession:
    return ClientSession(address=TEST_CLIENT, mailbox=asyncio.Queue(maxsize=1000))


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class TestControllerWorker:
    """Tests for ControllerWorker.run()."""

    @pytest.mark.asyncio
    async def test_input_applied_one_to_one(self):
        session = make_session()
        sink = FakeSink()
        task = asyncio.create_task(ControllerWorker(session, sink, liveness_timeout=1.0).run())

        session.mailbox.put_nowait(
            UserInput(lx=29999, ly=-5, rx=7, ry=-29999, ltrigger=255, rtrigger=1, buttons=0x1001)
        )
        await wait_until(lambda: sink.updates)

        assert sink.updates == [
            ControllerState(
                thumb_lx=29999,
                thumb_ly=-5,
                thumb_rx=7,
                thumb_ry=-29999,
                left_trigger=255,
                right_trigger=1,
                buttons=0x1001,
            )
        ]
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        assert sink.unplug_calls == 1

    @pytest.mark.asyncio
    async def test_heartbeat_updates_activity_only(self):
        session = make_session()
        session.last_activity = 0.0
        sink = FakeSink()
        task = asyncio.create_task(ControllerWorker(session, sink, liveness_timeout=1.0).run())

        session.mailbox.put_nowait(Heartbeat())
        await wait_until(lambda: session.last_activity > 0.0)

        assert sink.updates == []
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_silence_unplugs_and_terminates(self):
        session = make_session()
        sink = FakeSink()

        await asyncio.wait_for(ControllerWorker(session, sink, liveness_timeout=0.1).run(), timeout=2.0)

        assert sink.unplug_calls == 1
        assert not sink.plugged_in

    @pytest.mark.asyncio
    async def test_heartbeat_resets_liveness_window(self):
        session = make_session()
        sink = FakeSink()
        task = asyncio.create_task(ControllerWorker(session, sink, liveness_timeout=0.3).run())

        await asyncio.sleep(0.2)
        session.mailbox.put_nowait(Heartbeat())
        await asyncio.sleep(0.2)

        # 0.4s since start, only 0.2s since the heartbeat
        assert not task.done()
        assert sink.plugged_in

        await asyncio.wait_for(task, timeout=2.0)
        assert sink.unplug_calls == 1

    @pytest.mark.asyncio
    async def test_plug_in_failure_ends_worker(self):
        session = make_session()
        sink = FakeSink(fail_plug_in=True)

        await asyncio.wait_for(ControllerWorker(session, sink, liveness_timeout=5.0).run(), timeout=1.0)

        assert sink.unplug_calls == 0

    @pytest.mark.asyncio
    async def test_update_failure_keeps_worker_alive(self):
        session = make_session()
        sink = FakeSink(fail_update=True)
        worker = ControllerWorker(session, sink, liveness_timeout=1.0)
        task = asyncio.create_task(worker.run())

        session.mailbox.put_nowait(UserInput(lx=1))
        session.mailbox.put_nowait(UserInput(lx=2))
        await wait_until(lambda: session.mailbox.empty())
        await asyncio.sleep(0.01)

        assert not task.done()
        assert worker.updates_applied == 0

        sink.fail_update = False
        session.mailbox.put_nowait(UserInput(lx=3))
        await wait_until(lambda: sink.updates)
        assert sink.updates[-1].thumb_lx == 3

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_unplug_failure_is_not_raised(self):
        session = make_session()
        sink = FakeSink(fail_unplug=True)

        await asyncio.wait_for(ControllerWorker(session, sink, liveness_timeout=0.05).run(), timeout=1.0)

        assert sink.unplug_calls == 1
