import asyncio

from ingest.buffer import PointBuffer
from ingest.flush import FlushEngine
from ingest.housekeeping import HousekeepingScheduler
from ingest.point import PointBuilder
from tests.conftest import FakeClock, FakeTransport, run


def setup(count, ttl=1, flush_interval=60, interval=30):
    clock = FakeClock()
    buffer = PointBuffer(max_size=100)
    builder = PointBuilder(ttl=ttl, clock=clock)
    for i in range(count):
        buffer.insert(builder.build({"path": "p", "value": i}))
    transport = FakeTransport()
    engine = FlushEngine(buffer, transport, batch_size=10,
                         flush_interval=flush_interval, clock=clock)
    scheduler = HousekeepingScheduler(buffer, engine, interval=interval, clock=clock)
    return clock, buffer, transport, scheduler


def test_expired_points_are_gone_after_a_tick():
    clock, buffer, transport, scheduler = setup(3, ttl=1)
    clock.advance(2)

    assert scheduler.tick() == 3
    assert len(buffer) == 0
    assert scheduler.evicted == 3
    assert transport.calls == 0


def test_unexpired_points_survive_a_tick():
    clock, buffer, transport, scheduler = setup(3, ttl=60)
    clock.advance(30)

    assert scheduler.tick() == 0
    assert len(buffer) == 3


def test_tick_flushes_when_deadline_has_passed():
    clock, buffer, transport, scheduler = setup(3, ttl=600)

    async def scenario():
        clock.advance(61)
        scheduler.tick()
        await scheduler.engine.wait_idle()

    run(scenario())

    assert transport.calls == 1
    assert len(buffer) == 0


def test_tick_does_not_wait_for_the_flush():
    clock, buffer, transport, scheduler = setup(3, ttl=600)

    async def scenario():
        transport.gate = asyncio.Event()
        clock.advance(61)
        scheduler.tick()
        await asyncio.sleep(0)
        # the flush is parked on the network, housekeeping keeps running
        clock.advance(600)
        evicted = scheduler.tick()
        transport.gate.set()
        await scheduler.engine.wait_idle()
        return evicted

    assert run(scenario()) == 3
    assert transport.calls == 1
    assert len(buffer) == 0


def test_start_and_stop_run_the_timer():
    clock, buffer, transport, scheduler = setup(3, ttl=1, interval=0.01)

    async def scenario():
        clock.advance(2)
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert not scheduler.running

    run(scenario())

    assert len(buffer) == 0
