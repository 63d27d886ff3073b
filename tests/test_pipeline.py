import asyncio

from ingest.pipeline import Ingestor
from ingest.settings import BufferSettings
from tests.conftest import FakeClock, FakeTransport, run


def make_ingestor(transport=None, **options):
    settings = BufferSettings(**{
        "batch_size": 5,
        "max_buffer": 20,
        "flush_secs": 60,
        "ttl_secs": 60,
        "api_url": "http://sink.example/points",
        **options
    })
    clock = FakeClock()
    return clock, Ingestor(settings, transport or FakeTransport(), clock=clock)


def test_full_batch_triggers_a_flush():
    transport = FakeTransport()
    clock, ingestor = make_ingestor(transport)

    async def scenario():
        for i in range(5):
            assert ingestor.send({"path": "p", "value": i}) is not None
        await ingestor.engine.wait_idle()

    run(scenario())

    assert transport.calls == 1
    assert len(transport.batches[0]) == 5
    assert len(ingestor.buffer) == 0


def test_below_batch_size_waits_for_deadline():
    transport = FakeTransport()
    clock, ingestor = make_ingestor(transport)

    async def scenario():
        ingestor.send({"path": "p", "value": 1})
        await ingestor.engine.wait_idle()
        assert transport.calls == 0

        clock.advance(61)
        ingestor.send({"path": "p", "value": 2})
        await ingestor.engine.wait_idle()

    run(scenario())

    assert transport.calls == 1
    assert len(transport.batches[0]) == 2


def test_duplicate_payload_is_coalesced():
    clock, ingestor = make_ingestor()

    async def scenario():
        payload = {"path": "p", "value": 1, "time": "2025-01-01T00:00:00Z"}
        ingestor.send(payload)
        ingestor.send(dict(payload))

    run(scenario())

    assert len(ingestor.buffer) == 1


def test_points_dropped_when_buffer_full():
    transport = FakeTransport(default=503)
    clock, ingestor = make_ingestor(transport, batch_size=100, max_buffer=3)

    async def scenario():
        return [ingestor.send({"path": "p", "value": i}) for i in range(5)]

    results = run(scenario())

    assert results[3] is None and results[4] is None
    assert len(ingestor.buffer) == 3
    assert ingestor.dropped == 2


def test_unserializable_payload_is_dropped():
    clock, ingestor = make_ingestor()

    async def scenario():
        return ingestor.send({"path": "p", "value": object()})

    assert run(scenario()) is None
    assert ingestor.dropped == 1
    assert len(ingestor.buffer) == 0


def test_failed_sink_keeps_points_until_ttl():
    transport = FakeTransport(default=500)
    clock, ingestor = make_ingestor(transport, ttl_secs=1)

    async def scenario():
        for i in range(5):
            ingestor.send({"path": "p", "value": i})
        await ingestor.engine.wait_idle()
        assert len(ingestor.buffer) == 5

        clock.advance(2)
        ingestor.housekeeping.tick()

    run(scenario())

    assert transport.calls == 1
    assert len(ingestor.buffer) == 0


def test_start_and_stop_drain_the_buffer():
    transport = FakeTransport()
    clock, ingestor = make_ingestor(transport)

    async def scenario():
        await ingestor.start()
        assert transport.initialized
        assert ingestor.housekeeping.running
        for i in range(3):
            ingestor.send({"path": "p", "value": i})
        return await ingestor.stop()

    assert run(scenario()) == (3, 0)
    assert len(ingestor.buffer) == 0
    assert transport.closed
    assert not ingestor.housekeeping.running


def test_stop_waits_for_inflight_flush():
    transport = FakeTransport()
    clock, ingestor = make_ingestor(transport)

    async def scenario():
        await ingestor.start()
        transport.gate = asyncio.Event()
        for i in range(7):
            ingestor.send({"path": "p", "value": i})
        await asyncio.sleep(0)
        stopping = asyncio.create_task(ingestor.stop())
        await asyncio.sleep(0)
        transport.gate.set()
        return await stopping

    assert run(scenario()) == (2, 0)
    assert [len(batch) for batch in transport.batches] == [5, 2]
    assert len(ingestor.buffer) == 0


def test_stop_closes_transport_when_final_flush_fails():
    transport = FakeTransport(default=500)
    clock, ingestor = make_ingestor(transport)

    async def scenario():
        await ingestor.start()
        ingestor.send({"path": "p", "value": 1})
        return await ingestor.stop()

    assert run(scenario()) == (0, 1)
    assert transport.closed
    assert len(ingestor.buffer) == 1
