import anyio
import pytest

import broadcast
from broadcast import TableBroadcaster, publish_tables, sse_frame


def test_sse_frame():
    assert sse_frame([{"number": 1}]) == 'data: [{"number": 1}]\n\n'


@pytest.mark.anyio
async def test_publish_reaches_subscriber():
    hub = TableBroadcaster()
    queue = hub.subscribe()
    assert hub.client_count == 1
    assert hub.publish([{"number": 1}]) == 1

    stream = hub.stream(queue, keepalive=1)
    assert await stream.__anext__() == 'data: [{"number": 1}]\n\n'
    await stream.aclose()
    assert hub.client_count == 0


@pytest.mark.anyio
async def test_idle_stream_sends_keepalive():
    hub = TableBroadcaster()
    stream = hub.stream(hub.subscribe(), keepalive=0.01)
    assert await stream.__anext__() == ":keepalive\n\n"
    await stream.aclose()


@pytest.mark.anyio
async def test_publish_from_worker_thread():
    hub = TableBroadcaster()
    queue = hub.subscribe()
    reached = await anyio.to_thread.run_sync(hub.publish, {"tables": []})
    assert reached == 1
    stream = hub.stream(queue, keepalive=1)
    assert await stream.__anext__() == 'data: {"tables": []}\n\n'
    await stream.aclose()


@pytest.mark.anyio
async def test_disconnect_ends_stream():
    hub = TableBroadcaster()
    queue = hub.subscribe()

    async def gone():
        return True

    frames = [frame async for frame in hub.stream(queue, is_disconnected=gone)]
    assert frames == []
    assert hub.client_count == 0


@pytest.mark.anyio
async def test_publish_tables_sends_sorted_list(db, monkeypatch):
    hub = TableBroadcaster()
    monkeypatch.setattr(broadcast, "broadcaster", hub)
    db["table"].insert_many([{"number": 2, "status": "available"}, {"number": 1, "status": "occupied"}])
    queue = hub.subscribe()
    publish_tables(db)

    stream = hub.stream(queue, keepalive=1)
    frame = await stream.__anext__()
    await stream.aclose()
    assert frame.startswith("data: [")
    assert frame.index('"number": 1') < frame.index('"number": 2')
