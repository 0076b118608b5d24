"""Tests for the stream tee."""

import asyncio
import gc

import pytest

from paraphraser.features.analytics.tee import StreamAborted, StreamTee, tee


async def _chunks(items, delay=0.0):
    for item in items:
        if delay:
            await asyncio.sleep(delay)
        else:
            await asyncio.sleep(0)
        yield item


async def _collect(branch):
    return [chunk async for chunk in branch]


@pytest.mark.asyncio
async def test_both_branches_see_every_chunk_in_order():
    items = [b"alpha ", b"beta ", b"gamma"]
    client, analytics = tee(_chunks(items))

    seen_client, seen_analytics = await asyncio.gather(_collect(client), _collect(analytics))

    assert seen_client == items
    assert seen_analytics == items


@pytest.mark.asyncio
async def test_empty_source_ends_both_branches():
    client, analytics = tee(_chunks([]))
    assert await _collect(client) == []
    assert await _collect(analytics) == []


@pytest.mark.asyncio
async def test_client_does_not_wait_for_analytics_reader():
    items = [b"one", b"two", b"three"]
    client, analytics = tee(_chunks(items))

    # nobody touches the analytics branch until the client is done
    assert await asyncio.wait_for(_collect(client), timeout=1.0) == items
    assert await _collect(analytics) == items


@pytest.mark.asyncio
async def test_slow_analytics_reader_does_not_delay_client():
    items = [b"a", b"b", b"c", b"d"]
    client, analytics = tee(_chunks(items))

    async def slow(branch):
        out = []
        async for chunk in branch:
            await asyncio.sleep(0.05)
            out.append(chunk)
        return out

    slow_task = asyncio.create_task(slow(analytics))
    loop = asyncio.get_running_loop()
    started = loop.time()
    assert await _collect(client) == items
    client_elapsed = loop.time() - started

    assert await slow_task == items
    assert client_elapsed < 0.15


@pytest.mark.asyncio
async def test_source_error_reaches_both_branches():
    async def failing():
        yield b"partial"
        raise RuntimeError("upstream connection reset")

    client, analytics = tee(failing())

    received = []
    with pytest.raises(RuntimeError, match="connection reset"):
        async for chunk in client:
            received.append(chunk)
    assert received == [b"partial"]

    with pytest.raises(RuntimeError, match="connection reset"):
        await _collect(analytics)


@pytest.mark.asyncio
async def test_client_disconnect_keeps_analytics_branch_running():
    items = [b"x", b"y", b"z"]
    client, analytics = tee(_chunks(items))

    first = await client.__anext__()
    await client.aclose()

    assert first == b"x"
    assert await _collect(analytics) == items


@pytest.mark.asyncio
async def test_releasing_both_branches_stops_the_source():
    closed = asyncio.Event()

    async def endless():
        try:
            while True:
                await asyncio.sleep(0)
                yield b"tick"
        finally:
            closed.set()

    splitter = StreamTee(endless())
    client, analytics = splitter.split()
    await client.__anext__()
    await analytics.__anext__()
    await client.aclose()
    await analytics.aclose()

    await asyncio.wait_for(closed.wait(), timeout=1.0)
    await asyncio.sleep(0)
    assert splitter.finished


@pytest.mark.asyncio
async def test_abort_ends_both_branches_with_error():
    async def endless():
        while True:
            await asyncio.sleep(0.01)
            yield b"tick"

    splitter = StreamTee(endless())
    client, analytics = splitter.split()
    await client.__anext__()

    splitter.abort()

    with pytest.raises(StreamAborted):
        await _collect(client)
    with pytest.raises(StreamAborted):
        await _collect(analytics)


@pytest.mark.asyncio
async def test_abort_before_start():
    splitter = StreamTee(_chunks([b"never"]))
    client, analytics = splitter.split()
    splitter.abort()

    with pytest.raises(StreamAborted):
        await _collect(client)
    with pytest.raises(StreamAborted):
        await _collect(analytics)


@pytest.mark.asyncio
async def test_dropped_unread_branch_is_released():
    async def ticks(count):
        for i in range(count):
            await asyncio.sleep(0)
            yield f"tick{i}".encode()

    splitter = StreamTee(ticks(50))
    client, analytics = splitter.split()
    del client
    gc.collect()

    assert splitter.released == (True, False)
    seen = await _collect(analytics)
    assert len(seen) == 50
    assert splitter._queues[0].empty()


@pytest.mark.asyncio
async def test_split_only_once():
    splitter = StreamTee(_chunks([b"x"]))
    client, analytics = splitter.split()

    with pytest.raises(RuntimeError):
        splitter.split()

    assert await _collect(client) == [b"x"]
    assert await _collect(analytics) == [b"x"]
