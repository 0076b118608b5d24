import asyncio
import logging

import pytest

from paraphraser.features.analytics.tasks import BackgroundTaskRegistry


@pytest.mark.asyncio
async def test_wait_idle_waits_for_spawned_work():
    registry = BackgroundTaskRegistry()
    done = []

    async def work():
        await asyncio.sleep(0.01)
        done.append(True)

    registry.spawn(work(), name="work")
    assert registry.pending == 1

    assert await registry.wait_idle(timeout=1.0) is True
    assert done == [True]
    assert registry.pending == 0


@pytest.mark.asyncio
async def test_wait_idle_times_out_and_cancel_all():
    registry = BackgroundTaskRegistry()
    task = registry.spawn(asyncio.sleep(10), name="slow")

    assert await registry.wait_idle(timeout=0.01) is False

    registry.cancel_all()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)
    assert registry.pending == 0


@pytest.mark.asyncio
async def test_failed_task_is_logged(caplog):
    registry = BackgroundTaskRegistry()

    async def broken():
        raise RuntimeError("lost")

    with caplog.at_level(logging.WARNING, logger="paraphraser"):
        registry.spawn(broken(), name="broken")
        await registry.wait_idle(timeout=1.0)

    assert "Background task broken failed" in caplog.text
