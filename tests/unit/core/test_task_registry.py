"""TaskRegistry lifecycle tests."""

import asyncio

import pytest

from capture_control.core.task_registry import TaskRegistry


async def _forever():
    await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_register_replaces_and_cancels_existing():
    registry = TaskRegistry()
    first = asyncio.create_task(_forever())
    second = asyncio.create_task(_forever())

    registry.register("ticker", first)
    registry.register("ticker", second)
    await asyncio.sleep(0)

    assert first.cancelled()
    assert registry.is_running("ticker")
    await registry.cancel("ticker")
    assert second.cancelled()
    assert registry.get("ticker") is None


@pytest.mark.asyncio
async def test_keyed_tasks_drop_out_when_done():
    registry = TaskRegistry()
    task = asyncio.create_task(asyncio.sleep(0))
    registry.register_keyed("saves", "IMG_0001", task)
    assert registry.task_count() == 1

    await registry.wait_group("saves")
    await asyncio.sleep(0)

    assert registry.get_keyed("saves", "IMG_0001") is None
    assert registry.task_count() == 0


@pytest.mark.asyncio
async def test_cancel_all_covers_groups_and_singletons():
    registry = TaskRegistry()
    single = asyncio.create_task(_forever())
    grouped = asyncio.create_task(_forever())
    registry.register("focus-reset", single)
    registry.register_keyed("changes", "1", grouped)

    await registry.cancel_all()

    assert single.cancelled()
    assert grouped.cancelled()
    assert registry.task_count() == 0


@pytest.mark.asyncio
async def test_cancel_skips_current_task():
    registry = TaskRegistry()

    async def self_cancel():
        await registry.cancel("self")
        return "finished"

    task = asyncio.create_task(self_cancel())
    registry.register("self", task)
    assert await task == "finished"
