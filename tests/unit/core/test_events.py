"""EventBus fan-out behaviour."""

import pytest

from capture_control.core.events import EventBus, Topic


@pytest.mark.asyncio
async def test_topic_filter_and_history():
    bus = EventBus()
    all_events, alerts = [], []
    bus.add_observer(all_events.append)
    bus.add_observer(alerts.append, topics=[Topic.ALERT])

    await bus.publish(Topic.BUSY)
    await bus.publish(Topic.ALERT, "nospace", source="record")

    assert [e.topic for e in all_events] == [Topic.BUSY, Topic.ALERT]
    assert [e.payload for e in alerts] == ["nospace"]
    assert bus.last(Topic.ALERT).source == "record"
    assert bus.last(Topic.READY) is None


@pytest.mark.asyncio
async def test_async_observers_are_awaited():
    bus = EventBus()
    seen = []

    async def observer(event):
        seen.append(event.topic)

    bus.add_observer(observer)
    await bus.publish(Topic.SHUTTER)
    assert seen == [Topic.SHUTTER]


@pytest.mark.asyncio
async def test_failing_observer_does_not_block_others(caplog):
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("observer bug")

    bus.add_observer(broken)
    bus.add_observer(seen.append)

    await bus.publish(Topic.READY)

    assert len(seen) == 1
    assert "observer bug" in caplog.text or "failed on ready" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe_and_duplicate_registration():
    bus = EventBus()
    seen = []
    remove = bus.add_observer(seen.append)
    bus.add_observer(seen.append)

    await bus.publish(Topic.BUSY)
    remove()
    await bus.publish(Topic.READY)

    assert [e.topic for e in seen] == [Topic.BUSY]
