"""
Tests for the voice-profile event bus.

- Five identical queued events within the window reach each subscriber once
- Immediate events skip the queue
- A failing handler does not stop the others
- Payload types are enforced per event type
"""

import asyncio

import pytest

from backend.voiceprint.models.events import SampleCreated, SampleUpdated
from backend.voiceprint.services.events import EventBus, event_key


def _updated(sample_id="sample-1", integrity=80.0):
    return SampleUpdated(sample_id=sample_id, integrity=integrity, reason="manual_edit")


@pytest.mark.asyncio
async def test_identical_events_collapse_within_window():
    bus = EventBus(debounce_ms=20)
    first, second = [], []
    bus.subscribe("sample.updated", lambda t, p: first.append(p))
    bus.subscribe("sample.updated", lambda t, p: second.append(p))

    for _ in range(5):
        bus.emit("sample.updated", _updated())
    assert first == []

    await asyncio.sleep(0.1)

    assert len(first) == 1
    assert len(second) == 1
    assert bus.pending_count == 0


@pytest.mark.asyncio
async def test_distinct_events_all_delivered_in_order():
    bus = EventBus(debounce_ms=10)
    received = []
    bus.subscribe("sample.updated", lambda t, p: received.append(p.sample_id))

    for sample_id in ("a", "b", "a", "c"):
        bus.emit("sample.updated", _updated(sample_id))
    delivered = bus.flush()

    assert delivered == 3
    assert received == ["a", "b", "c"]


def test_immediate_delivery_is_synchronous():
    bus = EventBus()
    received = []
    bus.subscribe("sample.created", lambda t, p: received.append((t, p.sample_id)))

    bus.emit("sample.created", SampleCreated(sample_id="x", word_count=10, source="manual_upload"), immediate=True)

    assert received == [("sample.created", "x")]
    assert bus.pending_count == 0


def test_queue_waits_for_flush_without_loop():
    bus = EventBus()
    received = []
    bus.subscribe("sample.updated", lambda t, p: received.append(p))

    bus.emit("sample.updated", _updated())
    assert bus.pending_count == 1
    assert received == []

    assert bus.flush() == 1
    assert len(received) == 1


def test_failing_handler_is_isolated():
    bus = EventBus()
    received = []

    def broken(event_type, payload):
        raise RuntimeError("boom")

    bus.subscribe("sample.updated", broken)
    bus.subscribe("sample.updated", lambda t, p: received.append(p))

    bus.emit("sample.updated", _updated(), immediate=True)

    assert len(received) == 1


@pytest.mark.asyncio
async def test_coroutine_handlers_are_awaited_on_drain():
    bus = EventBus(debounce_ms=10)
    received = []

    async def handler(event_type, payload):
        await asyncio.sleep(0)
        received.append(payload.sample_id)

    async def broken(event_type, payload):
        raise RuntimeError("boom")

    bus.subscribe("sample.updated", broken)
    bus.subscribe("sample.updated", handler)
    bus.emit("sample.updated", _updated("z"))
    await bus.drain()

    assert received == ["z"]


def test_unsubscribe():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe("sample.updated", lambda t, p: received.append(p))
    assert bus.listener_counts() == {"sample.updated": 1}

    unsubscribe()
    bus.emit("sample.updated", _updated(), immediate=True)

    assert received == []
    assert bus.listener_counts() == {}


def test_wrong_payload_type_raises():
    bus = EventBus()
    with pytest.raises(TypeError):
        bus.emit("sample.updated", SampleCreated(sample_id="x", word_count=1, source="manual_upload"))


def test_unknown_event_type_raises():
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.subscribe("sample.deleted", lambda t, p: None)


def test_event_key_ignores_field_order():
    a = SampleUpdated(sample_id="s", integrity=1.0, voiceprint_id="v")
    b = SampleUpdated(voiceprint_id="v", integrity=1.0, sample_id="s")
    assert event_key("sample.updated", a) == event_key("sample.updated", b)


def test_clear_drops_listeners_and_queue():
    bus = EventBus()
    bus.subscribe("sample.updated", lambda t, p: None)
    bus.emit("sample.updated", _updated())
    bus.clear()
    assert bus.pending_count == 0
    assert bus.listener_counts() == {}
