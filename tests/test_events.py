"""Tests for the wizard event bus."""

import asyncio

from src.wizard import Event, EventBus, EventType


class TestPublish:
    """Tests for delivery."""

    def test_delivers_synchronously(self):
        """Should have run every handler when publish returns."""
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.GATES_CHANGED, lambda event: seen.append(event.data))

        invoked = bus.publish(Event(type=EventType.GATES_CHANGED, source="wizard", data={"preview": True}))

        assert invoked == 1
        assert seen == [{"preview": True}]

    def test_subscribe_all(self):
        bus = EventBus()
        seen = []
        bus.subscribe_all(lambda event: seen.append(event.key))

        bus.emit(EventType.PREVIEW_STARTED, "preview")
        bus.emit(EventType.PREVIEW_COMPLETED, "preview")

        assert seen == ["preview.started", "preview.completed"]

    def test_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(
            EventType.EXECUTION_PROGRESS,
            lambda event: seen.append(event.data["progress"]),
            filter_fn=lambda event: event.data["progress"] is not None,
        )

        for value in (0, None, 50):
            bus.emit(EventType.EXECUTION_PROGRESS, "executor", {"progress": value})

        assert seen == [0, 50]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        subscription_id = bus.subscribe(EventType.TABLES_LOADED, seen.append)

        assert bus.unsubscribe(subscription_id)
        assert not bus.unsubscribe(subscription_id)
        bus.emit(EventType.TABLES_LOADED, "discovery")
        assert seen == []

    def test_failing_handler_goes_to_dead_letters(self):
        """Should keep delivering to other handlers when one raises."""
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("render failed")

        bus.subscribe(EventType.EXECUTION_FAILED, broken)
        bus.subscribe(EventType.EXECUTION_FAILED, seen.append)

        event = bus.emit(EventType.EXECUTION_FAILED, "executor", {"message": "Ingestion failed."})

        assert seen == [event]
        ((dead, reason),) = bus.get_dead_letters()
        assert dead is event
        assert "render failed" in reason

    def test_async_handler_scheduled_on_loop(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.key)

        bus.subscribe(EventType.DIRECTION_CHANGED, handler)

        async def scenario():
            bus.emit(EventType.DIRECTION_CHANGED, "wizard")
            await asyncio.sleep(0)

        asyncio.run(scenario())
        assert seen == ["session.direction_changed"]

    def test_failing_async_handler_goes_to_dead_letters(self):
        """Should record a coroutine handler's exception once its task finishes."""
        bus = EventBus()

        async def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.EXECUTION_FAILED, broken)

        async def scenario():
            event = bus.emit(EventType.EXECUTION_FAILED, "executor")
            await asyncio.sleep(0.01)
            return event

        event = asyncio.run(scenario())
        ((dead, reason),) = bus.get_dead_letters()
        assert dead is event
        assert "boom" in reason
        assert not bus._tasks


class TestHistory:
    """Tests for event history."""

    def test_filtered_history(self):
        bus = EventBus()
        bus.emit(EventType.PREVIEW_STARTED, "preview")
        bus.emit(EventType.PREVIEW_FAILED, "preview")
        bus.emit(EventType.PREVIEW_STARTED, "preview")

        assert len(bus.get_history(EventType.PREVIEW_STARTED)) == 2
        assert len(bus.get_history()) == 3

    def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for value in range(5):
            bus.emit(EventType.EXECUTION_PROGRESS, "executor", {"progress": value})

        assert [event.data["progress"] for event in bus.get_history()] == [2, 3, 4]

    def test_to_dict(self):
        event = Event(type=EventType.TABLES_LOADED, source="discovery", data={"tables": ["a"]})
        data = event.to_dict()
        assert data["type"] == "discovery.tables_loaded"
        assert data["data"] == {"tables": ["a"]}
