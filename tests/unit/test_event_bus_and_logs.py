"""Unit tests for the EventBus and the bounded server LogBuffer."""

from __future__ import annotations

import threading

import pytest
from structlog.testing import capture_logs

from src.models.events import EventName
from src.pipeline.event_bus import EventBus
from src.services.server.log_buffer import LogBuffer

# ======================================================================
# EventBus
# ======================================================================


class TestEventBus:
    @pytest.mark.asyncio
    async def test_specific_listener_only_gets_its_event(self) -> None:
        bus = EventBus()
        received: list[tuple[str, dict]] = []
        bus.register_listener(lambda n, p: received.append((n, p)), EventName.LLAMA_LOG)

        await bus.publish(EventName.LLAMA_LOG, {"line": "a"})
        await bus.publish(EventName.SERVER_STATUS, {"status": "running"})

        assert received == [("llama-log", {"line": "a"})]

    @pytest.mark.asyncio
    async def test_wildcard_listener_gets_everything(self) -> None:
        bus = EventBus()
        names: list[str] = []
        bus.register_listener(lambda n, p: names.append(n))

        await bus.publish(EventName.LLAMA_LOG, {})
        await bus.publish("custom-event", {})

        assert names == ["llama-log", "custom-event"]

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self) -> None:
        bus = EventBus()
        seen: list[dict] = []

        async def listener(name: str, payload: dict) -> None:
            seen.append(payload)

        bus.register_listener(listener, EventName.MODEL_INSTALLED)
        await bus.publish(EventName.MODEL_INSTALLED, {"key": "m"})
        assert seen == [{"key": "m"}]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        def broken(name: str, payload: dict) -> None:
            raise RuntimeError("boom")

        bus.register_listener(broken)
        bus.register_listener(lambda n, p: seen.append(n))
        await bus.publish(EventName.SERVER_STATUS, {"status": "stopped"})
        assert seen == ["llama-server-status"]

    @pytest.mark.asyncio
    async def test_unregister(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        def listener(name: str, payload: dict) -> None:
            seen.append(name)

        bus.register_listener(listener)
        bus.unregister_listener(listener)
        await bus.publish(EventName.LLAMA_LOG, {})
        assert seen == []

    @pytest.mark.asyncio
    async def test_log_entries_carry_event_name(self) -> None:
        with capture_logs() as logs:
            bus = EventBus()

            def broken(name: str, payload: dict) -> None:
                raise RuntimeError("boom")

            bus.register_listener(broken, EventName.SERVER_STATUS)
            await bus.publish(EventName.SERVER_STATUS, {"status": "running"})
            bus.unregister_listener(broken, EventName.SERVER_STATUS)

        errors = [entry for entry in logs if entry["event"] == "listener_callback_error"]
        assert len(errors) == 1
        assert errors[0]["event_name"] == "llama-server-status"
        assert errors[0]["error"] == "boom"
        assert bus.last(EventName.SERVER_STATUS) == {"status": "running"}

    @pytest.mark.asyncio
    async def test_duplicate_registration_is_ignored(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        def listener(name: str, payload: dict) -> None:
            seen.append(name)

        bus.register_listener(listener)
        bus.register_listener(listener)
        await bus.publish(EventName.LLAMA_LOG, {})
        assert seen == ["llama-log"]

    @pytest.mark.asyncio
    async def test_last_payload_kept(self) -> None:
        bus = EventBus()
        assert bus.last(EventName.SERVER_STATUS) is None
        await bus.publish(EventName.SERVER_STATUS, {"status": "starting"})
        await bus.publish(EventName.SERVER_STATUS, {"status": "running"})
        assert bus.last(EventName.SERVER_STATUS) == {"status": "running"}
        assert bus.last("llama-server-status") == {"status": "running"}


# ======================================================================
# LogBuffer
# ======================================================================


class TestLogBuffer:
    def test_keeps_insertion_order(self) -> None:
        buffer = LogBuffer(capacity=10)
        for i in range(3):
            buffer.append(f"line {i}")
        assert buffer.snapshot() == ["line 0", "line 1", "line 2"]

    def test_evicts_oldest_first(self) -> None:
        buffer = LogBuffer(capacity=1000)
        for i in range(1001):
            buffer.append(str(i))
        lines = buffer.snapshot()
        assert len(lines) == 1000
        assert lines[0] == "1"
        assert lines[-1] == "1000"

    def test_clear(self) -> None:
        buffer = LogBuffer(capacity=5)
        buffer.append("x")
        buffer.clear()
        assert buffer.snapshot() == []
        assert len(buffer) == 0

    def test_snapshot_is_a_copy(self) -> None:
        buffer = LogBuffer(capacity=5)
        buffer.append("x")
        snap = buffer.snapshot()
        snap.append("y")
        assert buffer.snapshot() == ["x"]

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            LogBuffer(capacity=0)

    def test_concurrent_appends_keep_per_thread_order(self) -> None:
        buffer = LogBuffer(capacity=10_000)

        def writer(label: str) -> None:
            for i in range(500):
                buffer.append(f"{label}:{i}")

        threads = [threading.Thread(target=writer, args=(label,)) for label in ("out", "err")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = buffer.snapshot()
        assert len(lines) == 1000
        for label in ("out", "err"):
            own = [int(line.split(":")[1]) for line in lines if line.startswith(label)]
            assert own == list(range(500))
