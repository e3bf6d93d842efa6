"""
Unit tests for the EventBus, the AuditLogger event shape and the
AuditConsumer sink.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from src.core.event import EventBus, ListenerPriority
from src.core.infra.audit_logger import AuditLogger
from src.modules.audit.consumer import AuditConsumer
from src.modules.shared.exceptions import ValidationError
from tests.builders import CHALLENGER, make_record


@pytest.fixture
def bus() -> EventBus:
    return EventBus(critical_timeout_seconds=0.5, high_timeout_seconds=0.5)


@pytest.mark.unit
class TestEventBus:
    async def test_publish_returns_listener_results(self, bus):
        bus.subscribe("battle.finished", lambda payload: payload["battle_id"], identifier="a")

        results = await bus.publish("battle.finished", {"battle_id": 7})

        assert results == [7]

    async def test_wildcard_subscription(self, bus):
        """`prefix.*` patterns match every event under the prefix."""
        seen = []
        bus.subscribe("battle.*", lambda payload: seen.append(payload["n"]), identifier="w")

        await bus.publish("battle.finished", {"n": 1})
        await bus.publish("monster.level_up", {"n": 2})

        assert seen == [1]

    async def test_priority_order(self, bus):
        """CRITICAL runs before HIGH, which runs before NORMAL."""
        order = []
        bus.subscribe("e", lambda p: order.append("normal"), identifier="n")
        bus.subscribe("e", lambda p: order.append("high"), priority=ListenerPriority.HIGH, identifier="h")
        bus.subscribe("e", lambda p: order.append("crit"), priority=ListenerPriority.CRITICAL, identifier="c")

        await bus.publish("e", {})

        assert order == ["crit", "high", "normal"]

    async def test_listener_failure_is_isolated(self, bus):
        """A raising listener does not stop the others."""

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe("e", broken, identifier="broken")
        bus.subscribe("e", lambda p: "ok", identifier="ok")

        results = await bus.publish("e", {})

        assert results == [None, "ok"]
        assert bus.get_metrics_summary()["total_events_published"] == 1

    async def test_slow_critical_listener_times_out(self):
        bus = EventBus(critical_timeout_seconds=0.01)

        async def slow(payload):
            await asyncio.sleep(1)

        bus.subscribe("e", slow, priority=ListenerPriority.CRITICAL, identifier="slow")

        assert await bus.publish("e", {}) == [None]

    async def test_low_priority_runs_in_background(self, bus):
        """LOW listeners are not part of the result and finish on drain()."""
        seen = []

        async def sink(payload):
            seen.append(payload)

        bus.subscribe("e", sink, priority=ListenerPriority.LOW, identifier="low")

        assert await bus.publish("e", {"x": 1}) == []
        await bus.drain()
        assert seen == [{"x": 1}]

    async def test_once_listener(self, bus):
        calls = []
        bus.subscribe("e", lambda p: calls.append(p), identifier="once", once=True)

        await bus.publish("e", {})
        await bus.publish("e", {})

        assert len(calls) == 1
        assert bus.get_listener_count("e") == 0

    def test_duplicate_identifier_ignored(self, bus):
        bus.subscribe("e", lambda p: None, identifier="same")
        bus.subscribe("e", lambda p: None, identifier="same")

        assert bus.get_listener_count("e") == 1

    def test_callback_must_take_one_argument(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("e", lambda: None)

    def test_unsubscribe(self, bus):
        bus.subscribe("e", lambda p: None, identifier="x")

        assert bus.unsubscribe("e", "x") is True
        assert bus.unsubscribe("e", "x") is False


@pytest.mark.unit
class TestAuditLogger:
    async def test_battle_summary_and_turns(self, mocker):
        """A finished record yields one summary and one event per log entry."""
        publish = mocker.patch("src.core.infra.audit_logger.event_bus.publish", new=mocker.AsyncMock())
        record = make_record(opponent_hp=0, winner_monster_id=CHALLENGER)

        await AuditLogger.log_battle_summary(record)
        emitted = await AuditLogger.log_battle_turns(record)

        assert emitted == 0
        event_name, payload = publish.await_args.args
        assert event_name == AuditLogger.EVENT_NAME
        assert payload["record_type"] == AuditLogger.RECORD_BATTLE_FINISHED
        assert payload["details"]["winner_monster_id"] == CHALLENGER
        assert payload["details"]["opponent_final_hp"] == 0

    async def test_rejects_invalid_battle_id(self):
        with pytest.raises(ValidationError):
            await AuditLogger.log(battle_id=0, record_type="battle.turn", details={})


@pytest.mark.unit
class TestAuditConsumer:
    async def test_writes_events_to_sink(self, bus, mocker):
        """Events published on the audit channel reach the sink logger."""
        sink = mocker.MagicMock(spec=logging.Logger)
        consumer = AuditConsumer(bus, sink=sink)
        consumer.start()

        await bus.publish(
            AuditLogger.EVENT_NAME,
            {"battle_id": 7, "record_type": "battle.turn", "details": {"turn": 1}},
        )
        await bus.drain()

        sink.info.assert_called_once()
        extra = sink.info.call_args.kwargs["extra"]
        assert extra["battle_id"] == 7
        assert extra["details"] == {"turn": 1}
        assert consumer.get_status()["events_written"] == 1

    def test_stop_unsubscribes(self, bus):
        consumer = AuditConsumer(bus, sink=logging.getLogger("tests.audit"))
        consumer.start()
        consumer.start()

        assert bus.get_listener_count(AuditLogger.EVENT_NAME) == 1
        consumer.stop()
        assert bus.get_listener_count(AuditLogger.EVENT_NAME) == 0
