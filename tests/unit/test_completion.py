"""
Unit tests for the battle completion pipeline.

Ledger writes, audit publishing and reward rolls are mocked; the tests
check ordering, exactly-once finalization and failure isolation.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from sqlalchemy.exc import OperationalError

from src.core.database.service import DatabaseService
from src.modules.battle.completion import BattleCompletionPipeline
from src.modules.battle.record import GrantedItem
from src.modules.battle.win_detector import BattleVerdict
from src.modules.notification.service import NotificationType
from tests.builders import CHALLENGER, OPPONENT, make_record

VERDICT = BattleVerdict(winner_monster_id=CHALLENGER, loser_monster_id=OPPONENT)


async def roll_berry(session, **kwargs):
    kwargs["grant"].food = GrantedItem(id=3, name="Berry", quantity=2)
    return kwargs["grant"]


@pytest.fixture
def session(mocker):
    session = mocker.MagicMock(name="session")
    result = mocker.MagicMock()
    result.scalars.return_value = ["user-1", "user-2"]
    session.execute = mocker.AsyncMock(return_value=result)

    @asynccontextmanager
    async def transaction():
        yield session

    mocker.patch.object(DatabaseService, "get_transaction", side_effect=transaction)
    return session


@pytest.fixture
def ledger(mocker):
    finalize = mocker.patch("src.modules.battle.ledger.finalize_battle", new=mocker.AsyncMock(return_value=True))
    drain = mocker.patch("src.modules.battle.ledger.drain_satiety", new=mocker.AsyncMock())
    debit = mocker.patch("src.modules.battle.ledger.debit_energy", new=mocker.AsyncMock())
    return mocker.MagicMock(finalize=finalize, drain=drain, debit=debit)


@pytest.fixture
def audit(mocker):
    return mocker.patch("src.modules.battle.completion.AuditLogger", new=mocker.MagicMock(
        log_battle_summary=mocker.AsyncMock(),
        log_battle_turns=mocker.AsyncMock(return_value=0),
    ))


@pytest.fixture
def parts(mocker, mock_rules_service, mock_config_manager, mock_event_bus, test_logger, session, ledger, audit):
    experience = mocker.MagicMock()
    experience.award = mocker.AsyncMock(return_value=[])
    notifications = mocker.MagicMock()
    rewards = mocker.MagicMock()
    rewards.grant = mocker.AsyncMock(side_effect=lambda session, **kwargs: kwargs["grant"])

    pipeline = BattleCompletionPipeline(
        mock_rules_service,
        experience,
        notifications,
        rewards,
        mock_config_manager,
        mock_event_bus,
        test_logger,
    )
    return mocker.MagicMock(
        pipeline=pipeline,
        experience=experience,
        notifications=notifications,
        rewards=rewards,
        ledger=ledger,
        audit=audit,
        session=session,
        events=mock_event_bus,
    )


@pytest.mark.unit
class TestComplete:
    async def test_full_pipeline(self, parts, rules):
        """Finalize, award, audit, settle, notify and publish, in that order of effect."""
        record = make_record(opponent_hp=0, chat_id="-1001")

        finalized = await parts.pipeline.complete(record, VERDICT)
        await parts.pipeline.drain()

        assert finalized is True
        assert record.winner_monster_id == CHALLENGER

        parts.ledger.finalize.assert_awaited_once()
        _, battle_id, winner, log = parts.ledger.finalize.await_args.args
        assert (battle_id, winner, log) == (7, CHALLENGER, [])

        parts.experience.award.assert_awaited_once_with(VERDICT, 7)
        parts.audit.log_battle_summary.assert_awaited_once_with(record)
        parts.audit.log_battle_turns.assert_awaited_once_with(record)

        parts.ledger.drain.assert_awaited_once_with(parts.session, (CHALLENGER, OPPONENT), rules.battle.satiety_cost)
        kwargs = parts.rewards.grant.await_args.kwargs
        assert kwargs["user_id"] == "user-1"
        assert kwargs["level"] == record.challenger_monster_level
        parts.ledger.debit.assert_awaited_once_with(
            parts.session, ("user-1", "user-2"), rules.battle.energy_cost, rules.battle.energy_max
        )

        assert record.challenger_reward.exp == rules.reward.battle_exp.win_exp
        assert record.opponent_reward.exp == rules.reward.battle_exp.lose_exp

        parts.notifications.notify_background.assert_called_once_with(
            NotificationType.BATTLE_RESULT, {"battle_id": 7, "chat_id": "-1001"}
        )
        event_name, payload = parts.events.publish.await_args.args
        assert event_name == BattleCompletionPipeline.EVENT_BATTLE_FINISHED
        assert payload["winner_monster_id"] == CHALLENGER

    async def test_already_finalized_has_no_side_effects(self, parts):
        """A second finalization attempt stops after the guarded update."""
        parts.ledger.finalize.return_value = False
        record = make_record(opponent_hp=0, chat_id="-1001")

        finalized = await parts.pipeline.complete(record, VERDICT)
        await parts.pipeline.drain()

        assert finalized is False
        parts.experience.award.assert_not_awaited()
        parts.rewards.grant.assert_not_awaited()
        parts.ledger.debit.assert_not_awaited()
        parts.notifications.notify_background.assert_not_called()
        parts.events.publish.assert_not_awaited()

    async def test_finalize_failure_propagates(self, parts):
        """Without the FINISHED write the turn must not be saved."""
        parts.ledger.finalize.side_effect = OperationalError("update", {}, Exception("db down"))

        with pytest.raises(OperationalError):
            await parts.pipeline.complete(make_record(opponent_hp=0), VERDICT)

    async def test_missing_user_skips_rewards_and_energy(self, parts):
        result = parts.session.execute.return_value
        result.scalars.return_value = ["user-2"]
        record = make_record(opponent_hp=0)

        assert await parts.pipeline.complete(record, VERDICT) is True

        parts.ledger.drain.assert_awaited_once()
        parts.rewards.grant.assert_not_awaited()
        parts.ledger.debit.assert_not_awaited()
        assert record.challenger_reward.exp is not None

    async def test_satiety_failure_is_logged_and_settlement_continues(self, parts, mocker):
        """A failing satiety drain never undoes the finished battle."""
        parts.ledger.drain.side_effect = OperationalError("update", {}, Exception("deadlock"))
        log_error = mocker.spy(parts.pipeline, "log_error")
        record = make_record(opponent_hp=0, chat_id="-1001")

        assert await parts.pipeline.complete(record, VERDICT) is True

        assert log_error.call_args.args[0] == "drain_satiety"
        parts.ledger.debit.assert_awaited_once()
        parts.rewards.grant.assert_awaited_once()
        parts.notifications.notify_background.assert_called_once()

    async def test_energy_debited_before_rewards_roll(self, parts):
        order = []
        parts.ledger.debit.side_effect = lambda *args: order.append("debit")
        parts.rewards.grant.side_effect = lambda session, **kwargs: order.append("grant")

        await parts.pipeline.complete(make_record(opponent_hp=0), VERDICT)

        assert order == ["debit", "grant"]

    async def test_energy_failure_grants_nothing(self, parts, mocker):
        """The debit fails first, so no items are rolled; satiety was already charged."""
        parts.ledger.debit.side_effect = OperationalError("update", {}, Exception("deadlock"))
        log_error = mocker.spy(parts.pipeline, "log_error")
        record = make_record(opponent_hp=0)

        assert await parts.pipeline.complete(record, VERDICT) is True

        assert log_error.call_args.args[0] == "settle_battle"
        parts.ledger.drain.assert_awaited_once()
        parts.rewards.grant.assert_not_awaited()
        assert record.challenger_reward.food is None
        assert record.challenger_reward.exp == 30

    async def test_rolled_items_dropped_when_settlement_rolls_back(self, parts, session, mocker):
        """Items rolled inside a transaction that fails to commit are not reported."""
        calls = {"count": 0}

        @asynccontextmanager
        async def transaction():
            calls["count"] += 1
            yield session
            if calls["count"] == 3:
                raise OperationalError("commit", {}, Exception("connection reset"))

        mocker.patch.object(DatabaseService, "get_transaction", side_effect=transaction)
        parts.rewards.grant.side_effect = roll_berry
        record = make_record(opponent_hp=0)

        assert await parts.pipeline.complete(record, VERDICT) is True

        parts.rewards.grant.assert_awaited_once()
        assert record.challenger_reward.food is None
        assert record.challenger_reward.exp == 30

    async def test_committed_items_reach_the_record(self, parts):
        parts.rewards.grant.side_effect = roll_berry
        record = make_record(opponent_hp=0)

        await parts.pipeline.complete(record, VERDICT)

        assert record.challenger_reward.food == GrantedItem(id=3, name="Berry", quantity=2)
        assert record.opponent_reward.food is None

    async def test_no_chat_no_notification(self, parts):
        await parts.pipeline.complete(make_record(opponent_hp=0), VERDICT)

        parts.notifications.notify_background.assert_not_called()

    async def test_failed_experience_task_is_logged(self, parts, mocker):
        parts.experience.award.side_effect = RuntimeError("boom")
        error = mocker.spy(parts.pipeline.log, "error")

        await parts.pipeline.complete(make_record(opponent_hp=0), VERDICT)
        await parts.pipeline.drain()

        assert any(call.args[0] == "Background completion task failed" for call in error.call_args_list)
