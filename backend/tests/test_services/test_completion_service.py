"""Tests for CompletionService.

Covers the preconditions, the settlement outcome of the worked examples,
the zero-fill policy, and atomicity under injected failures and races.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from chipledger.config import LedgerPolicy
from chipledger.dal.games_dal import GameDAL
from chipledger.dal.players_dal import PlayerDAL
from chipledger.errors import (
    CashoutBeforeMinimumTime,
    ConcurrentModification,
    DuplicateCashout,
    EmptyParticipantSet,
    GameAlreadyCompleted,
    MissingCashouts,
    NotFound,
    ValidationError,
)
from chipledger.models.common import BalanceStatus, GameStatus
from chipledger.models.ledger import CashoutEntry
from chipledger.services import completion_service as completion_module
from chipledger.services.completion_service import CompletionService
from chipledger.services.game_service import GameService
from chipledger.services.ledger_service import LedgerService


class RacingGameDAL(GameDAL):
    """GameDAL that runs ``race`` right after the next snapshot read."""

    race = None

    async def get_by_id(self, game_id):
        game = await super().get_by_id(game_id)
        if self.race is not None:
            race, self.race = self.race, None
            await race()
        return game


@pytest_asyncio.fixture
async def game_dal(test_db):
    return RacingGameDAL(test_db)


@pytest_asyncio.fixture
async def game_service(game_dal, test_db):
    return GameService(game_dal, PlayerDAL(test_db))


@pytest_asyncio.fixture
async def ledger(game_dal, test_db):
    return LedgerService(game_dal, PlayerDAL(test_db))


@pytest_asyncio.fixture
async def completion(game_dal):
    return CompletionService(game_dal)


@pytest_asyncio.fixture
async def table(game_service, ledger, add_player, past_window):
    """A game with three participants: A and B bought 100 each, C bought nothing."""
    start, min_cashout = past_window
    game = await game_service.create_game(start, min_cashout)
    a = await ledger.add_participant(game.id, await add_player("A"))
    b = await ledger.add_participant(game.id, await add_player("B"))
    c = await ledger.add_participant(game.id, await add_player("C"))
    await ledger.record_buy_in(a.id, 100)
    await ledger.record_buy_in(b.id, 100)
    return game, a, b, c


class TestCompleteGame:

    @pytest.mark.asyncio
    async def test_balanced_game_settles(self, completion, table):
        game, a, b, c = table
        result = await completion.complete_game(
            game.id,
            [CashoutEntry(a.id, 50), CashoutEntry(b.id, 30), CashoutEntry(c.id, 120)],
        )
        assert result.game.status == GameStatus.COMPLETED
        assert result.game.end_time is not None
        assert result.game.end_time > result.game.start_time
        assert result.balance.status == BalanceStatus.GREEN
        assert [(s.from_player_id, s.to_player_id, s.amount) for s in result.settlements] == [
            (b.player_id, c.player_id, 70),
            (a.player_id, c.player_id, 50),
        ]
        assert len(result.game.cashouts) == 3
        assert len(result.game.settlements) == 2

    @pytest.mark.asyncio
    async def test_earlier_cashouts_count(self, completion, ledger, table):
        game, a, b, c = table
        await ledger.record_cashout(a.id, 50)
        result = await completion.complete_game(
            game.id, [CashoutEntry(b.id, 30), CashoutEntry(c.id, 120)]
        )
        assert result.balance.total_cashouts == 200
        assert len(result.game.cashouts) == 3

    @pytest.mark.asyncio
    async def test_omitted_participants_get_zero_cashout(self, completion, table):
        game, a, b, c = table
        result = await completion.complete_game(game.id, [CashoutEntry(c.id, 150)])
        assert result.game.cashout_for(a.id).amount == 0
        assert result.game.cashout_for(b.id).amount == 0
        assert result.balance.status == BalanceStatus.YELLOW
        assert sum(s.amount for s in result.settlements) == 150

    @pytest.mark.asyncio
    async def test_require_complete_cashouts(self, game_dal, table):
        game, a, b, c = table
        strict = CompletionService(
            game_dal, LedgerPolicy(require_complete_cashouts=True)
        )
        with pytest.raises(MissingCashouts):
            await strict.complete_game(game.id, [CashoutEntry(c.id, 150)])

    @pytest.mark.asyncio
    async def test_red_discrepancy_still_completes(self, completion, table, caplog):
        game, a, b, c = table
        with caplog.at_level("WARNING", logger="chipledger.services.completion"):
            result = await completion.complete_game(
                game.id,
                [CashoutEntry(a.id, 100), CashoutEntry(b.id, 100), CashoutEntry(c.id, 20)],
            )
        assert result.balance.status == BalanceStatus.RED
        assert result.settlements == []
        assert "more chips cashed out" in caplog.text

    @pytest.mark.asyncio
    async def test_discrepancy_notes_are_stored(self, completion, table):
        game, a, b, c = table
        result = await completion.complete_game(
            game.id, [CashoutEntry(c.id, 180)], notes="Two chips rolled under the sofa"
        )
        assert result.game.discrepancy_notes == "Two chips rolled under the sofa"


class TestPreconditions:

    @pytest.mark.asyncio
    async def test_unknown_game(self, completion):
        with pytest.raises(NotFound):
            await completion.complete_game("665f1c2e8b3c4a0012345678", [])

    @pytest.mark.asyncio
    async def test_already_completed(self, completion, table):
        game, *_ = table
        await completion.complete_game(game.id, [])
        with pytest.raises(GameAlreadyCompleted):
            await completion.complete_game(game.id, [])

    @pytest.mark.asyncio
    async def test_before_minimum_cashout_time(self, completion, game_service, ledger, add_player):
        now = datetime.now(timezone.utc)
        game = await game_service.create_game(now - timedelta(hours=1), now + timedelta(hours=1))
        await ledger.add_participant(game.id, await add_player("A"))
        with pytest.raises(CashoutBeforeMinimumTime):
            await completion.complete_game(game.id, [])

    @pytest.mark.asyncio
    async def test_no_participants(self, completion, game_service, past_window):
        start, min_cashout = past_window
        game = await game_service.create_game(start, min_cashout)
        with pytest.raises(EmptyParticipantSet):
            await completion.complete_game(game.id, [])

    @pytest.mark.asyncio
    async def test_foreign_participant(self, completion, table):
        game, *_ = table
        with pytest.raises(NotFound) as exc:
            await completion.complete_game(game.id, [CashoutEntry("stranger", 10)])
        assert exc.value.kind == "ParticipantNotFound"

    @pytest.mark.asyncio
    async def test_repeated_participant(self, completion, table):
        game, a, *_ = table
        with pytest.raises(ValidationError):
            await completion.complete_game(
                game.id, [CashoutEntry(a.id, 10), CashoutEntry(a.id, 10)]
            )

    @pytest.mark.asyncio
    async def test_already_cashed_out(self, completion, ledger, table):
        game, a, *_ = table
        await ledger.record_cashout(a.id, 10)
        with pytest.raises(DuplicateCashout):
            await completion.complete_game(game.id, [CashoutEntry(a.id, 20)])

    @pytest.mark.asyncio
    async def test_notes_too_long(self, completion, table):
        game, *_ = table
        with pytest.raises(ValidationError):
            await completion.complete_game(game.id, [], notes="x" * 501)

    @pytest.mark.asyncio
    async def test_failed_precondition_writes_nothing(self, completion, game_service, table):
        game, a, *_ = table
        with pytest.raises(NotFound):
            await completion.complete_game(
                game.id, [CashoutEntry(a.id, 10), CashoutEntry("stranger", 10)]
            )
        stored = await game_service.get_game(game.id)
        assert stored.status == GameStatus.IN_PROGRESS
        assert stored.cashouts == []


class TestAtomicity:

    @pytest.mark.asyncio
    async def test_failure_while_settling_leaves_game_untouched(
        self, completion, game_service, table, monkeypatch
    ):
        game, a, b, c = table

        def explode(balances):
            raise RuntimeError("settlement engine crashed")

        monkeypatch.setattr(completion_module, "compute_settlements", explode)

        with pytest.raises(RuntimeError):
            await completion.complete_game(
                game.id,
                [CashoutEntry(a.id, 50), CashoutEntry(b.id, 30), CashoutEntry(c.id, 120)],
            )

        stored = await game_service.get_game(game.id)
        assert stored.status == GameStatus.IN_PROGRESS
        assert stored.end_time is None
        assert stored.cashouts == []
        assert stored.settlements == []

    @pytest.mark.asyncio
    async def test_storage_failure_on_commit_leaves_game_untouched(
        self, completion, game_service, game_dal, table, monkeypatch
    ):
        from pymongo.errors import AutoReconnect

        game, a, b, c = table

        class FailingWrites:
            def __init__(self, collection):
                self._collection = collection

            def __getattr__(self, name):
                return getattr(self._collection, name)

            async def update_one(self, *args, **kwargs):
                raise AutoReconnect("connection reset")

        monkeypatch.setattr(game_dal, "_collection", FailingWrites(game_dal._collection))
        with pytest.raises(AutoReconnect):
            await completion.complete_game(game.id, [CashoutEntry(c.id, 120)])
        monkeypatch.undo()

        stored = await game_service.get_game(game.id)
        assert stored.status == GameStatus.IN_PROGRESS
        assert stored.cashouts == []

    @pytest.mark.asyncio
    async def test_buy_in_racing_completion_wins(
        self, completion, game_service, ledger, game_dal, table
    ):
        game, a, b, c = table

        async def late_buy_in():
            await ledger.record_buy_in(a.id, 25)

        game_dal.race = late_buy_in
        with pytest.raises(ConcurrentModification):
            await completion.complete_game(game.id, [CashoutEntry(c.id, 120)])

        stored = await game_service.get_game(game.id)
        assert stored.status == GameStatus.IN_PROGRESS
        assert stored.cashouts == []
        assert sum(bi.amount for bi in stored.buy_ins) == 225

    @pytest.mark.asyncio
    async def test_concurrent_completion_loses(
        self, completion, game_dal, table, test_db
    ):
        game, a, b, c = table
        other = CompletionService(GameDAL(test_db))

        async def other_completes():
            await other.complete_game(game.id, [])

        game_dal.race = other_completes
        with pytest.raises(GameAlreadyCompleted):
            await completion.complete_game(game.id, [CashoutEntry(c.id, 120)])

    @pytest.mark.asyncio
    async def test_result_does_not_depend_on_a_read_after_commit(
        self, game_service, table, test_db
    ):
        from pymongo.errors import AutoReconnect

        game, a, b, c = table

        class ReadsFailAfterSnapshot(GameDAL):
            reads = 0

            async def get_by_id(self, game_id):
                self.reads += 1
                if self.reads > 1:
                    raise AutoReconnect("connection reset")
                return await super().get_by_id(game_id)

        before = await game_service.get_game(game.id)
        completion = CompletionService(ReadsFailAfterSnapshot(test_db))
        result = await completion.complete_game(
            game.id,
            [CashoutEntry(a.id, 50), CashoutEntry(b.id, 30), CashoutEntry(c.id, 120)],
            notes="all square",
        )

        assert result.game.status == GameStatus.COMPLETED
        assert result.game.end_time is not None
        assert result.game.discrepancy_notes == "all square"
        assert result.game.ledger_version == before.ledger_version + 1
        assert result.game.settlements == result.settlements
        assert sum(s.amount for s in result.settlements) == 120

        stored = await game_service.get_game(game.id)
        assert stored.status == GameStatus.COMPLETED
        assert stored.ledger_version == result.game.ledger_version
        assert {c.participant_id: c.amount for c in stored.cashouts} == {
            c.participant_id: c.amount for c in result.game.cashouts
        }
        assert [s.id for s in stored.settlements] == [s.id for s in result.settlements]
