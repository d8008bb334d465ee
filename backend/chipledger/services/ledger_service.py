"""Participant ledger service.

Records who joined a game, what they bought in for, and what they left
with. Every write goes through a guarded DAL update, so uniqueness and
lifecycle rules hold even when two requests race. When a guarded write
misses, the game is re-read to tell the caller which rule stopped it.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from chipledger.config import LedgerPolicy
from chipledger.dal.games_dal import GameDAL
from chipledger.dal.players_dal import PlayerRegistry
from chipledger.errors import (
    BuyInBeforeGameStart,
    ConcurrentModification,
    DuplicateCashout,
    DuplicateParticipant,
    GameAlreadyCompleted,
    ValidationError,
    buy_in_not_found,
    game_not_found,
    participant_not_found,
    player_not_found,
)
from chipledger.models.common import (
    parse_buy_in_amount,
    parse_cashout_amount,
    parse_timestamp,
    utcnow,
)
from chipledger.models.game import BuyIn, Cashout, Game, Participant
from chipledger.models.ledger import CashoutEntry
from chipledger.services.balance import reconcile

logger = logging.getLogger("chipledger.services.ledger")


def _ensure_in_progress(game: Game) -> None:
    if game.is_completed:
        raise GameAlreadyCompleted(f"Game {game.id} is already completed")


class LedgerService:
    """Service layer for participants, buy-ins and cashouts."""

    def __init__(
        self,
        game_dal: GameDAL,
        player_registry: PlayerRegistry,
        policy: LedgerPolicy = LedgerPolicy(),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._game_dal = game_dal
        self._players = player_registry
        self._policy = policy
        self._clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _game(self, game_id: str) -> Game:
        game = await self._game_dal.get_by_id(game_id)
        if game is None:
            raise game_not_found(game_id)
        return game

    async def _game_of_participant(self, participant_id: str) -> Game:
        game = await self._game_dal.get_by_participant(participant_id)
        if game is None:
            raise participant_not_found(participant_id)
        return game

    async def _game_of_buy_in(self, buy_in_id: str) -> Game:
        game = await self._game_dal.get_by_buy_in(buy_in_id)
        if game is None:
            raise buy_in_not_found(buy_in_id)
        return game

    def _log_totals(self, game: Game) -> None:
        balance = reconcile(game)
        logger.info(
            "Game %s totals: buy-ins=%d cashouts=%d status=%s",
            game.id, balance.total_buy_ins, balance.total_cashouts, balance.status,
        )

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    async def add_participant(self, game_id: str, player_id: str) -> Participant:
        """Add a registered player to an in-progress game.

        Raises:
            NotFound: Game not found, or player missing or soft-deleted.
            GameAlreadyCompleted: The game is finalized.
            DuplicateParticipant: The player is already in the game.
        """
        game = await self._game(game_id)

        player = await self._players.find_player(player_id)
        if player is None or not player.is_available:
            raise player_not_found(player_id)

        _ensure_in_progress(game)
        if game.participant_for_player(player_id) is not None:
            raise DuplicateParticipant(
                f"Player {player_id} is already in game {game_id}"
            )

        participant = Participant(
            game_id=game_id, player_id=player_id, joined_at=self._clock()
        )
        if not await self._game_dal.add_participant(game_id, participant):
            current = await self._game(game_id)
            _ensure_in_progress(current)
            raise DuplicateParticipant(
                f"Player {player_id} is already in game {game_id}"
            )
        return participant

    # ------------------------------------------------------------------
    # Buy-ins
    # ------------------------------------------------------------------

    async def record_buy_in(
        self,
        participant_id: str,
        amount: Any,
        timestamp: Optional[datetime | str] = None,
    ) -> BuyIn:
        """Record chips bought by a participant.

        The first buy-in of a participant is the initial one; every later
        one is flagged as a re-buy.

        Args:
            participant_id: The participant buying in.
            amount: Whole number of chips in [1, 1,000,000].
            timestamp: When the chips were bought; defaults to now. Must not
                precede the game start nor lie beyond the clock-skew
                tolerance in the future.

        Raises:
            ValidationError: Bad amount, malformed or future timestamp.
            NotFound: Participant not found.
            GameAlreadyCompleted: The game is finalized.
            BuyInBeforeGameStart: timestamp precedes the game start.
        """
        amount = parse_buy_in_amount(amount)
        now = self._clock()
        when = now if timestamp is None else parse_timestamp(timestamp)
        if when > now + self._policy.clock_skew:
            raise ValidationError(
                f"Buy-in timestamp {when.isoformat()} is in the future",
                kind="TimestampInFuture",
            )

        game = await self._game_of_participant(participant_id)
        _ensure_in_progress(game)
        if when < game.start_time:
            raise BuyInBeforeGameStart(
                "Buy-in timestamp cannot be before the game start time"
            )

        buy_in = BuyIn(
            participant_id=participant_id,
            amount=amount,
            timestamp=when,
            is_rebuy=any(
                b.timestamp <= when for b in game.buy_ins_for(participant_id)
            ),
            created_at=now,
        )
        if not await self._game_dal.add_buy_in(str(game.id), buy_in):
            await self._raise_for_missed_write(str(game.id))
        return buy_in

    async def update_buy_in(self, buy_in_id: str, amount: Any) -> BuyIn:
        """Correct the amount of a buy-in while the game is in progress.

        Raises:
            ValidationError: Bad amount.
            NotFound: Buy-in not found.
            GameAlreadyCompleted: The game is finalized.
        """
        amount = parse_buy_in_amount(amount)
        game = await self._game_of_buy_in(buy_in_id)
        _ensure_in_progress(game)

        game_id = str(game.id)
        if not await self._game_dal.update_buy_in_amount(game_id, buy_in_id, amount):
            await self._raise_for_missed_write(game_id, buy_in_id=buy_in_id)

        updated = await self._game(game_id)
        self._log_totals(updated)
        buy_in = updated.buy_in(buy_in_id)
        if buy_in is None:
            raise buy_in_not_found(buy_in_id)
        return buy_in.model_copy(
            update={"is_rebuy": buy_in_id not in updated.initial_buy_in_ids()}
        )

    async def delete_buy_in(self, buy_in_id: str) -> None:
        """Remove a buy-in while the game is in progress.

        Raises:
            NotFound: Buy-in not found.
            GameAlreadyCompleted: The game is finalized.
        """
        game = await self._game_of_buy_in(buy_in_id)
        _ensure_in_progress(game)

        game_id = str(game.id)
        if not await self._game_dal.delete_buy_in(game_id, buy_in_id):
            await self._raise_for_missed_write(game_id, buy_in_id=buy_in_id)

        self._log_totals(await self._game(game_id))

    # ------------------------------------------------------------------
    # Cashouts
    # ------------------------------------------------------------------

    async def record_cashout(self, participant_id: str, amount: Any) -> Cashout:
        """Record the single final cashout of a participant.

        Of two concurrent calls for the same participant exactly one
        succeeds; the other raises DuplicateCashout.

        Raises:
            ValidationError: Bad amount.
            NotFound: Participant not found.
            GameAlreadyCompleted: The game is finalized.
            DuplicateCashout: The participant already cashed out.
        """
        amount = parse_cashout_amount(amount)
        game = await self._game_of_participant(participant_id)
        cashouts = await self._insert_cashouts(
            game, [CashoutEntry(participant_id, amount)]
        )
        return cashouts[0]

    async def record_cashouts(
        self, game_id: str, entries: list[CashoutEntry]
    ) -> list[Cashout]:
        """Record cashouts for several participants of one game, all or none.

        Raises:
            ValidationError: Bad amount, empty batch or repeated participant.
            NotFound: Game or a participant not found.
            GameAlreadyCompleted: The game is finalized.
            DuplicateCashout: A participant already cashed out.
        """
        if not entries:
            raise ValidationError("At least one cashout is required", kind="EmptyBatch")
        entries = [
            CashoutEntry(e.participant_id, parse_cashout_amount(e.amount))
            for e in entries
        ]
        ids = [e.participant_id for e in entries]
        if len(set(ids)) != len(ids):
            raise ValidationError(
                "Each participant may appear only once in a batch",
                kind="DuplicateParticipantInBatch",
            )
        game = await self._game(game_id)
        return await self._insert_cashouts(game, entries)

    async def _insert_cashouts(
        self, game: Game, entries: list[CashoutEntry]
    ) -> list[Cashout]:
        _ensure_in_progress(game)
        for entry in entries:
            if game.participant(entry.participant_id) is None:
                raise participant_not_found(entry.participant_id)
            if game.cashout_for(entry.participant_id) is not None:
                raise DuplicateCashout(
                    f"Participant {entry.participant_id} has already cashed out"
                )

        now = self._clock()
        cashouts = [
            Cashout(participant_id=e.participant_id, amount=e.amount, timestamp=now)
            for e in entries
        ]
        game_id = str(game.id)
        if not await self._game_dal.add_cashouts(game_id, cashouts):
            current = await self._game(game_id)
            _ensure_in_progress(current)
            for entry in entries:
                if current.cashout_for(entry.participant_id) is not None:
                    logger.warning(
                        "Lost cashout race for participant %s in game %s",
                        entry.participant_id, game_id,
                    )
                    raise DuplicateCashout(
                        f"Participant {entry.participant_id} has already cashed out"
                    )
            raise ConcurrentModification(
                f"Game {game_id} changed while recording cashouts"
            )

        self._log_totals(await self._game(game_id))
        return cashouts

    # ------------------------------------------------------------------
    # Missed writes
    # ------------------------------------------------------------------

    async def _raise_for_missed_write(
        self, game_id: str, buy_in_id: Optional[str] = None
    ) -> None:
        """Re-read the game after a guarded write matched nothing and raise."""
        current = await self._game(game_id)
        _ensure_in_progress(current)
        if buy_in_id is not None and current.buy_in(buy_in_id) is None:
            raise buy_in_not_found(buy_in_id)
        logger.warning("Guarded write on game %s matched nothing", game_id)
        raise ConcurrentModification(f"Game {game_id} changed during the update")
