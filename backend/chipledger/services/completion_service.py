"""Game completion.

Finalizing a game records the remaining cashouts, computes who pays whom,
and flips the game to COMPLETED. All of it is committed through one unit
of work, so a game is either untouched or fully completed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from chipledger.config import LedgerPolicy
from chipledger.dal.games_dal import GameDAL
from chipledger.errors import (
    CashoutBeforeMinimumTime,
    ConcurrentModification,
    DuplicateCashout,
    EmptyParticipantSet,
    EndBeforeStart,
    GameAlreadyCompleted,
    MissingCashouts,
    ValidationError,
    game_not_found,
    participant_not_found,
)
from chipledger.models.common import (
    GameStatus,
    parse_cashout_amount,
    parse_notes,
    utcnow,
)
from chipledger.models.game import Cashout, Game, Settlement
from chipledger.models.ledger import CashoutEntry
from chipledger.services.balance import GameBalance, net_balances, reconcile
from chipledger.services.settlement_math import compute_settlements

logger = logging.getLogger("chipledger.services.completion")


@dataclass(frozen=True)
class CompletionResult:
    """The completed game, its settlements and the final balance."""
    game: Game
    settlements: list[Settlement]
    balance: GameBalance


class CompletionService:
    """Orchestrates the IN_PROGRESS -> COMPLETED transition."""

    def __init__(
        self,
        game_dal: GameDAL,
        policy: LedgerPolicy = LedgerPolicy(),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._game_dal = game_dal
        self._policy = policy
        self._clock = clock

    async def complete_game(
        self,
        game_id: str,
        cashouts: list[CashoutEntry],
        notes: Optional[Any] = None,
    ) -> CompletionResult:
        """Complete a game with the final cashouts of its players.

        Participants that cashed out earlier keep their recorded amount.
        Participants with neither a recorded nor a submitted cashout get an
        explicit zero cashout, unless the policy requires complete
        cashouts, in which case completion is refused.

        Args:
            game_id: The game to complete.
            cashouts: (participant_id, amount) entries for the players who
                have not cashed out yet.
            notes: Optional explanation of a balance discrepancy.

        Returns:
            A CompletionResult with the completed game and its settlements.

        Raises:
            ValidationError: Bad amount, oversize notes, repeated participant.
            NotFound: Game not found or a participant not in this game.
            GameAlreadyCompleted: The game is already finalized.
            CashoutBeforeMinimumTime: Called before the minimum cashout time.
            EmptyParticipantSet: The game has no participants.
            EndBeforeStart: The clock is not past the game start.
            DuplicateCashout: A submitted participant already cashed out.
            MissingCashouts: Policy requires a cashout for everyone.
            ConcurrentModification: The ledger changed before the commit.
        """
        notes = parse_notes(notes)
        entries = [
            CashoutEntry(e.participant_id, parse_cashout_amount(e.amount))
            for e in cashouts
        ]
        ids = [e.participant_id for e in entries]
        if len(set(ids)) != len(ids):
            raise ValidationError(
                "Each participant may appear only once in the cashouts",
                kind="DuplicateParticipantInBatch",
            )

        game = await self._game_dal.get_by_id(game_id)
        if game is None:
            raise game_not_found(game_id)
        if game.is_completed:
            raise GameAlreadyCompleted(f"Game {game_id} is already completed")

        now = self._clock()
        if now < game.minimum_cashout_time:
            raise CashoutBeforeMinimumTime(
                "Cannot complete the game before "
                f"{game.minimum_cashout_time.isoformat()}"
            )
        if not game.participants:
            raise EmptyParticipantSet("Cannot complete a game with no participants")
        if now <= game.start_time:
            raise EndBeforeStart("Game end time must be after its start time")

        for entry in entries:
            if game.participant(entry.participant_id) is None:
                raise participant_not_found(entry.participant_id)
            if game.cashout_for(entry.participant_id) is not None:
                raise DuplicateCashout(
                    f"Participant {entry.participant_id} has already cashed out"
                )

        submitted = {e.participant_id: e.amount for e in entries}
        missing = [
            p.id
            for p in game.participants
            if p.id not in submitted and game.cashout_for(p.id) is None
        ]
        if missing and self._policy.require_complete_cashouts:
            raise MissingCashouts(
                f"No cashout for participant(s): {', '.join(missing)}"
            )

        async with self._game_dal.unit_of_work(game) as uow:
            uow.add_cashouts(
                [
                    Cashout(participant_id=pid, amount=amount, timestamp=now)
                    for pid, amount in submitted.items()
                ]
                + [Cashout(participant_id=pid, amount=0, timestamp=now) for pid in missing]
            )

            overrides = {c.participant_id: c.amount for c in uow.staged_cashouts}
            balance = reconcile(game, cashout_overrides=overrides)
            transfers = compute_settlements(net_balances(balance))
            uow.add_settlements(
                [
                    Settlement(
                        game_id=game_id,
                        from_player_id=t.from_player_id,
                        to_player_id=t.to_player_id,
                        amount=t.amount,
                        created_at=now,
                    )
                    for t in transfers
                ]
            )
            uow.mark_completed(end_time=now, notes=notes)
            staged_cashouts = uow.staged_cashouts
            settlements = uow.staged_settlements

            if not await uow.commit():
                current = await self._game_dal.get_by_id(game_id)
                if current is None:
                    raise game_not_found(game_id)
                if current.is_completed:
                    raise GameAlreadyCompleted(f"Game {game_id} is already completed")
                raise ConcurrentModification(
                    f"Game {game_id} changed while it was being completed"
                )

        logger.info(
            "Completed game %s: buy-ins=%d cashouts=%d status=%s settlements=%d "
            "zero-filled=%d",
            game_id,
            balance.total_buy_ins,
            balance.total_cashouts,
            balance.status,
            len(settlements),
            len(missing),
        )
        if balance.balance_discrepancy > 0:
            logger.warning(
                "Game %s completed with more chips cashed out than bought in (+%d)",
                game_id, balance.balance_discrepancy,
            )

        # Committed: nothing past this point may touch storage.
        completed = game.model_copy(
            update={
                "status": GameStatus.COMPLETED,
                "end_time": now,
                "updated_at": now,
                "discrepancy_notes": (
                    notes if notes is not None else game.discrepancy_notes
                ),
                "ledger_version": game.ledger_version + 1,
                "cashouts": game.cashouts + staged_cashouts,
                "settlements": game.settlements + settlements,
            }
        )
        return CompletionResult(game=completed, settlements=settlements, balance=balance)
