"""Game business logic service.

Handles game creation and the read side of a game: the full ledger view
with reconciled totals, the games list, and the settlement list. Sits
between route handlers and the DAL.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from pymongo.errors import PyMongoError

from chipledger.config import LedgerPolicy
from chipledger.dal.games_dal import GameDAL
from chipledger.dal.players_dal import PlayerRegistry
from chipledger.errors import (
    MinCashoutBeforeStart,
    StartTimeInFuture,
    game_not_found,
)
from chipledger.models.common import (
    BalanceStatus,
    GameStatus,
    TransactionType,
    parse_location,
    parse_timestamp,
    utcnow,
)
from chipledger.models.game import Game, GameSummary, Settlement
from chipledger.models.ledger import (
    GameLedger,
    ParticipantTotals,
    SettlementView,
    Transaction,
)
from chipledger.services.balance import reconcile

logger = logging.getLogger("chipledger.services.game")

UNKNOWN_PLAYER = "Unknown"


class GameService:
    """Service layer for game lifecycle and ledger queries."""

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
    # Helpers
    # ------------------------------------------------------------------

    async def _player_names(self, player_ids: Iterable[str]) -> dict[str, str]:
        players = await self._players.find_players(player_ids)
        return {pid: p.display_name for pid, p in players.items()}

    # ------------------------------------------------------------------
    # Create game
    # ------------------------------------------------------------------

    async def create_game(
        self,
        start_time: datetime | str,
        minimum_cashout_time: datetime | str,
        location: Optional[str] = None,
    ) -> Game:
        """Create a new IN_PROGRESS game.

        Args:
            start_time: When play started. Past times are accepted so that
                historical games can be entered.
            minimum_cashout_time: Earliest time the game may be completed.
            location: Optional free-text location (max 100 characters).

        Returns:
            The created Game.

        Raises:
            ValidationError: Malformed timestamp or location.
            StartTimeInFuture: start_time is beyond the clock-skew tolerance.
            MinCashoutBeforeStart: minimum_cashout_time < start_time.
        """
        start = parse_timestamp(start_time)
        minimum_cashout = parse_timestamp(minimum_cashout_time)
        location = parse_location(location)

        now = self._clock()
        if (
            self._policy.enforce_start_time_not_in_future
            and start > now + self._policy.clock_skew
        ):
            raise StartTimeInFuture(
                f"Start time {start.isoformat()} is in the future"
            )
        if minimum_cashout < start:
            raise MinCashoutBeforeStart(
                "Minimum cashout time must be at or after start time"
            )

        game = Game(
            location=location,
            start_time=start,
            minimum_cashout_time=minimum_cashout,
            status=GameStatus.IN_PROGRESS,
            created_at=now,
            updated_at=now,
        )
        game = await self._game_dal.create(game)

        logger.info(
            "Game created: id=%s start=%s min_cashout=%s",
            game.id, start.isoformat(), minimum_cashout.isoformat(),
        )
        return game

    # ------------------------------------------------------------------
    # Get game
    # ------------------------------------------------------------------

    async def get_game(self, game_id: str) -> Game:
        """Get a game by its id.

        Raises:
            NotFound: Game not found.
        """
        game = await self._game_dal.get_by_id(game_id)
        if game is None:
            raise game_not_found(game_id)
        return game

    async def list_games(
        self,
        status: Optional[GameStatus] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> list[GameSummary]:
        """List games newest first with participant count and totals."""
        games = await self._game_dal.list_games(status=status, limit=limit, skip=skip)
        summaries = []
        for game in games:
            balance = reconcile(game)
            summaries.append(
                GameSummary(
                    id=str(game.id),
                    location=game.location,
                    start_time=game.start_time,
                    end_time=game.end_time,
                    status=game.status,
                    participant_count=len(game.participants),
                    total_buy_ins=balance.total_buy_ins,
                    total_cashouts=balance.total_cashouts,
                )
            )
        return summaries

    async def count_games(self, status: Optional[GameStatus] = None) -> int:
        """Total number of games matching the list filter, across all pages."""
        return await self._game_dal.count_games(status=status)

    # ------------------------------------------------------------------
    # Ledger view
    # ------------------------------------------------------------------

    async def get_game_ledger(self, game_id: str) -> GameLedger:
        """Return the full ledger of a game.

        Participants come with their totals, sorted by join time. The
        transaction log merges buy-ins and cashouts ordered by timestamp.
        The balance status is recomputed from the entries on every call.

        Raises:
            NotFound: Game not found.
        """
        game = await self.get_game(game_id)
        balance = reconcile(game)

        player_ids = {p.player_id for p in game.participants}
        for s in game.settlements:
            player_ids.update((s.from_player_id, s.to_player_id))
        names = await self._player_names(player_ids)

        participant_by_id = {p.id: p for p in game.participants}
        participants = sorted(
            (
                ParticipantTotals(
                    id=pb.participant_id,
                    player_id=pb.player_id,
                    player_name=names.get(pb.player_id, UNKNOWN_PLAYER),
                    joined_at=participant_by_id[pb.participant_id].joined_at,
                    buy_in_count=pb.buy_in_count,
                    total_buy_ins=pb.total_buy_ins,
                    total_cashouts=pb.cashout,
                    has_cashed_out=pb.has_cashed_out,
                    profit_loss=pb.profit_loss,
                )
                for pb in balance.participants
            ),
            key=lambda p: p.joined_at,
        )

        initial_buy_ins = game.initial_buy_in_ids()
        transactions: list[Transaction] = []
        for buy_in in game.buy_ins:
            player_id = participant_by_id[buy_in.participant_id].player_id
            transactions.append(
                Transaction(
                    id=buy_in.id,
                    type=TransactionType.BUY_IN,
                    participant_id=buy_in.participant_id,
                    player_id=player_id,
                    player_name=names.get(player_id, UNKNOWN_PLAYER),
                    amount=buy_in.amount,
                    timestamp=buy_in.timestamp,
                    is_rebuy=buy_in.id not in initial_buy_ins,
                )
            )
        for cashout in game.cashouts:
            player_id = participant_by_id[cashout.participant_id].player_id
            transactions.append(
                Transaction(
                    id=cashout.id,
                    type=TransactionType.CASHOUT,
                    participant_id=cashout.participant_id,
                    player_id=player_id,
                    player_name=names.get(player_id, UNKNOWN_PLAYER),
                    amount=cashout.amount,
                    timestamp=cashout.timestamp,
                )
            )
        transactions.sort(key=lambda t: t.timestamp)

        if balance.status == BalanceStatus.RED:
            logger.warning(
                "Game %s has more chips cashed out than bought in (+%d)",
                game.id, balance.balance_discrepancy,
            )

        return GameLedger(
            id=str(game.id),
            location=game.location,
            start_time=game.start_time,
            minimum_cashout_time=game.minimum_cashout_time,
            end_time=game.end_time,
            status=game.status,
            discrepancy_notes=game.discrepancy_notes,
            total_buy_ins=balance.total_buy_ins,
            total_cashouts=balance.total_cashouts,
            balance_discrepancy=balance.balance_discrepancy,
            balance_status=balance.status,
            participants=participants,
            transactions=transactions,
            settlements=self._settlement_views(game.settlements, names),
        )

    # ------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------

    async def get_settlements(self, game_id: str) -> list[SettlementView]:
        """Return the settlements of a game with player names.

        Empty for games that are still in progress.
        """
        game = await self.get_game(game_id)
        return await self.describe_settlements(game.settlements)

    async def describe_settlements(
        self, settlements: list[Settlement], best_effort: bool = False
    ) -> list[SettlementView]:
        """Attach player display names to settlements.

        With ``best_effort`` a registry outage leaves every name as
        "Unknown" instead of failing the call.
        """
        player_ids = set()
        for s in settlements:
            player_ids.update((s.from_player_id, s.to_player_id))
        try:
            names = await self._player_names(player_ids)
        except PyMongoError as exc:
            if not best_effort:
                raise
            logger.warning("Player names unavailable for settlements: %s", exc)
            names = {}
        return self._settlement_views(settlements, names)

    @staticmethod
    def _settlement_views(
        settlements: list[Settlement], names: dict[str, str]
    ) -> list[SettlementView]:
        return [
            SettlementView(
                id=s.id,
                game_id=s.game_id,
                from_player_id=s.from_player_id,
                from_player_name=names.get(s.from_player_id, UNKNOWN_PLAYER),
                to_player_id=s.to_player_id,
                to_player_name=names.get(s.to_player_id, UNKNOWN_PLAYER),
                amount=s.amount,
                created_at=s.created_at,
            )
            for s in settlements
        ]
