"""Ledger services and their wiring."""

from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from chipledger.config import LedgerPolicy
from chipledger.dal.games_dal import GameDAL
from chipledger.dal.players_dal import PlayerDAL, PlayerRegistry
from chipledger.services.completion_service import CompletionService
from chipledger.services.game_service import GameService
from chipledger.services.ledger_service import LedgerService


@dataclass(frozen=True)
class LedgerServices:
    """The services one application instance runs with."""
    games: GameService
    ledger: LedgerService
    completion: CompletionService


def build_services(
    db: AsyncIOMotorDatabase,
    policy: LedgerPolicy = LedgerPolicy(),
    player_registry: PlayerRegistry | None = None,
) -> LedgerServices:
    """Wire the services against ``db``.

    The player registry defaults to the ``players`` collection of the same
    database.
    """
    game_dal = GameDAL(db)
    players = player_registry if player_registry is not None else PlayerDAL(db)
    return LedgerServices(
        games=GameService(game_dal, players, policy),
        ledger=LedgerService(game_dal, players, policy),
        completion=CompletionService(game_dal, policy),
    )


__all__ = [
    "CompletionService",
    "GameService",
    "LedgerService",
    "LedgerServices",
    "build_services",
]
