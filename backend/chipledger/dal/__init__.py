"""Data Access Layer -- MongoDB repository classes and connection management."""

from chipledger.dal.database import (
    connect_to_mongo,
    close_mongo_connection,
    ensure_indexes,
    get_database,
)
from chipledger.dal.games_dal import GameDAL
from chipledger.dal.players_dal import PlayerDAL, PlayerRegistry
from chipledger.dal.unit_of_work import GameUnitOfWork

__all__ = [
    # Connection management
    "connect_to_mongo",
    "close_mongo_connection",
    "ensure_indexes",
    "get_database",
    # DAL classes
    "GameDAL",
    "GameUnitOfWork",
    "PlayerDAL",
    "PlayerRegistry",
]
