"""Player registry access -- read-only lookups on the players collection.

Player records are created and edited by the registry that owns them;
the ledger core only resolves ids to identities.
"""

import logging
from typing import Iterable, Optional, Protocol

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from chipledger.models.player import Player

logger = logging.getLogger("chipledger.dal.players")

COLLECTION = "players"


class PlayerRegistry(Protocol):
    """Identity lookups the ledger needs from the player registry."""

    async def find_player(self, player_id: str) -> Optional[Player]: ...

    async def find_players(self, player_ids: Iterable[str]) -> dict[str, Player]: ...


class PlayerDAL:
    """MongoDB-backed player registry (read-only)."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db[COLLECTION]

    async def find_player(self, player_id: str) -> Optional[Player]:
        """Find a player by its MongoDB ``_id``, soft-deleted ones included.

        Args:
            player_id: String representation of the ObjectId.

        Returns:
            A Player instance, or None if not found.
        """
        if not ObjectId.is_valid(player_id):
            return None
        doc = await self._collection.find_one({"_id": ObjectId(player_id)})
        if doc is None:
            return None
        return Player(**doc)

    async def find_players(self, player_ids: Iterable[str]) -> dict[str, Player]:
        """Resolve many ids at once, keyed by player id.

        Unknown or malformed ids are simply absent from the result.
        """
        object_ids = [ObjectId(pid) for pid in set(player_ids) if ObjectId.is_valid(pid)]
        if not object_ids:
            return {}
        players: dict[str, Player] = {}
        async for doc in self._collection.find({"_id": {"$in": object_ids}}):
            player = Player(**doc)
            players[player.id] = player
        return players
