"""Game Data Access Layer -- MongoDB operations for the games collection.

Each game is one document holding its participants, buy-ins, cashouts and
settlements. Ledger writes are single ``update_one`` calls guarded by the
game being IN_PROGRESS plus an operation-specific condition, so that
uniqueness and lifecycle rules are enforced by the store itself rather
than by a prior read. Every ledger write also bumps ``ledger_version``.

All ObjectId handling is transparent: callers pass/receive strings, the
DAL converts as needed.
"""

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from chipledger.dal.unit_of_work import GameUnitOfWork
from chipledger.models.common import GameStatus, utcnow
from chipledger.models.game import BuyIn, Cashout, Game, Participant

logger = logging.getLogger("chipledger.dal.games")

COLLECTION = "games"

_IN_PROGRESS = str(GameStatus.IN_PROGRESS)


def _to_game(doc: dict) -> Game:
    doc["_id"] = str(doc["_id"])
    return Game(**doc)


def _status_query(status: Optional[GameStatus]) -> dict[str, Any]:
    if status is None:
        return {}
    return {"status": str(status)}


class GameDAL:
    """Data access layer for the games collection."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db[COLLECTION]

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, game: Game) -> Game:
        """Insert a new game document and return it with its id.

        The id is generated client-side so that embedded records can
        reference it from the start.

        Args:
            game: A Game model instance (id may be None).

        Returns:
            The Game with its ``id`` populated.
        """
        if game.id is None:
            game.id = str(ObjectId())
        doc = game.to_mongo_dict()
        doc["_id"] = ObjectId(game.id)
        await self._collection.insert_one(doc)
        logger.info("Created game %s (location=%s)", game.id, game.location)
        return game

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_id(self, game_id: str) -> Optional[Game]:
        """Find a game by its MongoDB ``_id``.

        Args:
            game_id: String representation of the ObjectId.

        Returns:
            A Game instance, or None if not found.
        """
        if not ObjectId.is_valid(game_id):
            return None
        doc = await self._collection.find_one({"_id": ObjectId(game_id)})
        if doc is None:
            return None
        return _to_game(doc)

    async def get_by_participant(self, participant_id: str) -> Optional[Game]:
        """Find the game a participant belongs to.

        Uses the ``idx_participant_id`` multikey index.
        """
        doc = await self._collection.find_one({"participants.id": participant_id})
        if doc is None:
            return None
        return _to_game(doc)

    async def get_by_buy_in(self, buy_in_id: str) -> Optional[Game]:
        """Find the game holding a buy-in. Uses ``idx_buy_in_id``."""
        doc = await self._collection.find_one({"buy_ins.id": buy_in_id})
        if doc is None:
            return None
        return _to_game(doc)

    async def list_games(
        self,
        status: Optional[GameStatus] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> list[Game]:
        """List games sorted by start_time descending.

        Args:
            status: Optional GameStatus to filter on.
            limit: Maximum number of results (default 50).
            skip: Number of documents to skip (for pagination).

        Returns:
            A list of Game instances.
        """
        cursor = (
            self._collection.find(_status_query(status))
            .sort("start_time", -1)
            .skip(skip)
            .limit(limit)
        )
        games: list[Game] = []
        async for doc in cursor:
            games.append(_to_game(doc))
        return games

    async def count_games(self, status: Optional[GameStatus] = None) -> int:
        """Count games, optionally filtered by status."""
        return await self._collection.count_documents(_status_query(status))

    # ------------------------------------------------------------------
    # Guarded ledger writes
    # ------------------------------------------------------------------

    async def _guarded_update(
        self, game_id: str, guard: dict[str, Any], update: dict[str, Any]
    ) -> bool:
        """Apply ``update`` only if the game is IN_PROGRESS and ``guard`` holds.

        Returns:
            True if the game document matched and was updated.
        """
        if not ObjectId.is_valid(game_id):
            return False
        query = {"_id": ObjectId(game_id), "status": _IN_PROGRESS, **guard}
        update.setdefault("$inc", {})["ledger_version"] = 1
        update.setdefault("$set", {})["updated_at"] = utcnow()
        result = await self._collection.update_one(query, update)
        return result.matched_count > 0

    async def add_participant(self, game_id: str, participant: Participant) -> bool:
        """Append a participant unless the player is already in the game."""
        added = await self._guarded_update(
            game_id,
            {"participants.player_id": {"$ne": participant.player_id}},
            {"$push": {"participants": participant.model_dump(mode="python")}},
        )
        if added:
            logger.info(
                "Added participant %s (player=%s) to game %s",
                participant.id, participant.player_id, game_id,
            )
        return added

    async def add_buy_in(self, game_id: str, buy_in: BuyIn) -> bool:
        """Append a buy-in for an existing participant of the game."""
        added = await self._guarded_update(
            game_id,
            {"participants.id": buy_in.participant_id},
            {"$push": {"buy_ins": buy_in.model_dump(mode="python")}},
        )
        if added:
            logger.info(
                "Recorded buy-in %s of %d for participant %s in game %s",
                buy_in.id, buy_in.amount, buy_in.participant_id, game_id,
            )
        return added

    async def update_buy_in_amount(
        self, game_id: str, buy_in_id: str, amount: int
    ) -> bool:
        """Change the amount of an existing buy-in."""
        updated = await self._guarded_update(
            game_id,
            {"buy_ins.id": buy_in_id},
            {"$set": {"buy_ins.$.amount": amount}},
        )
        if updated:
            logger.info(
                "Updated buy-in %s in game %s to %d", buy_in_id, game_id, amount
            )
        return updated

    async def delete_buy_in(self, game_id: str, buy_in_id: str) -> bool:
        """Remove a buy-in from the game."""
        deleted = await self._guarded_update(
            game_id,
            {"buy_ins.id": buy_in_id},
            {"$pull": {"buy_ins": {"id": buy_in_id}}},
        )
        if deleted:
            logger.info("Deleted buy-in %s from game %s", buy_in_id, game_id)
        return deleted

    async def add_cashouts(self, game_id: str, cashouts: list[Cashout]) -> bool:
        """Append cashouts, all or none.

        The guard requires every participant to belong to the game and
        none of them to have a cashout already, which makes "at most one
        cashout per participant" a property of the write itself.
        """
        participant_ids = [c.participant_id for c in cashouts]
        guard: dict[str, Any] = {
            "$and": [{"participants.id": pid} for pid in participant_ids],
            "cashouts.participant_id": {"$nin": participant_ids},
        }
        added = await self._guarded_update(
            game_id,
            guard,
            {
                "$push": {
                    "cashouts": {
                        "$each": [c.model_dump(mode="python") for c in cashouts]
                    }
                }
            },
        )
        if added:
            logger.info(
                "Recorded %d cashout(s) in game %s", len(cashouts), game_id
            )
        return added

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def unit_of_work(self, game: Game) -> GameUnitOfWork:
        """Start a unit of work against the snapshot ``game`` was read from."""
        return GameUnitOfWork(self._collection, game)
