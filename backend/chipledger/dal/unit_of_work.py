"""Unit of work for completing a game.

Completion writes cashouts, settlements and the status flip. The unit of
work stages those changes in memory and commits them as one ``update_one``
on the game document, which MongoDB applies atomically. The commit is
guarded by the game still being IN_PROGRESS at the ``ledger_version`` the
snapshot was read at, so a ledger write that lands in between makes the
commit miss instead of settling a stale ledger.

Nothing is written before ``commit()``. Leaving the ``async with`` block
through an exception discards everything staged.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection

from chipledger.models.common import GameStatus, utcnow
from chipledger.models.game import Cashout, Game, Settlement

logger = logging.getLogger("chipledger.dal.unit_of_work")


class GameUnitOfWork:
    """Stages the completion writes of one game and commits them atomically."""

    def __init__(self, collection: AsyncIOMotorCollection, game: Game) -> None:
        if game.id is None:
            raise ValueError("Cannot open a unit of work on an unsaved game")
        self._collection = collection
        self._game_id = game.id
        self._expected_version = game.ledger_version
        self._cashouts: list[Cashout] = []
        self._settlements: list[Settlement] = []
        self._fields: dict[str, Any] = {}
        self.committed = False

    async def __aenter__(self) -> "GameUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and not self.committed:
            logger.warning(
                "Discarding staged completion of game %s (%d cashouts, "
                "%d settlements): %s",
                self._game_id,
                len(self._cashouts),
                len(self._settlements),
                exc,
            )
            self._discard()
        return False

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def add_cashouts(self, cashouts: list[Cashout]) -> None:
        self._cashouts.extend(cashouts)

    def add_settlements(self, settlements: list[Settlement]) -> None:
        self._settlements.extend(settlements)

    def mark_completed(self, end_time: datetime, notes: Optional[str]) -> None:
        self._fields["status"] = str(GameStatus.COMPLETED)
        self._fields["end_time"] = end_time
        if notes is not None:
            self._fields["discrepancy_notes"] = notes

    @property
    def staged_cashouts(self) -> list[Cashout]:
        return list(self._cashouts)

    @property
    def staged_settlements(self) -> list[Settlement]:
        return list(self._settlements)

    def _discard(self) -> None:
        self._cashouts.clear()
        self._settlements.clear()
        self._fields.clear()

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self) -> bool:
        """Write everything staged in a single guarded update.

        Returns:
            True if the game matched the snapshot and the write was applied,
            False if the game was completed or modified since it was read.
        """
        if self.committed:
            raise RuntimeError("Unit of work already committed")

        update: dict[str, Any] = {
            "$set": {**self._fields, "updated_at": utcnow()},
            "$inc": {"ledger_version": 1},
        }
        push: dict[str, Any] = {}
        if self._cashouts:
            push["cashouts"] = {
                "$each": [c.model_dump(mode="python") for c in self._cashouts]
            }
        if self._settlements:
            push["settlements"] = {
                "$each": [s.model_dump(mode="python") for s in self._settlements]
            }
        if push:
            update["$push"] = push

        result = await self._collection.update_one(
            {
                "_id": ObjectId(self._game_id),
                "status": str(GameStatus.IN_PROGRESS),
                "ledger_version": self._expected_version,
            },
            update,
        )
        self.committed = result.matched_count > 0
        if self.committed:
            logger.info(
                "Committed completion of game %s: %d cashouts, %d settlements",
                self._game_id,
                len(self._cashouts),
                len(self._settlements),
            )
        else:
            logger.warning(
                "Completion of game %s did not commit: game changed since "
                "version %d",
                self._game_id,
                self._expected_version,
            )
        return self.committed
