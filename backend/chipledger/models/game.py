"""Game aggregate and its embedded ledger records.

A game is stored as one document in the ``games`` collection. Its
participants, buy-ins, cashouts and settlements live in embedded arrays,
each entry carrying its own ``id`` and foreign keys, so that every ledger
write is a single atomic document update.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from chipledger.models.common import (
    BuyInAmount,
    CashoutAmount,
    GameStatus,
    PyObjectId,
    UtcDatetime,
    new_id,
    utcnow,
)

SettlementAmount = Annotated[int, Field(strict=True, ge=1)]


class Participant(BaseModel):
    """A player's membership in one game. Never deleted."""

    id: str = Field(default_factory=new_id)
    game_id: str
    player_id: str
    joined_at: UtcDatetime = Field(default_factory=utcnow)


class BuyIn(BaseModel):
    """Chips bought by a participant. Re-buys are additional records."""

    id: str = Field(default_factory=new_id)
    participant_id: str
    amount: BuyInAmount
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    is_rebuy: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Cashout(BaseModel):
    """The single final amount a participant leaves with. Immutable."""

    id: str = Field(default_factory=new_id)
    participant_id: str
    amount: CashoutAmount
    timestamp: UtcDatetime = Field(default_factory=utcnow)


class Settlement(BaseModel):
    """A directed transfer from a losing player to a winning player."""

    id: str = Field(default_factory=new_id)
    game_id: str
    from_player_id: str
    to_player_id: str
    amount: SettlementAmount
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _distinct_players(self) -> "Settlement":
        if self.from_player_id == self.to_player_id:
            raise ValueError("A settlement cannot pay a player to themselves")
        return self


class Game(BaseModel):
    """Represents a cash-game session stored in the games collection."""

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True}

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    location: Optional[str] = None
    start_time: UtcDatetime
    minimum_cashout_time: UtcDatetime
    end_time: Optional[UtcDatetime] = None
    status: GameStatus = GameStatus.IN_PROGRESS
    discrepancy_notes: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    # Bumped by every ledger write; completion commits against it.
    ledger_version: int = 0

    participants: list[Participant] = Field(default_factory=list)
    buy_ins: list[BuyIn] = Field(default_factory=list)
    cashouts: list[Cashout] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "Game":
        if self.minimum_cashout_time < self.start_time:
            raise ValueError("minimum_cashout_time must be at or after start_time")
        if (self.end_time is not None) != (self.status == GameStatus.COMPLETED):
            raise ValueError("end_time is set exactly when the game is COMPLETED")
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @field_serializer("id")
    def serialize_id(self, value: Optional[str], _info) -> Optional[str]:
        if value is not None:
            return str(value)
        return value

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def is_completed(self) -> bool:
        return self.status == GameStatus.COMPLETED

    def participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def participant_for_player(self, player_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.player_id == player_id), None)

    def buy_in(self, buy_in_id: str) -> Optional[BuyIn]:
        return next((b for b in self.buy_ins if b.id == buy_in_id), None)

    def buy_ins_for(self, participant_id: str) -> list[BuyIn]:
        return [b for b in self.buy_ins if b.participant_id == participant_id]

    def cashout_for(self, participant_id: str) -> Optional[Cashout]:
        return next(
            (c for c in self.cashouts if c.participant_id == participant_id), None
        )

    def initial_buy_in_ids(self) -> set[str]:
        """Ids of each participant's earliest buy-in; every other one is a re-buy.

        Ties on timestamp go to the buy-in recorded first.
        """
        first: dict[str, BuyIn] = {}
        for buy_in in self.buy_ins:
            current = first.get(buy_in.participant_id)
            if current is None or buy_in.timestamp < current.timestamp:
                first[buy_in.participant_id] = buy_in
        return {b.id for b in first.values()}

    def to_mongo_dict(self) -> dict:
        """Convert model to a MongoDB-insertable dict, excluding None id."""
        data = self.model_dump(by_alias=True, mode="python")
        data["status"] = str(self.status)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data


class GameSummary(BaseModel):
    """Row of the games list: a game with its headline totals."""

    id: str
    location: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: GameStatus
    participant_count: int
    total_buy_ins: int
    total_cashouts: int
