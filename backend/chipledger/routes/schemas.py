"""Response schemas shared by several routers."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from chipledger.models.common import GameStatus
from chipledger.models.game import BuyIn, Cashout, Game, Participant


class GameResponse(BaseModel):
    """A game without its embedded ledger entries."""
    id: str
    location: Optional[str] = None
    start_time: datetime
    minimum_cashout_time: datetime
    end_time: Optional[datetime] = None
    status: GameStatus
    discrepancy_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_game(cls, game: Game) -> "GameResponse":
        return cls(
            id=str(game.id),
            location=game.location,
            start_time=game.start_time,
            minimum_cashout_time=game.minimum_cashout_time,
            end_time=game.end_time,
            status=game.status,
            discrepancy_notes=game.discrepancy_notes,
            created_at=game.created_at,
            updated_at=game.updated_at,
        )


class ParticipantResponse(BaseModel):
    id: str
    game_id: str
    player_id: str
    joined_at: datetime

    @classmethod
    def from_participant(cls, participant: Participant) -> "ParticipantResponse":
        return cls(**participant.model_dump())


class BuyInResponse(BaseModel):
    id: str
    participant_id: str
    amount: int
    timestamp: datetime
    is_rebuy: bool
    created_at: datetime

    @classmethod
    def from_buy_in(cls, buy_in: BuyIn) -> "BuyInResponse":
        return cls(**buy_in.model_dump())


class CashoutResponse(BaseModel):
    id: str
    participant_id: str
    amount: int
    timestamp: datetime

    @classmethod
    def from_cashout(cls, cashout: Cashout) -> "CashoutResponse":
        return cls(**cashout.model_dump())
